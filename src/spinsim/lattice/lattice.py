"""
Periodic lattice index space and bond templates.

Provides the geometric bookkeeping shared by interactions, Hamiltonians
and spin configurations:
- Lattice: sublattice sites tiled over a periodic 3D box of unit cells
- Bond: directed coupling template between two sublattices
- CellRange: restartable iteration over all cell coordinates
"""

from __future__ import annotations

import numpy as np
from typing import Iterator, Sequence, Tuple
from dataclasses import dataclass


Cell = Tuple[int, int, int]


@dataclass(frozen=True)
class Bond:
    """
    Directed coupling template between two sublattice sites.

    A bond connects sublattice ``i`` in cell ``c`` to sublattice ``j`` in
    cell ``c + n``. Once expanded by symmetry, a single bond stands for a
    whole equivalence class of couplings.

    Attributes
    ----------
    i : int
        Source sublattice index
    j : int
        Target sublattice index
    n : tuple of int
        Integer cell displacement from source to target
    """
    i: int
    j: int
    n: Cell = (0, 0, 0)

    def __post_init__(self):
        n = tuple(int(x) for x in self.n)
        if len(n) != 3:
            raise ValueError(f"Bond displacement must have 3 components, got {self.n}")
        object.__setattr__(self, 'n', n)

    def reverse(self) -> Bond:
        """The same bond traversed from j to i."""
        return Bond(self.j, self.i, tuple(-x for x in self.n))

    def canonical(self) -> Tuple[Bond, bool]:
        """
        Canonical orientation of the bond.

        Returns
        -------
        bond : Bond
            Either this bond or its reverse: the one with i < j, or for
            i == j the one whose displacement is lexicographically larger
        reversed : bool
            True if the reverse was chosen
        """
        rev = self.reverse()
        if (rev.i, rev.j, tuple(-x for x in rev.n)) < (self.i, self.j, tuple(-x for x in self.n)):
            return rev, True
        return self, False

    def is_on_site(self) -> bool:
        """True if the bond connects a site to itself within one cell."""
        return self.i == self.j and not any(self.n)

    def wraps(self, extents: Sequence[int]) -> bool:
        """True if the displacement reaches across the whole periodic box."""
        return any(abs(x) >= L for x, L in zip(self.n, extents))

    def __repr__(self) -> str:
        return f"Bond({self.i}, {self.j}, {list(self.n)})"


class CellRange:
    """
    Lazy, restartable sequence of every cell coordinate of a lattice.

    Iterates in C order, so the k-th cell yielded has linear cell index k.
    """

    def __init__(self, extents: Cell):
        self.extents = extents

    def __iter__(self) -> Iterator[Cell]:
        L1, L2, L3 = self.extents
        for c1 in range(L1):
            for c2 in range(L2):
                for c3 in range(L3):
                    yield (c1, c2, c3)

    def __len__(self) -> int:
        return int(np.prod(self.extents))

    def __contains__(self, cell) -> bool:
        return (
            len(cell) == 3
            and all(0 <= int(c) < L for c, L in zip(cell, self.extents))
        )


class Lattice:
    """
    Periodic lattice of unit cells, each holding ``nbasis`` sublattice sites.

    The lattice is a pure index space: it holds no positions or
    interactions. Site data is stored in arrays of shape
    ``(L1, L2, L3, nbasis, ...)`` and the linear site index is the C-order
    ravel of ``(c1, c2, c3, sublattice)``.

    Parameters
    ----------
    nbasis : int
        Number of sublattice sites per unit cell
    extents : tuple of int
        Number of unit cells along each lattice vector

    Examples
    --------
    >>> lat = Lattice(2, (4, 4, 1))
    >>> lat.nsites
    32
    >>> lat.site_index(1, (0, 1, 0))
    3
    >>> lat.site_from_index(3)
    (1, (0, 1, 0))
    """

    dimension = 3

    def __init__(self, nbasis: int, extents: Sequence[int]):
        extents = tuple(int(L) for L in extents)
        if len(extents) != 3:
            raise ValueError(
                f"Only three-dimensional lattices are supported, got extents {extents}"
            )
        if nbasis < 1 or any(L < 1 for L in extents):
            raise ValueError(
                f"Lattice needs nbasis >= 1 and positive extents, got {nbasis}, {extents}"
            )
        self._nbasis = int(nbasis)
        self._extents: Cell = extents

    @property
    def nbasis(self) -> int:
        """Number of sublattice sites per unit cell."""
        return self._nbasis

    @property
    def extents(self) -> Cell:
        """Number of cells along each lattice vector."""
        return self._extents

    @property
    def ncells(self) -> int:
        return int(np.prod(self._extents))

    @property
    def nsites(self) -> int:
        return self.ncells * self._nbasis

    @property
    def shape(self) -> Tuple[int, int, int, int]:
        """Leading shape of per-site arrays: (L1, L2, L3, nbasis)."""
        return self._extents + (self._nbasis,)

    def wrap(self, cell: Sequence[int]) -> Cell:
        """Wrap a cell coordinate into the periodic box."""
        return tuple(int(c) % L for c, L in zip(cell, self._extents))

    def site_index(self, sublattice: int, cell: Sequence[int]) -> int:
        """Linear index of a site, wrapping the cell periodically."""
        if not 0 <= sublattice < self._nbasis:
            raise IndexError(
                f"Sublattice {sublattice} out of range for {self._nbasis} basis sites"
            )
        c1, c2, c3 = self.wrap(cell)
        return int(np.ravel_multi_index((c1, c2, c3, sublattice), self.shape))

    def site_from_index(self, index: int) -> Tuple[int, Cell]:
        """Inverse of :meth:`site_index`: returns (sublattice, cell)."""
        if not 0 <= index < self.nsites:
            raise IndexError(f"Site index {index} out of range for {self.nsites} sites")
        c1, c2, c3, b = np.unravel_index(index, self.shape)
        return int(b), (int(c1), int(c2), int(c3))

    def cell_indices(self) -> CellRange:
        """All cell coordinates, as a restartable lazy sequence."""
        return CellRange(self._extents)

    def __len__(self) -> int:
        return self.nsites

    def __eq__(self, other) -> bool:
        if not isinstance(other, Lattice):
            return NotImplemented
        return self._nbasis == other._nbasis and self._extents == other._extents

    def __hash__(self):
        return hash((self._nbasis, self._extents))

    def __repr__(self) -> str:
        return f"Lattice(nbasis={self._nbasis}, extents={self._extents})"
