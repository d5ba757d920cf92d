"""
Crystal geometry and symmetry operations.

The crystal is the symmetry collaborator of the interaction builder: for a
representative bond or site it enumerates the symmetry-equivalent images and
supplies the Cartesian rotation used to transform couplings. The space-group
operations themselves are supplied by the caller (for instance exported
from a crystallographic database); :func:`close_group` completes a set of
generators to the full finite group.
"""

from __future__ import annotations

import numpy as np
from typing import List, Optional, Sequence, Tuple
from dataclasses import dataclass, field

from spinsim.lattice.lattice import Bond, Lattice


@dataclass(frozen=True, eq=False)
class SymmetryOperation:
    """
    Space-group operation acting on fractional coordinates: r -> R r + t.

    Attributes
    ----------
    rotation : np.ndarray
        Integer 3x3 rotation (proper or improper) in fractional coordinates
    translation : np.ndarray
        Fractional translation
    time_reversal : bool
        Whether the operation is combined with time reversal (magnetic
        space groups)
    """
    rotation: np.ndarray
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))
    time_reversal: bool = False

    def __post_init__(self):
        R = np.asarray(self.rotation)
        if R.shape != (3, 3):
            raise ValueError(f"Rotation must be 3x3, got shape {R.shape}")
        Ri = np.rint(R).astype(int)
        if not np.allclose(R, Ri):
            raise ValueError("Rotation must be integer-valued in fractional coordinates")
        t = np.asarray(self.translation, dtype=float).reshape(3)
        object.__setattr__(self, 'rotation', Ri)
        object.__setattr__(self, 'translation', t)

    @classmethod
    def identity(cls) -> SymmetryOperation:
        return cls(np.eye(3, dtype=int))

    @property
    def determinant(self) -> int:
        return int(round(np.linalg.det(self.rotation)))

    def apply(self, position: np.ndarray) -> np.ndarray:
        """Image of a fractional position."""
        return self.rotation @ np.asarray(position, dtype=float) + self.translation

    def __mul__(self, other: SymmetryOperation) -> SymmetryOperation:
        """Composition: (self * other)(r) = self(other(r))."""
        return SymmetryOperation(
            self.rotation @ other.rotation,
            self.rotation @ other.translation + self.translation,
            self.time_reversal != other.time_reversal,
        )

    def equivalent(self, other: SymmetryOperation, tol: float = 1e-6) -> bool:
        """Equality modulo lattice translations."""
        if self.time_reversal != other.time_reversal:
            return False
        if not np.array_equal(self.rotation, other.rotation):
            return False
        dt = self.translation - other.translation
        return np.allclose(dt, np.rint(dt), atol=tol)

    def __repr__(self) -> str:
        tr = ", time_reversal=True" if self.time_reversal else ""
        return (f"SymmetryOperation(rotation={self.rotation.tolist()}, "
                f"translation={np.round(self.translation, 6).tolist()}{tr})")


def close_group(
    generators: Sequence[SymmetryOperation],
    max_order: int = 384,
) -> List[SymmetryOperation]:
    """
    Complete a set of generators to a finite group (modulo translations).

    Parameters
    ----------
    generators : sequence of SymmetryOperation
        Group generators
    max_order : int
        Safety bound on the group order

    Returns
    -------
    list of SymmetryOperation
        All group elements, identity first
    """
    def _reduced(op):
        return SymmetryOperation(op.rotation, op.translation % 1.0, op.time_reversal)

    group = [SymmetryOperation.identity()]
    frontier = list(group)
    while frontier:
        new = []
        for a in frontier:
            for g in generators:
                prod = _reduced(g * a)
                if not any(prod.equivalent(h) for h in group):
                    group.append(prod)
                    new.append(prod)
                    if len(group) > max_order:
                        raise ValueError(
                            f"Group generated exceeds {max_order} elements; "
                            "check that the generators describe a finite space group"
                        )
        frontier = new
    return group


def lattice_vectors(
    a: float, b: float, c: float,
    alpha: float = 90.0, beta: float = 90.0, gamma: float = 90.0,
) -> np.ndarray:
    """
    Lattice vectors (rows) from cell lengths and angles in degrees.

    Convention: a1 along x, a2 in the xy-plane.
    """
    al, be, ga = np.radians([alpha, beta, gamma])
    a1 = np.array([a, 0.0, 0.0])
    a2 = np.array([b * np.cos(ga), b * np.sin(ga), 0.0])
    cx = c * np.cos(be)
    cy = c * (np.cos(al) - np.cos(be) * np.cos(ga)) / np.sin(ga)
    cz = np.sqrt(c**2 - cx**2 - cy**2)
    a3 = np.array([cx, cy, cz])
    return np.array([a1, a2, a3])


class Crystal:
    """
    Crystal: lattice vectors, sublattice positions, and symmetry operations.

    Parameters
    ----------
    latvecs : array_like, shape (3, 3)
        Lattice vectors as rows, in Cartesian coordinates
    positions : array_like, shape (nbasis, 3)
        Fractional positions of the magnetic sublattice sites
    symops : sequence of SymmetryOperation, optional
        Space-group operations, which must form a group (modulo lattice
        translations); see :func:`close_group`. Defaults to the identity
        only (P1).
    symprec : float
        Tolerance for matching positions

    Examples
    --------
    >>> cryst = Crystal(np.eye(3), [[0, 0, 0]], cubic_operations())
    >>> orbit = cryst.bond_orbit(Bond(0, 0, (1, 0, 0)))
    >>> len(orbit)
    3
    """

    def __init__(
        self,
        latvecs: np.ndarray,
        positions: Sequence[Sequence[float]],
        symops: Optional[Sequence[SymmetryOperation]] = None,
        symprec: float = 1e-5,
    ):
        self.latvecs = np.asarray(latvecs, dtype=float)
        if self.latvecs.shape != (3, 3):
            raise ValueError(f"latvecs must be 3x3, got shape {self.latvecs.shape}")
        self.positions = np.atleast_2d(np.asarray(positions, dtype=float))
        if self.positions.shape[1] != 3:
            raise ValueError("positions must be fractional 3-vectors")
        self.symprec = symprec
        self.symops: List[SymmetryOperation] = (
            list(symops) if symops else [SymmetryOperation.identity()]
        )

        # Each operation must permute the sublattices
        for op in self.symops:
            for i in range(self.nbasis):
                self.site_image(op, i)
        self._check_group()

    def _check_group(self) -> None:
        """Orbits are only complete if the operations form a group."""
        # Operations grouped by (rotation, time reversal); translations compared mod 1
        members = {}
        for op in self.symops:
            members.setdefault((op.rotation.tobytes(), op.time_reversal), []).append(op)

        def contains(target):
            candidates = members.get((target.rotation.tobytes(), target.time_reversal), [])
            return any(target.equivalent(op, self.symprec) for op in candidates)

        if not contains(SymmetryOperation.identity()):
            raise ValueError(
                "Symmetry operations must include the identity; "
                "use close_group() to complete a set of generators"
            )
        for g in self.symops:
            for h in self.symops:
                if not contains(g * h):
                    raise ValueError(
                        f"Symmetry operations are not closed under composition: "
                        f"{g!r} * {h!r} is missing; use close_group() to complete them"
                    )

    @property
    def nbasis(self) -> int:
        return len(self.positions)

    def lattice(self, extents: Sequence[int]) -> Lattice:
        """Periodic lattice of this crystal's sublattices."""
        return Lattice(self.nbasis, extents)

    def _locate(self, position: np.ndarray) -> Tuple[int, Tuple[int, int, int]]:
        for k, pk in enumerate(self.positions):
            diff = position - pk
            cell = np.rint(diff)
            if np.allclose(diff, cell, atol=self.symprec):
                return k, tuple(int(c) for c in cell)
        raise ValueError(
            f"Position {np.round(position, 6).tolist()} does not match any "
            "sublattice site; symmetry operations are inconsistent with the crystal"
        )

    def site_image(self, op: SymmetryOperation, i: int) -> Tuple[int, Tuple[int, int, int]]:
        """
        Image of sublattice ``i`` (in cell 0) under ``op``.

        Returns
        -------
        sublattice : int
            Image sublattice
        cell : tuple of int
            Cell holding the image
        """
        return self._locate(op.apply(self.positions[i]))

    def bond_image(self, op: SymmetryOperation, bond: Bond) -> Bond:
        """Image of a bond under ``op``, re-expressed from cell 0."""
        i2, ci = self.site_image(op, bond.i)
        j2, cj = self._locate(op.apply(self.positions[bond.j] + np.array(bond.n)))
        return Bond(i2, j2, tuple(b - a for a, b in zip(ci, cj)))

    def bond_orbit(self, bond: Bond) -> List[Bond]:
        """Distinct symmetry-equivalent bonds, in canonical orientation."""
        orbit = []
        for op in self.symops:
            b, _ = self.bond_image(op, bond).canonical()
            if b not in orbit:
                orbit.append(b)
        return orbit

    def site_orbit(self, i: int) -> List[int]:
        """Sublattices equivalent to ``i`` by symmetry."""
        orbit = []
        for op in self.symops:
            k, _ = self.site_image(op, i)
            if k not in orbit:
                orbit.append(k)
        return orbit

    def cartesian_rotation(self, op: SymmetryOperation) -> np.ndarray:
        """Rotation of ``op`` in Cartesian coordinates, A R A^-1."""
        A = self.latvecs.T
        return A @ op.rotation @ np.linalg.inv(A)

    def reciprocal_vectors(self) -> np.ndarray:
        """Reciprocal lattice vectors (rows), a_i . b_j = 2 pi delta_ij."""
        return 2 * np.pi * np.linalg.inv(self.latvecs.T)

    def cartesian_positions(self) -> np.ndarray:
        return self.positions @ self.latvecs

    def __repr__(self) -> str:
        return f"Crystal(nbasis={self.nbasis}, symops={len(self.symops)})"


def cubic_operations() -> List[SymmetryOperation]:
    """The 48 point operations of the cubic group m-3m (no translations)."""
    c4z = SymmetryOperation(np.array([[0, -1, 0], [1, 0, 0], [0, 0, 1]]))
    c3 = SymmetryOperation(np.array([[0, 0, 1], [1, 0, 0], [0, 1, 0]]))
    inversion = SymmetryOperation(-np.eye(3, dtype=int))
    return close_group([c4z, c3, inversion])
