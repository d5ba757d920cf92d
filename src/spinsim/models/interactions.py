"""
Interaction terms of a spin Hamiltonian.

Two kinds of terms are supported:
- PairwiseQuadratic: e_i . J . e_j on a bond, where e are dipoles or
  su(N) generator expectations
- OnSiteAnisotropy: a polynomial in the spin operators of one sublattice

Helper constructors build the common cases (Heisenberg, general exchange,
Dzyaloshinskii-Moriya, single-ion anisotropy).
"""

from __future__ import annotations

import math
import numpy as np
from itertools import permutations
from typing import Dict, Sequence, Tuple, Union
from dataclasses import dataclass, field

from spinsim.core.einsum import einsum
from spinsim.lattice.lattice import Bond
from spinsim.models.operators import SpinOperators


_AXES = {'x': 0, 'y': 1, 'z': 2}
_LETTERS = 'abcdefgh'


@dataclass
class SymmetryPolicy:
    """
    Conventions for transforming couplings under symmetry operations.

    Attributes
    ----------
    axial_spins : bool
        Dipoles transform as axial vectors, det(R) R. Applies to
        couplings over the three dipole channels.
    exchange_time_reversal : bool
        Time-reversing operations flip the sign of spins in pair couplings
    anisotropy_time_reversal : bool
        Time-reversing operations flip the sign of spins in anisotropies
    atol : float
        Absolute tolerance when comparing transformed couplings
    """
    axial_spins: bool = True
    exchange_time_reversal: bool = True
    anisotropy_time_reversal: bool = True
    atol: float = 1e-8


@dataclass
class PairwiseQuadratic:
    """
    Bilinear coupling e_i(c) . J . e_j(c + n) on a bond.

    Parameters
    ----------
    bond : Bond
        Directed bond (i, j, n)
    coupling : np.ndarray
        Real K x K matrix; K = 3 for dipole channels, K = N^2 - 1 for
        su(N) generator channels
    """
    bond: Bond
    coupling: np.ndarray

    def __post_init__(self):
        J = np.asarray(self.coupling)
        if J.ndim == 0:
            J = float(J) * np.eye(3)
        if np.iscomplexobj(J):
            if not np.allclose(J.imag, 0):
                raise ValueError("Pair couplings must be real")
            J = J.real
        J = np.array(J, dtype=float)
        if J.ndim != 2 or J.shape[0] != J.shape[1]:
            raise ValueError(f"Coupling must be a square matrix, got shape {J.shape}")
        self.coupling = J

    @property
    def nchannels(self) -> int:
        return self.coupling.shape[0]

    def reversed(self) -> PairwiseQuadratic:
        """Same interaction expressed on the reversed bond."""
        return PairwiseQuadratic(self.bond.reverse(), self.coupling.T)

    def canonical(self) -> PairwiseQuadratic:
        bond, rev = self.bond.canonical()
        return self.reversed() if rev else self

    def __repr__(self) -> str:
        return f"PairwiseQuadratic({self.bond!r}, K={self.nchannels})"


@dataclass
class OnSiteAnisotropy:
    """
    Single-ion anisotropy sum_k sum T_k[a1..ak] S_a1 ... S_ak.

    Parameters
    ----------
    site : int
        Sublattice the anisotropy acts on
    coefficients : dict
        Degree -> real coefficient tensor of shape (3,)*degree

    Notes
    -----
    In dipole mode the polynomial is evaluated on the classical spin
    vector, where only the symmetrized tensors matter. In SU(N) mode the
    ordered operator product is formed from the spin matrices and
    Hermitized; see :meth:`operator`.
    """
    site: int
    coefficients: Dict[int, np.ndarray] = field(default_factory=dict)

    def __post_init__(self):
        coeffs = {}
        for degree, T in self.coefficients.items():
            T = np.asarray(T, dtype=float)
            if T.shape != (3,) * int(degree):
                raise ValueError(
                    f"Degree-{degree} coefficients need shape {(3,) * int(degree)}, "
                    f"got {T.shape}"
                )
            if int(degree) > len(_LETTERS):
                raise ValueError(f"Polynomial degree {degree} too large")
            coeffs[int(degree)] = T
        self.coefficients = coeffs

    @property
    def degree(self) -> int:
        return max(self.coefficients, default=0)

    def symmetrized(self) -> Dict[int, np.ndarray]:
        """Coefficient tensors symmetrized over their indices."""
        return {k: symmetrize(T) for k, T in self.coefficients.items()}

    def transformed(self, M: np.ndarray, site: int) -> OnSiteAnisotropy:
        """
        Anisotropy seen after the spins are mapped by s -> M s.

        T'[b1..bk] = sum_a T[a1..ak] M[b1,a1] ... M[bk,ak]
        """
        coeffs = {}
        for k, T in self.coefficients.items():
            if k == 0:
                coeffs[k] = T.copy()
                continue
            idx = _LETTERS[:k]
            out = ''.join(chr(ord('p') + n) for n in range(k))
            subs = idx + ',' + ','.join(o + a for o, a in zip(out, idx)) + '->' + out
            coeffs[k] = np.einsum(subs, T, *([M] * k))
        return OnSiteAnisotropy(site, coeffs)

    def operator(self, N: int) -> np.ndarray:
        """Hermitian N x N matrix of the anisotropy in the N-level space."""
        return SpinOperators.from_dim(N).polynomial(self.coefficients)

    def classical_energy(self, s: np.ndarray) -> np.ndarray:
        """Polynomial evaluated on classical spins ``s`` of shape (M, 3)."""
        E = np.zeros(len(s))
        for k, T in self.symmetrized().items():
            if k == 0:
                E += float(T)
                continue
            idx = _LETTERS[:k]
            subs = idx + ',' + ','.join('m' + a for a in idx) + '->m'
            E += einsum(subs, T, *([s] * k))
        return E

    def classical_gradient(self, s: np.ndarray) -> np.ndarray:
        """Gradient of :meth:`classical_energy` with respect to ``s``."""
        G = np.zeros_like(s, dtype=float)
        for k, T in self.symmetrized().items():
            if k == 0:
                continue
            idx = _LETTERS[:k]
            if k == 1:
                G += T[None, :]
                continue
            subs = idx + ',' + ','.join('m' + a for a in idx[1:]) + '->m' + idx[0]
            G += k * einsum(subs, T, *([s] * (k - 1)))
        return G

    def __repr__(self) -> str:
        return f"OnSiteAnisotropy(site={self.site}, degrees={sorted(self.coefficients)})"


Interaction = Union[PairwiseQuadratic, OnSiteAnisotropy]


def symmetrize(T: np.ndarray) -> np.ndarray:
    """Average of a tensor over all permutations of its indices."""
    k = T.ndim
    if k < 2:
        return T.copy()
    total = sum(np.transpose(T, p) for p in permutations(range(k)))
    return total / math.factorial(k)


def heisenberg(J: float, bond: Bond) -> PairwiseQuadratic:
    """Isotropic exchange J S_i . S_j."""
    return PairwiseQuadratic(bond, J * np.eye(3))


def exchange(J: np.ndarray, bond: Bond) -> PairwiseQuadratic:
    """General 3x3 (or su(N) generator) exchange matrix."""
    return PairwiseQuadratic(bond, J)


def dm_interaction(D: Sequence[float], bond: Bond) -> PairwiseQuadratic:
    """Dzyaloshinskii-Moriya coupling D . (S_i x S_j)."""
    Dx, Dy, Dz = D
    J = np.array([
        [0.0, Dz, -Dy],
        [-Dz, 0.0, Dx],
        [Dy, -Dx, 0.0],
    ])
    return PairwiseQuadratic(bond, J)


def anisotropy(
    terms: Sequence[Tuple[float, Union[str, Sequence[int]]]],
    site: int,
) -> OnSiteAnisotropy:
    """
    Build an on-site anisotropy from operator products.

    Parameters
    ----------
    terms : sequence of (coefficient, axes)
        Each term contributes coefficient * S_a1 ... S_ak, with the axes
        given as a string over 'xyz' or as integer indices. An empty axes
        string is a constant.
    site : int
        Sublattice index

    Examples
    --------
    >>> easy_axis = anisotropy([(-0.5, 'zz')], site=0)
    >>> cubic = anisotropy([(1.0, 'xxxx'), (1.0, 'yyyy'), (1.0, 'zzzz')], site=0)
    """
    coeffs: Dict[int, np.ndarray] = {}
    for coef, axes in terms:
        if isinstance(axes, str):
            try:
                axes = [_AXES[a] for a in axes.lower()]
            except KeyError:
                raise ValueError(f"Axes must be drawn from 'xyz', got {axes!r}") from None
        axes = tuple(int(a) for a in axes)
        k = len(axes)
        T = coeffs.setdefault(k, np.zeros((3,) * k))
        T[axes] += coef
    return OnSiteAnisotropy(site, coeffs)
