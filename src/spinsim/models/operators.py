"""
Spin operators and symmetry representations for dipole and SU(N) spins.

This module provides the operator algebra used by the SU(N) coherent-state
mode and by symmetry validation:
- Spin operators (Sx, Sy, Sz, S+, S-) for spin S in the (2S+1)-level space
- Generalized Gell-Mann generators of su(N)
- Rotation (Wigner) and time-reversal representations
- Adjoint action of a symmetry on a generator basis
"""

from __future__ import annotations

import numpy as np
from typing import Dict, Optional
from dataclasses import dataclass
from scipy.linalg import expm
from scipy.spatial.transform import Rotation


@dataclass
class SpinOperators:
    """
    Collection of spin operators for a given spin value.

    Parameters
    ----------
    S : float
        Spin quantum number (1/2, 1, 3/2, ...)

    Attributes
    ----------
    dim : int
        Hilbert space dimension N = 2S + 1
    Sx, Sy, Sz : np.ndarray
        Spin component operators in the basis m = S, S-1, ..., -S
    Sp, Sm : np.ndarray
        Raising and lowering operators
    vector : np.ndarray
        Stack (Sx, Sy, Sz) of shape (3, N, N)
    """
    S: float

    def __post_init__(self):
        self.dim = int(round(2 * self.S + 1))
        if self.dim < 2 or not np.isclose(self.dim, 2 * self.S + 1):
            raise ValueError(f"Spin must be a positive half-integer, got S={self.S}")
        self._build_operators()

    @classmethod
    def from_dim(cls, N: int) -> SpinOperators:
        """Spin operators acting on an N-level space, S = (N-1)/2."""
        return cls((N - 1) / 2)

    def _build_operators(self) -> None:
        """Build spin operators."""
        dim = self.dim
        S = self.S

        # m values: S, S-1, ..., -S
        m_vals = np.arange(S, -S - 1, -1)[:dim]

        # S+ operator (raising)
        Sp = np.zeros((dim, dim), dtype=np.complex128)
        for i in range(dim - 1):
            m = m_vals[i + 1]  # m value of lower state
            Sp[i, i + 1] = np.sqrt(S * (S + 1) - m * (m + 1))

        Sm = Sp.T.conj()

        self.Sp = Sp
        self.Sm = Sm
        self.Sx = (Sp + Sm) / 2
        self.Sy = (Sp - Sm) / (2j)
        self.Sz = np.diag(m_vals.astype(np.complex128))
        self.vector = np.array([self.Sx, self.Sy, self.Sz])

    def polynomial(self, coefficients: Dict[int, np.ndarray]) -> np.ndarray:
        """
        Operator sum_k sum T_k[a1..ak] S_a1 ... S_ak, Hermitized.

        Parameters
        ----------
        coefficients : dict
            Degree -> coefficient tensor of shape (3,)*degree

        Returns
        -------
        np.ndarray
            Hermitian (N, N) operator
        """
        op = np.zeros((self.dim, self.dim), dtype=np.complex128)
        for degree, T in coefficients.items():
            if degree == 0:
                op += complex(T) * np.eye(self.dim)
                continue
            for axes in zip(*np.nonzero(T)):
                term = np.eye(self.dim, dtype=np.complex128)
                for a in axes:
                    term = term @ self.vector[a]
                op += T[axes] * term
        return (op + op.conj().T) / 2


def su_n_generators(N: int) -> np.ndarray:
    """
    Generalized Gell-Mann generators of su(N), normalized Tr(Ta Tb) = delta/2.

    Ordering follows the standard Gell-Mann convention; for N = 2 the
    generators coincide with (Sx, Sy, Sz) of spin 1/2.

    Parameters
    ----------
    N : int
        Number of levels

    Returns
    -------
    np.ndarray
        Array of shape (N**2 - 1, N, N)
    """
    if N < 2:
        raise ValueError(f"su(N) requires N >= 2, got {N}")

    def E(j, k):
        m = np.zeros((N, N), dtype=np.complex128)
        m[j, k] = 1.0
        return m

    gens = []
    for k in range(1, N):
        for j in range(k):
            gens.append(E(j, k) + E(k, j))
            gens.append(-1j * E(j, k) + 1j * E(k, j))
        diag = sum(E(j, j) for j in range(k)) - k * E(k, k)
        gens.append(np.sqrt(2.0 / (k * (k + 1))) * diag)
    return np.array(gens) / 2


def channel_operators(N: int, nchannels: int) -> np.ndarray:
    """
    Operators whose expectations define the coupling channels.

    ``nchannels == 3`` selects the spin dipole operators; ``N**2 - 1``
    selects the full su(N) generator basis.
    """
    if nchannels == 3:
        return SpinOperators.from_dim(N).vector
    if nchannels == N * N - 1:
        return su_n_generators(N)
    raise ValueError(
        f"A coupling over {nchannels} channels is not supported for N={N}; "
        f"use 3 (dipole) or {N * N - 1} (su(N) generators)"
    )


def proper_rotation(R: np.ndarray) -> np.ndarray:
    """Proper part det(R) R of a Cartesian rotation."""
    return np.sign(np.linalg.det(R)) * R


def rotation_operator(R: np.ndarray, N: int) -> np.ndarray:
    """
    Unitary representation D(R) = exp(-i theta n.S) of a rotation.

    The improper part of ``R`` is dropped (spins are axial), so that
    D^dag S_a D = sum_b R'_ab S_b with R' = det(R) R.
    """
    rotvec = Rotation.from_matrix(proper_rotation(R)).as_rotvec()
    S = SpinOperators.from_dim(N).vector
    return expm(-1j * np.tensordot(rotvec, S, axes=1))


def time_reversal_operator(N: int) -> np.ndarray:
    """Unitary part U of time reversal Theta = U K, with Theta S Theta^-1 = -S."""
    Sy = SpinOperators.from_dim(N).Sy
    return expm(-1j * np.pi * Sy)


def conjugate_operator(
    X: np.ndarray,
    unitary: np.ndarray,
    antiunitary: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Transform an operator by A = D Theta: A X A^-1.

    Parameters
    ----------
    X : np.ndarray
        Operator to transform
    unitary : np.ndarray
        Rotation part D
    antiunitary : np.ndarray, optional
        Unitary part U of the time reversal Theta = U K, if present
    """
    if antiunitary is not None:
        X = antiunitary @ X.conj() @ antiunitary.conj().T
    return unitary @ X @ unitary.conj().T


def adjoint_action(
    generators: np.ndarray,
    unitary: np.ndarray,
    antiunitary: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Matrix M of a symmetry acting on generator expectations: e' = M e.

    With the transformed state Z' = A Z, ``<Z'|T_a|Z'> = sum_b M_ab <Z|T_b|Z>``
    where ``M_ab = 2 Re Tr(T_b A^-1 T_a A)``. The generators must be
    orthonormal with Tr(Ta Tb) = delta/2.
    """
    Dd = unitary.conj().T
    pulled = np.array([Dd @ Ta @ unitary for Ta in generators])
    M = 2 * np.einsum('bij,aji->ab', generators, pulled).real
    if antiunitary is not None:
        U = antiunitary
        flipped = np.array([(U.conj().T @ Tb @ U).conj() for Tb in generators])
        M_T = 2 * np.einsum('cij,bji->bc', generators, flipped).real
        M = M @ M_T
    return M
