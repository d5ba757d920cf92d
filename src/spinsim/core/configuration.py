"""
Spin configurations: the mutable state evolved by the integrators.

Two representations are supported:
- DIPOLE: a classical 3-vector of fixed length per site
- SUN: an N-component complex coherent state Z with |Z| fixed per site
"""

from __future__ import annotations

import warnings
import numpy as np
from enum import Enum
from typing import Optional, Sequence, Union

from spinsim.core.einsum import einsum
from spinsim.lattice.lattice import Lattice


class Mode(Enum):
    """Representation of the local spin degree of freedom."""
    DIPOLE = "dipole"
    SUN = "SUN"


class SpinConfiguration:
    """
    Per-site spin states on a periodic lattice.

    Parameters
    ----------
    lattice : Lattice
        Index space of the sites
    magnitudes : float or sequence of float
        Spin length per sublattice. In SU(N) mode this is |Z|, so the
        normalization kappa = |Z|^2 = magnitude^2.
    mode : Mode or str
        DIPOLE or SUN
    N : int, optional
        Number of levels per site (SU(N) mode only)
    seed : int, optional
        Seed of the random generator used for initialization and noise

    Attributes
    ----------
    states : np.ndarray
        Shape (L1, L2, L3, nbasis, 3) float, or (L1, L2, L3, nbasis, N)
        complex
    rng : np.random.Generator
        Random source; all stochastic draws go through it

    Examples
    --------
    >>> lat = Lattice(1, (4, 4, 1))
    >>> config = SpinConfiguration(lat, seed=1)
    >>> config.states.shape
    (4, 4, 1, 1, 3)
    >>> config.randomize()
    """

    def __init__(
        self,
        lattice: Lattice,
        magnitudes: Union[float, Sequence[float]] = 1.0,
        mode: Union[Mode, str] = Mode.DIPOLE,
        N: Optional[int] = None,
        seed: Optional[int] = None,
    ):
        self.lattice = lattice
        self.mode = Mode(mode)
        if self.mode == Mode.SUN:
            if N is None or N < 2:
                raise ValueError(f"SU(N) mode needs N >= 2, got N={N}")
            self.N = int(N)
        else:
            self.N = None

        mags = np.broadcast_to(np.asarray(magnitudes, dtype=float), (lattice.nbasis,))
        if np.any(mags <= 0):
            raise ValueError(f"Spin magnitudes must be positive, got {mags.tolist()}")
        self.magnitudes = mags.copy()

        self.rng = np.random.default_rng(seed)
        dtype = np.complex128 if self.mode == Mode.SUN else np.float64
        self.states = np.zeros(lattice.shape + (self.ncomponents,), dtype=dtype)
        self.polarize()

    @property
    def ncomponents(self) -> int:
        """Number of components of a site state (3 or N)."""
        return 3 if self.mode == Mode.DIPOLE else self.N

    @property
    def nsites(self) -> int:
        return self.lattice.nsites

    def polarize(self, direction: Sequence[float] = (0.0, 0.0, 1.0)) -> None:
        """
        Align all spins along ``direction``.

        In SU(N) mode every site takes the spin coherent state whose
        dipole points along ``direction``; for +z this is the
        highest-weight state.
        """
        n = np.asarray(direction, dtype=float)
        norm = np.linalg.norm(n)
        if norm == 0:
            raise ValueError("Polarization direction must be nonzero")
        n = n / norm
        if self.mode == Mode.DIPOLE:
            local = n
        else:
            local = self._coherent_state(n)
        self.states[...] = local
        self.states *= self.magnitudes[:, None]

    def _coherent_state(self, n: np.ndarray) -> np.ndarray:
        from scipy.linalg import expm
        from spinsim.models.operators import SpinOperators

        ops = SpinOperators.from_dim(self.N)
        theta = np.arccos(np.clip(n[2], -1.0, 1.0))
        phi = np.arctan2(n[1], n[0])
        D = expm(-1j * phi * ops.Sz) @ expm(-1j * theta * ops.Sy)
        return D[:, 0]

    def randomize(self) -> None:
        """Draw independent, uniformly oriented states at every site."""
        shape = self.states.shape
        if self.mode == Mode.DIPOLE:
            self.states[...] = self.rng.standard_normal(shape)
        else:
            self.states[...] = (
                self.rng.standard_normal(shape) + 1j * self.rng.standard_normal(shape)
            )
        self.normalize()

    def normalize(self) -> None:
        """Rescale every site state to its sublattice magnitude."""
        norms = np.linalg.norm(self.states, axis=-1, keepdims=True)
        zero = norms == 0
        if np.any(zero):
            warnings.warn(
                f"{int(zero.sum())} site state(s) of zero length reset to the +z state",
                RuntimeWarning,
            )
            reference = np.zeros(self.ncomponents, dtype=self.states.dtype)
            reference[2 if self.mode == Mode.DIPOLE else 0] = 1.0
            self.states[zero[..., 0]] = reference
            norms = np.where(zero, 1.0, norms)
        self.states /= norms
        self.states *= self.magnitudes[:, None]

    def expectations(self, operators: np.ndarray) -> np.ndarray:
        """
        Expectation values <Z|O_k|Z> for a stack of Hermitian operators.

        Only available in SU(N) mode. Returns shape (L1, L2, L3, nbasis, K).
        """
        if self.mode != Mode.SUN:
            raise ValueError("Operator expectations require SU(N) mode")
        return expectation_values(self.states, operators)

    def dipoles(self) -> np.ndarray:
        """Spin dipole expectation <S> at every site, shape (..., 3)."""
        if self.mode == Mode.DIPOLE:
            return self.states.copy()
        from spinsim.models.operators import SpinOperators
        return self.expectations(SpinOperators.from_dim(self.N).vector)

    def copy(self) -> SpinConfiguration:
        """Independent copy, including the random generator state."""
        new = SpinConfiguration.__new__(SpinConfiguration)
        new.lattice = self.lattice
        new.mode = self.mode
        new.N = self.N
        new.magnitudes = self.magnitudes.copy()
        new.states = self.states.copy()
        new.rng = np.random.default_rng()
        new.rng.bit_generator.state = self.rng.bit_generator.state
        return new

    def __repr__(self) -> str:
        n = f", N={self.N}" if self.mode == Mode.SUN else ""
        return f"SpinConfiguration({self.lattice!r}, mode={self.mode.value}{n})"


def expectation_values(Z: np.ndarray, operators: np.ndarray) -> np.ndarray:
    """<Z|O_k|Z> over the last axis of ``Z``; returns real values."""
    shape = Z.shape
    flat = Z.reshape(-1, shape[-1])
    e = einsum('mi,kij,mj->mk', flat.conj(), operators, flat).real
    return e.reshape(shape[:-1] + (len(operators),))
