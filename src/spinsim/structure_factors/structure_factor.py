"""
Structure-factor tensors indexed by polarization channel pairs.

S^{ab}(q) = < conj(e_a(q)) e_b(q) > / Ncells, where e_a(q) is the lattice
Fourier transform of a per-site channel (dipole component or su(N)
generator expectation). Only pairs a <= b are stored; the slot of each
pair in the last data axis is given by ``index_map``.
"""

from __future__ import annotations

import numpy as np
from typing import Any, Dict, Iterable, Optional, Tuple
from dataclasses import dataclass

from spinsim.core.configuration import Mode, SpinConfiguration


Pair = Tuple[int, int]


def default_index_map(nchannels: int) -> Dict[Pair, int]:
    """Slots for all pairs a <= b, in row-major upper-triangular order."""
    index_map = {}
    for a in range(nchannels):
        for b in range(a, nchannels):
            index_map[(a, b)] = len(index_map)
    return index_map


@dataclass(eq=False)
class StructureFactor:
    """
    Structure-factor data with its channel-pair bookkeeping.

    Attributes
    ----------
    index_map : dict
        (a, b) -> slot in the last axis of ``data``, with a <= b
    data : np.ndarray
        Complex array of shape (nq, ..., nslots); extra axes (for
        instance energies) sit between the momentum and slot axes
    qs : np.ndarray
        Momenta in reciprocal lattice units, shape (nq, 3)
    dipole_mode : bool
        True if the channels are the three dipole components, False if
        they are the N^2 - 1 generators of su(N)
    N : int
        Levels per site (0 for classical dipoles)
    recip_vecs : np.ndarray, optional
        Reciprocal lattice vectors (rows) to convert qs to Cartesian
    nsamples : int
        Number of configurations averaged (0 if not known)
    """
    index_map: Dict[Pair, int]
    data: np.ndarray
    qs: np.ndarray
    dipole_mode: bool = True
    N: int = 0
    recip_vecs: Optional[np.ndarray] = None
    nsamples: int = 0

    def __post_init__(self):
        normalized = {}
        for (a, b), slot in self.index_map.items():
            if a > b:
                a, b = b, a
            if (a, b) in normalized:
                raise ValueError(f"Channel pair {(a, b)} listed twice")
            normalized[(int(a), int(b))] = int(slot)
        self.index_map = normalized
        self.data = np.asarray(self.data)
        self.qs = np.atleast_2d(np.asarray(self.qs, dtype=float))
        if self.qs.shape[1] != 3:
            raise ValueError(f"Momenta must be 3-vectors, got shape {self.qs.shape}")
        if self.data.shape[0] != len(self.qs):
            raise ValueError(
                f"Data has {self.data.shape[0]} momenta but {len(self.qs)} qs were given"
            )
        nslots = self.data.shape[-1]
        slots = sorted(normalized.values())
        if slots and (slots[0] < 0 or slots[-1] >= nslots or len(set(slots)) != len(slots)):
            raise ValueError(f"Slots must be distinct and within the {nslots} data columns")
        if not self.dipole_mode and self.N < 2:
            raise ValueError("Generator-mode structure factors need N >= 2")

    @property
    def nchannels(self) -> int:
        """Number of channels: 3 for dipoles, N^2 - 1 for su(N) generators."""
        return 3 if self.dipole_mode else self.N ** 2 - 1

    @property
    def q_cartesian(self) -> np.ndarray:
        """Momenta in Cartesian coordinates (inverse length units)."""
        if self.recip_vecs is None:
            return self.qs.copy()
        return self.qs @ self.recip_vecs

    def slot(self, a: int, b: int) -> int:
        """Slot of pair (a, b), order-insensitive. Raises KeyError if absent."""
        key = (a, b) if a <= b else (b, a)
        return self.index_map[key]

    def pair_data(self, a: int, b: int) -> np.ndarray:
        """S^{ab} at every point, including conjugation for a > b."""
        values = self.data[..., self.slot(a, b)]
        return values if a <= b else values.conj()

    def __repr__(self) -> str:
        kind = "dipole" if self.dipole_mode else f"SU({self.N})"
        return (f"StructureFactor({kind}, nq={len(self.qs)}, "
                f"pairs={len(self.index_map)}, shape={self.data.shape})")


def _momentum_grid(extents: Tuple[int, int, int]) -> np.ndarray:
    axes = [np.arange(L) / L for L in extents]
    grid = np.meshgrid(*axes, indexing='ij')
    return np.stack(grid, axis=-1).reshape(-1, 3)


class StructureFactorAccumulator:
    """
    Running average of the static structure factor over configurations.

    Parameters
    ----------
    template : SpinConfiguration
        Fixes the lattice, mode and N
    crystal : Crystal
        Sublattice positions (for the phase factors) and reciprocal vectors
    dipole_mode : bool
        Correlate dipoles, or su(N) generator expectations (SU(N) only)
    """

    def __init__(self, template: SpinConfiguration, crystal: Any, dipole_mode: bool = True):
        if not dipole_mode and template.mode != Mode.SUN:
            raise ValueError("Generator correlations require an SU(N) configuration")
        self.lattice = template.lattice
        self.crystal = crystal
        self.dipole_mode = dipole_mode
        self.N = template.N or 0
        self._operators = None
        if not dipole_mode:
            from spinsim.models.operators import su_n_generators
            self._operators = su_n_generators(self.N)

        K = 3 if dipole_mode else self.N ** 2 - 1
        self.index_map = default_index_map(K)
        self._upper = tuple(np.array(idx) for idx in zip(*self.index_map))
        self.qs = _momentum_grid(self.lattice.extents)

        # Sublattice phases exp(-2 pi i q . r_b), shape (nq, nbasis)
        self._phases = np.exp(-2j * np.pi * self.qs @ crystal.positions.T)
        self._sum = np.zeros((len(self.qs), len(self.index_map)), dtype=np.complex128)
        self.nsamples = 0

    def _channels(self, config: SpinConfiguration) -> np.ndarray:
        if self.dipole_mode:
            return config.dipoles()
        return config.expectations(self._operators)

    def add(self, config: SpinConfiguration) -> None:
        """Accumulate the correlations of one configuration."""
        if config.lattice != self.lattice:
            raise ValueError(f"Configuration lattice {config.lattice!r} does not match")
        e = self._channels(config)
        ncells = self.lattice.ncells
        nq = ncells
        # Cell Fourier transform, then sum sublattices with their phases
        ek = np.fft.fftn(e, axes=(0, 1, 2)).reshape(nq, self.lattice.nbasis, -1)
        ek = np.einsum('qb,qbk->qk', self._phases, ek)
        corr = ek.conj()[:, :, None] * ek[:, None, :] / ncells
        a, b = self._upper
        self._sum += corr[:, a, b]
        self.nsamples += 1

    def result(self) -> StructureFactor:
        if self.nsamples == 0:
            raise ValueError("No configurations were accumulated")
        return StructureFactor(
            index_map=dict(self.index_map),
            data=self._sum / self.nsamples,
            qs=self.qs.copy(),
            dipole_mode=self.dipole_mode,
            N=self.N,
            recip_vecs=self.crystal.reciprocal_vectors(),
            nsamples=self.nsamples,
        )


def static_structure_factor(
    configs: Iterable[SpinConfiguration],
    crystal: Any,
    dipole_mode: bool = True,
) -> StructureFactor:
    """
    Instantaneous structure factor averaged over configurations.

    Parameters
    ----------
    configs : iterable of SpinConfiguration
        Configurations on a common lattice
    crystal : Crystal
        Supplies sublattice positions and reciprocal vectors
    dipole_mode : bool
        Correlate dipoles (True) or su(N) generator expectations

    Returns
    -------
    StructureFactor
        Data of shape (ncells, nslots) on the momentum grid q = m / L
    """
    accumulator = None
    for config in configs:
        if accumulator is None:
            accumulator = StructureFactorAccumulator(config, crystal, dipole_mode)
        accumulator.add(config)
    if accumulator is None:
        raise ValueError("At least one configuration is required")
    return accumulator.result()
