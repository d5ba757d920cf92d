"""
Energy and local field of a spin configuration.

The Hamiltonian is an immutable collection of symmetry-expanded
interactions bound to one lattice:

    H = sum_bonds sum_cells e_i(c) . J . e_j(c + n) + sum_sites P(e_i)

where e are classical dipoles (dipole mode) or operator expectations
<Z|T_k|Z> (SU(N) mode). All terms are evaluated for every cell at once by
shifting sublattice arrays with ``np.roll``.
"""

from __future__ import annotations

import numpy as np
from typing import Dict, Iterable, Optional, Tuple, Union

from spinsim.core.configuration import Mode, SpinConfiguration, expectation_values
from spinsim.core.einsum import einsum
from spinsim.lattice.lattice import Bond, Lattice
from spinsim.models.interactions import OnSiteAnisotropy, PairwiseQuadratic
from spinsim.models.operators import channel_operators


_CELL_AXES = (0, 1, 2)


class Hamiltonian:
    """
    Immutable spin Hamiltonian on a periodic lattice.

    Usually obtained from :meth:`InteractionSet.build`, which guarantees
    that the terms are symmetry consistent.

    Parameters
    ----------
    lattice : Lattice
        Lattice the Hamiltonian acts on
    pair_terms : iterable of PairwiseQuadratic
        Bond couplings; each bond must appear once (in either orientation)
    onsite_terms : iterable of OnSiteAnisotropy
        Single-ion terms
    mode : Mode or str
        DIPOLE or SUN
    N : int, optional
        Levels per site in SU(N) mode
    """

    def __init__(
        self,
        lattice: Lattice,
        pair_terms: Iterable[PairwiseQuadratic] = (),
        onsite_terms: Iterable[OnSiteAnisotropy] = (),
        mode: Union[Mode, str] = Mode.DIPOLE,
        N: Optional[int] = None,
    ):
        self._lattice = lattice
        self._mode = Mode(mode)
        if self._mode == Mode.SUN and (N is None or N < 2):
            raise ValueError(f"SU(N) mode needs N >= 2, got N={N}")
        self._N = int(N) if self._mode == Mode.SUN else None

        pairs = []
        seen = set()
        for term in pair_terms:
            term = term.canonical()
            if term.bond in seen:
                raise ValueError(f"{term.bond!r} appears more than once")
            if term.bond.is_on_site():
                raise ValueError(f"{term.bond!r} couples a site to itself")
            if self._mode == Mode.DIPOLE and term.nchannels != 3:
                raise ValueError(f"Dipole mode couplings must be 3x3 on {term.bond!r}")
            seen.add(term.bond)
            frozen = PairwiseQuadratic(term.bond, term.coupling)
            frozen.coupling.setflags(write=False)
            pairs.append(frozen)
        self._pairs: Tuple[PairwiseQuadratic, ...] = tuple(pairs)
        self._onsite: Tuple[OnSiteAnisotropy, ...] = tuple(onsite_terms)

        for aniso in self._onsite:
            if not 0 <= aniso.site < lattice.nbasis:
                raise IndexError(f"Anisotropy sublattice {aniso.site} out of range")

        # Channel operators and anisotropy matrices for SU(N) evaluation
        self._channel_ops: Dict[int, np.ndarray] = {}
        self._onsite_ops: Dict[int, np.ndarray] = {}
        if self._mode == Mode.SUN:
            for term in self._pairs:
                K = term.nchannels
                if K not in self._channel_ops:
                    self._channel_ops[K] = channel_operators(self._N, K)
            for aniso in self._onsite:
                op = aniso.operator(self._N)
                if aniso.site in self._onsite_ops:
                    op = op + self._onsite_ops[aniso.site]
                self._onsite_ops[aniso.site] = op

    @property
    def lattice(self) -> Lattice:
        return self._lattice

    @property
    def mode(self) -> Mode:
        return self._mode

    @property
    def N(self) -> Optional[int]:
        return self._N

    @property
    def pair_terms(self) -> Tuple[PairwiseQuadratic, ...]:
        return self._pairs

    @property
    def onsite_terms(self) -> Tuple[OnSiteAnisotropy, ...]:
        return self._onsite

    @property
    def bonds(self) -> Tuple[Bond, ...]:
        return tuple(term.bond for term in self._pairs)

    @property
    def ncomponents(self) -> int:
        return 3 if self._mode == Mode.DIPOLE else self._N

    def _states(self, config: Union[SpinConfiguration, np.ndarray]) -> np.ndarray:
        if isinstance(config, SpinConfiguration):
            if config.mode != self._mode or config.N != self._N:
                raise ValueError(
                    f"Configuration mode {config.mode.value} (N={config.N}) does not match "
                    f"Hamiltonian mode {self._mode.value} (N={self._N})"
                )
            states = config.states
        else:
            states = np.asarray(config)
        expected = self._lattice.shape + (self.ncomponents,)
        if states.shape != expected:
            raise ValueError(f"State array has shape {states.shape}, expected {expected}")
        return states

    def _channel_values(self, states: np.ndarray) -> Dict[int, np.ndarray]:
        """Per-site vectors entering the pair couplings, keyed by channel count."""
        if self._mode == Mode.DIPOLE:
            return {3: states}
        return {K: expectation_values(states, ops) for K, ops in self._channel_ops.items()}

    def energy(self, config: Union[SpinConfiguration, np.ndarray]) -> float:
        """
        Total energy of a configuration.

        Parameters
        ----------
        config : SpinConfiguration or np.ndarray
            Configuration, or a bare state array of shape
            (L1, L2, L3, nbasis, 3 or N)

        Returns
        -------
        float
            Energy summed over all bonds and sites
        """
        states = self._states(config)
        values = self._channel_values(states)
        E = 0.0

        for term in self._pairs:
            b = term.bond
            e = values[term.nchannels]
            ei = e[..., b.i, :]
            ej = np.roll(e[..., b.j, :], shift=tuple(-x for x in b.n), axis=_CELL_AXES)
            E += float(einsum('xyza,ab,xyzb->', ei, term.coupling, ej))

        if self._mode == Mode.DIPOLE:
            for aniso in self._onsite:
                s = states[..., aniso.site, :].reshape(-1, 3)
                E += float(aniso.classical_energy(s).sum())
        else:
            for site, op in self._onsite_ops.items():
                Z = states[..., site, :].reshape(-1, self._N)
                E += float(einsum('mi,ij,mj->', Z.conj(), op, Z).real)

        return E

    def energy_per_site(self, config: Union[SpinConfiguration, np.ndarray]) -> float:
        return self.energy(config) / self._lattice.nsites

    def _pair_gradients(self, values: Dict[int, np.ndarray]) -> Dict[int, np.ndarray]:
        """dE/de for every channel family, accumulated from both bond ends."""
        grads = {K: np.zeros_like(e) for K, e in values.items()}
        for term in self._pairs:
            b = term.bond
            K = term.nchannels
            e, G = values[K], grads[K]
            J = term.coupling
            ej_forward = np.roll(e[..., b.j, :], shift=tuple(-x for x in b.n), axis=_CELL_AXES)
            ei_backward = np.roll(e[..., b.i, :], shift=b.n, axis=_CELL_AXES)
            G[..., b.i, :] += einsum('ab,xyzb->xyza', J, ej_forward)
            G[..., b.j, :] += einsum('ab,xyza->xyzb', J, ei_backward)
        return grads

    def local_hamiltonians(self, config: Union[SpinConfiguration, np.ndarray]) -> np.ndarray:
        """
        Mean-field N x N Hamiltonian at every site (SU(N) mode).

        H_loc = sum_k (dE/de_k) T_k + Lambda, so that dE/dZ* = H_loc Z.
        Returns shape (L1, L2, L3, nbasis, N, N).
        """
        if self._mode != Mode.SUN:
            raise ValueError("Local Hamiltonians are defined in SU(N) mode only")
        states = self._states(config)
        grads = self._pair_gradients(self._channel_values(states))
        H = np.zeros(states.shape + (self._N,), dtype=np.complex128)
        for K, G in grads.items():
            H += einsum('xyzbk,kij->xyzbij', G, self._channel_ops[K])
        for site, op in self._onsite_ops.items():
            H[..., site, :, :] += op
        return H

    def field(self, config: Union[SpinConfiguration, np.ndarray]) -> np.ndarray:
        """
        Local field: negative energy gradient with respect to each site state.

        Dipole mode: B = -dE/ds. SU(N) mode: -dE/dZ* = -H_loc Z, so that a
        change of state dZ changes the energy by -2 Re <dZ|field>.

        Returns
        -------
        np.ndarray
            Same shape as the state array
        """
        states = self._states(config)
        if self._mode == Mode.SUN:
            H = self.local_hamiltonians(states)
            return -einsum('xyzbij,xyzbj->xyzbi', H, states)

        grad = self._pair_gradients({3: states})[3]
        for aniso in self._onsite:
            s = states[..., aniso.site, :].reshape(-1, 3)
            g = aniso.classical_gradient(s)
            grad[..., aniso.site, :] += g.reshape(states.shape[:3] + (3,))
        return -grad

    def __repr__(self) -> str:
        n = f", N={self._N}" if self._mode == Mode.SUN else ""
        return (f"Hamiltonian({self._lattice!r}, mode={self._mode.value}{n}, "
                f"bonds={len(self._pairs)}, anisotropies={len(self._onsite)})")
