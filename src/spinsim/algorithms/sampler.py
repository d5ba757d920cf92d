"""
Thermal sampling by decorrelating Langevin trajectories.

A sampler repeatedly runs the Langevin integrator for a fixed number of
steps between measurements. Observables (energies, static structure
factors) are collected from the successive decorrelated configurations.
"""

from __future__ import annotations

import numpy as np
from typing import Any, Optional
from dataclasses import dataclass, replace
from tqdm import tqdm

from spinsim.algorithms.langevin import LangevinHeun
from spinsim.core.configuration import SpinConfiguration
from spinsim.structure_factors.structure_factor import StructureFactor, StructureFactorAccumulator


@dataclass
class SamplerConfig:
    """Configuration for Langevin sampling."""
    nsteps: int = 100  # Integrator steps between samples
    verbosity: int = 0  # 0=silent, 1=progress, 2=debug


class LangevinSampler:
    """
    Draw approximately independent thermal configurations.

    Parameters
    ----------
    integrator : LangevinHeun
        Integrator run between samples; its temperature sets the ensemble
    nsteps : int, optional
        Steps per sample. Overrides ``config.nsteps`` when given.
    config : SamplerConfig, optional
        Sampling configuration

    Examples
    --------
    >>> integrator = LangevinHeun(H, LangevinConfig(kT=0.2, damping=1.0, dt=0.02))
    >>> sampler = LangevinSampler(integrator, nsteps=50)
    >>> sampler.thermalize(config, 1000)
    >>> energies = sampler.collect_energies(config, 500)
    """

    def __init__(
        self,
        integrator: LangevinHeun,
        nsteps: Optional[int] = None,
        config: Optional[SamplerConfig] = None,
    ):
        self.integrator = integrator
        self.config = config or SamplerConfig()
        if nsteps is not None:
            self.config = replace(self.config, nsteps=nsteps)
        if self.config.nsteps < 0:
            raise ValueError(f"nsteps must be nonnegative, got {self.config.nsteps}")

    @property
    def nsteps(self) -> int:
        return self.config.nsteps

    @nsteps.setter
    def nsteps(self, value: int) -> None:
        if value < 0:
            raise ValueError(f"nsteps must be nonnegative, got {value}")
        self.config = replace(self.config, nsteps=value)

    def sample(self, config: SpinConfiguration) -> SpinConfiguration:
        """Advance ``config`` by exactly ``nsteps`` integrator steps."""
        self.integrator.evolve(config, self.config.nsteps)
        return config

    def thermalize(self, config: SpinConfiguration, nsteps: int) -> None:
        """Run ``nsteps`` integrator steps without measuring."""
        iterator = range(nsteps)
        if self.config.verbosity >= 1:
            iterator = tqdm(iterator, desc="Thermalize")
        for _ in iterator:
            self.integrator.step(config)
        if self.config.verbosity >= 2:
            E = self.integrator.hamiltonian.energy(config)
            print(f"  thermalized at kT={self.integrator.kT}: E/site = {E / config.nsites:.6f}")

    def collect_energies(self, config: SpinConfiguration, nsamples: int) -> np.ndarray:
        """
        Energies of ``nsamples`` successive decorrelated configurations.

        Returns
        -------
        np.ndarray
            Total energy after each sampling run
        """
        hamiltonian = self.integrator.hamiltonian
        energies = np.empty(nsamples)
        iterator = range(nsamples)
        if self.config.verbosity >= 1:
            iterator = tqdm(iterator, desc="Sampling")
        for n in iterator:
            self.sample(config)
            energies[n] = hamiltonian.energy(config)
            if self.config.verbosity >= 1:
                iterator.set_postfix({'E': f'{energies[n]:.6f}'})
        return energies

    def collect_structure_factor(
        self,
        config: SpinConfiguration,
        nsamples: int,
        crystal: Any,
        dipole_mode: bool = True,
    ) -> StructureFactor:
        """
        Static structure factor averaged over ``nsamples`` configurations.

        Parameters
        ----------
        config : SpinConfiguration
            Configuration evolved in place between samples
        nsamples : int
            Number of configurations to average
        crystal : Crystal
            Supplies sublattice positions and reciprocal vectors
        dipole_mode : bool
            Correlate dipoles (True) or su(N) generator expectations
        """
        accumulator = StructureFactorAccumulator(config, crystal, dipole_mode)
        iterator = range(nsamples)
        if self.config.verbosity >= 1:
            iterator = tqdm(iterator, desc="Structure factor")
        for _ in iterator:
            self.sample(config)
            accumulator.add(config)
        return accumulator.result()


def sample(config: SpinConfiguration, integrator: LangevinHeun, steps: int) -> SpinConfiguration:
    """Advance ``config`` by exactly ``steps`` integrator steps."""
    return LangevinSampler(integrator, steps).sample(config)
