"""
spinsim: Langevin sampling of classical and SU(N) spins on crystal lattices

Symmetry-validated spin Hamiltonians, stochastic spin dynamics and
structure-factor contractions.
"""

__version__ = "0.1.0"

from spinsim.lattice.lattice import Lattice, Bond
from spinsim.lattice.crystal import Crystal, SymmetryOperation
from spinsim.core.configuration import Mode, SpinConfiguration
from spinsim.models.interaction_set import InteractionSet
from spinsim.models.hamiltonian import Hamiltonian
from spinsim.algorithms.langevin import LangevinConfig, LangevinHeun
from spinsim.algorithms.sampler import LangevinSampler, SamplerConfig, sample
from spinsim.structure_factors.structure_factor import StructureFactor
from spinsim.structure_factors.contraction import Contraction, contract

__all__ = [
    "Lattice",
    "Bond",
    "Crystal",
    "SymmetryOperation",
    "Mode",
    "SpinConfiguration",
    "InteractionSet",
    "Hamiltonian",
    "LangevinConfig",
    "LangevinHeun",
    "LangevinSampler",
    "SamplerConfig",
    "sample",
    "StructureFactor",
    "Contraction",
    "contract",
]
