"""
Stochastic dynamics and thermal sampling.
"""

from spinsim.algorithms.langevin import LangevinConfig, LangevinHeun
from spinsim.algorithms.sampler import SamplerConfig, LangevinSampler, sample

__all__ = [
    "LangevinConfig",
    "LangevinHeun",
    "SamplerConfig",
    "LangevinSampler",
    "sample",
]
