"""Spin states and contraction utilities."""

from spinsim.core.configuration import Mode, SpinConfiguration, expectation_values
from spinsim.core.einsum import einsum, clear_cache

__all__ = [
    "Mode",
    "SpinConfiguration",
    "expectation_values",
    "einsum",
    "clear_cache",
]
