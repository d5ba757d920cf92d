"""
Spin operators, interaction terms and Hamiltonians.
"""

from spinsim.models.operators import (
    SpinOperators,
    su_n_generators,
    channel_operators,
    rotation_operator,
    time_reversal_operator,
    adjoint_action,
)
from spinsim.models.interactions import (
    PairwiseQuadratic,
    OnSiteAnisotropy,
    SymmetryPolicy,
    heisenberg,
    exchange,
    dm_interaction,
    anisotropy,
)
from spinsim.models.hamiltonian import Hamiltonian
from spinsim.models.interaction_set import InteractionSet

__all__ = [
    "SpinOperators",
    "su_n_generators",
    "channel_operators",
    "rotation_operator",
    "time_reversal_operator",
    "adjoint_action",
    "PairwiseQuadratic",
    "OnSiteAnisotropy",
    "SymmetryPolicy",
    "heisenberg",
    "exchange",
    "dm_interaction",
    "anisotropy",
    "Hamiltonian",
    "InteractionSet",
]
