"""
Structure-factor tensors and their contraction to intensities.
"""

from spinsim.structure_factors.structure_factor import (
    StructureFactor,
    StructureFactorAccumulator,
    default_index_map,
    static_structure_factor,
)
from spinsim.structure_factors.contraction import (
    ContractionKind,
    Contraction,
    contract,
    intensities,
)

__all__ = [
    "StructureFactor",
    "StructureFactorAccumulator",
    "default_index_map",
    "static_structure_factor",
    "ContractionKind",
    "Contraction",
    "contract",
    "intensities",
]
