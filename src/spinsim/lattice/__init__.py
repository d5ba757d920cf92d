"""
Lattice geometry and crystal symmetry module for spinsim.
"""

from spinsim.lattice.lattice import Lattice, Bond, CellRange
from spinsim.lattice.crystal import (
    Crystal,
    SymmetryOperation,
    close_group,
    cubic_operations,
    lattice_vectors,
)

__all__ = [
    "Lattice",
    "Bond",
    "CellRange",
    "Crystal",
    "SymmetryOperation",
    "close_group",
    "cubic_operations",
    "lattice_vectors",
]
