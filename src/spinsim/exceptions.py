"""
Construction-time validation errors.

All of them derive from ValueError: they signal an object that cannot be
built from the given inputs, never a transient condition.
"""

from __future__ import annotations

from typing import Any, List, Optional


class ValidationError(ValueError):
    """Base class for constraint violations detected at construction."""


class SymmetryViolationError(ValidationError):
    """
    A coupling is inconsistent with the crystal symmetry.

    Attributes
    ----------
    bond : Bond or int
        Offending bond (pair couplings) or sublattice (anisotropies)
    allowed_basis : list
        Basis of the couplings permitted by the local symmetry
    """

    def __init__(self, message: str, bond: Any = None,
                 allowed_basis: Optional[List[Any]] = None):
        super().__init__(message)
        self.bond = bond
        self.allowed_basis = allowed_basis if allowed_basis is not None else []


class WrappingBondError(ValidationError):
    """A bond displacement reaches across the whole periodic box."""


class IncompleteTraceError(ValidationError):
    """A structure factor lacks diagonal channels needed for a trace."""
