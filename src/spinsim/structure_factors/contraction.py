"""
Reduction of structure-factor tensors to scalar intensities.

A Contraction is built once from a StructureFactor, resolving which data
slots it needs, and is then applied to individual rows (the slot vector
at one momentum / energy point):

- TRACE: sum over the diagonal channel pairs
- DEPOLARIZE: neutron polarization factor (delta_ab - q_a q_b / q^2)
  applied to the dipole correlations
- ELEMENT: a single channel pair
"""

from __future__ import annotations

import numpy as np
from enum import Enum
from typing import Sequence, Tuple
from dataclasses import dataclass

from spinsim.exceptions import IncompleteTraceError
from spinsim.structure_factors.structure_factor import StructureFactor


# Regularization of q / |q| at the zone center
Q_EPSILON = 1e-12


class ContractionKind(Enum):
    TRACE = "trace"
    DEPOLARIZE = "depolarize"
    ELEMENT = "element"


@dataclass(frozen=True)
class Contraction:
    """
    A reduction of the channel-pair slots to one real number.

    Attributes
    ----------
    kind : ContractionKind
        Which reduction to apply
    slots : tuple of int
        Diagonal slots (TRACE) or the single element slot (ELEMENT)
    pairs : tuple
        ((a, b), slot) entries for the dipole pairs (DEPOLARIZE)

    Examples
    --------
    >>> trace = Contraction.trace(sf)
    >>> trace.contract(sf.data[0], sf.q_cartesian[0])
    """
    kind: ContractionKind
    slots: Tuple[int, ...] = ()
    pairs: Tuple[Tuple[Tuple[int, int], int], ...] = ()

    @classmethod
    def trace(cls, sf: StructureFactor) -> Contraction:
        """
        Sum of the diagonal correlations.

        Raises
        ------
        IncompleteTraceError
            Unless the structure factor has exactly one diagonal slot per
            channel (3 for dipoles, N^2 - 1 for su(N) generators)
        """
        diagonal = tuple(slot for (a, b), slot in sorted(sf.index_map.items()) if a == b)
        expected = 3 if sf.dipole_mode else sf.N ** 2 - 1
        if len(diagonal) != expected:
            raise IncompleteTraceError(
                f"Trace needs {expected} diagonal correlations, "
                f"but the structure factor holds {len(diagonal)}"
            )
        return cls(ContractionKind.TRACE, slots=diagonal)

    @classmethod
    def depolarize(cls, sf: StructureFactor) -> Contraction:
        """
        Polarization-factor contraction over all stored pairs.

        Raises
        ------
        ValueError
            If a stored pair involves a channel other than the three
            dipole components
        """
        pairs = tuple(sorted(sf.index_map.items()))
        for (a, b), _ in pairs:
            if a >= 3 or b >= 3:
                raise ValueError(
                    f"Depolarization needs dipole correlations, found channel pair {(a, b)}"
                )
        return cls(ContractionKind.DEPOLARIZE, pairs=pairs)

    @classmethod
    def element(cls, sf: StructureFactor, pair: Sequence[int]) -> Contraction:
        """
        Magnitude of a single correlation S^{ab}.

        The pair is order-insensitive; an absent pair raises KeyError.
        """
        a, b = pair
        key = (a, b) if a <= b else (b, a)
        if key not in sf.index_map:
            raise KeyError(f"Channel pair {tuple(pair)} is not in the structure factor")
        return cls(ContractionKind.ELEMENT, slots=(sf.index_map[key],))

    def contract(self, row: np.ndarray, q: np.ndarray) -> float:
        """
        Reduce one slot vector to a nonnegative intensity.

        Parameters
        ----------
        row : np.ndarray
            Complex correlations, one entry per slot
        q : np.ndarray
            Cartesian momentum; only DEPOLARIZE uses it
        """
        if self.kind == ContractionKind.TRACE:
            return float(sum(abs(row[s]) for s in self.slots))
        if self.kind == ContractionKind.ELEMENT:
            return float(abs(row[self.slots[0]]))
        return self._depolarized(row, q)

    def _depolarized(self, row: np.ndarray, q: np.ndarray) -> float:
        q = np.asarray(q, dtype=float)
        q_hat = q / (np.linalg.norm(q) + Q_EPSILON)
        projector = np.eye(3) - np.outer(q_hat, q_hat)
        total = 0.0
        for (a, b), slot in self.pairs:
            factor = 1.0 if a == b else 2.0
            total += factor * projector[a, b] * row[slot].real
        return float(abs(total))


def contract(row: np.ndarray, q: np.ndarray, contraction: Contraction) -> float:
    """Apply ``contraction`` to one slot vector."""
    return contraction.contract(row, q)


def intensities(sf: StructureFactor, contraction: Contraction) -> np.ndarray:
    """
    Apply a contraction at every point of a structure factor.

    Returns
    -------
    np.ndarray
        Real array of shape ``sf.data.shape[:-1]``
    """
    q_cart = sf.q_cartesian
    out = np.empty(sf.data.shape[:-1])
    for iq in range(len(q_cart)):
        rows = sf.data[iq].reshape(-1, sf.data.shape[-1])
        values = [contraction.contract(r, q_cart[iq]) for r in rows]
        out[iq] = np.reshape(values, sf.data.shape[1:-1])
    return out
