"""
Cached Einstein-summation contractions.

Energy and field evaluation repeat the same handful of contractions on
arrays of fixed shape at every integrator step. This module wraps
opt_einsum so that contraction paths are found once per
(subscripts, shapes) pair and reused afterwards.
"""

from __future__ import annotations

import numpy as np
from typing import Any, Dict, Tuple, Union

import opt_einsum as oe


# Cache of compiled contraction expressions
_EXPRESSION_CACHE: Dict[Tuple[str, Tuple[Tuple[int, ...], ...]], Any] = {}


def einsum(
    subscripts: str,
    *operands: np.ndarray,
    optimize: Union[bool, str] = 'auto',
) -> np.ndarray:
    """
    Contract arrays using Einstein summation with a cached path.

    Parameters
    ----------
    subscripts : str
        Einstein summation subscripts (e.g., 'xyzba,ac->xyzbc')
    operands : np.ndarray
        Arrays to contract
    optimize : bool or str
        Path optimization strategy passed to opt_einsum

    Returns
    -------
    np.ndarray
        Result of the contraction

    Examples
    --------
    >>> s = np.random.randn(4, 4, 1, 2, 3)
    >>> J = np.eye(3)
    >>> einsum('xyzba,ac->xyzbc', s, J).shape
    (4, 4, 1, 2, 3)
    """
    shapes = tuple(np.shape(op) for op in operands)
    key = (subscripts, shapes)
    expr = _EXPRESSION_CACHE.get(key)
    if expr is None:
        expr = oe.contract_expression(subscripts, *shapes, optimize=optimize)
        _EXPRESSION_CACHE[key] = expr
    return expr(*operands)


def clear_cache() -> None:
    """Drop all cached contraction expressions."""
    _EXPRESSION_CACHE.clear()
