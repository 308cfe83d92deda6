"""Sparse linear algebra helpers for fixed-effect operators.

This module builds the (weighted, column-scaled) incidence matrix of a set of
fixed effects and validates the numeric inputs fed to the solver.
"""

# fixedeffects/core/linalg.py
from __future__ import annotations

from typing import TYPE_CHECKING, Any

import numpy as np
from scipy import sparse

from .errors import DimensionMismatchError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray

    from .fe import FixedEffect
else:
    NDArray = np.ndarray  # type: ignore[misc,assignment]

__all__ = [
    "column_scales",
    "fe_design",
    "group_sum",
]


def _check_array_finiteness(arr: NDArray[np.float64], what: str = "Input") -> None:
    """Helper to validate array finiteness with clear error message."""
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"{what} contains NA/NaN/Inf; please drop/clean rows.")


def _validate_weights(
    weights: Sequence[float],
    n: int,
    *,
    allow_zero: bool = True,
) -> NDArray[np.float64]:
    """Validate nonnegative weights and return a dense float64 array of shape (n,).

    Parameters
    ----------
    weights : Sequence[float]
        Weight values to validate.
    n : int
        Expected length.
    allow_zero : bool, default True
        Whether to allow zero weights. If False, raises ValueError on any zero weight.

    Returns
    -------
    NDArray[np.float64]
        Validated weights as 1D array.

    """
    w = np.asarray(weights, dtype=np.float64).reshape(-1)
    if w.shape[0] != n:
        msg = f"weights of length {w.shape[0]} do not match {n} observations."
        raise DimensionMismatchError(msg)
    if np.any(~np.isfinite(w)):
        msg = "weights must be finite."
        raise ValueError(msg)
    if np.any(w < 0):
        msg = "weights must be nonnegative."
        raise ValueError(msg)
    if not allow_zero and np.any(w == 0):
        msg = "Zero weights not allowed (allow_zero=False)."
        raise ValueError(msg)
    # all-zero weights leave nothing to project
    wsum = float(np.sum(w))
    if n > 0 and (not np.isfinite(wsum) or wsum <= 0.0):
        raise ValueError("weights must sum to a positive finite value")
    return w


def group_sum(x: NDArray[np.float64], codes: NDArray[np.intp], n_groups: int) -> NDArray[np.float64]:
    """Sum `x` within groups given by 0-based `codes`; returns an array of length `n_groups`."""
    codes_arr = np.asarray(codes).reshape(-1)
    x_arr = np.asarray(x, dtype=np.float64).reshape(-1)
    if codes_arr.shape[0] != x_arr.shape[0]:
        msg = "codes length must match length of x"
        raise DimensionMismatchError(msg)
    return np.bincount(codes_arr, weights=x_arr, minlength=n_groups)[:n_groups]


def column_scales(vals: NDArray[np.float64], codes: NDArray[np.intp], n_groups: int) -> NDArray[np.float64]:
    """Inverse column norms of a single fixed-effect block.

    Groups whose column is identically zero get a scale of zero, which pins
    their coefficient at zero.
    """
    ss = group_sum(vals * vals, codes, n_groups)
    scale = np.zeros(n_groups, dtype=np.float64)
    pos = ss > 0
    scale[pos] = 1.0 / np.sqrt(ss[pos])
    return scale


def fe_design(
    fes: Sequence[FixedEffect],
    sqrtw: NDArray[np.float64],
    *,
    dtype: Any = np.float64,
) -> tuple[sparse.csr_matrix, list[NDArray[np.float64]]]:
    """Weighted, column-equilibrated incidence matrix of `fes`.

    Row ``i`` has, in the column of group ``g = refs[i]`` of every fixed
    effect, ``sqrtw[i] * interaction[i] * scale[g]``. All labels must be
    non-missing.

    Returns
    -------
    A : scipy.sparse.csr_matrix
        Matrix of shape ``(n_obs, sum(fe.n))``.
    scales : list of ndarray
        Column scales per fixed effect; ``x_j * scales[j]`` maps solutions of
        the scaled system back to group coefficients.
    """
    n_obs = sqrtw.shape[0]
    rows = np.arange(n_obs)
    blocks = []
    scales = []
    for fe in fes:
        codes = fe.refs.astype(np.intp) - 1
        vals = np.asarray(fe.interaction, dtype=np.float64) * sqrtw
        scale = column_scales(vals, codes, fe.n)
        block = sparse.csr_matrix(
            (vals * scale[codes], (rows, codes)), shape=(n_obs, fe.n), dtype=dtype,
        )
        blocks.append(block)
        scales.append(scale)
    return sparse.hstack(blocks, format="csr", dtype=dtype), scales
