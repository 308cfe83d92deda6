"""Least-squares projection onto fixed effects.

The solver minimizes ``|| sqrt(w) * (y - sum_j interaction_j * a_j[refs_j]) ||``
over the group coefficients ``a_j`` with SciPy's LSMR on a sparse,
column-equilibrated incidence matrix. Only matrix-vector products are
needed, so memory stays linear in the number of observations.

Defaults can be set through environment variables:

- ``FIXEDEFFECTS_TOL``: convergence tolerance (``atol`` and ``btol`` of LSMR)
- ``FIXEDEFFECTS_MAXITER``: iteration limit
- ``FIXEDEFFECTS_METHOD``: execution method; only ``"cpu"`` is available
"""

# fixedeffects/core/solver.py
from __future__ import annotations

import logging
import os
import warnings
from dataclasses import dataclass, fields
from typing import TYPE_CHECKING, Any

import numpy as np
from scipy.sparse.linalg import lsmr

from .errors import DimensionMismatchError
from .fe import FixedEffect, _common_length, full, normalize
from .linalg import _check_array_finiteness, _validate_weights, fe_design

if TYPE_CHECKING:
    from collections.abc import Sequence

    from numpy.typing import NDArray
else:
    NDArray = np.ndarray  # type: ignore[misc,assignment]

__all__ = [
    "DEFAULT_MAXITER",
    "FixedEffectSolver",
    "SolverConfig",
    "solve_coefficients",
    "solve_residuals",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_MAXITER = 10_000
_METHODS = frozenset({"cpu"})
# lsmr stop code for "iteration limit reached"
_ISTOP_MAXITER = 7


def _env_value(name: str, cast: Any) -> Any:
    raw = str(os.environ.get(name, "")).strip()
    if not raw:
        return None
    try:
        return cast(raw)
    except ValueError as exc:
        raise ValueError(f"{name}={raw!r} is not a valid value") from exc


@dataclass(slots=True)
class SolverConfig:
    """Options of the fixed-effect solver.

    Attributes
    ----------
    tol : float
        Tolerance on the LSMR stopping rules. Defaults to ``FIXEDEFFECTS_TOL``
        or the square root of the machine epsilon of the working precision.
    maxiter : int
        Maximum number of LSMR iterations per response column.
    double_precision : bool
        Work in float64 (default) or float32.
    method : str
        Execution method. Only ``"cpu"``.
    """

    tol: float | None = None
    maxiter: int | None = None
    double_precision: bool = True
    method: str | None = None

    def __post_init__(self) -> None:
        if self.method is None:
            self.method = _env_value("FIXEDEFFECTS_METHOD", str) or "cpu"
        self.method = str(self.method).strip().lower()
        if self.method not in _METHODS:
            raise ValueError(f"method must be one of {sorted(_METHODS)}, got {self.method!r}")
        if self.tol is None:
            self.tol = _env_value("FIXEDEFFECTS_TOL", float)
        if self.tol is None:
            self.tol = float(np.sqrt(np.finfo(self.dtype).eps))
        if not np.isfinite(self.tol) or self.tol <= 0:
            raise ValueError("tol must be a positive finite number")
        if self.maxiter is None:
            self.maxiter = _env_value("FIXEDEFFECTS_MAXITER", int) or DEFAULT_MAXITER
        if int(self.maxiter) < 1:
            raise ValueError("maxiter must be at least 1")
        self.maxiter = int(self.maxiter)

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(np.float64 if self.double_precision else np.float32)

    @classmethod
    def from_options(cls, config: SolverConfig | None = None, **options: Any) -> SolverConfig:
        """Return `config` (or a default one) updated with keyword `options`."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise TypeError(f"unknown solver option(s): {', '.join(unknown)}")
        if config is None:
            return cls(**options)
        base = {name: getattr(config, name) for name in known}
        base.update(options)
        return cls(**base)


class FixedEffectSolver:
    """Reusable projection onto the span of a set of fixed effects.

    Parameters
    ----------
    fes : sequence of FixedEffect
        Records over the same observations, without missing labels.
    weights : array-like, optional
        Nonnegative observation weights.
    config : SolverConfig, optional
        Solver options.
    """

    def __init__(
        self,
        fes: Sequence[FixedEffect],
        weights: Sequence[float] | None = None,
        config: SolverConfig | None = None,
    ) -> None:
        fes = list(fes)
        if not fes:
            raise ValueError("at least one FixedEffect is required")
        n_obs = _common_length(fes)
        for fe in fes:
            if fe.has_missing:
                raise ValueError("Some FixedEffect has a missing value for reference or interaction")
            if not fe.has_unit_weights:
                _check_array_finiteness(fe.interaction, "interaction")
        self.fes = fes
        self.config = config if config is not None else SolverConfig()
        self.n_obs = n_obs
        self.weights = (
            np.ones(n_obs, dtype=np.float64) if weights is None else _validate_weights(weights, n_obs)
        )
        self._sqrtw = np.sqrt(self.weights)
        self.matrix, self.scales = fe_design(fes, self._sqrtw, dtype=self.config.dtype)
        self._splits = np.cumsum([fe.n for fe in fes])[:-1]
        LOGGER.debug(
            "fixed-effect operator: %d observations, %d columns, %d nonzeros",
            self.matrix.shape[0],
            self.matrix.shape[1],
            self.matrix.nnz,
        )

    def _lsmr(self, b: NDArray[Any]) -> tuple[NDArray[Any], int, bool]:
        tol = self.config.tol
        result = lsmr(
            self.matrix,
            b.astype(self.config.dtype, copy=False),
            atol=tol,
            btol=tol,
            conlim=0,
            maxiter=self.config.maxiter,
        )
        x, istop, itn = result[0], int(result[1]), int(result[2])
        LOGGER.debug("LSMR stopped with code %d after %d iterations", istop, itn)
        return x, itn, istop != _ISTOP_MAXITER

    def _coefficients(self, x: NDArray[Any]) -> list[NDArray[np.float64]]:
        blocks = np.split(np.asarray(x, dtype=np.float64), self._splits)
        return [xj * scale for xj, scale in zip(blocks, self.scales)]

    def _fitted(self, coefs: list[NDArray[np.float64]]) -> NDArray[np.float64]:
        fitted = np.zeros(self.n_obs, dtype=np.float64)
        for coef, fe in zip(coefs, self.fes):
            fitted += np.asarray(fe.interaction, dtype=np.float64) * coef[fe.refs.astype(np.intp) - 1]
        return fitted

    def _response(self, y: Any) -> NDArray[np.float64]:
        arr = np.array(y, dtype=np.float64)
        if arr.ndim not in (1, 2):
            raise ValueError(f"response must be one- or two-dimensional, got shape {arr.shape}")
        if arr.shape[0] != self.n_obs:
            raise DimensionMismatchError(
                f"cannot match response of length {arr.shape[0]} with {self.n_obs} observations",
            )
        _check_array_finiteness(arr, "response")
        return arr

    def _solve(self, col: NDArray[np.float64]) -> tuple[list[NDArray[np.float64]], int, bool]:
        x, itn, converged = self._lsmr(self._sqrtw * col)
        if not converged:
            warnings.warn(
                f"Convergence not achieved in {itn} iterations; try increasing maxiter or decreasing tol.",
                RuntimeWarning,
                stacklevel=3,
            )
        return self._coefficients(x), itn, converged

    def solve_residuals(self, y: Any) -> tuple[NDArray[np.float64], Any, Any]:
        """Residuals of `y` after projecting out the fixed effects.

        Parameters
        ----------
        y : array-like
            Response vector, or matrix whose columns are treated separately.

        Returns
        -------
        residuals : ndarray
            Same shape as `y`.
        iterations : int or list of int
            LSMR iterations (one per column for a matrix).
        converged : bool or list of bool
            Convergence flags (one per column for a matrix).
        """
        arr = self._response(y)
        if arr.ndim == 1:
            coefs, itn, converged = self._solve(arr)
            return arr - self._fitted(coefs), itn, converged
        iterations: list[int] = []
        convergeds: list[bool] = []
        for j in range(arr.shape[1]):
            coefs, itn, converged = self._solve(arr[:, j])
            arr[:, j] -= self._fitted(coefs)
            iterations.append(itn)
            convergeds.append(converged)
        return arr, iterations, convergeds

    def solve_coefficients(self, y: Any) -> tuple[list[NDArray[np.float64]], int, bool]:
        """Raw group coefficients of the projection of `y`.

        The coefficients are one solution among many when several fixed
        effects are collinear; pass them through `normalize` for a canonical
        one. ``coefs[j][g - 1]`` belongs to label ``g`` of ``fes[j]``.
        """
        arr = self._response(y)
        if arr.ndim != 1:
            raise ValueError("solve_coefficients requires a one-dimensional response")
        return self._solve(arr)


def solve_residuals(
    y: Any,
    fes: Sequence[FixedEffect],
    weights: Sequence[float] | None = None,
    **options: Any,
) -> tuple[NDArray[np.float64], Any, Any]:
    """Project the fixed effects out of `y`.

    Keyword options (``tol``, ``maxiter``, ``double_precision``, ``method``)
    configure the solver; see `SolverConfig`.

    Returns
    -------
    residuals, iterations, converged
        See `FixedEffectSolver.solve_residuals`.
    """
    solver = FixedEffectSolver(fes, weights, SolverConfig.from_options(**options))
    return solver.solve_residuals(y)


def solve_coefficients(
    y: Any,
    fes: Sequence[FixedEffect],
    weights: Sequence[float] | None = None,
    **options: Any,
) -> tuple[list[NDArray[np.float64]], int, bool]:
    """Fixed-effect values of the projection of `y`, one array per fixed effect.

    The raw solution is normalized over connected components (`normalize`)
    and expanded to one value per observation (`full`).
    """
    solver = FixedEffectSolver(fes, weights, SolverConfig.from_options(**options))
    coefs, iterations, converged = solver.solve_coefficients(y)
    return full(normalize(coefs, solver.fes), solver.fes), iterations, converged
