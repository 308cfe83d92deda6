"""fixedeffects: categorical fixed effects for least-squares problems.

This package groups categorical variables into dense integer partitions,
finds the connected components linking several fixed effects, projects
responses onto fixed effects, and normalizes the resulting coefficients.
"""
from __future__ import annotations

from importlib import import_module
from typing import Any

__version__ = "0.1.0"

__all__ = [
    "DimensionMismatchError",
    "FixedEffect",
    "FixedEffectSolver",
    "FixedEffectsError",
    "GroupedArray",
    "SolverConfig",
    "UnitWeights",
    "components",
    "full",
    "group",
    "normalize",
    "solve_coefficients",
    "solve_residuals",
]

_LAZY_IMPORTS: dict[str, tuple[str, str]] = {
    "DimensionMismatchError": ("fixedeffects.core.errors", "DimensionMismatchError"),
    "FixedEffectsError": ("fixedeffects.core.errors", "FixedEffectsError"),
    "GroupedArray": ("fixedeffects.core.grouping", "GroupedArray"),
    "group": ("fixedeffects.core.grouping", "group"),
    "FixedEffect": ("fixedeffects.core.fe", "FixedEffect"),
    "UnitWeights": ("fixedeffects.core.fe", "UnitWeights"),
    "components": ("fixedeffects.core.fe", "components"),
    "full": ("fixedeffects.core.fe", "full"),
    "normalize": ("fixedeffects.core.fe", "normalize"),
    "FixedEffectSolver": ("fixedeffects.core.solver", "FixedEffectSolver"),
    "SolverConfig": ("fixedeffects.core.solver", "SolverConfig"),
    "solve_coefficients": ("fixedeffects.core.solver", "solve_coefficients"),
    "solve_residuals": ("fixedeffects.core.solver", "solve_residuals"),
}


def __getattr__(name: str) -> Any:
    """Lazily import public functions and classes on first access."""
    if name in _LAZY_IMPORTS:
        module_name, attr_name = _LAZY_IMPORTS[name]
        module = import_module(module_name)
        attr = getattr(module, attr_name)
        globals()[name] = attr
        return attr
    raise AttributeError(f"module 'fixedeffects' has no attribute '{name}'")


def __dir__() -> list[str]:
    """Ensure dir() exposes lazily imported names."""
    return sorted(set(globals()) | set(__all__))
