"""Exception types raised by fixedeffects."""

# fixedeffects/core/errors.py
from __future__ import annotations

__all__ = ["DimensionMismatchError", "FixedEffectsError"]


class FixedEffectsError(Exception):
    """Base exception for fixedeffects."""


class DimensionMismatchError(FixedEffectsError, ValueError):
    """Lengths or shapes of jointly used arrays disagree."""
