# fixedeffects/core/__init__.py
"""Core computational modules for fixedeffects."""
from . import errors, fe, grouping, linalg, solver

__all__ = ["errors", "fe", "grouping", "linalg", "solver"]
