"""Integer partitions of categorical data.

`group` maps one or several parallel categorical arrays to a single dense
integer labeling. Label ``0`` marks a missing observation; every other label
lies in ``1..n``. Joint groupings are built by a mixed-radix fold over the
per-array labelings followed by a factorization pass that drops the
combinations never observed.
"""

# fixedeffects/core/grouping.py
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

import numpy as np
import pandas as pd

from .errors import DimensionMismatchError

if TYPE_CHECKING:
    from numpy.typing import NDArray
else:
    NDArray = np.ndarray  # type: ignore[misc,assignment]

__all__ = [
    "CodedInput",
    "GroupedArray",
    "RawInput",
    "as_group_input",
    "combine",
    "factorize",
    "group",
]

LOGGER = logging.getLogger(__name__)

REFS_DTYPE = np.uint32
# Largest label representable in the final refs array.
MAX_GROUPS = int(np.iinfo(REFS_DTYPE).max)
# Largest mixed-radix code representable while folding.
_MAX_COMBINED = int(np.iinfo(np.uint64).max)


@dataclass(slots=True, eq=False)
class GroupedArray:
    """Dense integer labeling parallel to the source data.

    Attributes
    ----------
    refs : np.ndarray
        Unsigned labels with the shape of the source. ``0`` means missing,
        other values lie in ``1..n``.
    n : int
        Number of groups (upper bound of the labels).
    """

    refs: NDArray[Any]
    n: int

    @property
    def shape(self) -> tuple[int, ...]:
        return tuple(np.shape(self.refs))

    @property
    def size(self) -> int:
        return int(np.size(self.refs))

    def __len__(self) -> int:
        return len(self.refs)

    def __getitem__(self, key: Any) -> Any:
        return self.refs[key]

    def __array__(self, dtype: Any = None, copy: bool | None = None) -> NDArray[Any]:
        if dtype is None:
            return self.refs.copy() if copy else self.refs
        return self.refs.astype(dtype)

    def __repr__(self) -> str:
        return f"GroupedArray(n={self.n}, refs={self.refs!r})"


# Input variants
# ---------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CodedInput:
    """Input that already carries an integer coding over a pool of levels.

    ``codes`` uses ``-1`` for missing and ``0..pool_size-1`` otherwise.
    """

    codes: NDArray[np.int64]
    pool_size: int
    shape: tuple[int, ...]


@dataclass(frozen=True, slots=True)
class RawInput:
    """Input whose distinct values still have to be hashed into labels."""

    values: Any
    shape: tuple[int, ...]


GroupInput = Union[CodedInput, RawInput]


def as_group_input(x: Any) -> GroupInput:
    """Resolve an array-like into a coded or raw grouping input."""
    if isinstance(x, (CodedInput, RawInput)):
        return x
    dtype = getattr(x, "dtype", None)
    if isinstance(dtype, pd.CategoricalDtype):
        cat = pd.Categorical(x)
        codes = np.asarray(cat.codes, dtype=np.int64)
        return CodedInput(codes, len(cat.categories), (codes.shape[0],))
    if isinstance(x, (pd.Series, pd.Index)) or isinstance(dtype, pd.api.extensions.ExtensionDtype):
        # keep pandas containers intact so nullable dtypes report their NA
        return RawInput(x, (len(x),))
    arr = np.asarray(x)
    return RawInput(arr.reshape(-1), tuple(arr.shape))


def _group_input(inp: GroupInput) -> GroupedArray:
    if isinstance(inp, CodedInput):
        refs = np.where(inp.codes < 0, 0, inp.codes + 1).astype(REFS_DTYPE)
        return GroupedArray(refs.reshape(inp.shape), int(inp.pool_size))
    codes, uniques = pd.factorize(inp.values, sort=False, use_na_sentinel=True)
    refs = (np.asarray(codes, dtype=np.int64) + 1).astype(REFS_DTYPE)
    return GroupedArray(refs.reshape(inp.shape), len(uniques))


def _expand_args(args: Sequence[Any]) -> list[Any]:
    """Flatten DataFrame arguments into their columns."""
    out: list[Any] = []
    for x in args:
        if isinstance(x, pd.DataFrame):
            out.extend(x[col] for col in x.columns)
        else:
            out.append(x)
    return out


# Fold
# ---------------------------------------------------------------------


def combine(g1: GroupedArray, g2: GroupedArray) -> GroupedArray:
    """Mixed-radix product of two labelings over the same observations.

    The result is sparse: ``n = g1.n * g2.n`` counts every potential
    combination, not only the observed ones. Run `factorize` afterwards to
    obtain dense labels.
    """
    if g1.shape != g2.shape:
        raise DimensionMismatchError(
            f"cannot match array of size {g1.shape} with array of size {g2.shape}",
        )
    n = int(g1.n) * int(g2.n)
    if n > _MAX_COMBINED:
        raise OverflowError(
            f"combined grouping has {n} potential groups; at most {_MAX_COMBINED} are supported",
        )
    a = np.asarray(g1.refs, dtype=np.uint64)
    b = np.asarray(g2.refs, dtype=np.uint64)
    missing = (a == 0) | (b == 0)
    # b - 1 wraps for b == 0; those rows are overwritten below
    refs = a + (b - np.uint64(1)) * np.uint64(g1.n)
    refs[missing] = 0
    return GroupedArray(refs, n)


def factorize(g: GroupedArray) -> GroupedArray:
    """Relabel non-zero codes densely into ``1..n`` in first-seen order."""
    shape = g.shape
    refs = np.asarray(g.refs).reshape(-1)
    out = np.zeros(refs.shape[0], dtype=REFS_DTYPE)
    present = refs != 0
    codes, uniques = pd.factorize(refs[present], sort=False)
    out[present] = np.asarray(codes, dtype=np.int64) + 1
    return GroupedArray(out.reshape(shape), len(uniques))


def group(*args: Any) -> GroupedArray:
    """Group one or several parallel arrays into a single labeling.

    Parameters
    ----------
    *args : array-like, pandas objects, or GroupedArray
        Inputs of identical shape. A DataFrame contributes each of its
        columns. Categorical inputs reuse their existing coding.

    Returns
    -------
    GroupedArray
        Labels distinguishing every observed combination of the inputs.
        A row that is missing in any input gets label ``0``.
    """
    inputs = _expand_args(args)
    if not inputs:
        raise TypeError("group() requires at least one array")
    if len(inputs) == 1:
        return _grouped(inputs[0])

    acc = _grouped(inputs[0])
    for x in inputs[1:]:
        gj = _grouped(x)
        if acc.shape != gj.shape:
            raise DimensionMismatchError(
                f"cannot match array of size {acc.shape} with array of size {gj.shape}",
            )
        if int(acc.n) * int(gj.n) > MAX_GROUPS:
            LOGGER.debug(
                "compacting %s potential groups before combining with %s more",
                acc.n,
                gj.n,
            )
            acc = factorize(acc)
        acc = combine(acc, gj)
    out = factorize(acc)
    if out.n > MAX_GROUPS:
        raise OverflowError(f"grouping has {out.n} groups; at most {MAX_GROUPS} are supported")
    return out


def _grouped(x: Any) -> GroupedArray:
    return x if isinstance(x, GroupedArray) else _group_input(as_group_input(x))
