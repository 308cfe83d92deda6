"""Fixed-effect records, connected components and coefficient normalization.

A `FixedEffect` couples a grouping of the observations with a per-observation
interaction weight. When two or more fixed effects enter a least-squares
problem without interaction, their coefficients are only identified up to
constants that can be shifted between dimensions within each set of groups
linked by shared observations. `components` finds those sets and `normalize`
uses them to pick one canonical solution.
"""

# fixedeffects/core/fe.py
from __future__ import annotations

import logging
from collections import deque
from collections.abc import MutableSequence, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

from .errors import DimensionMismatchError
from .grouping import REFS_DTYPE, group

if TYPE_CHECKING:
    from numpy.typing import NDArray
else:
    NDArray = np.ndarray  # type: ignore[misc,assignment]

__all__ = [
    "FixedEffect",
    "ReverseIndex",
    "UnitWeights",
    "components",
    "full",
    "normalize",
    "refsrev",
]

LOGGER = logging.getLogger(__name__)

Component = tuple[frozenset[int], ...]


class UnitWeights:
    """Implicit all-ones interaction of a given length.

    Stands in for ``np.ones(length)`` without allocating it, and marks a fixed
    effect as entering the model without interaction.
    """

    __slots__ = ("_length",)

    dtype = np.dtype(np.float64)

    def __init__(self, length: int) -> None:
        if length < 0:
            raise ValueError("length must be nonnegative")
        self._length = int(length)

    def __len__(self) -> int:
        return self._length

    @property
    def shape(self) -> tuple[int]:
        return (self._length,)

    @property
    def size(self) -> int:
        return self._length

    def __getitem__(self, key: Any) -> Any:
        if isinstance(key, (int, np.integer)):
            if not -self._length <= key < self._length:
                raise IndexError(
                    f"index {key} is out of bounds for UnitWeights of length {self._length}",
                )
            return 1.0
        return UnitWeights(np.arange(self._length)[key].shape[0])

    def __array__(self, dtype: Any = None, copy: bool | None = None) -> NDArray[Any]:
        return np.ones(self._length, dtype=np.float64 if dtype is None else dtype)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, UnitWeights):
            return NotImplemented
        return self._length == other._length

    def __hash__(self) -> int:
        return hash((UnitWeights, self._length))

    def __repr__(self) -> str:
        return f"UnitWeights({self._length})"


def _check_sample(sample: Any, length: int) -> Any:
    """Validate a row selection against `length`; return it as an indexer."""
    if isinstance(sample, slice):
        return sample
    idx = np.asarray(sample)
    if idx.ndim != 1:
        raise IndexError("row selection must be one-dimensional")
    if idx.size == 0:
        return idx.astype(np.intp)
    if idx.dtype == np.bool_:
        if idx.shape[0] != length:
            raise IndexError(
                f"boolean index of length {idx.shape[0]} does not match {length} observations",
            )
        return idx
    if not np.issubdtype(idx.dtype, np.integer):
        raise IndexError("rows must be selected with a boolean mask, integer indices or a slice")
    lo, hi = int(idx.min()), int(idx.max())
    if lo < -length or hi >= length:
        raise IndexError(
            f"row index {lo if lo < -length else hi} is out of bounds for {length} observations",
        )
    return idx


class FixedEffect:
    """Grouping of the observations together with an interaction weight.

    Parameters
    ----------
    *args : array-like
        Categorical inputs of equal length; several inputs are grouped jointly
        (see `fixedeffects.core.grouping.group`).
    interaction : array-like, optional
        Per-observation weight multiplying the group indicators. Defaults to
        `UnitWeights`, i.e. a plain fixed effect.

    Examples
    --------
    >>> fe = FixedEffect(["a", "b", "a"])
    >>> fe.n
    2
    """

    __slots__ = ("_interaction", "_n", "_refs")

    def __init__(self, *args: Any, interaction: Any = None) -> None:
        g = group(*args)
        refs = np.asarray(g.refs, dtype=REFS_DTYPE)
        if refs.ndim != 1:
            raise ValueError(f"FixedEffect requires one-dimensional inputs, got shape {refs.shape}")
        if interaction is None:
            interaction = UnitWeights(refs.shape[0])
        self._set(refs, interaction, g.n)

    @classmethod
    def from_refs(cls, refs: Any, interaction: Any = None, n: int | None = None) -> FixedEffect:
        """Build a record from existing labels (``0`` missing, ``1..n`` groups)."""
        refs_arr = np.asarray(refs)
        if refs_arr.ndim != 1:
            raise ValueError(f"refs must be one-dimensional, got shape {refs_arr.shape}")
        if refs_arr.size and not np.issubdtype(refs_arr.dtype, np.integer):
            raise ValueError("refs must be integers")
        if refs_arr.size and int(refs_arr.min()) < 0:
            raise ValueError("refs must be nonnegative")
        top = int(refs_arr.max()) if refs_arr.size else 0
        if n is None:
            n = top
        elif top > n:
            raise ValueError(f"refs contain label {top} but n is {n}")
        if interaction is None:
            interaction = UnitWeights(refs_arr.shape[0])
        out = cls.__new__(cls)
        out._set(refs_arr.astype(REFS_DTYPE, copy=False), interaction, n)
        return out

    def _set(self, refs: NDArray[Any], interaction: Any, n: int) -> None:
        if not isinstance(interaction, UnitWeights):
            interaction = np.asarray(interaction, dtype=np.float64)
            if interaction.ndim != 1:
                raise DimensionMismatchError(
                    f"interaction must be one-dimensional, got shape {interaction.shape}",
                )
        if len(refs) != len(interaction):
            raise DimensionMismatchError(
                f"cannot match refs of length {len(refs)} with interaction of length {len(interaction)}",
            )
        self._refs = refs
        self._interaction = interaction
        self._n = int(n)

    @property
    def refs(self) -> NDArray[Any]:
        return self._refs

    @property
    def interaction(self) -> NDArray[np.float64] | UnitWeights:
        return self._interaction

    @property
    def n(self) -> int:
        return self._n

    @property
    def shape(self) -> tuple[int, ...]:
        return self._refs.shape

    @property
    def size(self) -> int:
        return self._refs.size

    @property
    def dtype(self) -> np.dtype:
        return self._interaction.dtype

    @property
    def has_unit_weights(self) -> bool:
        return isinstance(self._interaction, UnitWeights)

    @property
    def has_missing(self) -> bool:
        return bool(np.any(self._refs == 0))

    def __len__(self) -> int:
        return self._refs.shape[0]

    def __getitem__(self, sample: Any) -> FixedEffect:
        if sample is Ellipsis or (isinstance(sample, slice) and sample == slice(None)):
            return self
        if isinstance(sample, (int, np.integer)):
            raise TypeError("select rows of a FixedEffect with a mask, an index array or a slice")
        idx = _check_sample(sample, len(self))
        out = FixedEffect.__new__(FixedEffect)
        # n is kept: coefficient vectors stay indexed by the original labels
        out._set(self._refs[idx], self._interaction[idx], self._n)
        return out

    def __repr__(self) -> str:
        head = ", ".join(str(int(r)) for r in self._refs[:5])
        lines = [
            "Fixed Effects:",
            f"  refs ({len(self)}-element {self._refs.dtype} array):",
            f"    [{head}, ... ]",
        ]
        if self.has_unit_weights:
            lines += ["  interaction (UnitWeights):", "    none"]
        else:
            vals = ", ".join(f"{x:.6g}" for x in self._interaction[:5])
            lines += [
                f"  interaction ({len(self)}-element {self._interaction.dtype} array):",
                f"    [{vals}, ... ]",
            ]
        return "\n".join(lines)


# Connected components
# ---------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ReverseIndex:
    """Observations carrying each label, stored contiguously.

    The observations with label ``g`` are ``order[offsets[g]:offsets[g + 1]]``.
    """

    order: NDArray[np.intp]
    offsets: NDArray[np.intp]

    def rows(self, label: int) -> NDArray[np.intp]:
        return self.order[self.offsets[label] : self.offsets[label + 1]]


def refsrev(fe: FixedEffect) -> ReverseIndex:
    """Map every label of `fe` (including ``0``) to the rows that carry it."""
    refs = fe.refs.astype(np.intp)
    order = np.argsort(refs, kind="stable").astype(np.intp, copy=False)
    counts = np.bincount(refs, minlength=fe.n + 1)
    offsets = np.zeros(counts.shape[0] + 1, dtype=np.intp)
    np.cumsum(counts, out=offsets[1:])
    return ReverseIndex(order, offsets)


def _common_length(fes: Sequence[FixedEffect]) -> int:
    n_obs = len(fes[0])
    for fe in fes[1:]:
        if len(fe) != n_obs:
            raise DimensionMismatchError(
                f"cannot match FixedEffect of length {n_obs} with FixedEffect of length {len(fe)}",
            )
    return n_obs


def components(fes: Sequence[FixedEffect]) -> list[Component]:
    """Find the sets of groups linked by shared observations.

    Two groups (of the same or of different fixed effects) are connected when
    some observation belongs to both, directly or through a chain of such
    observations. Missing labels never link anything.

    Returns
    -------
    list of tuple of frozenset
        One entry per component, ordered by the first observation it
        contains. Each entry holds, for every fixed effect in `fes`, the
        labels belonging to the component.
    """
    fes = list(fes)
    if not fes:
        return []
    n_obs = _common_length(fes)
    refs_list = [fe.refs.tolist() for fe in fes]
    index = [refsrev(fe) for fe in fes]
    # a label belongs to a single component, so one flag per label suffices
    seen = [np.zeros(fe.n + 1, dtype=bool) for fe in fes]
    visited = np.zeros(n_obs, dtype=bool)
    dims = list(zip(refs_list, index, seen))

    out: list[Component] = []
    for start in range(n_obs):
        if visited[start]:
            continue
        visited[start] = True
        labels: list[set[int]] = [set() for _ in fes]
        tovisit = deque([start])
        while tovisit:
            i = tovisit.popleft()
            for (refs, rev, seen_j), labels_j in zip(dims, labels):
                ref = refs[i]
                if ref == 0 or seen_j[ref]:
                    continue
                seen_j[ref] = True
                labels_j.add(ref)
                rows = rev.rows(ref)
                new = rows[~visited[rows]]
                visited[new] = True
                tovisit.extend(new.tolist())
        if any(labels):
            out.append(tuple(frozenset(s) for s in labels))
    LOGGER.debug("found %d components over %d observations", len(out), n_obs)
    return out


# Normalization
# ---------------------------------------------------------------------


def _as_coef_vector(coef: Any, fe: FixedEffect) -> NDArray[np.float64]:
    if isinstance(coef, np.ndarray) and coef.dtype.kind == "f":
        vec = coef
    else:
        vec = np.asarray(coef, dtype=np.float64)
    if vec.ndim != 1 or vec.shape[0] < fe.n:
        raise DimensionMismatchError(
            f"coefficient vector of shape {vec.shape} cannot hold {fe.n} groups",
        )
    return vec


def _check_pairs(coefs: Sequence[Any], fes: Sequence[FixedEffect]) -> None:
    if len(coefs) != len(fes):
        raise DimensionMismatchError(
            f"cannot match {len(coefs)} coefficient vectors with {len(fes)} fixed effects",
        )


def normalize(
    coefs: MutableSequence[Any], fes: Sequence[FixedEffect],
) -> MutableSequence[Any]:
    """Canonicalize fixed-effect coefficients in place.

    Coefficient vector ``coefs[j]`` holds the coefficient of label ``g`` of
    ``fes[j]`` at position ``g - 1``. Only fixed effects without interaction
    take part. Within every connected component, all of them except the first
    are demeaned and the removed means are added to the first one, which
    leaves the fitted values unchanged. With fewer than two such fixed
    effects the coefficients are returned untouched.

    Non-float vectors are replaced in `coefs` by float copies.
    """
    fes = list(fes)
    _check_pairs(coefs, fes)
    idx = [j for j, fe in enumerate(fes) if fe.has_unit_weights]
    if len(idx) < 2:
        LOGGER.debug("%d fixed effects without interaction; nothing to normalize", len(idx))
        return coefs
    for j in idx:
        vec = _as_coef_vector(coefs[j], fes[j])
        if vec is not coefs[j]:
            coefs[j] = vec
    _rescale([coefs[j] for j in idx], [fes[j] for j in idx])
    return coefs


def _positions(labels: frozenset[int]) -> NDArray[np.intp]:
    return np.fromiter(labels, dtype=np.intp, count=len(labels)) - 1


def _rescale(coefs: list[NDArray[np.float64]], fes: list[FixedEffect]) -> None:
    for component in components(fes):
        m = 0.0
        # demean all fixed effects except the first
        for j in range(len(coefs) - 1, 0, -1):
            if not component[j]:
                continue
            pos = _positions(component[j])
            mj = float(coefs[j][pos].mean())
            coefs[j][pos] -= mj
            m += mj
        if component[0]:
            coefs[0][_positions(component[0])] += m


def full(coefs: Sequence[Any], fes: Sequence[FixedEffect]) -> list[NDArray[np.float64]]:
    """Expand group coefficients to one value per observation.

    Observations with a missing label get ``NaN``.
    """
    fes = list(fes)
    _check_pairs(coefs, fes)
    out = []
    for coef, fe in zip(coefs, fes):
        vec = _as_coef_vector(coef, fe)
        refs = fe.refs.astype(np.intp)
        vals = np.full(refs.shape[0], np.nan, dtype=np.float64)
        present = refs != 0
        vals[present] = vec[refs[present] - 1]
        out.append(vals)
    return out
