import pytest
import numpy as np
import pandas as pd
from fixedeffects.core import grouping as gr
from fixedeffects.core.errors import DimensionMismatchError

# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------

def hand_partition(*columns):
    # first-seen labels of the zipped rows; rows with a missing entry get 0
    labels = {}
    out = []
    for row in zip(*columns):
        if any(pd.isna(v) for v in row):
            out.append(0)
            continue
        if row not in labels:
            labels[row] = len(labels) + 1
        out.append(labels[row])
    return np.array(out), len(labels)

# ---------------------------------------------------------------------
# Unit Tests: Single input
# ---------------------------------------------------------------------

def test_group_single_first_seen_order():
    g = gr.group(np.array(["b", "a", "b", "c"]))
    assert g.n == 3
    assert np.array_equal(g.refs, [1, 2, 1, 3])
    assert g.refs.dtype == np.uint32

def test_group_single_dense_labels(rng):
    x = rng.integers(0, 7, size=200)
    g = gr.group(x)
    assert g.n == np.unique(x).size
    assert set(np.unique(g.refs)) == set(range(1, g.n + 1))

def test_group_missing_gets_zero():
    g = gr.group(np.array([1.0, np.nan, 2.0, 1.0]))
    assert np.array_equal(g.refs, [1, 0, 2, 1])
    assert g.n == 2

    g = gr.group(["a", None, "b"])
    assert np.array_equal(g.refs, [1, 0, 2])
    assert g.n == 2

def test_group_nullable_series():
    g = gr.group(pd.Series([1, None, 1], dtype="Int64"))
    assert np.array_equal(g.refs, [1, 0, 1])
    assert g.n == 1

def test_group_categorical_reuses_pool():
    cat = pd.Categorical(["b", "a", None, "b"], categories=["a", "b", "c"])
    g = gr.group(cat)
    # pool order, unused level "c" keeps its slot
    assert np.array_equal(g.refs, [2, 1, 0, 2])
    assert g.n == 3

    g_series = gr.group(pd.Series(cat))
    assert np.array_equal(g_series.refs, g.refs)
    assert g_series.n == 3

def test_as_group_input_variants():
    coded = gr.as_group_input(pd.Categorical(["x", "y"]))
    assert isinstance(coded, gr.CodedInput)
    assert coded.pool_size == 2
    raw = gr.as_group_input(np.array([3, 4]))
    assert isinstance(raw, gr.RawInput)
    assert raw.shape == (2,)

def test_group_zero_length():
    g = gr.group(np.array([]))
    assert g.n == 0
    assert g.refs.size == 0
    g = gr.group(np.array([]), np.array([]))
    assert g.n == 0

def test_group_two_dimensional_input():
    g = gr.group(np.array([[1, 2], [2, 1]]))
    assert g.shape == (2, 2)
    assert np.array_equal(g.refs, [[1, 2], [2, 1]])

def test_group_passthrough_and_no_args():
    g = gr.group([1, 2, 2])
    assert gr.group(g) is g
    with pytest.raises(TypeError):
        gr.group()

# ---------------------------------------------------------------------
# Unit Tests: Joint grouping
# ---------------------------------------------------------------------

def test_group_joint_counts():
    assert gr.group([1, 1, 2]).n == 2
    g = gr.group([1, 1, 2], [1, 2, 1])
    assert g.n == 3
    assert np.array_equal(g.refs, [1, 2, 3])

def test_group_joint_missing_any():
    g = gr.group(["a", "b", None], [1, 2, 3])
    assert np.array_equal(g.refs, [1, 2, 0])
    assert g.n == 2

def test_group_joint_matches_hand_partition(rng):
    a = rng.integers(0, 4, size=300).astype(float)
    b = rng.integers(0, 5, size=300).astype(float)
    a[rng.choice(300, 20, replace=False)] = np.nan
    b[rng.choice(300, 20, replace=False)] = np.nan
    expected, n_expected = hand_partition(a, b)
    g = gr.group(a, b)
    assert g.n == n_expected
    assert np.array_equal(g.refs, expected)

def test_group_dataframe_columns():
    df = pd.DataFrame({"a": [1, 1, 2], "b": [1, 2, 1]})
    assert gr.group(df).n == 3
    assert np.array_equal(gr.group(df).refs, gr.group(df["a"], df["b"]).refs)

def test_group_shape_mismatch():
    with pytest.raises(DimensionMismatchError, match="cannot match array"):
        gr.group([1, 2, 3], [1, 2])
    # the taxonomy error is still a ValueError
    with pytest.raises(ValueError):
        gr.group([1, 2, 3], [1, 2])

# ---------------------------------------------------------------------
# Unit Tests: combine / factorize
# ---------------------------------------------------------------------

def test_combine_mixed_radix_does_not_mutate():
    g1 = gr.GroupedArray(np.array([1, 2, 0], dtype=np.uint32), 2)
    g2 = gr.GroupedArray(np.array([2, 1, 1], dtype=np.uint32), 3)
    out = gr.combine(g1, g2)
    assert np.array_equal(out.refs, [3, 2, 0])
    assert out.n == 6
    assert np.array_equal(g1.refs, [1, 2, 0])
    assert g1.n == 2

def test_factorize_keeps_missing():
    g = gr.factorize(gr.GroupedArray(np.array([7, 0, 3, 7], dtype=np.uint64), 10))
    assert np.array_equal(g.refs, [1, 0, 2, 1])
    assert g.n == 2

def test_group_compacts_before_overflow():
    x = np.arange(70_000)
    g = gr.group(x, x[::-1], x)
    assert g.n == 70_000
    assert np.array_equal(g.refs, np.arange(1, 70_001))

def test_combine_overflow_raises():
    g = gr.GroupedArray(np.array([1], dtype=np.uint32), 2**40)
    with pytest.raises(OverflowError):
        gr.combine(g, g)
