import pytest
import numpy as np
from fixedeffects.core import fe as fe_mod
from fixedeffects.core.errors import DimensionMismatchError

# ---------------------------------------------------------------------
# Unit Tests: UnitWeights
# ---------------------------------------------------------------------

def test_unit_weights_behaves_like_ones():
    uw = fe_mod.UnitWeights(4)
    assert len(uw) == 4
    assert np.array_equal(np.asarray(uw), np.ones(4))
    assert uw[2] == 1.0
    assert isinstance(uw[1:], fe_mod.UnitWeights)
    assert len(uw[np.array([True, False, True, True])]) == 3
    assert uw == fe_mod.UnitWeights(4)
    with pytest.raises(IndexError):
        uw[4]

# ---------------------------------------------------------------------
# Unit Tests: Construction
# ---------------------------------------------------------------------

def test_fixed_effect_defaults():
    fe = fe_mod.FixedEffect(["a", "b", "a"])
    assert fe.n == 2
    assert np.array_equal(fe.refs, [1, 2, 1])
    assert fe.has_unit_weights
    assert isinstance(fe.interaction, fe_mod.UnitWeights)
    assert len(fe) == 3
    assert fe.shape == (3,)
    assert fe.dtype == np.float64
    assert not fe.has_missing

def test_fixed_effect_explicit_ones_is_not_unit_weights():
    fe = fe_mod.FixedEffect([1, 2, 1], interaction=np.ones(3))
    assert not fe.has_unit_weights
    assert fe.interaction.dtype == np.float64

def test_fixed_effect_joint_inputs():
    fe = fe_mod.FixedEffect([1, 1, 2], [1, 2, 1])
    assert fe.n == 3

def test_fixed_effect_length_mismatch():
    with pytest.raises(DimensionMismatchError, match="cannot match refs of length 3"):
        fe_mod.FixedEffect.from_refs(np.array([1, 2, 3]), np.array([1.0, 2.0]))
    with pytest.raises(DimensionMismatchError):
        fe_mod.FixedEffect([1, 2, 3], interaction=[1.0, 2.0])

def test_from_refs_validation():
    fe = fe_mod.FixedEffect.from_refs([1, 0, 2])
    assert fe.n == 2
    assert fe.has_missing
    with pytest.raises(ValueError, match="n is 2"):
        fe_mod.FixedEffect.from_refs([1, 3], n=2)
    with pytest.raises(ValueError):
        fe_mod.FixedEffect.from_refs([1.5, 2.0])

def test_fixed_effect_requires_vector():
    with pytest.raises(ValueError, match="one-dimensional"):
        fe_mod.FixedEffect(np.array([[1, 2], [2, 1]]))

# ---------------------------------------------------------------------
# Unit Tests: Sub-selection
# ---------------------------------------------------------------------

def test_subset_mask_keeps_n():
    fe = fe_mod.FixedEffect([1, 2, 3, 1])
    sub = fe[np.array([True, False, True, False])]
    assert np.array_equal(sub.refs, [1, 3])
    assert sub.n == 3
    assert sub.has_unit_weights
    assert len(sub.interaction) == 2

def test_subset_index_array_with_interaction():
    fe = fe_mod.FixedEffect(["a", "b", "c"], interaction=[1.0, 2.0, 3.0])
    sub = fe[[2, 0]]
    assert np.array_equal(sub.refs, [3, 1])
    assert np.array_equal(sub.interaction, [3.0, 1.0])

def test_subset_colon_and_slice():
    fe = fe_mod.FixedEffect([1, 2, 3, 1])
    assert fe[:] is fe
    assert np.array_equal(fe[1:3].refs, [2, 3])

def test_subset_out_of_bounds():
    fe = fe_mod.FixedEffect([1, 2, 3])
    with pytest.raises(IndexError):
        fe[[0, 5]]
    with pytest.raises(IndexError):
        fe[np.array([True, False])]
    with pytest.raises(TypeError):
        fe[0]

def test_repr_mentions_interaction():
    fe = fe_mod.FixedEffect([1, 2, 3])
    text = repr(fe)
    assert text.startswith("Fixed Effects:")
    assert "UnitWeights" in text
    assert "none" in text
    text = repr(fe_mod.FixedEffect([1, 2], interaction=[0.5, 2.0]))
    assert "0.5" in text
