"""
Tests for the beta <-> M-value transform.
"""

import numpy as np
import pandas as pd
import pytest

from cholmeth.preprocessing.transformers import MValueTransformer, beta_to_m, m_to_beta


def test_round_trip_inside_unit_interval():
    """m_to_beta(beta_to_m(b)) reproduces b for b strictly inside (0, 1)."""
    betas = np.linspace(0.001, 0.999, 501)
    np.testing.assert_allclose(m_to_beta(beta_to_m(betas)), betas, rtol=1e-9, atol=1e-12)


def test_boundaries_are_finite_and_clamped():
    """0 and 1 map to the transform of the clamped boundary, never to +-inf."""
    offset = 1e-6
    low, high = beta_to_m(0.0, offset), beta_to_m(1.0, offset)

    assert np.isfinite(low) and np.isfinite(high)
    assert low == pytest.approx(np.log2(offset / (1 - offset)))
    assert high == pytest.approx(-low)
    assert m_to_beta(low) == pytest.approx(offset, rel=1e-6)
    assert m_to_beta(high) == pytest.approx(1 - offset, rel=1e-12)


def test_midpoint_and_monotonicity():
    assert beta_to_m(0.5) == 0.0
    m_values = beta_to_m(np.linspace(0, 1, 101))
    assert np.all(np.diff(m_values) >= 0)
    assert np.all(np.diff(m_values[1:-1]) > 0)


def test_dataframe_labels_preserved_and_nan_kept(toy_beta):
    m_values = beta_to_m(toy_beta)

    assert isinstance(m_values, pd.DataFrame)
    pd.testing.assert_index_equal(m_values.index, toy_beta.index)
    pd.testing.assert_index_equal(m_values.columns, toy_beta.columns)
    assert np.isnan(m_values.loc["cg01", toy_beta.columns[1]])
    assert m_values.loc["cg04", toy_beta.columns[0]] == pytest.approx(np.log2(0.9 / 0.1))


def test_transformer_does_not_modify_input(toy_beta):
    original = toy_beta.copy()
    transformer = MValueTransformer(offset=1e-3)
    m_values = transformer.transform(toy_beta)

    pd.testing.assert_frame_equal(toy_beta, original)
    back = transformer.inverse_transform(m_values)
    pd.testing.assert_frame_equal(back, toy_beta, check_exact=False, rtol=1e-9)


@pytest.mark.parametrize("offset", [0.0, -1e-6, 0.5, 1.0])
def test_invalid_offset_rejected(offset):
    with pytest.raises(ValueError):
        beta_to_m(0.3, offset)
    with pytest.raises(ValueError):
        MValueTransformer(offset)
