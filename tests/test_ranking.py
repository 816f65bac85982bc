"""Tests for the ranking engine."""

import numpy as np
import pytest

from rate_eval import rank_units, tie_group_means, ConfigurationError, InputShapeError


def test_descending_order_and_ranks():
    ranking = rank_units([0.2, 0.9, 0.5])

    np.testing.assert_array_equal(ranking.order, [1, 2, 0])
    np.testing.assert_array_equal(ranking.ranks, [3, 1, 2])
    assert ranking.n_tied == 0


def test_ties_keep_input_order():
    ranking = rank_units([1.0, 2.0, 2.0, 1.0])

    np.testing.assert_array_equal(ranking.order, [1, 2, 0, 3])
    np.testing.assert_array_equal(ranking.tie_groups, [0, 0, 1, 1])
    assert ranking.n_tied == 4


def test_precomputed_rank_vector():
    # rank 1 is treated first
    ranking = rank_units([3, 1, 2], kind='rank')

    np.testing.assert_array_equal(ranking.order, [1, 2, 0])
    np.testing.assert_array_equal(ranking.ranks, [3, 1, 2])


def test_ascending_reverses_order():
    ranking = rank_units([0.2, 0.9, 0.5], ascending=True)
    np.testing.assert_array_equal(ranking.order, [0, 2, 1])


def test_all_tied_warns_and_uses_input_order():
    with pytest.warns(UserWarning, match="tied"):
        ranking = rank_units(np.ones(5))

    np.testing.assert_array_equal(ranking.order, np.arange(5))
    assert ranking.n_tied == 5


def test_unknown_kind_raises():
    with pytest.raises(ConfigurationError) as excinfo:
        rank_units([1.0, 2.0], kind='percentile')
    assert excinfo.value.check == 'priority_kind'


def test_nan_priority_raises():
    with pytest.raises(InputShapeError, match="NaN"):
        rank_units([1.0, np.nan, 0.5])


def test_tie_group_means():
    values = np.array([3.0, 1.0, 2.0, 0.0])
    groups = np.array([0, 0, 1, 1])
    np.testing.assert_allclose(tie_group_means(values, groups), [2.0, 2.0, 1.0, 1.0])
