"""Tests for doubly robust pseudo-outcomes."""

import numpy as np
import pandas as pd
import pytest

from rate_eval import (
    aipw_scores,
    residual_dr_scores,
    causal_forest_dr_scores,
    propensity_diagnostics,
    DegeneratePropensityError,
    InputShapeError,
)


class TestAIPWScores:

    def test_hand_computed_scores(self):
        Y = [1.0, 0.0]
        W = [1, 0]
        W_hat = [0.5, 0.5]
        mu0 = [0.2, 0.2]
        mu1 = [0.6, 0.6]

        gamma = aipw_scores(Y, W, W_hat, mu0, mu1)

        # 0.4 + (1 - 0.6) / 0.5 and 0.4 + (0 - 0.2) / 0.5 * -1
        np.testing.assert_allclose(gamma, [1.2, 0.8])

    def test_mean_recovers_ate_with_correct_outcome_model(self, rng):
        n = 20000
        X = rng.uniform(0, 1, n)
        e = 0.3 + 0.4 * X
        W = rng.binomial(1, e)
        tau = 1.0 + X
        mu0 = X
        mu1 = X + tau
        Y = np.where(W == 1, mu1, mu0) + rng.normal(0, 1, n)

        gamma = aipw_scores(Y, W, e, mu0, mu1)

        assert gamma.mean() == pytest.approx(1.5, abs=0.05)

    def test_accepts_pandas_series(self):
        gamma = aipw_scores(
            pd.Series([1.0, 0.0]), pd.Series([1, 0]), pd.Series([0.5, 0.5]),
            pd.Series([0.2, 0.2]), pd.Series([0.6, 0.6])
        )
        assert isinstance(gamma, np.ndarray)
        assert gamma.shape == (2,)

    @pytest.mark.parametrize("bad_value", [0.0, 1.0, 1.2, -0.1])
    def test_degenerate_propensity_raises(self, bad_value):
        with pytest.raises(DegeneratePropensityError) as excinfo:
            aipw_scores([1.0, 0.0], [1, 0], [0.5, bad_value], [0.2, 0.2], [0.6, 0.6])

        assert excinfo.value.check == 'propensity_open_interval'
        assert excinfo.value.value == bad_value
        assert "W_hat[1]" in str(excinfo.value)

    def test_near_boundary_propensity_warns(self):
        with pytest.warns(UserWarning, match="propensity"):
            gamma = aipw_scores([1.0, 0.0], [1, 0], [0.5, 0.005], [0.2, 0.2], [0.6, 0.6])
        assert np.isfinite(gamma).all()

    def test_length_mismatch_raises(self):
        with pytest.raises(InputShapeError, match="Length mismatch"):
            aipw_scores([1.0, 0.0, 1.0], [1, 0], [0.5, 0.5], [0.2, 0.2], [0.6, 0.6])

    def test_non_binary_treatment_raises(self):
        with pytest.raises(InputShapeError, match="binary"):
            aipw_scores([1.0, 0.0], [1, 2], [0.5, 0.5], [0.2, 0.2], [0.6, 0.6])

    def test_empty_and_nan_inputs_raise(self):
        with pytest.raises(InputShapeError, match="empty"):
            aipw_scores([], [], [], [], [])
        with pytest.raises(InputShapeError, match="NaN"):
            aipw_scores([1.0, np.nan], [1, 0], [0.5, 0.5], [0.2, 0.2], [0.6, 0.6])

    def test_degenerate_propensity_is_a_value_error(self):
        with pytest.raises(ValueError):
            aipw_scores([1.0], [1], [1.0], [0.0], [1.0])


class TestResidualScores:

    def test_causal_forest_form_matches_aipw(self, rng):
        n = 500
        Y = rng.normal(0, 1, n)
        W = rng.binomial(1, 0.4, n)
        W_hat = rng.uniform(0.2, 0.8, n)
        Y_hat = rng.normal(0, 1, n)
        tau_hat = rng.normal(0, 1, n)

        gamma_cf = causal_forest_dr_scores(Y, W, Y_hat, W_hat, tau_hat)
        gamma_aipw = aipw_scores(
            Y, W, W_hat,
            mu0_hat=Y_hat - W_hat * tau_hat,
            mu1_hat=Y_hat + (1 - W_hat) * tau_hat,
        )

        np.testing.assert_allclose(gamma_cf, gamma_aipw, rtol=1e-10, atol=1e-10)

    def test_zero_residual_returns_cate(self):
        tau_hat = np.array([0.5, -1.0, 2.0])
        gamma = residual_dr_scores(tau_hat, [1, 0, 1], [0.3, 0.6, 0.5], np.zeros(3))
        np.testing.assert_array_equal(gamma, tau_hat)

    def test_censoring_adjusted_residual(self):
        # treated unit: 1 + (1 - 0.5) / 0.25 * 0.2; control unit: 1 - 0.5 / 0.25 * 0.2
        gamma = residual_dr_scores([1.0, 1.0], [1, 0], [0.5, 0.5], [0.2, 0.2])
        np.testing.assert_allclose(gamma, [1.4, 0.6])

    def test_residual_form_rejects_degenerate_propensity(self):
        with pytest.raises(DegeneratePropensityError):
            residual_dr_scores([1.0, 1.0], [1, 0], [0.5, 0.0], [0.2, 0.2])


class TestPropensityDiagnostics:

    def test_counts_and_range(self):
        diag = propensity_diagnostics([0.005, 0.5, 0.995, 0.3], threshold=0.01)

        assert diag.ps_min == pytest.approx(0.005)
        assert diag.ps_max == pytest.approx(0.995)
        assert diag.n_extreme_low == 1
        assert diag.n_extreme_high == 1
        assert diag.max_ipw_weight == pytest.approx(200.0)
