"""Simulation checks: power under heterogeneity, calibration under the null."""

import numpy as np
import pytest

from rate_eval import estimate_rate, compare_priorities, rate_pvalue


GRID = np.linspace(0.05, 1.0, 20)


def test_oracle_ranking_on_standard_normal_scores():
    rng = np.random.default_rng(11)
    dr_scores = rng.normal(0, 1, 1000)
    result = estimate_rate(dr_scores, dr_scores, q=GRID)

    toc = result.toc.estimate
    # mean of the top 5% of a standard normal is about 2.06
    assert 1.7 < toc[0] < 2.4
    assert (np.diff(toc) < 0).all()
    assert toc[-1] == 0.0
    assert result.estimate > 0
    assert rate_pvalue(result) < 0.05


def test_heterogeneity_is_detected():
    rejections = 0
    for seed in range(20):
        rng = np.random.default_rng(seed)
        X = rng.uniform(0, 1, 1000)
        dr_scores = 2 * X + rng.normal(0, 1, 1000)
        result = estimate_rate(dr_scores, X, q=GRID)
        rejections += rate_pvalue(result, 'greater') < 0.05
    assert rejections >= 18


@pytest.mark.parametrize("target", ['AUTOC', 'QINI'])
def test_null_z_scores_are_calibrated(target):
    covered = 0
    n_sims = 100
    for seed in range(n_sims):
        rng = np.random.default_rng(1000 + seed)
        dr_scores = 1.0 + rng.normal(0, 1, 500)
        result = estimate_rate(dr_scores, rng.normal(size=500), target=target)
        covered += abs(result.estimate / result.se) < 2
    assert covered / n_sims >= 0.85


def test_null_paired_difference_is_calibrated():
    covered = 0
    n_sims = 100
    for seed in range(n_sims):
        rng = np.random.default_rng(5000 + seed)
        dr_scores = rng.normal(0, 1, 500)
        comparison = compare_priorities(dr_scores, rng.normal(size=500), rng.normal(size=500))
        covered += abs(comparison.z_stat) < 2
    assert covered / n_sims >= 0.85
