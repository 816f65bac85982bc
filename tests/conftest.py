"""Shared fixtures for RATE tests."""

import numpy as np
import pytest


@pytest.fixture
def rng():
    return np.random.default_rng(20240611)


@pytest.fixture
def hand_example():
    """Four units ranked in score order; mean score 1, TOC = [3, 2, 1, 0]."""
    dr_scores = np.array([4.0, 2.0, 0.0, -2.0])
    priorities = np.array([4.0, 3.0, 2.0, 1.0])
    return dr_scores, priorities


@pytest.fixture
def heterogeneous_sample(rng):
    """Honest setting: CATE increases in X, priorities = X, noisy DR scores."""
    n = 2000
    X = rng.uniform(0, 1, n)
    tau = 2 * X
    dr_scores = tau + rng.normal(0, 1, n)
    return dr_scores, X
