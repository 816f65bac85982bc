"""Doubly robust (AIPW) pseudo-outcomes for RATE evaluation.

This module provides functions for:
- AIPW scores from outcome-regression and propensity estimates
- Residual-form scores (causal forest, censoring-adjusted survival residuals)
- Propensity overlap diagnostics on the evaluation set

Every score satisfies E[Gamma_i | X_i] = tau(X_i) when either the propensity
or the outcome model is correct. Nuisance estimates are supplied by the
caller; nothing here fits a model.
"""

import warnings
from typing import NamedTuple
import numpy as np

from .exceptions import DegeneratePropensityError
from .utils import as_vector, as_binary, check_same_length


# =============================================================================
# Type Definitions
# =============================================================================

class PropensityDiagnostics(NamedTuple):
    """Propensity overlap diagnostics."""
    ps_min: float
    ps_max: float
    n_extreme_low: int
    n_extreme_high: int
    max_ipw_weight: float
    threshold: float


# =============================================================================
# Propensity Checks
# =============================================================================

def _check_propensity(W_hat: np.ndarray, overlap_threshold: float = 0.01) -> None:
    """Reject propensities outside (0, 1); warn near the boundary."""
    bad = np.flatnonzero((W_hat <= 0) | (W_hat >= 1))
    if bad.size > 0:
        i = int(bad[0])
        raise DegeneratePropensityError(
            f"Degenerate propensity: W_hat[{i}]={W_hat[i]} must lie strictly inside (0, 1) "
            f"({bad.size} unit(s) affected)",
            check='propensity_open_interval',
            value=float(W_hat[i]),
        )

    n_extreme = int(((W_hat < overlap_threshold) | (W_hat > 1 - overlap_threshold)).sum())
    if n_extreme > 0:
        warnings.warn(
            f"{n_extreme} propensity estimate(s) within {overlap_threshold} of 0 or 1; "
            "AIPW scores may have very large variance"
        )


def propensity_diagnostics(W_hat, threshold: float = 0.01) -> PropensityDiagnostics:
    """Summarize overlap of evaluation-set propensity estimates.

    Args:
        W_hat: Propensity scores P(W=1|X) (n_samples,)
        threshold: Distance from 0/1 counted as extreme

    Returns:
        PropensityDiagnostics with range, extreme counts and largest IPW weight
    """
    W_hat = as_vector(W_hat, 'W_hat')
    with np.errstate(divide='ignore'):
        weights = np.maximum(1 / W_hat, 1 / (1 - W_hat))

    return PropensityDiagnostics(
        ps_min=float(W_hat.min()),
        ps_max=float(W_hat.max()),
        n_extreme_low=int((W_hat < threshold).sum()),
        n_extreme_high=int((W_hat > 1 - threshold).sum()),
        max_ipw_weight=float(weights.max()),
        threshold=threshold,
    )


# =============================================================================
# Doubly Robust Scores
# =============================================================================

def aipw_scores(
    Y,
    W,
    W_hat,
    mu0_hat,
    mu1_hat,
    overlap_threshold: float = 0.01
) -> np.ndarray:
    """AIPW pseudo-outcomes from outcome-regression estimates.

    Gamma_i = mu1(X_i) - mu0(X_i)
              + W_i / e(X_i) * (Y_i - mu1(X_i))
              - (1 - W_i) / (1 - e(X_i)) * (Y_i - mu0(X_i))

    Args:
        Y: Outcome variable (n_samples,)
        W: Treatment indicator 0/1 (n_samples,)
        W_hat: Propensity scores P(W=1|X) (n_samples,)
        mu0_hat: Predicted outcome under control E[Y|X, W=0] (n_samples,)
        mu1_hat: Predicted outcome under treatment E[Y|X, W=1] (n_samples,)
        overlap_threshold: Warn when a propensity is this close to 0 or 1

    Returns:
        Doubly robust scores (n_samples,)
    """
    Y = as_vector(Y, 'Y')
    W = as_binary(W, 'W')
    W_hat = as_vector(W_hat, 'W_hat')
    mu0_hat = as_vector(mu0_hat, 'mu0_hat')
    mu1_hat = as_vector(mu1_hat, 'mu1_hat')
    check_same_length(Y=Y, W=W, W_hat=W_hat, mu0_hat=mu0_hat, mu1_hat=mu1_hat)
    _check_propensity(W_hat, overlap_threshold)

    return (
        mu1_hat - mu0_hat
        + W / W_hat * (Y - mu1_hat)
        - (1 - W) / (1 - W_hat) * (Y - mu0_hat)
    )


def residual_dr_scores(
    tau_hat,
    W,
    W_hat,
    residual,
    overlap_threshold: float = 0.01
) -> np.ndarray:
    """Doubly robust scores from an externally computed outcome residual.

    Gamma_i = tau(X_i) + (W_i - e(X_i)) / (e(X_i) (1 - e(X_i))) * residual_i

    For a causal forest the residual is Y - m(X) - (W - e(X)) tau(X). For
    right-censored outcomes it is the censoring-adjusted residual produced
    by the survival-forest collaborator; only the final combination happens
    here.

    Args:
        tau_hat: CATE estimates (n_samples,)
        W: Treatment indicator 0/1 (n_samples,)
        W_hat: Propensity scores (n_samples,)
        residual: Outcome residual (n_samples,)
        overlap_threshold: Warn when a propensity is this close to 0 or 1

    Returns:
        Doubly robust scores (n_samples,)
    """
    tau_hat = as_vector(tau_hat, 'tau_hat')
    W = as_binary(W, 'W')
    W_hat = as_vector(W_hat, 'W_hat')
    residual = as_vector(residual, 'residual')
    check_same_length(tau_hat=tau_hat, W=W, W_hat=W_hat, residual=residual)
    _check_propensity(W_hat, overlap_threshold)

    W_centered = W - W_hat
    return tau_hat + W_centered / (W_hat * (1 - W_hat)) * residual


def causal_forest_dr_scores(
    Y,
    W,
    Y_hat,
    W_hat,
    tau_hat,
    overlap_threshold: float = 0.01
) -> np.ndarray:
    """Doubly robust scores from causal-forest style nuisance estimates.

    Equivalent to ``aipw_scores`` with mu0 = m(X) - e(X) tau(X) and
    mu1 = m(X) + (1 - e(X)) tau(X).

    Args:
        Y: Outcome variable (n_samples,)
        W: Treatment indicator 0/1 (n_samples,)
        Y_hat: Marginal outcome estimates E[Y|X] (n_samples,)
        W_hat: Propensity scores (n_samples,)
        tau_hat: CATE estimates (n_samples,)
        overlap_threshold: Warn when a propensity is this close to 0 or 1

    Returns:
        Doubly robust scores (n_samples,)
    """
    Y = as_vector(Y, 'Y')
    W = as_binary(W, 'W')
    Y_hat = as_vector(Y_hat, 'Y_hat')
    W_hat = as_vector(W_hat, 'W_hat')
    tau_hat = as_vector(tau_hat, 'tau_hat')
    check_same_length(Y=Y, W=W, Y_hat=Y_hat, W_hat=W_hat, tau_hat=tau_hat)

    residual = Y - Y_hat - (W - W_hat) * tau_hat
    return residual_dr_scores(tau_hat, W, W_hat, residual, overlap_threshold)
