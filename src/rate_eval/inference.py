"""Confidence intervals, p-values and paired comparisons for RATE estimates.

Wald-type inference: estimate +/- z * SE, with p-values against RATE = 0.
Two prioritization rules evaluated on the same doubly robust scores are
compared with the joint (covariance-aware) estimator, since both RATEs are
linear in the same Gamma.
"""

from typing import Dict, NamedTuple, Optional, Tuple
import numpy as np
import pandas as pd
from scipy import stats

from .exceptions import ConfigurationError, DegenerateStatisticError, InputShapeError
from .rate import RATEConfig, RATEResult, Target, estimate_rate, influence_standard_error


ALTERNATIVES = ('two-sided', 'greater', 'less')


# =============================================================================
# Type Definitions
# =============================================================================

class RATEInference(NamedTuple):
    """Wald inference for a single RATE."""
    estimate: float
    se: float
    ci_lower: float
    ci_upper: float
    z_stat: float
    p_value: float
    level: float
    alternative: str


class RATEComparison(NamedTuple):
    """Difference RATE(a) - RATE(b) between two prioritization rules."""
    estimate: float
    se: float
    ci_lower: float
    ci_upper: float
    z_stat: float
    p_value: float
    paired: bool
    covariance: float
    result_a: RATEResult
    result_b: RATEResult


# =============================================================================
# Wald Inference
# =============================================================================

def _critical_value(level: float) -> float:
    if not 0 < level < 1:
        raise ConfigurationError(f"level must be in (0, 1), got {level}", check='level', value=level)
    return float(stats.norm.ppf(1 - (1 - level) / 2))


def _wald_interval(estimate: float, se: float, level: float) -> Tuple[float, float]:
    z = _critical_value(level)
    return estimate - z * se, estimate + z * se


def _wald_pvalue(estimate: float, se: float, alternative: str) -> Tuple[float, float]:
    """Return (z statistic, p-value) for H0: parameter = 0."""
    if alternative not in ALTERNATIVES:
        raise ConfigurationError(
            f"Unknown alternative '{alternative}'; expected one of {ALTERNATIVES}",
            check='alternative',
            value=alternative,
        )
    if se == 0:
        if estimate == 0:
            return 0.0, 1.0
        raise DegenerateStatisticError(
            f"Standard error is zero for a non-zero estimate ({estimate}); p-value is undefined",
            check='zero_se',
            value=estimate,
        )

    z = estimate / se
    if alternative == 'two-sided':
        p = 2 * stats.norm.sf(abs(z))
    elif alternative == 'greater':
        p = stats.norm.sf(z)
    else:
        p = stats.norm.cdf(z)
    return float(z), float(p)


def rate_confidence_interval(result: RATEResult, level: float = 0.95) -> Tuple[float, float]:
    """Wald confidence interval estimate +/- z * SE.

    Args:
        result: RATE estimate
        level: Confidence level

    Returns:
        (lower, upper)
    """
    return _wald_interval(result.estimate, result.se, level)


def rate_pvalue(result: RATEResult, alternative: str = 'two-sided') -> float:
    """P-value against RATE = 0.

    "greater" tests whether the rule targets better than random.
    """
    return _wald_pvalue(result.estimate, result.se, alternative)[1]


def rate_inference(
    result: RATEResult,
    level: float = 0.95,
    alternative: str = 'two-sided'
) -> RATEInference:
    """Confidence interval and test against RATE = 0 for one estimate."""
    ci_lower, ci_upper = _wald_interval(result.estimate, result.se, level)
    z, p = _wald_pvalue(result.estimate, result.se, alternative)
    return RATEInference(
        estimate=result.estimate,
        se=result.se,
        ci_lower=ci_lower,
        ci_upper=ci_upper,
        z_stat=z,
        p_value=p,
        level=level,
        alternative=alternative,
    )


# =============================================================================
# Paired Comparison
# =============================================================================

def _shares_scores(result_a: RATEResult, result_b: RATEResult) -> bool:
    return (
        result_a.n_obs == result_b.n_obs
        and np.array_equal(result_a.dr_scores, result_b.dr_scores)
    )


def _same_clusters(clusters_a: Optional[np.ndarray], clusters_b: Optional[np.ndarray]) -> bool:
    if clusters_a is None or clusters_b is None:
        return clusters_a is None and clusters_b is None
    return np.array_equal(clusters_a, clusters_b)


def _difference_se(result_a: RATEResult, result_b: RATEResult) -> Tuple[float, float]:
    """Joint SE of RATE(a) - RATE(b) on shared scores, and the covariance."""
    if result_a.se_method != result_b.se_method:
        raise ConfigurationError(
            f"Cannot pair a '{result_a.se_method}' result with a '{result_b.se_method}' result",
            check='se_method',
            value=(result_a.se_method, result_b.se_method),
        )

    if not _same_clusters(result_a.clusters, result_b.clusters):
        raise ConfigurationError(
            "Paired comparison needs both results computed with the same cluster labels",
            check='same_clusters',
            value=None,
        )

    if result_a.se_method == 'bootstrap':
        boot_a, boot_b = result_a.boot_estimates, result_b.boot_estimates
        # Unseeded runs never share draws
        if (
            boot_a is None or boot_b is None or len(boot_a) != len(boot_b)
            or result_a.boot_seed is None or result_a.boot_seed != result_b.boot_seed
        ):
            raise ConfigurationError(
                "Paired bootstrap comparison needs replicates from the same draws "
                f"(random_state {result_a.boot_seed} vs {result_b.boot_seed})",
                check='bootstrap_replicates',
                value=(result_a.boot_seed, result_b.boot_seed),
            )
        se = float(np.std(boot_a - boot_b, ddof=1))
        covariance = float(np.cov(boot_a, boot_b, ddof=1)[0, 1])
        return se, covariance

    se = influence_standard_error(result_a.influence - result_b.influence, result_a.clusters)
    covariance = (result_a.se ** 2 + result_b.se ** 2 - se ** 2) / 2
    return se, float(covariance)


def compare_rates(
    result_a: RATEResult,
    result_b: RATEResult,
    level: float = 0.95,
    alternative: str = 'two-sided',
    paired: Optional[bool] = None
) -> RATEComparison:
    """Compare two RATE estimates: RATE(a) - RATE(b).

    When both results were computed on the same doubly robust scores the
    difference SE uses the per-unit influence contributions of both rules
    (equivalently se_a^2 + se_b^2 - 2 cov). Results from independent
    samples combine as sqrt(se_a^2 + se_b^2).

    Args:
        result_a: RATE of the first rule
        result_b: RATE of the second rule
        level: Confidence level
        alternative: "two-sided", "greater" (a better than b) or "less"
        paired: Force paired/unpaired; None detects shared scores

    Returns:
        RATEComparison
    """
    if paired is None:
        paired = _shares_scores(result_a, result_b)
    if paired and result_a.n_obs != result_b.n_obs:
        raise InputShapeError(
            f"Paired comparison needs the same units: n_a={result_a.n_obs}, n_b={result_b.n_obs}",
            check='same_length',
            value=(result_a.n_obs, result_b.n_obs),
        )

    estimate = result_a.estimate - result_b.estimate
    if paired:
        se, covariance = _difference_se(result_a, result_b)
    else:
        se = float(np.sqrt(result_a.se ** 2 + result_b.se ** 2))
        covariance = 0.0

    ci_lower, ci_upper = _wald_interval(estimate, se, level)
    z, p = _wald_pvalue(estimate, se, alternative)

    return RATEComparison(
        estimate=estimate,
        se=se,
        ci_lower=ci_lower,
        ci_upper=ci_upper,
        z_stat=z,
        p_value=p,
        paired=bool(paired),
        covariance=covariance,
        result_a=result_a,
        result_b=result_b,
    )


def compare_priorities(
    dr_scores,
    priorities_a,
    priorities_b,
    target: Target = 'AUTOC',
    q=None,
    clusters=None,
    config: Optional[RATEConfig] = None,
    level: float = 0.95,
    alternative: str = 'two-sided'
) -> RATEComparison:
    """Estimate and compare two prioritization rules on the same scores.

    Both rules see the same bootstrap draws (same random_state), so the
    paired comparison is valid for either SE method. The bootstrap needs a
    fixed random_state for the draws to be shared.
    """
    result_a = estimate_rate(dr_scores, priorities_a, target=target, q=q, clusters=clusters, config=config)
    result_b = estimate_rate(dr_scores, priorities_b, target=target, q=q, clusters=clusters, config=config)
    return compare_rates(result_a, result_b, level=level, alternative=alternative, paired=True)


# =============================================================================
# Summary Tables
# =============================================================================

def summarize_rates(
    results: Dict[str, RATEResult],
    level: float = 0.95,
    alternative: str = 'two-sided'
) -> pd.DataFrame:
    """Compare several prioritization rules in one table.

    Args:
        results: Dictionary {rule_name: RATEResult}
        level: Confidence level
        alternative: Alternative for the p-values

    Returns:
        DataFrame with columns: rule, target, estimate, se, ci_lower,
        ci_upper, p_value (sorted by estimate, best first)
    """
    rows = []
    for name, result in results.items():
        inference = rate_inference(result, level=level, alternative=alternative)
        rows.append({
            'rule': name,
            'target': result.target,
            'estimate': inference.estimate,
            'se': inference.se,
            'ci_lower': inference.ci_lower,
            'ci_upper': inference.ci_upper,
            'p_value': inference.p_value,
        })

    columns = ['rule', 'target', 'estimate', 'se', 'ci_lower', 'ci_upper', 'p_value']
    df = pd.DataFrame(rows, columns=columns)
    return df.sort_values('estimate', ascending=False).reset_index(drop=True)
