"""Targeting Operator Characteristic (TOC) and RATE estimation.

This module provides functions for:
- TOC curve estimation on a quantile grid
- RATE (AUTOC, QINI or custom weighting) as a weighted integral of the TOC
- Plug-in (influence function) and half-sample bootstrap standard errors

For a prioritization rule S and doubly robust scores Gamma,

    TOC(q)  = E[Gamma | top q-fraction by S] - E[Gamma]
    RATE    = int_0^1 w(q) TOC(q) dq / int_0^1 w(q) dq

with w(q) = 1 (AUTOC) or w(q) = q (QINI).

For theory and background:
- Yadlowsky, Fleming, Shah, Brunskill, Wager (2025). Evaluating Treatment
  Prioritization Rules via Rank-Weighted Average Treatment Effects. JASA.
"""

import logging
import math
from typing import Callable, NamedTuple, Optional, Tuple, Union
import numpy as np
import pandas as pd

from .exceptions import ConfigurationError, DegenerateStatisticError, InputShapeError
from .ranking import PRIORITY_KINDS, Ranking, rank_units, tie_group_means
from .scores import aipw_scores
from .utils import as_vector, as_labels, check_same_length, is_int


TARGETS = ('AUTOC', 'QINI')
SE_METHODS = ('plugin', 'bootstrap')
TIE_METHODS = ('first', 'average')
MIN_UNITS = 2

Target = Union[str, Callable[[float], float]]


# =============================================================================
# Type Definitions
# =============================================================================

class RATEConfig(NamedTuple):
    """Estimator settings shared across RATE computations."""
    se_method: str = 'plugin'
    n_bootstrap: int = 200
    ties: str = 'first'
    priority_kind: str = 'score'
    boundary_bandwidth: Optional[int] = None
    random_state: Optional[int] = 42


class TOCCurve(NamedTuple):
    """TOC estimates on a quantile grid."""
    q: np.ndarray
    n_top: np.ndarray
    estimate: np.ndarray
    se: np.ndarray

    def to_frame(self) -> pd.DataFrame:
        """Export the curve as a DataFrame (q, n_top, estimate, se)."""
        return pd.DataFrame({
            'q': self.q,
            'n_top': self.n_top,
            'estimate': self.estimate,
            'se': self.se,
        })


class RATEResult(NamedTuple):
    """RATE estimate for one (scores, priorities, weighting) triple."""
    estimate: float
    se: float
    target: str
    toc: TOCCurve
    n_obs: int
    weight_mass: float
    se_method: str
    influence: np.ndarray
    dr_scores: np.ndarray
    clusters: Optional[np.ndarray] = None
    boot_estimates: Optional[np.ndarray] = None
    boot_seed: Optional[int] = None


# =============================================================================
# Grid and Weighting
# =============================================================================

def make_grid(q, n: int) -> np.ndarray:
    """Validate a quantile grid, or build the full grid k/n for q=None.

    Args:
        q: Increasing quantiles in (0, 1] ending at 1, or None
        n: Number of evaluation units

    Returns:
        Grid as a float array
    """
    if q is None:
        return np.arange(1, n + 1) / n

    try:
        grid = as_vector(q, 'q', allow_empty=True).copy()
    except InputShapeError as e:
        raise ConfigurationError(str(e), check=e.check, value=e.value) from e

    if len(grid) < 2:
        raise ConfigurationError(
            f"Quantile grid needs at least 2 points, got {len(grid)}", check='grid_size', value=len(grid)
        )
    steps = np.diff(grid)
    if (steps <= 0).any():
        j = int(np.flatnonzero(steps <= 0)[0])
        raise ConfigurationError(
            f"Quantile grid must be strictly increasing: q[{j}]={grid[j]} >= q[{j + 1}]={grid[j + 1]}",
            check='grid_monotone',
            value=(grid[j], grid[j + 1]),
        )
    if grid[0] <= 0:
        raise ConfigurationError(
            f"Quantile grid must lie in (0, 1]; got q[0]={grid[0]}", check='grid_range', value=grid[0]
        )
    if abs(grid[-1] - 1.0) > 1e-12:
        raise ConfigurationError(
            f"Quantile grid must end at 1; got q[-1]={grid[-1]}", check='grid_end', value=grid[-1]
        )
    grid[-1] = 1.0
    return grid


def top_set_sizes(grid: np.ndarray, n: int) -> np.ndarray:
    """Number of top-ranked units ceil(q * n) per grid point, in [1, n]."""
    # q * n can land a hair above an integer (0.3 * 10 = 3.0000000000000004)
    k = np.ceil(np.round(grid * n, 9)).astype(int)
    return np.clip(k, 1, n)


def point_weight(q0: float) -> Callable[[float], float]:
    """Weighting that puts all mass on a single grid point.

    The resulting RATE equals TOC(q0): the mean score of the top q0
    fraction minus the overall mean.
    """
    def weight(q: float) -> float:
        return 1.0 if math.isclose(q, q0, rel_tol=0.0, abs_tol=1e-12) else 0.0
    return weight


def resolve_weights(target: Target, grid: np.ndarray) -> Tuple[str, np.ndarray]:
    """Evaluate the weighting function on the grid.

    Args:
        target: "AUTOC", "QINI" (case-insensitive) or a callable q -> weight
        grid: Quantile grid

    Returns:
        (target name, weights per grid point)
    """
    if callable(target):
        name = 'custom'
        weights = np.array([float(target(float(qj))) for qj in grid])
    elif isinstance(target, str) and target.upper() in TARGETS:
        name = target.upper()
        weights = np.ones_like(grid) if name == 'AUTOC' else grid.copy()
    else:
        raise ConfigurationError(
            f"Unknown target '{target}'; expected one of {TARGETS} or a callable",
            check='target',
            value=target,
        )

    if not np.isfinite(weights).all():
        raise ConfigurationError("Weighting returned NaN/inf", check='weights_finite', value=name)
    if (weights < 0).any():
        j = int(np.flatnonzero(weights < 0)[0])
        raise ConfigurationError(
            f"Weights must be non-negative; w(q={grid[j]})={weights[j]}",
            check='weights_non_negative',
            value=weights[j],
        )
    return name, weights


def _check_config(config: RATEConfig) -> None:
    if config.se_method not in SE_METHODS:
        raise ConfigurationError(
            f"Unknown se_method '{config.se_method}'; expected one of {SE_METHODS}",
            check='se_method',
            value=config.se_method,
        )
    if config.ties not in TIE_METHODS:
        raise ConfigurationError(
            f"Unknown ties '{config.ties}'; expected one of {TIE_METHODS}",
            check='ties',
            value=config.ties,
        )
    if config.priority_kind not in PRIORITY_KINDS:
        raise ConfigurationError(
            f"Unknown priority kind '{config.priority_kind}'; expected one of {PRIORITY_KINDS}",
            check='priority_kind',
            value=config.priority_kind,
        )
    if config.se_method == 'bootstrap' and (not is_int(config.n_bootstrap) or config.n_bootstrap < 2):
        raise ConfigurationError(
            "n_bootstrap must be an int >= 2", check='n_bootstrap', value=config.n_bootstrap
        )
    bandwidth = config.boundary_bandwidth
    if bandwidth is not None and (not is_int(bandwidth) or bandwidth < 1):
        raise ConfigurationError(
            "boundary_bandwidth must be a positive int or None", check='boundary_bandwidth', value=bandwidth
        )


# =============================================================================
# Standard Errors
# =============================================================================

def influence_standard_error(psi, clusters=None) -> float:
    """Standard error of a mean from per-unit influence contributions.

    Without clusters: sqrt(sum (psi - mean)^2 / (n (n - 1))).
    With clusters, contributions are summed per cluster first
    (cluster-robust, G / (G - 1) small-sample factor).

    Args:
        psi: Influence contribution per unit (n_samples,)
        clusters: Optional cluster label per unit

    Returns:
        Standard error
    """
    psi = as_vector(psi, 'psi')
    n = len(psi)
    if n < MIN_UNITS:
        raise InputShapeError(f"Need at least {MIN_UNITS} units, got {n}", check='min_units', value=n)
    dev = psi - psi.mean()

    codes = as_labels(clusters, n)
    if codes is None:
        return float(np.sqrt(np.sum(dev ** 2) / (n * (n - 1))))

    sums = np.bincount(codes, weights=dev)
    n_clusters = len(sums)
    if n_clusters < 2:
        raise DegenerateStatisticError(
            "Cluster-robust SE needs at least 2 clusters", check='min_clusters', value=n_clusters
        )
    return float(np.sqrt(n_clusters / (n_clusters - 1) * np.sum(sums ** 2)) / n)


def _suffix_sums(values: np.ndarray) -> np.ndarray:
    """Suffix sums with a trailing zero: out[j] = sum(values[j:])."""
    return np.concatenate([np.cumsum(values[::-1])[::-1], [0.0]])


def _toc_point_se(
    centered: np.ndarray,
    k: np.ndarray,
    mu: np.ndarray,
    clusters: Optional[np.ndarray]
) -> np.ndarray:
    """Plug-in SE of TOC at each grid point.

    The influence contribution of the unit in sorted position p for top-set
    size k is (n/k) 1[p <= k] (Gc_p - mu_k) - Gc_p.
    """
    n = len(centered)
    a = n / k

    if clusters is not None:
        positions = np.arange(1, n + 1)
        se = np.empty(len(k))
        for j in range(len(k)):
            psi = np.where(positions <= k[j], a[j] * (centered - mu[j]), 0.0) - centered
            se[j] = influence_standard_error(psi, clusters)
        return se

    # Closed form from prefix sums, O(n + m)
    p1 = np.concatenate([[0.0], np.cumsum(centered)])
    p2 = np.concatenate([[0.0], np.cumsum(centered ** 2)])
    s1 = (a - 1) * p1[k] - a * k * mu - (p1[n] - p1[k])
    s2 = (
        (a - 1) ** 2 * p2[k]
        - 2 * a * (a - 1) * mu * p1[k]
        + a ** 2 * mu ** 2 * k
        + (p2[n] - p2[k])
    )
    var_sum = np.maximum(s2 - s1 ** 2 / n, 0.0)
    return np.sqrt(var_sum / (n * (n - 1)))


# =============================================================================
# Core Estimator
# =============================================================================

def _toc_values(values: np.ndarray, k: np.ndarray) -> np.ndarray:
    """TOC at each top-set size from scores already in ranking order."""
    n = len(values)
    csum = np.cumsum(values)
    # Both means come from the same cumulative sum, so TOC(1) is exactly 0
    return csum[k - 1] / k - csum[-1] / n


def _plugin_influence(
    ranked: np.ndarray,
    curve_values: np.ndarray,
    tie_groups: np.ndarray,
    k: np.ndarray,
    w_norm: np.ndarray,
    ties: str,
    bandwidth: Optional[int]
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Influence contributions of the weighted TOC, in sorted order.

    RATE = (1/n) sum_p c(p) Gc_p with c(p) = sum_{j: k_j >= p} w_j n / k_j - 1.
    Estimating the quantile boundaries adds -sum_{j: k_j >= p} w_j (n / k_j) mu_j,
    where mu_j is the mean centered score near the boundary k_j.

    Returns:
        (psi per sorted position, boundary means mu_j, centered curve values)
    """
    n = len(ranked)
    center = np.cumsum(curve_values)[-1] / n
    centered_raw = ranked - center
    centered_curve = curve_values - center

    h = bandwidth or int(math.ceil(math.sqrt(n)))
    ccum = np.concatenate([[0.0], np.cumsum(centered_curve)])
    lo = np.maximum(k - h, 0)
    hi = np.minimum(k + h, n)
    mu = (ccum[hi] - ccum[lo]) / (hi - lo)

    coef = w_norm * n / k
    first = np.searchsorted(k, np.arange(1, n + 1), side='left')
    c = _suffix_sums(coef)[first] - w_norm.sum()
    correction = _suffix_sums(coef * mu)[first]

    if ties == 'average':
        c = tie_group_means(c, tie_groups)
        correction = tie_group_means(correction, tie_groups)

    psi = c * centered_raw - correction
    return psi, mu, centered_curve


def _half_sample_bootstrap(
    dr_scores: np.ndarray,
    ranking: Ranking,
    grid: np.ndarray,
    w_norm: np.ndarray,
    clusters: Optional[np.ndarray],
    config: RATEConfig
) -> Tuple[np.ndarray, np.ndarray]:
    """Half-sample bootstrap replicates of RATE and the TOC curve.

    Half of the units (or clusters) are drawn without replacement, so the
    spread of the replicates estimates the full-sample standard error
    directly. The ranking is restricted, not recomputed: relative order and
    tie-breaks are unchanged on a subset.

    Returns:
        (RATE replicates (R,), TOC replicates (R, m))
    """
    n = len(dr_scores)
    rng = np.random.default_rng(config.random_state)
    n_groups = n if clusters is None else int(clusters.max()) + 1
    half = n_groups // 2

    logging.info(f"Bootstrapping RATE with {config.n_bootstrap} half-samples of {half}/{n_groups} "
                 f"{'units' if clusters is None else 'clusters'}")

    boot_estimates = np.empty(config.n_bootstrap)
    boot_toc = np.empty((config.n_bootstrap, len(grid)))

    for b in range(config.n_bootstrap):
        chosen = rng.choice(n_groups, size=half, replace=False)
        if clusters is None:
            mask = np.zeros(n, dtype=bool)
            mask[chosen] = True
        else:
            mask = np.isin(clusters, chosen)

        in_sample = mask[ranking.order]
        sub_order = ranking.order[in_sample]
        n_sub = len(sub_order)
        if n_sub < MIN_UNITS:
            raise DegenerateStatisticError(
                f"Half-sample of {n_sub} unit(s) is too small for the bootstrap",
                check='bootstrap_half_sample',
                value=n_sub,
            )

        values = dr_scores[sub_order]
        if config.ties == 'average':
            _, groups = np.unique(ranking.tie_groups[in_sample], return_inverse=True)
            values = tie_group_means(values, groups)

        toc_b = _toc_values(values, top_set_sizes(grid, n_sub))
        boot_toc[b] = toc_b
        boot_estimates[b] = np.sum(w_norm * toc_b)

    logging.info(f"Bootstrap done: replicate sd={boot_estimates.std(ddof=1):.4g}")
    return boot_estimates, boot_toc


def estimate_rate(
    dr_scores,
    priorities=None,
    target: Target = 'AUTOC',
    q=None,
    clusters=None,
    config: Optional[RATEConfig] = None
) -> RATEResult:
    """Estimate the Rank-Weighted Average Treatment Effect of a prioritization rule.

    TOC(q_j) = mean(Gamma over top ceil(q_j n) units) - mean(Gamma), and
    RATE = sum_j w(q_j) dq_j TOC(q_j) / sum_j w(q_j) dq_j  with dq_j = q_j - q_{j-1},
    a right Riemann sum of the weighted TOC normalized by the weight mass.

    Args:
        dr_scores: Doubly robust scores Gamma on the evaluation set (n_samples,)
        priorities: Priority per unit (n_samples,); None ranks by Gamma itself
        target: "AUTOC", "QINI", or a callable mapping q to a non-negative weight
        q: Increasing quantile grid ending at 1; None uses k/n for k = 1..n
        clusters: Optional cluster labels for cluster-robust SEs / resampling
        config: Estimator settings (defaults to RATEConfig())

    Returns:
        RATEResult with estimate, SE and the TOC curve
    """
    config = config or RATEConfig()
    _check_config(config)

    dr_scores = as_vector(dr_scores, 'dr_scores')
    n = len(dr_scores)
    if n < MIN_UNITS:
        raise InputShapeError(
            f"Insufficient data: need at least {MIN_UNITS} units, got {n}", check='min_units', value=n
        )

    if priorities is None:
        priority_values, priority_kind = dr_scores, 'score'
    else:
        priority_values = as_vector(priorities, 'priorities')
        check_same_length(dr_scores=dr_scores, priorities=priority_values)
        priority_kind = config.priority_kind

    codes = as_labels(clusters, n)
    grid = make_grid(q, n)
    name, weights = resolve_weights(target, grid)
    k = top_set_sizes(grid, n)

    dq = np.diff(grid, prepend=0.0)
    mass = float(np.sum(weights * dq))
    if mass <= 0:
        raise DegenerateStatisticError(
            "Weighting has zero mass on the quantile grid; RATE is undefined",
            check='weight_mass',
            value=mass,
        )
    w_norm = weights * dq / mass
    logging.debug(f"RATE {name}: n={n}, grid points={len(grid)}, weight mass={mass:.4g}")

    if np.ptp(dr_scores) == 0:
        # Constant scores: TOC is identically zero
        zeros = np.zeros(len(grid))
        return RATEResult(
            estimate=0.0,
            se=0.0,
            target=name,
            toc=TOCCurve(q=grid, n_top=k, estimate=zeros, se=zeros.copy()),
            n_obs=n,
            weight_mass=mass,
            se_method=config.se_method,
            influence=np.zeros(n),
            dr_scores=dr_scores,
            clusters=codes,
            boot_estimates=np.zeros(config.n_bootstrap) if config.se_method == 'bootstrap' else None,
            boot_seed=config.random_state if config.se_method == 'bootstrap' else None,
        )

    ranking = rank_units(priority_values, kind=priority_kind)
    ranked = dr_scores[ranking.order]
    curve_values = ranked
    if config.ties == 'average':
        curve_values = tie_group_means(ranked, ranking.tie_groups)

    toc = _toc_values(curve_values, k)
    estimate = float(np.sum(w_norm * toc))

    psi_sorted, mu, centered_curve = _plugin_influence(
        ranked, curve_values, ranking.tie_groups, k, w_norm, config.ties, config.boundary_bandwidth
    )
    influence = np.empty(n)
    influence[ranking.order] = psi_sorted - psi_sorted.mean()

    boot_estimates = None
    if config.se_method == 'bootstrap':
        boot_estimates, boot_toc = _half_sample_bootstrap(dr_scores, ranking, grid, w_norm, codes, config)
        se = float(np.std(boot_estimates, ddof=1))
        toc_se = np.std(boot_toc, axis=0, ddof=1)
    else:
        se = influence_standard_error(influence, codes)
        sorted_codes = None if codes is None else codes[ranking.order]
        toc_se = _toc_point_se(centered_curve, k, mu, sorted_codes)

    return RATEResult(
        estimate=estimate,
        se=se,
        target=name,
        toc=TOCCurve(q=grid, n_top=k, estimate=toc, se=toc_se),
        n_obs=n,
        weight_mass=mass,
        se_method=config.se_method,
        influence=influence,
        dr_scores=dr_scores,
        clusters=codes,
        boot_estimates=boot_estimates,
        boot_seed=config.random_state if config.se_method == 'bootstrap' else None,
    )


def estimate_rate_from_nuisance(
    Y,
    W,
    W_hat,
    mu0_hat,
    mu1_hat,
    priorities=None,
    target: Target = 'AUTOC',
    q=None,
    clusters=None,
    config: Optional[RATEConfig] = None
) -> RATEResult:
    """Build AIPW scores from raw outcomes and nuisance estimates, then estimate RATE.

    Args:
        Y: Outcome variable (n_samples,)
        W: Treatment indicator 0/1 (n_samples,)
        W_hat: Propensity scores (n_samples,)
        mu0_hat: Predicted outcome under control (n_samples,)
        mu1_hat: Predicted outcome under treatment (n_samples,)
        priorities: Priority per unit; None ranks by the AIPW scores
        target: "AUTOC", "QINI" or a weighting callable
        q: Quantile grid (None = full grid)
        clusters: Optional cluster labels
        config: Estimator settings

    Returns:
        RATEResult
    """
    dr_scores = aipw_scores(Y, W, W_hat, mu0_hat, mu1_hat)
    return estimate_rate(dr_scores, priorities, target=target, q=q, clusters=clusters, config=config)
