"""Rank-Weighted Average Treatment Effect (RATE) estimation."""

from .exceptions import (
    RATEError,
    InputShapeError,
    DegeneratePropensityError,
    DegenerateStatisticError,
    ConfigurationError,
)

from .scores import (
    PropensityDiagnostics,
    propensity_diagnostics,
    aipw_scores,
    residual_dr_scores,
    causal_forest_dr_scores,
)

from .ranking import (
    Ranking,
    rank_units,
    tie_group_means,
)

from .rate import (
    # Types
    RATEConfig,
    TOCCurve,
    RATEResult,
    # Grid and Weighting
    make_grid,
    top_set_sizes,
    point_weight,
    resolve_weights,
    # Estimation
    estimate_rate,
    estimate_rate_from_nuisance,
    influence_standard_error,
)

from .inference import (
    RATEInference,
    RATEComparison,
    rate_confidence_interval,
    rate_pvalue,
    rate_inference,
    compare_rates,
    compare_priorities,
    summarize_rates,
)

from .splitting import (
    honest_split,
    evaluation_folds,
)

__version__ = "0.1.0"
