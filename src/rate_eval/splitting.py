"""Honest sample splitting for prioritization rules.

RATE inference is valid only when the priorities are computed on units not
used to fit the prioritization rule. These helpers produce fit/evaluation
index splits; with cluster labels, whole clusters go to one side.
"""

from typing import List, Optional, Tuple
import numpy as np
from sklearn.model_selection import KFold, train_test_split

from .exceptions import ConfigurationError, InputShapeError
from .utils import as_labels, is_int


def _check_n_units(n_units: int) -> None:
    if not is_int(n_units) or n_units < 2:
        raise InputShapeError(
            f"n_units must be an int >= 2, got {n_units}", check='min_units', value=n_units
        )


def honest_split(
    n_units: int,
    eval_fraction: float = 0.5,
    clusters=None,
    random_state: Optional[int] = 42
) -> Tuple[np.ndarray, np.ndarray]:
    """Split units into a fitting half and an evaluation half.

    Args:
        n_units: Number of units
        eval_fraction: Share of units (or clusters) held out for evaluation
        clusters: Optional cluster label per unit
        random_state: Random seed

    Returns:
        (fit_idx, eval_idx), both sorted
    """
    _check_n_units(n_units)
    if not 0 < eval_fraction < 1:
        raise ConfigurationError(
            f"eval_fraction must be in (0, 1), got {eval_fraction}", check='eval_fraction', value=eval_fraction
        )

    codes = as_labels(clusters, n_units)
    if codes is None:
        fit_idx, eval_idx = train_test_split(
            np.arange(n_units), test_size=eval_fraction, random_state=random_state
        )
        return np.sort(fit_idx), np.sort(eval_idx)

    n_clusters = int(codes.max()) + 1
    if n_clusters < 2:
        raise InputShapeError("Need at least 2 clusters to split", check='min_clusters', value=n_clusters)
    _, eval_clusters = train_test_split(
        np.arange(n_clusters), test_size=eval_fraction, random_state=random_state
    )
    is_eval = np.isin(codes, eval_clusters)
    return np.flatnonzero(~is_eval), np.flatnonzero(is_eval)


def evaluation_folds(
    n_units: int,
    n_splits: int = 5,
    clusters=None,
    random_state: Optional[int] = 42
) -> List[Tuple[np.ndarray, np.ndarray]]:
    """K-fold (fit, evaluation) index pairs for cross-fitting priorities.

    Each unit appears in exactly one evaluation fold, so out-of-fold
    priorities can be stacked and evaluated on the full sample.

    Args:
        n_units: Number of units
        n_splits: Number of folds
        clusters: Optional cluster label per unit (folds split clusters)
        random_state: Random seed

    Returns:
        List of (fit_idx, eval_idx)
    """
    _check_n_units(n_units)
    codes = as_labels(clusters, n_units)
    n_groups = n_units if codes is None else int(codes.max()) + 1
    if not is_int(n_splits) or not 2 <= n_splits <= n_groups:
        raise ConfigurationError(
            f"n_splits must be an int in [2, {n_groups}], got {n_splits}", check='n_splits', value=n_splits
        )

    kf = KFold(n_splits=n_splits, shuffle=True, random_state=random_state)
    folds = []
    for fit_groups, eval_groups in kf.split(np.arange(n_groups)):
        if codes is None:
            folds.append((fit_groups, eval_groups))
        else:
            is_eval = np.isin(codes, eval_groups)
            folds.append((np.flatnonzero(~is_eval), np.flatnonzero(is_eval)))
    return folds
