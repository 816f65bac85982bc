"""Ranking of evaluation units by a prioritization rule.

Priorities can be the doubly robust scores themselves, predictions of an
external CATE model on the evaluation set, or a precomputed rank vector.
Ties keep the original input order, so rankings are reproducible.

The rule producing the priorities must have been fitted on data disjoint
from (or cross-fitted against) the evaluation units. This is not checked
here; violating it invalidates inference, not the arithmetic.
"""

import warnings
from typing import NamedTuple
import numpy as np

from .exceptions import ConfigurationError
from .utils import as_vector


PRIORITY_KINDS = ('score', 'rank')


class Ranking(NamedTuple):
    """Total order over evaluation units."""
    order: np.ndarray        # unit indices, highest priority first
    ranks: np.ndarray        # 1-based rank of each unit (input order)
    tie_groups: np.ndarray   # tie group id per sorted position
    n_tied: int              # units sharing their priority with another unit


def rank_units(priorities, kind: str = 'score', ascending: bool = False) -> Ranking:
    """Sort units by priority, highest first.

    Args:
        priorities: Priority per unit (n_samples,)
        kind: "score" (larger = treat first) or "rank" (smaller = treat
            first, e.g. 1 is the top unit)
        ascending: If True, reverse the direction of the ordering

    Returns:
        Ranking with order, ranks and tie groups
    """
    if kind not in PRIORITY_KINDS:
        raise ConfigurationError(
            f"Unknown priority kind '{kind}'; expected one of {PRIORITY_KINDS}",
            check='priority_kind',
            value=kind,
        )
    values = as_vector(priorities, 'priorities')
    if kind == 'rank':
        values = -values
    if ascending:
        values = -values

    # mergesort is stable: equal priorities stay in input order
    order = np.argsort(-values, kind='mergesort')
    sorted_values = values[order]

    n = len(values)
    ranks = np.empty(n, dtype=int)
    ranks[order] = np.arange(1, n + 1)

    new_group = np.empty(n, dtype=bool)
    new_group[0] = True
    new_group[1:] = sorted_values[1:] != sorted_values[:-1]
    tie_groups = np.cumsum(new_group) - 1

    group_sizes = np.bincount(tie_groups)
    n_tied = int(group_sizes[group_sizes > 1].sum())

    if n > 1 and len(group_sizes) == 1:
        warnings.warn("All priorities are tied; ranking falls back to input order")

    return Ranking(order=order, ranks=ranks, tie_groups=tie_groups, n_tied=n_tied)


def tie_group_means(values: np.ndarray, tie_groups: np.ndarray) -> np.ndarray:
    """Replace each sorted value by the mean of its tie group.

    Args:
        values: Values in sorted (ranking) order
        tie_groups: Tie group id per sorted position

    Returns:
        Array of the same shape with within-group means
    """
    sums = np.bincount(tie_groups, weights=values)
    counts = np.bincount(tie_groups)
    return (sums / counts)[tie_groups]
