"""Input coercion and validation helpers."""

from typing import Optional
import numpy as np
import pandas as pd

from .exceptions import InputShapeError


def as_vector(values, name: str = 'values', allow_empty: bool = False) -> np.ndarray:
    """Coerce a 1-D numeric input to a float array.

    Accepts lists, numpy arrays and pandas Series. A column vector of
    shape (n, 1) is flattened; anything else with more than one
    dimension is rejected.

    Args:
        values: Per-unit numeric values
        name: Name used in error messages
        allow_empty: If False, an empty input raises

    Returns:
        Float array of shape (n,)

    Examples:
        >>> as_vector([1, 2, 3]).tolist()
        [1.0, 2.0, 3.0]
    """
    if values is None:
        raise InputShapeError(f"{name} cannot be None", check='not_none', value=None)

    if isinstance(values, (pd.Series, pd.Index)):
        values = values.to_numpy()

    try:
        arr = np.asarray(values, dtype=float)
    except (TypeError, ValueError) as e:
        raise InputShapeError(
            f"{name} must be numeric: {e}", check='numeric', value=type(values).__name__
        ) from e

    if arr.ndim == 2 and arr.shape[1] == 1:
        arr = arr[:, 0]
    if arr.ndim != 1:
        raise InputShapeError(
            f"{name} must be 1-D, got shape {arr.shape}", check='ndim', value=arr.shape
        )
    if arr.size == 0 and not allow_empty:
        raise InputShapeError(f"{name} cannot be empty", check='non_empty', value=0)

    bad = np.flatnonzero(~np.isfinite(arr))
    if bad.size > 0:
        raise InputShapeError(
            f"{name} contains NaN/inf at index {bad[0]} (value={arr[bad[0]]})",
            check='finite',
            value=arr[bad[0]],
        )
    return arr


def check_same_length(**arrays: np.ndarray) -> int:
    """Check that all named arrays have the same length.

    Returns:
        The common length
    """
    lengths = {name: len(arr) for name, arr in arrays.items() if arr is not None}
    if len(set(lengths.values())) > 1:
        detail = ', '.join(f"len({k})={v}" for k, v in lengths.items())
        raise InputShapeError(f"Length mismatch: {detail}", check='same_length', value=lengths)
    return next(iter(lengths.values()))


def as_binary(values, name: str = 'W') -> np.ndarray:
    """Coerce a treatment indicator to a 0/1 float array."""
    arr = as_vector(values, name)
    bad = np.flatnonzero((arr != 0) & (arr != 1))
    if bad.size > 0:
        raise InputShapeError(
            f"{name} must be binary (0/1); found {arr[bad[0]]} at index {bad[0]}",
            check='binary',
            value=arr[bad[0]],
        )
    return arr


def as_labels(values, n: int, name: str = 'clusters') -> Optional[np.ndarray]:
    """Encode optional cluster labels as dense integer codes 0..G-1."""
    if values is None:
        return None
    if isinstance(values, (pd.Series, pd.Index)):
        values = values.to_numpy()
    labels = np.asarray(values)
    if labels.ndim != 1:
        raise InputShapeError(f"{name} must be 1-D, got shape {labels.shape}", check='ndim', value=labels.shape)
    if len(labels) != n:
        raise InputShapeError(
            f"Length mismatch: len({name})={len(labels)}, n={n}", check='same_length', value=len(labels)
        )
    codes, _ = pd.factorize(labels)
    if (codes < 0).any():
        raise InputShapeError(f"{name} contains missing labels", check='finite', value=None)
    return codes


def is_int(value) -> bool:
    """True for Python and numpy integers, False for bools."""
    return isinstance(value, (int, np.integer)) and not isinstance(value, (bool, np.bool_))
