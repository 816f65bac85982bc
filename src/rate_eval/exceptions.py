"""Error types raised by RATE estimation.

All errors derive from ``ValueError`` so existing callers that catch
``ValueError`` keep working. Each error records which check failed and
the offending value.
"""

from typing import Any, Optional


class RATEError(ValueError):
    """Base class for RATE estimation errors."""

    def __init__(self, message: str, check: Optional[str] = None, value: Any = None):
        super().__init__(message)
        self.check = check
        self.value = value


class InputShapeError(RATEError):
    """Mismatched lengths, empty or malformed input vectors."""


class DegeneratePropensityError(RATEError):
    """Propensity estimate at (or beyond) 0 or 1."""


class DegenerateStatisticError(RATEError):
    """Statistic is mathematically undefined for the given input."""


class ConfigurationError(RATEError):
    """Invalid grid, weighting, or estimator setting."""
