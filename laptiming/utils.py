"""
Utility Functions for GPS Lap Timing

This module provides helper functions for numeric validation, rounding and
clamping used throughout the timing pipeline.
"""

import math
from typing import Optional


def is_finite(value) -> bool:
    """
    Check that a value is a real, finite number.

    Args:
        value: Value to check (None, int, float, numpy scalar).

    Returns:
        True if value is a number that is neither NaN nor infinite.
    """
    if value is None or isinstance(value, bool):
        return False
    try:
        return math.isfinite(float(value))
    except (TypeError, ValueError):
        return False


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp value into the closed interval [lower, upper]."""
    return max(lower, min(upper, value))


def round_float(value, digits: int = 3) -> Optional[float]:
    """
    Round a float value, handling None, NaN, and Inf.

    Args:
        value: Value to round.
        digits: Number of decimal places. Default 3.

    Returns:
        Rounded float, or None if value is None, NaN, or Inf.
    """
    if not is_finite(value):
        return None
    return round(float(value), digits)


def round_ms(value: float) -> int:
    """Round a millisecond quantity to the nearest integer millisecond."""
    return int(round(float(value)))
