"""
Small statistics helpers shared by the feature extractors.

All helpers return 0.0 instead of raising or producing NaN when the
input is too short or degenerate.
"""

import math
from typing import Sequence


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean."""
    if not values:
        return 0.0
    return sum(values) / len(values)


def std(values: Sequence[float]) -> float:
    """Population standard deviation."""
    if len(values) < 2:
        return 0.0
    avg = mean(values)
    variance = sum((x - avg) ** 2 for x in values) / len(values)
    return math.sqrt(variance)


def variance(values: Sequence[float]) -> float:
    """Population variance."""
    if len(values) < 2:
        return 0.0
    avg = mean(values)
    return sum((x - avg) ** 2 for x in values) / len(values)


def coefficient_of_variation(values: Sequence[float]) -> float:
    """std / mean, or 0.0 when the mean is zero."""
    avg = mean(values)
    if avg == 0:
        return 0.0
    return std(values) / avg
