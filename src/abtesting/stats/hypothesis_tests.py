"""
Frequentist hypothesis tests for experiment analysis.

Two-proportion z-test on conversion counts: lift, CI of the difference,
two-sided p-value.
"""

from typing import Tuple

import numpy as np
from scipy import stats


def proportions_z_test(
    n1: int,
    x1: int,
    n2: int,
    x2: int,
    ci_level: float = 0.95,
) -> Tuple[float, float, float, float, float]:
    """
    Two-proportion z-test (conversion rate of variant 2 vs variant 1).

    Args:
        n1: Baseline impressions
        x1: Baseline conversions
        n2: Comparison impressions
        x2: Comparison conversions
        ci_level: Confidence level for the interval

    Returns:
        Tuple of (lift, lift_pct, p_value, ci_low, ci_high)
    """
    if n1 <= 0 or n2 <= 0:
        raise ValueError("Both samples need at least one impression")

    p1 = x1 / n1
    p2 = x2 / n2

    p_pool = (x1 + x2) / (n1 + n2)
    se = np.sqrt(p_pool * (1 - p_pool) * (1 / n1 + 1 / n2))

    lift = p2 - p1
    lift_pct = (p2 - p1) / p1 * 100 if p1 > 0 else 0.0

    z = (p2 - p1) / se if se > 0 else 0.0
    p_value = 2 * (1 - stats.norm.cdf(abs(z)))

    z_crit = stats.norm.ppf((1 + ci_level) / 2)
    ci_low = lift - z_crit * se
    ci_high = lift + z_crit * se

    return float(lift), float(lift_pct), float(p_value), float(ci_low), float(ci_high)


def rate_interval(n: int, x: int, ci_level: float = 0.95) -> Tuple[float, float]:
    """Normal-approximation interval for a single conversion rate, clipped to [0, 1]."""
    if n <= 0:
        return 0.0, 0.0
    p = x / n
    z_crit = stats.norm.ppf((1 + ci_level) / 2)
    se = np.sqrt(p * (1 - p) / n)
    return float(max(0.0, p - z_crit * se)), float(min(1.0, p + z_crit * se))
