"""
Sample size planning for conversion-rate experiments.
"""

import numpy as np
from scipy import stats


def sample_size_proportion(
    baseline: float,
    mde_relative: float,
    alpha: float = 0.05,
    power: float = 0.8,
) -> int:
    """
    Impressions per variant needed to detect a relative change in conversion rate.

    Args:
        baseline: Baseline conversion rate (e.g., 0.08)
        mde_relative: Minimum detectable effect as relative change (0.10 = +10%)
        alpha: Type I error rate (1 - confidence level)
        power: Statistical power (1 - Type II)

    Returns:
        Sample size per variant
    """
    if not 0 < baseline < 1:
        raise ValueError(f"Baseline rate must be in (0, 1), got {baseline}")
    if mde_relative == 0:
        raise ValueError("Minimum detectable effect must be non-zero")

    p1 = baseline
    p2 = min(max(baseline * (1 + mde_relative), 1e-9), 1 - 1e-9)

    z_alpha = stats.norm.ppf(1 - alpha / 2)
    z_beta = stats.norm.ppf(power)

    p_pool = (p1 + p2) / 2
    se = np.sqrt(2 * p_pool * (1 - p_pool))
    effect = abs(p2 - p1)

    n_per_arm = ((z_alpha + z_beta) * se / effect) ** 2
    return int(np.ceil(n_per_arm))
