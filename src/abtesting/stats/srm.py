"""
Sample Ratio Mismatch (SRM) chi-square test.

Detects if the observed impression split across variants deviates
significantly from the configured allocation weights.
"""

from typing import Optional, Sequence, Tuple

import numpy as np
from scipy import stats


def srm_chi_square(
    observed: Sequence[int],
    weights: Optional[Sequence[float]] = None,
) -> Tuple[float, float]:
    """
    Chi-square goodness-of-fit test for sample ratio mismatch.

    H0: impressions are split according to weights
    H1: the split differs

    Args:
        observed: Impressions per variant
        weights: Allocation weights per variant (equal if omitted)

    Returns:
        Tuple of (chi2_statistic, p_value)
    """
    obs = np.asarray(observed, dtype=float)
    n_total = obs.sum()
    if n_total == 0 or len(obs) < 2:
        return 0.0, 1.0

    w = np.ones(len(obs)) if weights is None else np.asarray(weights, dtype=float)
    if len(w) != len(obs):
        raise ValueError("weights and observed must have the same length")
    expected = n_total * w / w.sum()

    # Avoid division by zero
    expected = np.where(expected == 0, 1e-10, expected)

    chi2 = np.sum((obs - expected) ** 2 / expected)
    p_value = 1 - stats.chi2.cdf(chi2, df=len(obs) - 1)

    return float(chi2), float(p_value)


def check_srm(
    observed: Sequence[int],
    weights: Optional[Sequence[float]] = None,
    alpha: float = 0.01,
) -> Tuple[bool, float, float]:
    """
    Check for sample ratio mismatch.

    Returns:
        Tuple of (srm_passed, chi2_statistic, p_value)
    """
    chi2, p_value = srm_chi_square(observed, weights)
    srm_passed = p_value >= alpha
    return srm_passed, chi2, p_value
