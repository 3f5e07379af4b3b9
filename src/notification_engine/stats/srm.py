"""
Sample Ratio Mismatch (SRM) chi-square test.

Detects when the observed split of participants across variants deviates
from the configured variant weights, which usually means assignment or
delivery is broken for some arm.
"""

from typing import Sequence, Tuple

import numpy as np
from scipy import stats


def srm_chi_square(observed: Sequence[int], weights: Sequence[float]) -> Tuple[float, float]:
    """
    Chi-square goodness of fit of observed counts against weights.

    H0: participants are split according to ``weights``

    Args:
        observed: Participants per variant
        weights: Configured weight per variant, same order

    Returns:
        Tuple of (chi2_statistic, p_value)
    """
    observed_arr = np.asarray(observed, dtype=float)
    weights_arr = np.asarray(weights, dtype=float)
    n_total = observed_arr.sum()
    if n_total == 0 or len(observed_arr) < 2 or weights_arr.sum() == 0:
        return 0.0, 1.0

    expected = weights_arr / weights_arr.sum() * n_total
    # Avoid division by zero
    expected = np.where(expected == 0, 1e-10, expected)

    chi2 = np.sum((observed_arr - expected) ** 2 / expected)
    p_value = 1 - stats.chi2.cdf(chi2, df=len(observed_arr) - 1)
    return float(chi2), float(p_value)


def check_srm(
    observed: Sequence[int],
    weights: Sequence[float],
    alpha: float = 0.01,
) -> Tuple[bool, float, float]:
    """
    Check for sample ratio mismatch.

    Returns:
        Tuple of (srm_passed, chi2_statistic, p_value)
    """
    chi2, p_value = srm_chi_square(observed, weights)
    return p_value >= alpha, chi2, p_value
