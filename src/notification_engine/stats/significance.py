"""
Significance checks for notification experiments.

The completion decision uses a deliberately simple heuristic: enough
participants in every variant and a large enough gap between the best
non-control variant and control. A two-proportion z-test p-value is
reported next to it for information only.
"""

from typing import List, Optional, Tuple

import numpy as np
from scipy import stats

from ..schema import PrimaryMetric, VariantAnalytics, VariantMetrics

# confidence level -> minimum participants per variant
SAMPLE_THRESHOLDS = {99: 200, 95: 100, 90: 50}
# confidence level -> minimum absolute difference on the primary metric (fraction)
DIFFERENCE_THRESHOLDS = {99: 0.15, 95: 0.10, 90: 0.05}


def metric_value(metrics: VariantMetrics, metric: PrimaryMetric) -> float:
    """Primary metric as a 0-1 fraction."""
    metric = PrimaryMetric(metric)
    if metric == PrimaryMetric.OPEN_RATE:
        return metrics.open_rate / 100
    if metric == PrimaryMetric.CLICK_RATE:
        return metrics.click_rate / 100
    if metric == PrimaryMetric.CONVERSION_RATE:
        return metrics.conversion_rate / 100
    return metrics.engagement_score


def metric_counts(metrics: VariantMetrics, metric: PrimaryMetric) -> Optional[Tuple[int, int]]:
    """(trials, successes) for rate metrics; None for the composite engagement score."""
    metric = PrimaryMetric(metric)
    if metric == PrimaryMetric.OPEN_RATE:
        return metrics.sent_count, metrics.open_count
    if metric == PrimaryMetric.CLICK_RATE:
        return metrics.sent_count, metrics.click_count
    if metric == PrimaryMetric.CONVERSION_RATE:
        return metrics.sent_count, metrics.conversion_count
    return None


def has_significance(
    variants: List[VariantAnalytics],
    metric: PrimaryMetric,
    confidence_level: int,
) -> bool:
    """
    Heuristic significance.

    Every variant needs the confidence-dependent minimum sample
    (200/100/50 for 99/95/90) and some non-control variant must differ from
    control on ``metric`` by more than 0.15/0.10/0.05.
    """
    control = next((v for v in variants if v.is_control), None)
    if control is None or len(variants) < 2:
        return False

    sample_threshold = SAMPLE_THRESHOLDS.get(confidence_level, 50)
    if min(v.participant_count for v in variants) < sample_threshold:
        return False

    difference_threshold = DIFFERENCE_THRESHOLDS.get(confidence_level, 0.05)
    control_value = metric_value(control.metrics, metric)
    max_difference = max(
        (abs(metric_value(v.metrics, metric) - control_value) for v in variants if not v.is_control),
        default=0.0,
    )
    return max_difference > difference_threshold


def proportions_z_test(n1: int, x1: int, n2: int, x2: int) -> Tuple[float, float]:
    """
    Two-proportion z-test, control (1) vs variant (2).

    Returns:
        Tuple of (lift, p_value) where lift is p2 - p1
    """
    p1 = x1 / n1 if n1 > 0 else 0
    p2 = x2 / n2 if n2 > 0 else 0

    p_pool = (x1 + x2) / (n1 + n2) if (n1 + n2) > 0 else 0
    se = np.sqrt(p_pool * (1 - p_pool) * (1 / n1 + 1 / n2)) if (n1 and n2) else 0

    lift = p2 - p1
    if se == 0:
        return float(lift), 1.0
    z = lift / se
    p_value = 2 * (1 - stats.norm.cdf(abs(z)))
    return float(lift), float(p_value)
