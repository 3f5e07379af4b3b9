"""
Experiment analysis.

Input: an ABTest definition and its ABTestResult rows.
Output: ABTestAnalytics with per-variant metrics, the significance verdict,
winner, SRM check and free-text recommendations.
"""

import logging
from typing import List, Optional

import pandas as pd

from .schema import (
    ABTest,
    ABTestAnalytics,
    ABTestResult,
    PrimaryMetric,
    TestStatus,
    TestWinner,
    VariantAnalytics,
    VariantMetrics,
)
from .stats import check_srm, has_significance, metric_counts, metric_value, proportions_z_test

logger = logging.getLogger(__name__)

RESULT_COLUMNS = ["variant_id", "user_id", "opened", "clicked", "converted", "response_time_minutes"]

LOW_PERFORMANCE_THRESHOLD = 0.3
ENGAGEMENT_SPREAD_THRESHOLD = 0.2


def results_frame(results: List[ABTestResult]) -> pd.DataFrame:
    """One row per assignment; empty frame with the expected columns when there are none."""
    rows = [
        {
            "variant_id": r.variant_id,
            "user_id": r.user_id,
            "opened": bool(r.opened),
            "clicked": bool(r.clicked),
            "converted": bool(r.converted),
            "response_time_minutes": r.response_time_minutes,
        }
        for r in results
    ]
    return pd.DataFrame(rows, columns=RESULT_COLUMNS)


def _rate(count: int, total: int) -> float:
    return 100 * count / total if total > 0 else 0.0


def build_variant_metrics(sub: pd.DataFrame) -> VariantMetrics:
    """Counts, percentage rates, mean response time and engagement score for one variant's rows."""
    sent = len(sub)
    opens = int(sub["opened"].astype(bool).sum()) if sent else 0
    clicks = int(sub["clicked"].astype(bool).sum()) if sent else 0
    conversions = int(sub["converted"].astype(bool).sum()) if sent else 0

    response_times = pd.to_numeric(sub["response_time_minutes"], errors="coerce").dropna()
    avg_response = float(response_times.mean()) if not response_times.empty else 0.0

    open_rate = _rate(opens, sent)
    click_rate = _rate(clicks, sent)
    conversion_rate = _rate(conversions, sent)
    engagement = (open_rate * 0.4 + click_rate * 0.3 + conversion_rate * 0.3) / 100

    return VariantMetrics(
        sent_count=sent,
        open_count=opens,
        click_count=clicks,
        conversion_count=conversions,
        open_rate=open_rate,
        click_rate=click_rate,
        conversion_rate=conversion_rate,
        avg_response_time_minutes=avg_response,
        engagement_score=engagement,
    )


def determine_winner(variants: List[VariantAnalytics], metric: PrimaryMetric) -> Optional[TestWinner]:
    """
    Best variant on ``metric``; None when control is best or there is no control.

    A non-control variant only replaces the current best with a strictly
    higher value, so a tie with control never produces a winner.
    """
    control = next((v for v in variants if v.is_control), None)
    if control is None:
        return None

    best = control
    for v in variants:
        if metric_value(v.metrics, metric) > metric_value(best.metrics, metric):
            best = v
    if best.id == control.id:
        return None

    control_value = metric_value(control.metrics, metric)
    best_value = metric_value(best.metrics, metric)
    improvement = (best_value - control_value) / control_value * 100 if control_value > 0 else None
    return TestWinner(variant_id=best.id, improvement=improvement, metric=metric)


def generate_recommendations(
    test: ABTest,
    variants: List[VariantAnalytics],
    winner: Optional[TestWinner],
    srm_passed: bool,
) -> List[str]:
    recommendations = []
    metric_label = test.primary_metric.value.replace("_", " ")

    if winner is not None:
        if winner.improvement is not None:
            recommendations.append(
                f"{winner.variant_id} outperformed control by {winner.improvement:.1f}% on {metric_label}"
            )
        else:
            recommendations.append(f"{winner.variant_id} outperformed a control with no recorded {metric_label}")
        recommendations.append("Consider rolling out the winning variant to all users")
    else:
        recommendations.append("No clear winner detected - consider running the test longer")

    if variants:
        avg_performance = sum(metric_value(v.metrics, test.primary_metric) for v in variants) / len(variants)
        if avg_performance < LOW_PERFORMANCE_THRESHOLD:
            recommendations.append("Overall performance is low - consider testing fundamentally different approaches")

        control = next((v for v in variants if v.is_control), None)
        if control is not None and control.participant_count < test.minimum_sample_size:
            needed = test.minimum_sample_size - control.participant_count
            recommendations.append(f"Increase sample size - need {needed} more participants")

        scores = [v.metrics.engagement_score for v in variants]
        if max(scores) - min(scores) > ENGAGEMENT_SPREAD_THRESHOLD:
            recommendations.append("Significant variation in engagement - analyze what makes the best variant effective")

    if not srm_passed:
        recommendations.append(
            "Sample ratio mismatch: observed allocation deviates from configured weights; "
            "check assignment and delivery before trusting results"
        )
    return recommendations


def analyze_test(test: ABTest, results: List[ABTestResult]) -> ABTestAnalytics:
    """
    Run full analysis of one experiment.

    Args:
        test: Experiment definition
        results: Every ABTestResult row recorded for the experiment

    Returns:
        ABTestAnalytics
    """
    df = results_frame([r for r in results if r.test_id == test.id])
    metric = test.primary_metric

    variants = []
    for v in test.variants:
        sub = df[df["variant_id"] == v.id]
        variants.append(
            VariantAnalytics(
                id=v.id,
                name=v.name,
                is_control=v.is_control,
                participant_count=len(sub),
                metrics=build_variant_metrics(sub),
            )
        )

    control = next((v for v in variants if v.is_control), None)
    control_counts = metric_counts(control.metrics, metric) if control is not None else None
    if control_counts is not None and control_counts[0] > 0:
        for v in variants:
            if v.is_control:
                continue
            counts = metric_counts(v.metrics, metric)
            if counts[0] > 0:
                _, v.p_value = proportions_z_test(control_counts[0], control_counts[1], counts[0], counts[1])

    significant = has_significance(variants, metric, test.confidence_level)
    winner = determine_winner(variants, metric)
    srm_passed, _, srm_p = check_srm(
        [v.participant_count for v in variants],
        [v.weight for v in test.variants],
    )
    if not srm_passed:
        logger.warning(f"SRM detected for test {test.id} (p={srm_p:.4f})")

    sample_size = len(df)
    analytics = ABTestAnalytics(
        test_id=test.id,
        is_complete=test.status == TestStatus.COMPLETED,
        has_statistical_significance=significant,
        confidence_level=test.confidence_level,
        sample_size=sample_size,
        variants=variants,
        winner=winner,
        recommendations=generate_recommendations(test, variants, winner, srm_passed),
        srm_passed=srm_passed,
        srm_p_value=srm_p,
    )
    logger.info(
        f"Analysis complete: {test.id} sample={sample_size} significant={significant} "
        f"winner={winner.variant_id if winner else None}"
    )
    return analytics
