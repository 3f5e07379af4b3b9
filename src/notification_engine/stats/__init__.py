"""Experiment statistics module."""

from .significance import (
    DIFFERENCE_THRESHOLDS,
    SAMPLE_THRESHOLDS,
    has_significance,
    metric_counts,
    metric_value,
    proportions_z_test,
)
from .srm import check_srm, srm_chi_square

__all__ = [
    "DIFFERENCE_THRESHOLDS",
    "SAMPLE_THRESHOLDS",
    "has_significance",
    "metric_counts",
    "metric_value",
    "proportions_z_test",
    "check_srm",
    "srm_chi_square",
]
