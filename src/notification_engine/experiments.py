"""
A/B test management for notification content.

Creates and validates experiments, assigns users to variants, sends variant
content through the transport, records outcomes, and runs completion and
retention housekeeping.
"""

import logging
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Callable, List, Optional

import pandas as pd

from .analytics import minutes_between
from .analyze import analyze_test
from .assignment import assign_variant
from .clock import to_local_naive
from .errors import NotFoundError, TransportError, ValidationError
from .schema import (
    ABTest,
    ABTestAnalytics,
    ABTestResult,
    ABTestVariant,
    DeviceClass,
    NotificationContent,
    NotificationPriority,
    OutcomeKind,
    PrimaryMetric,
    TestStatus,
    UserProfile,
)
from .transport import deliver

logger = logging.getLogger(__name__)

WEIGHT_TOLERANCE = 0.1
MIN_SAMPLE_SIZE = 30
CONFIDENCE_LEVELS = (90, 95, 99)
OVERRIDABLE_FIELDS = ("type", "category", "title", "body", "priority", "tags", "icon", "data")


def validate_test(test: ABTest) -> None:
    """
    Reject malformed experiment definitions.

    Raises:
        ValidationError: describing the first problem found
    """
    if not test.name:
        raise ValidationError("Test name is required")
    if not test.variants:
        raise ValidationError("At least one variant is required")

    ids = [v.id for v in test.variants]
    if len(set(ids)) != len(ids):
        raise ValidationError(f"Variant ids must be unique: {ids}")

    for v in test.variants:
        if v.weight < 0 or v.weight > 100:
            raise ValidationError(f"Variant {v.id} weight must be between 0 and 100, got {v.weight}")

    total_weight = sum(v.weight for v in test.variants)
    if abs(total_weight - 100) > WEIGHT_TOLERANCE:
        raise ValidationError(f"Variant weights must sum to 100, got {total_weight}")

    controls = [v.id for v in test.variants if v.is_control]
    if len(controls) != 1:
        raise ValidationError(f"Exactly one variant must be marked as control, got {controls}")

    if not isinstance(test.start_date, datetime):
        raise ValidationError("start_date is required")
    if test.end_date is not None and test.end_date <= test.start_date:
        raise ValidationError("end_date must be after start_date")

    if test.minimum_sample_size < MIN_SAMPLE_SIZE:
        raise ValidationError(f"Minimum sample size must be at least {MIN_SAMPLE_SIZE}")
    if test.confidence_level not in CONFIDENCE_LEVELS:
        raise ValidationError(f"Confidence level must be one of {CONFIDENCE_LEVELS}, got {test.confidence_level}")


def _normalize(test: ABTest) -> None:
    """Coerce caller input into the naive datetimes and enum types the store expects."""
    if isinstance(test.start_date, datetime):
        test.start_date = to_local_naive(test.start_date)
    if isinstance(test.end_date, datetime):
        test.end_date = to_local_naive(test.end_date)
    test.status = TestStatus(test.status)
    test.primary_metric = PrimaryMetric(test.primary_metric)
    test.secondary_metrics = [PrimaryMetric(m) for m in test.secondary_metrics]
    audience = test.target_audience
    if audience.device_classes is not None:
        audience.device_classes = [DeviceClass(d) for d in audience.device_classes]


def apply_override(base: NotificationContent, variant: ABTestVariant, notification_id: str) -> NotificationContent:
    """Copy of ``base`` with the variant's content override applied and a fresh id."""
    changes = {k: v for k, v in variant.content_override.items() if k in OVERRIDABLE_FIELDS}
    ignored = set(variant.content_override) - set(changes)
    if ignored:
        logger.debug(f"Variant {variant.id} override ignores unknown fields {sorted(ignored)}")
    if "priority" in changes:
        changes["priority"] = NotificationPriority(changes["priority"])
    if "tags" in changes:
        changes["tags"] = list(changes["tags"])
    changes["data"] = dict(changes.get("data", base.data))
    return replace(base, id=notification_id, **changes)


class ExperimentEngine:
    """Owns the experiment definitions and their assignment results."""

    def __init__(
        self,
        transport,
        profile_provider: Callable[[str], UserProfile],
        clock,
        tests: Optional[List[ABTest]] = None,
        results: Optional[List[ABTestResult]] = None,
        persist: Optional[Callable[[], None]] = None,
    ):
        self.transport = transport
        self.profile_provider = profile_provider
        self.clock = clock
        self.tests: List[ABTest] = tests if tests is not None else []
        self.results: List[ABTestResult] = results if results is not None else []
        self.persist = persist or (lambda: None)

    # Definitions

    def create_test(self, test: ABTest) -> str:
        """
        Validate and store a new experiment.

        The caller's status is kept; an empty id is replaced by a generated one.

        Returns:
            The test id

        Raises:
            ValidationError: on an invalid definition or a duplicate id
        """
        _normalize(test)
        validate_test(test)
        if not test.id:
            test.id = f"test_{uuid.uuid4().hex[:16]}"
        if self.get_test(test.id) is not None:
            raise ValidationError(f"Test {test.id} already exists")
        if test.created_at is None:
            test.created_at = self.clock.now()

        self.tests.append(test)
        self.persist()
        logger.info(f"Created A/B test {test.id} ({test.name}) with {len(test.variants)} variants, status={test.status.value}")
        return test.id

    def get_test(self, test_id: str) -> Optional[ABTest]:
        return next((t for t in self.tests if t.id == test_id), None)

    def get_all_tests(self) -> List[ABTest]:
        return list(self.tests)

    def get_active_tests(self) -> List[ABTest]:
        return [t for t in self.tests if t.status == TestStatus.RUNNING]

    def update_test_status(self, test_id: str, status: TestStatus) -> bool:
        test = self.get_test(test_id)
        if test is None:
            return False
        test.status = TestStatus(status)
        self.persist()
        logger.info(f"Test {test_id} status -> {test.status.value}")
        return True

    def delete_test(self, test_id: str) -> bool:
        """Remove a test together with all of its results."""
        test = self.get_test(test_id)
        if test is None:
            return False
        self.tests.remove(test)
        self.results[:] = [r for r in self.results if r.test_id != test_id]
        self.persist()
        logger.info(f"Deleted test {test_id}")
        return True

    # Assignment and delivery

    def assign_variant(self, test_id: str, user_id: str) -> Optional[ABTestVariant]:
        """Variant for the user, or None for unknown / non-running tests and users outside the audience."""
        test = self.get_test(test_id)
        if test is None:
            return None
        return assign_variant(test, self.profile_provider(user_id))

    def send_test_notification(
        self,
        base: NotificationContent,
        test_id: str,
        user_id: str,
    ) -> Optional[str]:
        """
        Deliver the user's variant of ``base`` and record the assignment.

        Args:
            base: Notification content shared by all variants
            test_id: Experiment id
            user_id: Recipient

        Returns:
            Id of the delivered variant notification; None when no variant
            applies or the transport fails (no result row is recorded then)
        """
        variant = self.assign_variant(test_id, user_id)
        if variant is None:
            return None

        now = self.clock.now()
        notification = apply_override(base, variant, f"test_{test_id}_{variant.id}_{uuid.uuid4().hex[:8]}")
        notification.data["ab_test_id"] = test_id
        notification.data["ab_variant_id"] = variant.id

        try:
            deliver(self.transport, notification)
        except TransportError as e:
            logger.warning(f"Test notification for {user_id} in {test_id} failed: {e}")
            return None

        self.results.append(
            ABTestResult(
                test_id=test_id,
                variant_id=variant.id,
                user_id=user_id,
                notification_id=notification.id,
                sent_at=now,
            )
        )
        self.persist()
        logger.info(f"Sent {notification.id} to {user_id} (test {test_id}, variant {variant.id})")
        return notification.id

    def record_outcome(
        self,
        test_id: str,
        notification_id: str,
        user_id: str,
        kind: OutcomeKind,
        when: Optional[datetime] = None,
    ) -> bool:
        """
        Record an open, click or conversion on a test notification.

        A click on an unopened notification also opens it at the click time.

        Returns:
            False when no matching result row exists
        """
        kind = OutcomeKind(kind)
        when = when or self.clock.now()
        result = next(
            (
                r for r in self.results
                if r.test_id == test_id and r.notification_id == notification_id and r.user_id == user_id
            ),
            None,
        )
        if result is None:
            logger.debug(f"No result row for {notification_id} / {user_id} in test {test_id}")
            return False

        if kind == OutcomeKind.OPENED:
            if not result.opened:
                result.opened = True
                result.opened_at = when
                result.response_time_minutes = minutes_between(result.sent_at, when)
        elif kind == OutcomeKind.CLICKED:
            if not result.clicked:
                result.clicked = True
                result.clicked_at = when
            if not result.opened:
                result.opened = True
                result.opened_at = result.clicked_at
                result.response_time_minutes = minutes_between(result.sent_at, result.opened_at)
        elif kind == OutcomeKind.CONVERTED:
            if not result.converted:
                result.converted = True
                result.converted_at = when

        self.persist()
        return True

    # Analysis and housekeeping

    def analyze(self, test_id: str) -> ABTestAnalytics:
        """
        Raises:
            NotFoundError: when the test does not exist
        """
        test = self.get_test(test_id)
        if test is None:
            raise NotFoundError(f"Test {test_id} not found")
        return analyze_test(test, self.results)

    def check_completion(self, now: datetime) -> List[str]:
        """
        Complete running tests that are past their end date or have reached
        both the minimum sample size and significance.

        Returns:
            Ids of the tests completed by this call
        """
        completed = []
        for test in self.get_active_tests():
            if test.end_date is not None and now >= test.end_date:
                reason = "end date reached"
            else:
                analytics = analyze_test(test, self.results)
                if not (analytics.sample_size >= test.minimum_sample_size and analytics.has_statistical_significance):
                    continue
                reason = "significance reached"
            test.status = TestStatus.COMPLETED
            completed.append(test.id)
            logger.info(f"Test {test.id} completed: {reason}")

        if completed:
            self.persist()
        return completed

    def purge(self, now: datetime, retention_months: int = 3) -> dict:
        """
        Drop results and completed tests older than the retention horizon.

        Returns:
            Dict with results_removed and tests_removed counts
        """
        cutoff = (pd.Timestamp(now) - pd.DateOffset(months=retention_months)).to_pydatetime()

        before_results = len(self.results)
        self.results[:] = [r for r in self.results if r.sent_at > cutoff]

        before_tests = len(self.tests)
        self.tests[:] = [
            t for t in self.tests
            if not (t.status == TestStatus.COMPLETED and t.created_at is not None and t.created_at <= cutoff)
        ]

        summary = {
            "results_removed": before_results - len(self.results),
            "tests_removed": before_tests - len(self.tests),
        }
        if summary["results_removed"] or summary["tests_removed"]:
            self.persist()
            logger.info(
                f"Experiment retention: removed {summary['results_removed']} results, "
                f"{summary['tests_removed']} completed tests"
            )
        return summary
