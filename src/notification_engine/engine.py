"""
Notification engine facade.

Wires the scheduling queue, activity tracker, analytics aggregator and
experiment engine to one store, one transport and one clock, and registers
the three periodic jobs:

- ``deliver_due``: process due scheduled notifications
- ``pattern_sweep``: sample active users and complete finished experiments
- ``retention_cleanup``: drop old analytics, scheduled entries and results

Every public method runs under a single re-entrant lock shared with the jobs.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from .analytics import EngagementAnalytics
from .clock import SystemClock
from .config import EngineConfig
from .experiments import ExperimentEngine
from .jobs import JobRunner
from .patterns import ActivityPatternTracker, get_optimal_time
from .repository import EngineRepository
from .scheduler import SchedulingQueue
from .schema import (
    ABTest,
    ABTestAnalytics,
    ABTestVariant,
    ActivityInteraction,
    AnalyticsRange,
    EngagementSummary,
    InteractionKind,
    NotificationContent,
    NotificationPreferences,
    OutcomeKind,
    RecurrencePattern,
    ScheduledNotification,
    TestStatus,
    UserActivityPattern,
    UserProfile,
)
from .store import JsonFileStore
from .transport import LoggingTransport

logger = logging.getLogger(__name__)

DEFAULT_ENGAGEMENT_SCORE = 0.5


class NotificationEngine:
    """
    Single entry point for scheduling, engagement tracking and experiments.

    Args:
        store: Key-value store with get/set; defaults to a JsonFileStore under config.store_dir
        transport: Object with ``deliver(notification) -> bool``
        clock: Object with ``now()``; defaults to the system clock
        config: EngineConfig
        preferences_provider: user_id -> NotificationPreferences
        device_resolver: user_id -> device class string
        segment_resolver: user_id -> list of segment tags for experiment targeting
    """

    def __init__(
        self,
        store=None,
        transport=None,
        clock=None,
        config: Optional[EngineConfig] = None,
        preferences_provider: Optional[Callable[[str], NotificationPreferences]] = None,
        device_resolver: Optional[Callable[[str], str]] = None,
        segment_resolver: Optional[Callable[[str], List[str]]] = None,
    ):
        self.config = config or EngineConfig()
        self.clock = clock or SystemClock()
        self.store = store if store is not None else JsonFileStore(self.config.store_dir)
        self.transport = transport or LoggingTransport()
        self.segment_resolver = segment_resolver
        self.lock = threading.RLock()
        self.active_users = set()

        self.repository = EngineRepository(self.store, self.config.persist_retries)
        self.tracker = ActivityPatternTracker(self.repository.load_patterns(), self.config.default_timezone)
        self.engagement = EngagementAnalytics(
            self.tracker,
            self.repository.load_analytics(),
            device_resolver=device_resolver,
            default_device_class=self.config.default_device_class,
        )
        self.queue = SchedulingQueue(
            self.tracker,
            self.engagement,
            self.transport,
            entries=self.repository.load_scheduled(),
            preferences_provider=preferences_provider,
            persist=self._persist_delivery_state,
            max_delivery_attempts=self.config.max_delivery_attempts,
            max_entries_per_tick=self.config.max_entries_per_tick,
        )
        self.experiments = ExperimentEngine(
            self.transport,
            self.profile_for,
            self.clock,
            tests=self.repository.load_tests(),
            results=self.repository.load_results(),
            persist=self._persist_experiments,
        )

        self.jobs = JobRunner(self.clock, self.lock)
        self.jobs.add("deliver_due", self.config.tick_interval_seconds, self._deliver_due)
        self.jobs.add("pattern_sweep", self.config.pattern_sweep_interval_seconds, self._pattern_sweep)
        self.jobs.add("retention_cleanup", self.config.cleanup_interval_seconds, self._retention_cleanup)

        logger.info(
            f"Notification engine loaded: {len(self.queue.entries)} scheduled, "
            f"{len(self.tracker.patterns)} patterns, {len(self.engagement.records)} analytics records, "
            f"{len(self.experiments.tests)} tests"
        )

    # Persistence

    def _persist_delivery_state(self) -> None:
        self.repository.save_scheduled(self.queue.entries)
        self.repository.save_analytics(self.engagement.records)
        self.repository.save_patterns(self.tracker.patterns)

    def _persist_experiments(self) -> None:
        self.repository.save_tests(self.experiments.tests)
        self.repository.save_results(self.experiments.results)

    def _persist_all(self) -> None:
        self._persist_delivery_state()
        self._persist_experiments()

    # Scheduling

    def schedule(
        self,
        notification: NotificationContent,
        user_id: str,
        scheduled_time: datetime,
        is_recurring: bool = False,
        recurrence: Optional[RecurrencePattern] = None,
    ) -> str:
        with self.lock:
            return self.queue.schedule(notification, user_id, scheduled_time, is_recurring, recurrence)

    def get_optimal_time(self, user_id: str, notification_type: str) -> datetime:
        with self.lock:
            return get_optimal_time(self.tracker.get(user_id), notification_type, self.clock.now())

    def schedule_at_optimal_time(self, notification: NotificationContent, user_id: str) -> str:
        """Schedule at the best hour for this user within the next 12 hours."""
        with self.lock:
            when = self.get_optimal_time(user_id, notification.type)
            return self.queue.schedule(notification, user_id, when)

    def cancel(self, scheduled_id: str) -> bool:
        with self.lock:
            return self.queue.cancel(scheduled_id)

    def list_pending(self, user_id: str) -> List[ScheduledNotification]:
        with self.lock:
            return self.queue.list_pending(user_id)

    def tick(self) -> Dict[str, int]:
        """Process due notifications now, outside the job schedule."""
        with self.lock:
            return self.queue.tick(self.clock.now())

    # Activity and engagement

    def record_activity(
        self,
        user_id: str,
        active_time: Optional[datetime] = None,
        interaction: Optional[ActivityInteraction] = None,
    ) -> UserActivityPattern:
        with self.lock:
            pattern = self.tracker.record_activity(user_id, active_time or self.clock.now(), interaction)
            self.repository.save_patterns(self.tracker.patterns)
            return pattern

    def mark_active(self, user_id: str) -> None:
        """Include the user in the hourly activity sweep."""
        with self.lock:
            self.active_users.add(user_id)

    def record_interaction(self, notification_id: str, user_id: str, kind: InteractionKind) -> bool:
        """
        Apply an open, click or dismiss from the UI.

        Returns:
            False when no delivered notification matches
        """
        with self.lock:
            now = self.clock.now()
            kind = InteractionKind(kind)
            record = self.engagement.record_interaction(notification_id, user_id, kind, now)
            if record is None:
                return False
            if record.opened:
                self.queue.mark_opened(notification_id, user_id, record.opened_time)
            self._persist_delivery_state()
            return True

    def analytics(self, user_id: str, time_range: AnalyticsRange = AnalyticsRange.WEEK) -> EngagementSummary:
        with self.lock:
            return self.engagement.analytics(user_id, time_range, self.clock.now())

    # Experiments

    def profile_for(self, user_id: str) -> UserProfile:
        """Targeting attributes assembled from the user's pattern and the injected resolvers."""
        pattern = self.tracker.get(user_id)
        return UserProfile(
            user_id=user_id,
            engagement_score=pattern.engagement_score if pattern else DEFAULT_ENGAGEMENT_SCORE,
            device_class=self.engagement.device_class_for(user_id),
            timezone=pattern.timezone if pattern else self.config.default_timezone,
            segments=list(self.segment_resolver(user_id)) if self.segment_resolver else [],
        )

    def create_test(self, test: ABTest) -> str:
        with self.lock:
            return self.experiments.create_test(test)

    def get_test(self, test_id: str) -> Optional[ABTest]:
        with self.lock:
            return self.experiments.get_test(test_id)

    def get_all_tests(self) -> List[ABTest]:
        with self.lock:
            return self.experiments.get_all_tests()

    def get_active_tests(self) -> List[ABTest]:
        with self.lock:
            return self.experiments.get_active_tests()

    def update_test_status(self, test_id: str, status: TestStatus) -> bool:
        with self.lock:
            return self.experiments.update_test_status(test_id, status)

    def delete_test(self, test_id: str) -> bool:
        with self.lock:
            return self.experiments.delete_test(test_id)

    def assign_variant(self, test_id: str, user_id: str) -> Optional[ABTestVariant]:
        with self.lock:
            return self.experiments.assign_variant(test_id, user_id)

    def send_test_notification(self, base: NotificationContent, test_id: str, user_id: str) -> Optional[str]:
        with self.lock:
            return self.experiments.send_test_notification(base, test_id, user_id)

    def record_outcome(
        self,
        test_id: str,
        notification_id: str,
        user_id: str,
        kind: OutcomeKind,
        when: Optional[datetime] = None,
    ) -> bool:
        with self.lock:
            return self.experiments.record_outcome(test_id, notification_id, user_id, kind, when)

    def analyze(self, test_id: str) -> ABTestAnalytics:
        with self.lock:
            return self.experiments.analyze(test_id)

    # Housekeeping

    def _deliver_due(self, now: datetime) -> Dict[str, int]:
        return self.queue.tick(now)

    def _pattern_sweep(self, now: datetime) -> Dict[str, int]:
        for user_id in sorted(self.active_users):
            self.tracker.record_activity(user_id, now)
        if self.active_users:
            self.repository.save_patterns(self.tracker.patterns)
        completed = self.experiments.check_completion(now)
        return {"users_sampled": len(self.active_users), "tests_completed": len(completed)}

    def _retention_cleanup(self, now: datetime) -> Dict[str, int]:
        cutoff = now - timedelta(days=self.config.analytics_retention_days)
        summary = {
            "analytics_removed": self.engagement.purge_older_than(cutoff),
            "scheduled_removed": self.queue.purge_older_than(cutoff),
        }
        summary.update(self.experiments.purge(now, self.config.experiment_retention_months))
        self._persist_all()
        logger.info(
            "Retention cleanup: " + ", ".join(f"{k}={v}" for k, v in summary.items())
        )
        return summary

    def clear_all(self) -> None:
        """Forget every scheduled entry, pattern, analytics record, test and result."""
        with self.lock:
            self.queue.entries.clear()
            self.tracker.patterns.clear()
            self.engagement.records.clear()
            self.experiments.tests.clear()
            self.experiments.results.clear()
            self.active_users.clear()
            self._persist_all()
            logger.info("All notification data cleared")

    # Job control

    def run_pending(self) -> List[str]:
        return self.jobs.run_pending()

    def advance(self, delta: timedelta) -> List[str]:
        """Advance a FakeClock and run every job that comes due on the way."""
        return self.jobs.advance(delta)

    def start(self) -> None:
        self.jobs.start_background()

    def stop(self) -> None:
        self.jobs.stop()
