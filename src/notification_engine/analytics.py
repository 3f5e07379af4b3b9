"""
Engagement analytics aggregator.

Keeps one NotificationAnalyticsRecord per delivered notification, applies
interaction updates (open / click / dismiss), and computes per-user rollups
over day / week / month windows.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional

import pandas as pd

from .patterns import ActivityPatternTracker
from .schema import (
    ActivityInteraction,
    AnalyticsRange,
    DeviceClass,
    EngagementSummary,
    InteractionKind,
    NotificationAnalyticsRecord,
    ScheduledNotification,
    TimeOfDay,
)

logger = logging.getLogger(__name__)

RANGE_DAYS = {
    AnalyticsRange.DAY: 1,
    AnalyticsRange.WEEK: 7,
    AnalyticsRange.MONTH: 30,
}


def time_of_day(hour: int) -> TimeOfDay:
    if hour < 6:
        return TimeOfDay.NIGHT
    if hour < 12:
        return TimeOfDay.MORNING
    if hour < 18:
        return TimeOfDay.AFTERNOON
    if hour < 22:
        return TimeOfDay.EVENING
    return TimeOfDay.NIGHT


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from ``start`` to ``end``, floored."""
    return int((end - start).total_seconds() // 60)


def _rate(count: int, total: int) -> float:
    return 100 * count / total if total > 0 else 0.0


class EngagementAnalytics:
    """Owns the analytics record log."""

    def __init__(
        self,
        tracker: ActivityPatternTracker,
        records: Optional[List[NotificationAnalyticsRecord]] = None,
        device_resolver: Optional[Callable[[str], str]] = None,
        default_device_class: str = "mobile",
    ):
        self.tracker = tracker
        self.records: List[NotificationAnalyticsRecord] = records if records is not None else []
        self.device_resolver = device_resolver
        self.default_device_class = DeviceClass(default_device_class)

    def device_class_for(self, user_id: str) -> DeviceClass:
        if self.device_resolver is None:
            return self.default_device_class
        return DeviceClass(self.device_resolver(user_id))

    def record_sent(self, entry: ScheduledNotification, now: datetime) -> NotificationAnalyticsRecord:
        record = NotificationAnalyticsRecord(
            user_id=entry.user_id,
            notification_id=entry.notification.id,
            type=entry.notification.type,
            category=entry.notification.category,
            sent_time=now,
            device_class=self.device_class_for(entry.user_id),
            time_of_day=time_of_day(now.hour),
            day_of_week=now.weekday(),
        )
        self.records.append(record)
        return record

    def find(self, notification_id: str, user_id: str) -> Optional[NotificationAnalyticsRecord]:
        """Most recent record for this notification and user."""
        matches = [r for r in self.records if r.notification_id == notification_id and r.user_id == user_id]
        if not matches:
            return None
        return max(matches, key=lambda r: r.sent_time)

    def record_interaction(
        self,
        notification_id: str,
        user_id: str,
        kind: InteractionKind,
        now: datetime,
    ) -> Optional[NotificationAnalyticsRecord]:
        """
        Apply an interaction to the matching record and feed it to the tracker.

        A click on an unopened record also opens it at the same instant.

        Returns:
            The updated record, or None when no record matches
        """
        kind = InteractionKind(kind)
        record = self.find(notification_id, user_id)
        if record is None:
            logger.debug(f"No analytics record for notification {notification_id} / user {user_id}")
            return None

        if kind == InteractionKind.OPENED:
            if not record.opened:
                record.opened = True
                record.opened_time = now
                record.response_time_minutes = minutes_between(record.sent_time, now)
        elif kind == InteractionKind.CLICKED:
            if not record.clicked:
                record.clicked = True
                record.clicked_time = now
            if not record.opened:
                record.opened = True
                record.opened_time = record.clicked_time
                record.response_time_minutes = minutes_between(record.sent_time, record.opened_time)
        elif kind == InteractionKind.DISMISSED:
            if not record.dismissed:
                record.dismissed = True
                record.dismissed_time = now

        self.tracker.record_activity(
            user_id,
            now,
            ActivityInteraction(
                notification_id=notification_id,
                opened=record.opened,
                response_time_minutes=record.response_time_minutes or 0,
            ),
        )
        return record

    def count_sent_on(self, user_id: str, day: date) -> int:
        return sum(1 for r in self.records if r.user_id == user_id and r.sent_time.date() == day)

    def analytics(
        self,
        user_id: str,
        time_range: AnalyticsRange = AnalyticsRange.WEEK,
        now: Optional[datetime] = None,
    ) -> EngagementSummary:
        """
        Engagement rollup for one user over a trailing window.

        Args:
            user_id: User to summarize
            time_range: day (1 day), week (7 days) or month (30 days)
            now: End of the window

        Returns:
            EngagementSummary with counts, percentage rates, mean response
            time over opened records and category / time-of-day breakdowns
        """
        time_range = AnalyticsRange(time_range)
        now = now or datetime.now()
        start = now - timedelta(days=RANGE_DAYS[time_range])

        summary = EngagementSummary(
            user_id=user_id,
            time_range=time_range,
            user_pattern=self.tracker.get(user_id),
        )

        rows = [
            {
                "category": r.category,
                "time_of_day": r.time_of_day.value,
                "opened": r.opened,
                "clicked": r.clicked,
                "dismissed": r.dismissed,
                "response_time_minutes": r.response_time_minutes,
            }
            for r in self.records
            if r.user_id == user_id and r.sent_time >= start
        ]
        if not rows:
            return summary

        df = pd.DataFrame(rows)
        total_sent = len(df)
        total_opened = int(df["opened"].sum())
        total_clicked = int(df["clicked"].sum())
        total_dismissed = int(df["dismissed"].sum())

        opened = df[df["opened"]]
        response_times = pd.to_numeric(opened["response_time_minutes"], errors="coerce").dropna()

        summary.total_sent = total_sent
        summary.total_opened = total_opened
        summary.total_clicked = total_clicked
        summary.total_dismissed = total_dismissed
        summary.open_rate = _rate(total_opened, total_sent)
        summary.click_rate = _rate(total_clicked, total_sent)
        summary.dismiss_rate = _rate(total_dismissed, total_sent)
        summary.avg_response_time_minutes = float(response_times.mean()) if not response_times.empty else 0.0
        summary.category_breakdown = {k: int(v) for k, v in df["category"].value_counts().items()}
        summary.time_of_day_breakdown = {k: int(v) for k, v in df["time_of_day"].value_counts().items()}
        return summary

    def purge_older_than(self, cutoff: datetime) -> int:
        before = len(self.records)
        self.records[:] = [r for r in self.records if r.sent_time > cutoff]
        return before - len(self.records)
