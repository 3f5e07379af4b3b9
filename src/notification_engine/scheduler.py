"""
Scheduling queue for wellness notifications.

Holds every pending and sent ScheduledNotification. Each tick delivers the
due entries the delivery gate approves, reschedules the ones it denies, and
spawns the next occurrence of recurring entries.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

import pandas as pd

from .analytics import EngagementAnalytics
from .clock import to_local_naive
from .errors import TransportError, ValidationError
from .gate import is_allowed, next_allowed_time
from .patterns import ActivityPatternTracker
from .schema import (
    Frequency,
    NotificationContent,
    NotificationPreferences,
    NotificationPriority,
    RecurrencePattern,
    ScheduledNotification,
)
from .transport import deliver

logger = logging.getLogger(__name__)

PRIORITY_BASE = {
    NotificationPriority.URGENT: 10,
    NotificationPriority.HIGH: 8,
    NotificationPriority.NORMAL: 5,
    NotificationPriority.LOW: 2,
}

CATEGORY_ADJUSTMENT = {
    "achievements": 1.0,
    "reminders": -1.0,
    "wellness": -0.5,
}


def _new_id() -> str:
    return f"scheduled_{uuid.uuid4().hex[:16]}"


def next_occurrence(anchor: datetime, recurrence: RecurrencePattern) -> datetime:
    """
    Next delivery time of a recurring entry after ``anchor``.

    Weekly and monthly patterns with a day set advance to the next listed
    weekday (0=Monday) or day of month; otherwise +7 days / +1 calendar
    month, clamped to the end of shorter months.
    """
    frequency = Frequency(recurrence.frequency)
    nxt = None

    if frequency == Frequency.DAILY:
        nxt = anchor + timedelta(days=1)
    elif frequency == Frequency.WEEKLY:
        if recurrence.days:
            nxt = next(
                (anchor + timedelta(days=i) for i in range(1, 8) if (anchor + timedelta(days=i)).weekday() in recurrence.days),
                None,
            )
        if nxt is None:
            nxt = anchor + timedelta(days=7)
    elif frequency == Frequency.MONTHLY:
        if recurrence.days:
            nxt = next(
                (anchor + timedelta(days=i) for i in range(1, 63) if (anchor + timedelta(days=i)).day in recurrence.days),
                None,
            )
        if nxt is None:
            nxt = (pd.Timestamp(anchor) + pd.DateOffset(months=1)).to_pydatetime()

    if recurrence.time:
        hours, minutes = (int(part) for part in recurrence.time.split(":"))
        nxt = nxt.replace(hour=hours, minute=minutes, second=0, microsecond=0)
    return nxt


class SchedulingQueue:
    """Owns scheduled notifications and drives them through delivery."""

    def __init__(
        self,
        tracker: ActivityPatternTracker,
        analytics: EngagementAnalytics,
        transport,
        entries: Optional[List[ScheduledNotification]] = None,
        preferences_provider: Optional[Callable[[str], NotificationPreferences]] = None,
        persist: Optional[Callable[[], None]] = None,
        max_delivery_attempts: int = 10,
        max_entries_per_tick: int = 500,
    ):
        self.tracker = tracker
        self.analytics = analytics
        self.transport = transport
        self.entries: List[ScheduledNotification] = entries if entries is not None else []
        self.preferences_provider = preferences_provider or (lambda user_id: NotificationPreferences())
        self.persist = persist or (lambda: None)
        self.max_delivery_attempts = max_delivery_attempts
        self.max_entries_per_tick = max_entries_per_tick

    def priority_for(self, notification: NotificationContent, user_id: str) -> float:
        """Informational 1-10 score from declared priority, user engagement and category."""
        priority = float(PRIORITY_BASE.get(NotificationPriority(notification.priority), 5))

        pattern = self.tracker.get(user_id)
        if pattern is not None:
            priority += pattern.engagement_score * 2

        priority += CATEGORY_ADJUSTMENT.get(notification.category, 0.0)
        return max(1.0, min(10.0, priority))

    def schedule(
        self,
        notification: NotificationContent,
        user_id: str,
        scheduled_time: datetime,
        is_recurring: bool = False,
        recurrence: Optional[RecurrencePattern] = None,
    ) -> str:
        """
        Queue a notification for delivery.

        Past-due times are accepted; such entries go out on the next tick.
        Timezone-aware times are converted to naive local time to match the clock.

        Returns:
            Id of the new scheduled entry

        Raises:
            ValidationError: on missing notification, user or time, or a
                recurring request without a pattern
        """
        if notification is None or not notification.id:
            raise ValidationError("notification with an id is required")
        if not user_id:
            raise ValidationError("user_id is required")
        if not isinstance(scheduled_time, datetime):
            raise ValidationError(f"scheduled_time must be a datetime, got {type(scheduled_time).__name__}")
        if is_recurring and recurrence is None:
            raise ValidationError("recurring notifications need a recurrence pattern")

        scheduled_time = to_local_naive(scheduled_time)

        entry = self._append(notification, user_id, scheduled_time, is_recurring, recurrence)
        self.persist()
        logger.info(f"Scheduled {entry.id} ({notification.type}) for user {user_id} at {scheduled_time.isoformat()}")
        return entry.id

    def _append(
        self,
        notification: NotificationContent,
        user_id: str,
        scheduled_time: datetime,
        is_recurring: bool,
        recurrence: Optional[RecurrencePattern],
    ) -> ScheduledNotification:
        entry = ScheduledNotification(
            id=_new_id(),
            user_id=user_id,
            notification=notification,
            scheduled_time=scheduled_time,
            is_recurring=is_recurring,
            recurrence=recurrence,
            priority=self.priority_for(notification, user_id),
        )
        self.entries.append(entry)
        return entry

    def get(self, scheduled_id: str) -> Optional[ScheduledNotification]:
        return next((e for e in self.entries if e.id == scheduled_id), None)

    def cancel(self, scheduled_id: str) -> bool:
        """Remove a pending entry. False when unknown or already sent."""
        entry = self.get(scheduled_id)
        if entry is None or not entry.pending:
            return False
        self.entries.remove(entry)
        self.persist()
        logger.info(f"Cancelled {scheduled_id}")
        return True

    def list_pending(self, user_id: str) -> List[ScheduledNotification]:
        return [e for e in self.entries if e.user_id == user_id and e.pending]

    def tick(self, now: datetime) -> Dict[str, int]:
        """
        Process every due entry once.

        Due entries are handled oldest first, at most ``max_entries_per_tick``
        of them; the rest stay due for the next tick.

        Returns:
            Dict with due, delivered, rescheduled, failed and deferred counts
        """
        due = sorted(
            (e for e in self.entries if e.pending and e.scheduled_time <= now),
            key=lambda e: e.scheduled_time,
        )
        summary = {"due": len(due), "delivered": 0, "rescheduled": 0, "failed": 0, "deferred": 0}
        if not due:
            return summary

        batch = due[: self.max_entries_per_tick]
        summary["deferred"] = len(due) - len(batch)
        if summary["deferred"]:
            logger.warning(f"{summary['deferred']} due notifications deferred to the next tick")

        for entry in batch:
            preferences = self.preferences_provider(entry.user_id)
            sent_today = self.analytics.count_sent_on(entry.user_id, now.date())

            if not is_allowed(entry, preferences, now, sent_today):
                entry.scheduled_time = next_allowed_time(entry, preferences, now)
                summary["rescheduled"] += 1
                logger.info(f"Delivery of {entry.id} held until {entry.scheduled_time.isoformat()}")
                continue

            try:
                deliver(self.transport, entry.notification)
            except TransportError as e:
                entry.delivery_attempts += 1
                summary["failed"] += 1
                if entry.delivery_attempts >= self.max_delivery_attempts:
                    entry.failed = True
                    logger.warning(f"Dropping {entry.id} after {entry.delivery_attempts} failed attempts: {e}")
                else:
                    logger.warning(f"Delivery of {entry.id} failed (attempt {entry.delivery_attempts}): {e}")
                continue

            entry.sent = True
            entry.sent_time = now
            self.analytics.record_sent(entry, now)
            summary["delivered"] += 1

            if entry.is_recurring and entry.recurrence is not None:
                follow_up_time = next_occurrence(entry.anchor_time, entry.recurrence)
                # skip occurrences missed while the process was down
                while follow_up_time <= now:
                    follow_up_time = next_occurrence(follow_up_time, entry.recurrence)
                follow_up = self._append(
                    entry.notification, entry.user_id, follow_up_time, True, entry.recurrence
                )
                logger.info(f"Next occurrence of {entry.id} queued as {follow_up.id} at {follow_up_time.isoformat()}")

        self.persist()
        logger.info(
            f"Tick at {now.isoformat()}: delivered={summary['delivered']} "
            f"rescheduled={summary['rescheduled']} failed={summary['failed']}"
        )
        return summary

    def mark_opened(self, notification_id: str, user_id: str, when: datetime) -> bool:
        """Flag the most recently sent entry carrying this notification as opened."""
        sent = [
            e for e in self.entries
            if e.sent and e.user_id == user_id and e.notification.id == notification_id
        ]
        if not sent:
            return False
        entry = max(sent, key=lambda e: e.sent_time)
        if not entry.opened:
            entry.opened = True
            entry.opened_time = when
        return True

    def purge_older_than(self, cutoff: datetime) -> int:
        """Drop sent entries sent before ``cutoff`` and failed entries due before it."""
        before = len(self.entries)
        self.entries[:] = [
            e for e in self.entries
            if not ((e.sent and e.sent_time is not None and e.sent_time <= cutoff)
                    or (e.failed and e.scheduled_time <= cutoff))
        ]
        return before - len(self.entries)
