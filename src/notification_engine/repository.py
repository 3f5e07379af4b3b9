"""
Typed persistence boundary for engine state.

Each entity has a pair of functions converting it to and from a
JSON-compatible dict; datetimes travel as ISO-8601 strings. The repository
reads and writes the five stored collections and recovers from corrupt
payloads by falling back to empty state.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar

from .errors import PersistenceCorruptionError
from .schema import (
    ABTest,
    ABTestResult,
    ABTestVariant,
    DeviceClass,
    Frequency,
    NotificationAnalyticsRecord,
    NotificationContent,
    NotificationPriority,
    PrimaryMetric,
    RecurrencePattern,
    ScheduledNotification,
    TargetAudience,
    TestStatus,
    TimeOfDay,
    UserActivityPattern,
)

logger = logging.getLogger(__name__)

SCHEDULED_KEY = "scheduled_notifications"
PATTERNS_KEY = "user_activity_patterns"
ANALYTICS_KEY = "notification_analytics"
TESTS_KEY = "ab_tests"
RESULTS_KEY = "ab_test_results"

T = TypeVar("T")


def _dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


# Notification content / scheduled entries

def notification_to_dict(n: NotificationContent) -> Dict[str, Any]:
    return {
        "id": n.id,
        "type": n.type,
        "category": n.category,
        "title": n.title,
        "body": n.body,
        "priority": n.priority.value,
        "tags": list(n.tags),
        "icon": n.icon,
        "data": dict(n.data),
    }


def notification_from_dict(d: Dict[str, Any]) -> NotificationContent:
    return NotificationContent(
        id=d["id"],
        type=d["type"],
        category=d["category"],
        title=d["title"],
        body=d["body"],
        priority=NotificationPriority(d.get("priority", "normal")),
        tags=list(d.get("tags") or []),
        icon=d.get("icon"),
        data=dict(d.get("data") or {}),
    )


def scheduled_to_dict(s: ScheduledNotification) -> Dict[str, Any]:
    recurrence = None
    if s.recurrence:
        recurrence = {
            "frequency": s.recurrence.frequency.value,
            "time": s.recurrence.time,
            "days": list(s.recurrence.days),
        }
    return {
        "id": s.id,
        "user_id": s.user_id,
        "notification": notification_to_dict(s.notification),
        "scheduled_time": _dt(s.scheduled_time),
        "anchor_time": _dt(s.anchor_time),
        "is_recurring": s.is_recurring,
        "recurrence": recurrence,
        "priority": s.priority,
        "sent": s.sent,
        "sent_time": _dt(s.sent_time),
        "opened": s.opened,
        "opened_time": _dt(s.opened_time),
        "delivery_attempts": s.delivery_attempts,
        "failed": s.failed,
    }


def scheduled_from_dict(d: Dict[str, Any]) -> ScheduledNotification:
    recurrence = None
    if d.get("recurrence"):
        r = d["recurrence"]
        recurrence = RecurrencePattern(
            frequency=Frequency(r["frequency"]),
            time=r.get("time"),
            days=list(r.get("days") or []),
        )
    return ScheduledNotification(
        id=d["id"],
        user_id=d["user_id"],
        notification=notification_from_dict(d["notification"]),
        scheduled_time=_parse_dt(d["scheduled_time"]),
        anchor_time=_parse_dt(d.get("anchor_time")),
        is_recurring=bool(d.get("is_recurring", False)),
        recurrence=recurrence,
        priority=float(d.get("priority", 5)),
        sent=bool(d.get("sent", False)),
        sent_time=_parse_dt(d.get("sent_time")),
        opened=bool(d.get("opened", False)),
        opened_time=_parse_dt(d.get("opened_time")),
        delivery_attempts=int(d.get("delivery_attempts", 0)),
        failed=bool(d.get("failed", False)),
    )


# Activity patterns

def pattern_from_dict(d: Dict[str, Any]) -> UserActivityPattern:
    return UserActivityPattern(
        user_id=d["user_id"],
        last_active_date=_parse_dt(d["last_active_date"]),
        most_active_hours=[int(h) for h in d.get("most_active_hours", [])],
        preferred_notification_times=list(d.get("preferred_notification_times", ["09:00", "19:00"])),
        average_response_time_minutes=float(d.get("average_response_time_minutes", 30.0)),
        engagement_score=float(d.get("engagement_score", 0.5)),
        timezone=d.get("timezone", "UTC"),
        weekly_activity_pattern=[float(x) for x in d.get("weekly_activity_pattern", [0.0] * 7)],
    )


# Analytics records

def record_to_dict(r: NotificationAnalyticsRecord) -> Dict[str, Any]:
    return {
        "user_id": r.user_id,
        "notification_id": r.notification_id,
        "type": r.type,
        "category": r.category,
        "sent_time": _dt(r.sent_time),
        "device_class": r.device_class.value,
        "time_of_day": r.time_of_day.value,
        "day_of_week": r.day_of_week,
        "opened": r.opened,
        "opened_time": _dt(r.opened_time),
        "clicked": r.clicked,
        "clicked_time": _dt(r.clicked_time),
        "dismissed": r.dismissed,
        "dismissed_time": _dt(r.dismissed_time),
        "response_time_minutes": r.response_time_minutes,
    }


def record_from_dict(d: Dict[str, Any]) -> NotificationAnalyticsRecord:
    return NotificationAnalyticsRecord(
        user_id=d["user_id"],
        notification_id=d["notification_id"],
        type=d["type"],
        category=d["category"],
        sent_time=_parse_dt(d["sent_time"]),
        device_class=DeviceClass(d["device_class"]),
        time_of_day=TimeOfDay(d["time_of_day"]),
        day_of_week=int(d["day_of_week"]),
        opened=bool(d.get("opened", False)),
        opened_time=_parse_dt(d.get("opened_time")),
        clicked=bool(d.get("clicked", False)),
        clicked_time=_parse_dt(d.get("clicked_time")),
        dismissed=bool(d.get("dismissed", False)),
        dismissed_time=_parse_dt(d.get("dismissed_time")),
        response_time_minutes=d.get("response_time_minutes"),
    )


# Experiments

def ab_test_to_dict(t: ABTest) -> Dict[str, Any]:
    a = t.target_audience
    return {
        "id": t.id,
        "name": t.name,
        "description": t.description,
        "status": t.status.value,
        "start_date": _dt(t.start_date),
        "end_date": _dt(t.end_date),
        "target_audience": {
            "min_engagement_score": a.min_engagement_score,
            "max_engagement_score": a.max_engagement_score,
            "device_classes": [dc.value for dc in a.device_classes] if a.device_classes is not None else None,
            "timezones": a.timezones,
            "user_segments": a.user_segments,
        },
        "variants": [
            {
                "id": v.id,
                "name": v.name,
                "weight": v.weight,
                "is_control": v.is_control,
                "content_override": dict(v.content_override),
            }
            for v in t.variants
        ],
        "primary_metric": t.primary_metric.value,
        "secondary_metrics": [m.value for m in t.secondary_metrics],
        "minimum_sample_size": t.minimum_sample_size,
        "confidence_level": t.confidence_level,
        "created_by": t.created_by,
        "created_at": _dt(t.created_at),
    }


def ab_test_from_dict(d: Dict[str, Any]) -> ABTest:
    a = d.get("target_audience") or {}
    devices = a.get("device_classes")
    return ABTest(
        id=d["id"],
        name=d["name"],
        description=d.get("description", ""),
        status=TestStatus(d["status"]),
        start_date=_parse_dt(d["start_date"]),
        end_date=_parse_dt(d.get("end_date")),
        target_audience=TargetAudience(
            min_engagement_score=a.get("min_engagement_score"),
            max_engagement_score=a.get("max_engagement_score"),
            device_classes=[DeviceClass(x) for x in devices] if devices is not None else None,
            timezones=a.get("timezones"),
            user_segments=a.get("user_segments"),
        ),
        variants=[
            ABTestVariant(
                id=v["id"],
                name=v.get("name", v["id"]),
                weight=float(v["weight"]),
                is_control=bool(v.get("is_control", False)),
                content_override=dict(v.get("content_override") or {}),
            )
            for v in d["variants"]
        ],
        primary_metric=PrimaryMetric(d.get("primary_metric", "open_rate")),
        secondary_metrics=[PrimaryMetric(m) for m in d.get("secondary_metrics", [])],
        minimum_sample_size=int(d.get("minimum_sample_size", 100)),
        confidence_level=int(d.get("confidence_level", 95)),
        created_by=d.get("created_by", "system"),
        created_at=_parse_dt(d.get("created_at")),
    )


def result_to_dict(r: ABTestResult) -> Dict[str, Any]:
    return {
        "test_id": r.test_id,
        "variant_id": r.variant_id,
        "user_id": r.user_id,
        "notification_id": r.notification_id,
        "sent_at": _dt(r.sent_at),
        "opened": r.opened,
        "opened_at": _dt(r.opened_at),
        "clicked": r.clicked,
        "clicked_at": _dt(r.clicked_at),
        "converted": r.converted,
        "converted_at": _dt(r.converted_at),
        "response_time_minutes": r.response_time_minutes,
    }


def result_from_dict(d: Dict[str, Any]) -> ABTestResult:
    return ABTestResult(
        test_id=d["test_id"],
        variant_id=d["variant_id"],
        user_id=d["user_id"],
        notification_id=d["notification_id"],
        sent_at=_parse_dt(d["sent_at"]),
        opened=bool(d.get("opened", False)),
        opened_at=_parse_dt(d.get("opened_at")),
        clicked=bool(d.get("clicked", False)),
        clicked_at=_parse_dt(d.get("clicked_at")),
        converted=bool(d.get("converted", False)),
        converted_at=_parse_dt(d.get("converted_at")),
        response_time_minutes=d.get("response_time_minutes"),
    )


class EngineRepository:
    """Loads and saves engine collections through an injected key-value store."""

    def __init__(self, store, persist_retries: int = 3):
        self.store = store
        self.persist_retries = max(1, persist_retries)

    def _read(self, key: str, decode: Callable[[Any], T], default: Callable[[], T]) -> T:
        try:
            raw = self.store.get(key)
            if raw is None:
                return default()
            try:
                return decode(raw)
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                raise PersistenceCorruptionError(f"Cannot decode {key}: {e}") from e
        except PersistenceCorruptionError as e:
            logger.warning(f"{e}; starting with empty {key}")
            return default()

    def _write(self, key: str, payload: Any) -> bool:
        for attempt in range(1, self.persist_retries + 1):
            try:
                self.store.set(key, payload)
                return True
            except (OSError, TypeError, ValueError) as e:
                logger.warning(f"Write of {key} failed (attempt {attempt}/{self.persist_retries}): {e}")
        logger.error(f"Giving up persisting {key} after {self.persist_retries} attempts")
        return False

    def load_scheduled(self) -> List[ScheduledNotification]:
        return self._read(SCHEDULED_KEY, lambda raw: [scheduled_from_dict(x) for x in raw], list)

    def save_scheduled(self, items: List[ScheduledNotification]) -> bool:
        return self._write(SCHEDULED_KEY, [scheduled_to_dict(s) for s in items])

    def load_patterns(self) -> Dict[str, UserActivityPattern]:
        return self._read(
            PATTERNS_KEY,
            lambda raw: {user_id: pattern_from_dict(p) for user_id, p in raw.items()},
            dict,
        )

    def save_patterns(self, patterns: Dict[str, UserActivityPattern]) -> bool:
        return self._write(PATTERNS_KEY, {user_id: p.to_dict() for user_id, p in patterns.items()})

    def load_analytics(self) -> List[NotificationAnalyticsRecord]:
        return self._read(ANALYTICS_KEY, lambda raw: [record_from_dict(x) for x in raw], list)

    def save_analytics(self, records: List[NotificationAnalyticsRecord]) -> bool:
        return self._write(ANALYTICS_KEY, [record_to_dict(r) for r in records])

    def load_tests(self) -> List[ABTest]:
        return self._read(TESTS_KEY, lambda raw: [ab_test_from_dict(x) for x in raw], list)

    def save_tests(self, tests: List[ABTest]) -> bool:
        return self._write(TESTS_KEY, [ab_test_to_dict(t) for t in tests])

    def load_results(self) -> List[ABTestResult]:
        return self._read(RESULTS_KEY, lambda raw: [result_from_dict(x) for x in raw], list)

    def save_results(self, results: List[ABTestResult]) -> bool:
        return self._write(RESULTS_KEY, [result_to_dict(r) for r in results])
