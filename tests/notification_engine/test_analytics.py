"""Tests for the engagement analytics aggregator."""
from datetime import datetime, timedelta

from src.notification_engine.analytics import EngagementAnalytics, minutes_between, time_of_day
from src.notification_engine.patterns import ActivityPatternTracker
from src.notification_engine.schema import (
    AnalyticsRange,
    DeviceClass,
    InteractionKind,
    NotificationContent,
    ScheduledNotification,
    TimeOfDay,
)

T0 = datetime(2025, 1, 6, 12, 0)


def _sent(analytics, nid, user_id="u1", when=T0, category="nutrition"):
    content = NotificationContent(id=nid, type="meal_reminder", category=category, title="t", body="b")
    entry = ScheduledNotification(id=f"s_{nid}", user_id=user_id, notification=content, scheduled_time=when)
    return analytics.record_sent(entry, when)


def test_record_sent_derives_buckets():
    analytics = EngagementAnalytics(ActivityPatternTracker(), device_resolver=lambda user_id: "tablet")
    record = _sent(analytics, "n1", when=datetime(2025, 1, 8, 19, 30))
    assert record.device_class == DeviceClass.TABLET
    assert record.time_of_day == TimeOfDay.EVENING
    assert record.day_of_week == 2


def test_time_of_day_buckets():
    assert time_of_day(5) == TimeOfDay.NIGHT
    assert time_of_day(6) == TimeOfDay.MORNING
    assert time_of_day(12) == TimeOfDay.AFTERNOON
    assert time_of_day(18) == TimeOfDay.EVENING
    assert time_of_day(22) == TimeOfDay.NIGHT


def test_minutes_between_floors():
    assert minutes_between(T0, T0 + timedelta(minutes=4, seconds=59)) == 4


def test_click_implies_open():
    """A click on an unopened record opens it at the click time."""
    tracker = ActivityPatternTracker()
    analytics = EngagementAnalytics(tracker)
    _sent(analytics, "n1")

    clicked_at = T0 + timedelta(minutes=7)
    record = analytics.record_interaction("n1", "u1", InteractionKind.CLICKED, clicked_at)
    assert record.clicked and record.opened
    assert record.opened_time == record.clicked_time == clicked_at
    assert record.response_time_minutes == 7
    # interaction feeds the tracker
    assert tracker.get("u1").engagement_score > 0.5


def test_unknown_interaction_is_noop():
    tracker = ActivityPatternTracker()
    analytics = EngagementAnalytics(tracker)
    assert analytics.record_interaction("missing", "u1", InteractionKind.OPENED, T0) is None
    assert tracker.get("u1") is None


def test_open_rate_is_percent_of_sent():
    analytics = EngagementAnalytics(ActivityPatternTracker())
    for i in range(8):
        _sent(analytics, f"n{i}", category="nutrition" if i < 5 else "training")
    for i in range(3):
        analytics.record_interaction(f"n{i}", "u1", InteractionKind.OPENED, T0 + timedelta(minutes=10))
    analytics.record_interaction("n7", "u1", InteractionKind.DISMISSED, T0 + timedelta(minutes=1))

    summary = analytics.analytics("u1", AnalyticsRange.WEEK, now=T0 + timedelta(hours=1))
    assert summary.total_sent == 8
    assert summary.total_opened == 3
    assert summary.open_rate == 100 * 3 / 8
    assert summary.dismiss_rate == 100 * 1 / 8
    assert summary.avg_response_time_minutes == 10.0
    assert summary.category_breakdown == {"nutrition": 5, "training": 3}
    assert summary.time_of_day_breakdown == {"afternoon": 8}


def test_empty_window_has_zero_rates():
    analytics = EngagementAnalytics(ActivityPatternTracker())
    _sent(analytics, "old", when=T0 - timedelta(days=3))
    summary = analytics.analytics("u1", AnalyticsRange.DAY, now=T0)
    assert summary.total_sent == 0
    assert summary.open_rate == 0.0
    assert summary.to_dict()["time_range"] == "day"


def test_purge_older_than():
    analytics = EngagementAnalytics(ActivityPatternTracker())
    _sent(analytics, "old", when=T0 - timedelta(days=40))
    _sent(analytics, "new", when=T0)
    assert analytics.purge_older_than(T0 - timedelta(days=30)) == 1
    assert [r.notification_id for r in analytics.records] == ["new"]
