"""Tests for activity pattern learning and optimal-time scoring."""
from datetime import datetime

import pytest

from src.notification_engine.patterns import ActivityPatternTracker, get_optimal_time, score_hour
from src.notification_engine.schema import ActivityInteraction, UserActivityPattern


def test_pattern_created_with_defaults():
    tracker = ActivityPatternTracker()
    pattern = tracker.record_activity("u1", datetime(2025, 1, 6, 9, 30))
    assert pattern.engagement_score == 0.5
    assert pattern.preferred_notification_times == ["09:00", "19:00"]
    assert pattern.average_response_time_minutes == 30.0
    assert pattern.most_active_hours == [9]
    assert pattern.weekly_activity_pattern[0] == 0.1


def test_active_hours_fifo_capacity():
    """Only the six most recently added hours are kept."""
    tracker = ActivityPatternTracker()
    for hour in range(8):
        tracker.record_activity("u1", datetime(2025, 1, 6, hour, 0))
    tracker.record_activity("u1", datetime(2025, 1, 6, 7, 30))
    assert tracker.get("u1").most_active_hours == [2, 3, 4, 5, 6, 7]


def test_weekday_accumulator_saturates():
    tracker = ActivityPatternTracker()
    for _ in range(15):
        tracker.record_activity("u1", datetime(2025, 1, 8, 10, 0))
    assert tracker.get("u1").weekly_activity_pattern[2] == 1.0

    tracker.record_activity("u1", datetime(2025, 1, 12, 10, 0))
    assert tracker.get("u1").weekly_activity_pattern[6] == pytest.approx(0.1)


def test_engagement_updates():
    tracker = ActivityPatternTracker()
    now = datetime(2025, 1, 6, 9, 0)
    pattern = tracker.record_activity("u1", now, ActivityInteraction("n1", opened=True, response_time_minutes=10))
    assert abs(pattern.engagement_score - 0.55) < 1e-9
    assert pattern.average_response_time_minutes == 20.0

    pattern = tracker.record_activity("u1", now, ActivityInteraction("n2", opened=False))
    assert abs(pattern.engagement_score - 0.53) < 1e-9


def test_engagement_bounds():
    tracker = ActivityPatternTracker()
    now = datetime(2025, 1, 6, 9, 0)
    for _ in range(30):
        tracker.record_activity("u1", now, ActivityInteraction("n", opened=True))
    assert tracker.get("u1").engagement_score == 1.0
    for _ in range(100):
        tracker.record_activity("u1", now, ActivityInteraction("n", opened=False))
    assert tracker.get("u1").engagement_score == 0.0


def test_score_hour_components():
    pattern = UserActivityPattern(user_id="u1", last_active_date=datetime(2025, 1, 6), most_active_hours=[12])
    # active (+3), no preferred time near noon, meal bonus (+2)
    assert score_hour(12, pattern, "meal_reminder") == 5
    # 3 AM: late-night penalty only
    assert score_hour(3, pattern, "meal_reminder") == -2
    # 18: preferred 19:00 within an hour (+2), achievement bonus (+1)
    assert score_hour(18, pattern, "achievement") == 3


def test_optimal_time_without_pattern():
    now = datetime(2025, 1, 6, 9, 25)
    assert get_optimal_time(None, "motivational", now) == datetime(2025, 1, 6, 10, 0)


def test_optimal_time_picks_best_hour():
    pattern = UserActivityPattern(user_id="u1", last_active_date=datetime(2025, 1, 6), most_active_hours=[13])
    now = datetime(2025, 1, 6, 9, 10)
    best = get_optimal_time(pattern, "meal_reminder", now)
    # 13:00 scores active (+3) and meal (+2)
    assert best == datetime(2025, 1, 6, 13, 0)
    assert best > now


def test_optimal_time_wraps_to_next_day():
    pattern = UserActivityPattern(user_id="u1", last_active_date=datetime(2025, 1, 6), most_active_hours=[1])
    now = datetime(2025, 1, 6, 22, 0)
    best = get_optimal_time(pattern, "motivational", now)
    assert best > now
    assert best.minute == 0 and best.second == 0
    assert best.date() == datetime(2025, 1, 7).date()
