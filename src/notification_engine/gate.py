"""
Delivery gate: quiet hours and daily caps.

Pure policy functions. The scheduling queue asks ``is_allowed`` for every due
entry and reschedules denied entries to ``next_allowed_time``.
"""

from datetime import datetime, timedelta

from .schema import NotificationPreferences, ScheduledNotification


def _hhmm(when: datetime) -> str:
    return f"{when.hour:02d}:{when.minute:02d}"


def in_quiet_window(current: str, start: str, end: str) -> bool:
    """
    Whether HH:MM ``current`` falls in ``[start, end)``.

    ``start > end`` means the window wraps across midnight (22:00-08:00
    covers both late night and early morning).
    """
    if start <= end:
        return start <= current < end
    return current >= start or current < end


def is_allowed(
    entry: ScheduledNotification,
    preferences: NotificationPreferences,
    now: datetime,
    sent_today: int,
) -> bool:
    """
    Decide whether ``entry`` may be delivered at ``now``.

    Args:
        entry: Due entry under consideration
        preferences: Owning user's delivery preferences
        now: Current time
        sent_today: Notifications already sent to the user on ``now``'s calendar day

    Returns:
        False inside enabled quiet hours or once the daily cap is reached
    """
    quiet = preferences.quiet_hours
    if quiet.enabled and in_quiet_window(_hhmm(now), quiet.start_time, quiet.end_time):
        return False

    if sent_today >= preferences.max_daily_notifications:
        return False

    return True


def next_allowed_time(
    entry: ScheduledNotification,
    preferences: NotificationPreferences,
    now: datetime,
) -> datetime:
    """Suggested reschedule time for a denied entry: quiet-hours end if enabled, else the next hour."""
    quiet = preferences.quiet_hours
    if quiet.enabled:
        hours, minutes = (int(part) for part in quiet.end_time.split(":"))
        candidate = now.replace(hour=hours, minute=minutes, second=0, microsecond=0)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    return now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
