"""
Per-user activity pattern learning and optimal delivery-time scoring.

The tracker is a cheap online learner: every observed activity nudges a
bounded profile (recent active hours, weekday accumulators, engagement
score). The scorer ranks hours of the day against that profile and the
kind of notification being sent.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from .schema import ActivityInteraction, UserActivityPattern

logger = logging.getLogger(__name__)

MAX_ACTIVE_HOURS = 6
WEEKDAY_STEP = 0.1
ENGAGEMENT_GAIN = 0.05
ENGAGEMENT_LOSS = 0.02
LOOKAHEAD_HOURS = 12

# notification type -> (favored hours, bonus)
TYPE_HOUR_BONUS = {
    "meal_reminder": ({7, 8, 12, 13, 18, 19}, 2),
    "training_reminder": ({9, 10, 11, 19, 20, 21}, 2),
    "motivational": ({8, 9, 17, 18}, 2),
    "achievement": ({17, 18, 19, 20}, 1),
}


class ActivityPatternTracker:
    """Owns the user-id -> UserActivityPattern map."""

    def __init__(self, patterns: Optional[Dict[str, UserActivityPattern]] = None, default_timezone: str = "UTC"):
        self.patterns: Dict[str, UserActivityPattern] = patterns if patterns is not None else {}
        self.default_timezone = default_timezone

    def get(self, user_id: str) -> Optional[UserActivityPattern]:
        return self.patterns.get(user_id)

    def record_activity(
        self,
        user_id: str,
        active_time: datetime,
        interaction: Optional[ActivityInteraction] = None,
    ) -> UserActivityPattern:
        """
        Fold one observed activity into the user's pattern, creating it on first sight.

        Args:
            user_id: User the activity belongs to
            active_time: When the user was active
            interaction: Optional notification interaction observed at that moment

        Returns:
            The updated pattern
        """
        pattern = self.patterns.get(user_id)
        if pattern is None:
            pattern = UserActivityPattern(
                user_id=user_id,
                last_active_date=active_time,
                timezone=self.default_timezone,
            )
            self.patterns[user_id] = pattern
            logger.info(f"Created activity pattern for user {user_id}")

        pattern.last_active_date = active_time

        hour = active_time.hour
        if hour not in pattern.most_active_hours:
            pattern.most_active_hours.append(hour)
            if len(pattern.most_active_hours) > MAX_ACTIVE_HOURS:
                pattern.most_active_hours = pattern.most_active_hours[-MAX_ACTIVE_HOURS:]

        day = active_time.weekday()
        pattern.weekly_activity_pattern[day] = min(1.0, pattern.weekly_activity_pattern[day] + WEEKDAY_STEP)

        if interaction is not None:
            if interaction.opened:
                pattern.engagement_score = min(1.0, pattern.engagement_score + ENGAGEMENT_GAIN)
                pattern.average_response_time_minutes = (
                    pattern.average_response_time_minutes + interaction.response_time_minutes
                ) / 2
            else:
                pattern.engagement_score = max(0.0, pattern.engagement_score - ENGAGEMENT_LOSS)

        return pattern


def score_hour(hour: int, pattern: UserActivityPattern, notification_type: str) -> int:
    """Score how good ``hour`` (0-23) is for delivering ``notification_type`` to this user."""
    score = 0

    if hour in pattern.most_active_hours:
        score += 3

    for preferred in pattern.preferred_notification_times:
        preferred_hour = int(preferred.split(":")[0])
        if abs(hour - preferred_hour) <= 1:
            score += 2

    favored = TYPE_HOUR_BONUS.get(notification_type)
    if favored and hour in favored[0]:
        score += favored[1]

    if hour < 6 or hour > 22:
        score -= 2

    return score


def get_optimal_time(
    pattern: Optional[UserActivityPattern],
    notification_type: str,
    now: datetime,
) -> datetime:
    """
    Best delivery moment within the next 12 hours.

    Without a pattern the answer is the top of the next hour. Ties keep the
    earliest hour; the result is always strictly after ``now``.
    """
    top_of_hour = now.replace(minute=0, second=0, microsecond=0)
    if pattern is None:
        return top_of_hour + timedelta(hours=1)

    best_hour = (now.hour + 1) % 24
    best_score = None
    for i in range(1, LOOKAHEAD_HOURS + 1):
        hour = (now.hour + i) % 24
        score = score_hour(hour, pattern, notification_type)
        if best_score is None or score > best_score:
            best_score = score
            best_hour = hour

    optimal = top_of_hour.replace(hour=best_hour)
    if optimal <= now:
        optimal += timedelta(days=1)
    return optimal
