"""
Data models for the notification scheduling and experimentation engine.

Dataclass schemas for notification content, scheduled deliveries, user
activity patterns, engagement analytics records, A/B tests and their
per-assignment results, plus the summary objects returned by analytics
queries.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class NotificationPriority(str, Enum):
    """Priority declared on the notification content."""
    URGENT = "urgent"
    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


class Frequency(str, Enum):
    """Recurrence frequency."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class DeviceClass(str, Enum):
    MOBILE = "mobile"
    DESKTOP = "desktop"
    TABLET = "tablet"


class TimeOfDay(str, Enum):
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"
    NIGHT = "night"


class InteractionKind(str, Enum):
    """User interaction with a delivered notification."""
    OPENED = "opened"
    CLICKED = "clicked"
    DISMISSED = "dismissed"


class OutcomeKind(str, Enum):
    """Outcome recorded against an experiment assignment."""
    OPENED = "opened"
    CLICKED = "clicked"
    CONVERTED = "converted"


class AnalyticsRange(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class TestStatus(str, Enum):
    """Lifecycle status of an A/B test."""
    __test__ = False

    DRAFT = "draft"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


class PrimaryMetric(str, Enum):
    """Metric an experiment is optimized for."""
    OPEN_RATE = "open_rate"
    CLICK_RATE = "click_rate"
    CONVERSION_RATE = "conversion_rate"
    ENGAGEMENT_SCORE = "engagement_score"


@dataclass
class NotificationContent:
    """Payload handed to the transport."""
    id: str
    type: str  # meal_reminder, training_reminder, motivational, achievement, ...
    category: str  # steps, nutrition, training, social, achievements, reminders, wellness
    title: str
    body: str
    priority: NotificationPriority = NotificationPriority.NORMAL
    tags: List[str] = field(default_factory=list)
    icon: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RecurrencePattern:
    """How a recurring notification repeats."""
    frequency: Frequency
    time: Optional[str] = None  # HH:MM
    days: List[int] = field(default_factory=list)  # weekly: 0-6 (Mon-Sun), monthly: 1-31


@dataclass
class ScheduledNotification:
    """A notification bound to a delivery plan."""
    id: str
    user_id: str
    notification: NotificationContent
    scheduled_time: datetime
    is_recurring: bool = False
    recurrence: Optional[RecurrencePattern] = None
    priority: float = 5.0
    sent: bool = False
    sent_time: Optional[datetime] = None
    opened: bool = False
    opened_time: Optional[datetime] = None
    # Requested time before any gate rescheduling; recurrence is computed from it.
    anchor_time: Optional[datetime] = None
    delivery_attempts: int = 0
    failed: bool = False

    def __post_init__(self):
        if self.anchor_time is None:
            self.anchor_time = self.scheduled_time

    @property
    def pending(self) -> bool:
        return not self.sent and not self.failed


@dataclass
class UserActivityPattern:
    """Best-effort behavioral model of one user."""
    user_id: str
    last_active_date: datetime
    most_active_hours: List[int] = field(default_factory=list)
    preferred_notification_times: List[str] = field(default_factory=lambda: ["09:00", "19:00"])
    average_response_time_minutes: float = 30.0
    engagement_score: float = 0.5
    timezone: str = "UTC"
    weekly_activity_pattern: List[float] = field(default_factory=lambda: [0.0] * 7)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "most_active_hours": list(self.most_active_hours),
            "preferred_notification_times": list(self.preferred_notification_times),
            "average_response_time_minutes": self.average_response_time_minutes,
            "engagement_score": self.engagement_score,
            "timezone": self.timezone,
            "last_active_date": self.last_active_date.isoformat(),
            "weekly_activity_pattern": list(self.weekly_activity_pattern),
        }


@dataclass
class ActivityInteraction:
    """Notification interaction folded into a user's activity pattern."""
    notification_id: str
    opened: bool
    response_time_minutes: float = 0.0


@dataclass
class NotificationAnalyticsRecord:
    """One delivered notification instance and what the user did with it."""
    user_id: str
    notification_id: str
    type: str
    category: str
    sent_time: datetime
    device_class: DeviceClass
    time_of_day: TimeOfDay
    day_of_week: int  # 0-6, Monday first
    opened: bool = False
    opened_time: Optional[datetime] = None
    clicked: bool = False
    clicked_time: Optional[datetime] = None
    dismissed: bool = False
    dismissed_time: Optional[datetime] = None
    response_time_minutes: Optional[int] = None


@dataclass
class QuietHours:
    enabled: bool = False
    start_time: str = "22:00"
    end_time: str = "08:00"


@dataclass
class NotificationPreferences:
    """Per-user delivery policy consulted by the delivery gate."""
    quiet_hours: QuietHours = field(default_factory=QuietHours)
    max_daily_notifications: int = 10


@dataclass
class TargetAudience:
    """Experiment audience filter. Every field left as None is ignored."""
    min_engagement_score: Optional[float] = None
    max_engagement_score: Optional[float] = None
    device_classes: Optional[List[DeviceClass]] = None
    timezones: Optional[List[str]] = None
    user_segments: Optional[List[str]] = None


@dataclass
class UserProfile:
    """Attributes a user is matched against when targeting an experiment."""
    user_id: str
    engagement_score: float
    device_class: DeviceClass
    timezone: str
    segments: List[str] = field(default_factory=list)


@dataclass
class ABTestVariant:
    """One treatment arm of an experiment, control included."""
    id: str
    name: str
    weight: float  # 0-100
    is_control: bool = False
    content_override: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ABTest:
    """Experiment definition."""

    id: str
    name: str
    variants: List[ABTestVariant]
    start_date: datetime
    end_date: Optional[datetime] = None
    description: str = ""
    status: TestStatus = TestStatus.DRAFT
    target_audience: TargetAudience = field(default_factory=TargetAudience)
    primary_metric: PrimaryMetric = PrimaryMetric.OPEN_RATE
    secondary_metrics: List[PrimaryMetric] = field(default_factory=list)
    minimum_sample_size: int = 100
    confidence_level: int = 95  # 90, 95, 99
    created_by: str = "system"
    created_at: Optional[datetime] = None


@dataclass
class ABTestResult:
    """One (test, user) assignment and its delivery outcome."""

    test_id: str
    variant_id: str
    user_id: str
    notification_id: str
    sent_at: datetime
    opened: bool = False
    opened_at: Optional[datetime] = None
    clicked: bool = False
    clicked_at: Optional[datetime] = None
    converted: bool = False
    converted_at: Optional[datetime] = None
    response_time_minutes: Optional[int] = None


@dataclass
class EngagementSummary:
    """Rollup returned by the analytics aggregator for one user and window."""
    user_id: str
    time_range: AnalyticsRange
    total_sent: int = 0
    total_opened: int = 0
    total_clicked: int = 0
    total_dismissed: int = 0
    open_rate: float = 0.0
    click_rate: float = 0.0
    dismiss_rate: float = 0.0
    avg_response_time_minutes: float = 0.0
    category_breakdown: Dict[str, int] = field(default_factory=dict)
    time_of_day_breakdown: Dict[str, int] = field(default_factory=dict)
    user_pattern: Optional[UserActivityPattern] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "time_range": self.time_range.value,
            "total_sent": self.total_sent,
            "total_opened": self.total_opened,
            "total_clicked": self.total_clicked,
            "total_dismissed": self.total_dismissed,
            "open_rate": self.open_rate,
            "click_rate": self.click_rate,
            "dismiss_rate": self.dismiss_rate,
            "avg_response_time_minutes": self.avg_response_time_minutes,
            "category_breakdown": dict(self.category_breakdown),
            "time_of_day_breakdown": dict(self.time_of_day_breakdown),
            "user_pattern": self.user_pattern.to_dict() if self.user_pattern else None,
        }


@dataclass
class VariantMetrics:
    sent_count: int = 0
    open_count: int = 0
    click_count: int = 0
    conversion_count: int = 0
    open_rate: float = 0.0  # percent
    click_rate: float = 0.0
    conversion_rate: float = 0.0
    avg_response_time_minutes: float = 0.0
    engagement_score: float = 0.0  # 0-1


@dataclass
class VariantAnalytics:
    id: str
    name: str
    is_control: bool
    participant_count: int
    metrics: VariantMetrics
    p_value: Optional[float] = None  # vs control, rate metrics only


@dataclass
class TestWinner:
    __test__ = False

    variant_id: str
    improvement: Optional[float]  # relative % over control; None when control is 0
    metric: PrimaryMetric


@dataclass
class ABTestAnalytics:
    """Complete comparative report for one experiment."""
    test_id: str
    is_complete: bool
    has_statistical_significance: bool
    confidence_level: int
    sample_size: int
    variants: List[VariantAnalytics] = field(default_factory=list)
    winner: Optional[TestWinner] = None
    recommendations: List[str] = field(default_factory=list)
    srm_passed: bool = True
    srm_p_value: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to JSON-serializable dict."""
        d = {
            "test_id": self.test_id,
            "is_complete": self.is_complete,
            "has_statistical_significance": self.has_statistical_significance,
            "confidence_level": self.confidence_level,
            "sample_size": self.sample_size,
            "srm_passed": self.srm_passed,
            "srm_p_value": self.srm_p_value,
            "recommendations": list(self.recommendations),
        }
        d["variants"] = [
            {
                "id": v.id,
                "name": v.name,
                "is_control": v.is_control,
                "participant_count": v.participant_count,
                "p_value": v.p_value,
                "metrics": {
                    "sent_count": v.metrics.sent_count,
                    "open_count": v.metrics.open_count,
                    "click_count": v.metrics.click_count,
                    "conversion_count": v.metrics.conversion_count,
                    "open_rate": v.metrics.open_rate,
                    "click_rate": v.metrics.click_rate,
                    "conversion_rate": v.metrics.conversion_rate,
                    "avg_response_time_minutes": v.metrics.avg_response_time_minutes,
                    "engagement_score": v.metrics.engagement_score,
                },
            }
            for v in self.variants
        ]
        d["winner"] = (
            {
                "variant_id": self.winner.variant_id,
                "improvement": self.winner.improvement,
                "metric": self.winner.metric.value,
            }
            if self.winner
            else None
        )
        return d
