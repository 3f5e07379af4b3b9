"""Notification scheduling and A/B experimentation engine for wellness notifications."""

from .schema import (
    ABTest,
    ABTestAnalytics,
    ABTestResult,
    ABTestVariant,
    AnalyticsRange,
    DeviceClass,
    EngagementSummary,
    Frequency,
    InteractionKind,
    NotificationContent,
    NotificationPreferences,
    NotificationPriority,
    OutcomeKind,
    PrimaryMetric,
    QuietHours,
    RecurrencePattern,
    ScheduledNotification,
    TargetAudience,
    TestStatus,
    UserActivityPattern,
)
from .errors import (
    NotFoundError,
    NotificationEngineError,
    PersistenceCorruptionError,
    TransportError,
    ValidationError,
)
from .clock import FakeClock, SystemClock
from .config import EngineConfig
from .store import InMemoryStore, JsonFileStore
from .transport import LoggingTransport, RecordingTransport
from .engine import NotificationEngine
from .simulate import run_campaign_simulation

__all__ = [
    "ABTest",
    "ABTestAnalytics",
    "ABTestResult",
    "ABTestVariant",
    "AnalyticsRange",
    "DeviceClass",
    "EngagementSummary",
    "Frequency",
    "InteractionKind",
    "NotificationContent",
    "NotificationPreferences",
    "NotificationPriority",
    "OutcomeKind",
    "PrimaryMetric",
    "QuietHours",
    "RecurrencePattern",
    "ScheduledNotification",
    "TargetAudience",
    "TestStatus",
    "UserActivityPattern",
    "NotFoundError",
    "NotificationEngineError",
    "PersistenceCorruptionError",
    "TransportError",
    "ValidationError",
    "FakeClock",
    "SystemClock",
    "EngineConfig",
    "InMemoryStore",
    "JsonFileStore",
    "LoggingTransport",
    "RecordingTransport",
    "NotificationEngine",
    "run_campaign_simulation",
]
