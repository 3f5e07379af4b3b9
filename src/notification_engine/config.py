"""
Engine configuration.

Module-level defaults, overridable through ``NOTIFY_*`` environment variables.
"""

import os
from dataclasses import dataclass

DEFAULT_STORE_DIR = "data/notifications"
TICK_INTERVAL_SECONDS = 60
PATTERN_SWEEP_INTERVAL_SECONDS = 3600
CLEANUP_INTERVAL_SECONDS = 86400


@dataclass
class EngineConfig:
    """Tunables for the scheduling loop, retention and persistence."""
    tick_interval_seconds: int = TICK_INTERVAL_SECONDS
    pattern_sweep_interval_seconds: int = PATTERN_SWEEP_INTERVAL_SECONDS
    cleanup_interval_seconds: int = CLEANUP_INTERVAL_SECONDS
    analytics_retention_days: int = 30
    experiment_retention_months: int = 3
    max_delivery_attempts: int = 10
    max_entries_per_tick: int = 500
    persist_retries: int = 3
    default_device_class: str = "mobile"
    default_timezone: str = "UTC"
    store_dir: str = DEFAULT_STORE_DIR

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from ``NOTIFY_*`` environment variables, falling back to defaults."""
        return cls(
            tick_interval_seconds=int(os.getenv("NOTIFY_TICK_SECONDS", str(TICK_INTERVAL_SECONDS))),
            pattern_sweep_interval_seconds=int(
                os.getenv("NOTIFY_PATTERN_SWEEP_SECONDS", str(PATTERN_SWEEP_INTERVAL_SECONDS))
            ),
            cleanup_interval_seconds=int(os.getenv("NOTIFY_CLEANUP_SECONDS", str(CLEANUP_INTERVAL_SECONDS))),
            analytics_retention_days=int(os.getenv("NOTIFY_ANALYTICS_RETENTION_DAYS", "30")),
            experiment_retention_months=int(os.getenv("NOTIFY_EXPERIMENT_RETENTION_MONTHS", "3")),
            max_delivery_attempts=int(os.getenv("NOTIFY_MAX_DELIVERY_ATTEMPTS", "10")),
            max_entries_per_tick=int(os.getenv("NOTIFY_MAX_ENTRIES_PER_TICK", "500")),
            persist_retries=int(os.getenv("NOTIFY_PERSIST_RETRIES", "3")),
            default_device_class=os.getenv("NOTIFY_DEFAULT_DEVICE", "mobile"),
            default_timezone=os.getenv("NOTIFY_DEFAULT_TIMEZONE", "UTC"),
            store_dir=os.getenv("NOTIFY_STORE_DIR", DEFAULT_STORE_DIR),
        )
