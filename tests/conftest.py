"""Pytest configuration - add project root to path."""
import sys
from datetime import datetime
from pathlib import Path

import pytest

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))

from src.notification_engine.clock import FakeClock  # noqa: E402
from src.notification_engine.engine import NotificationEngine  # noqa: E402
from src.notification_engine.store import InMemoryStore  # noqa: E402
from src.notification_engine.transport import RecordingTransport  # noqa: E402


@pytest.fixture
def clock():
    """Clock pinned to Monday 2025-01-06 09:00."""
    return FakeClock(datetime(2025, 1, 6, 9, 0))


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def engine(store, transport, clock):
    return NotificationEngine(store=store, transport=transport, clock=clock)
