"""End-to-end: simulate a campaign -> analyze produces a complete report."""
import shutil
import tempfile
from pathlib import Path

import pytest

from src.notification_engine.clock import FakeClock
from src.notification_engine.config import EngineConfig
from src.notification_engine.engine import NotificationEngine
from src.notification_engine.simulate import run_campaign_simulation
from src.notification_engine.store import JsonFileStore
from src.notification_engine.transport import RecordingTransport


@pytest.fixture
def temp_store_dir():
    """Temporary directory for engine state."""
    d = tempfile.mkdtemp()
    yield d
    shutil.rmtree(d, ignore_errors=True)


def test_simulation_summary_and_winner():
    summary = run_campaign_simulation(n_users=1000)

    assert summary["n_sent"] == 1000
    assert sum(v["sent"] for v in summary["variants"].values()) == 1000
    analysis = summary["analysis"]
    assert analysis["sample_size"] == 1000
    assert {v["id"] for v in analysis["variants"]} == {"control", "personalized"}
    for variant in summary["variants"].values():
        assert variant["opened"] >= variant["clicked"] >= variant["converted"]
    assert analysis["winner"]["variant_id"] == "personalized"
    assert analysis["srm_passed"]
    assert analysis["recommendations"]


def test_simulation_is_reproducible():
    first = run_campaign_simulation(n_users=200, random_seed=7)
    second = run_campaign_simulation(n_users=200, random_seed=7)
    assert first["variants"] == second["variants"]


def test_simulation_persists_to_file_store(temp_store_dir):
    transport = RecordingTransport()
    engine = NotificationEngine(
        store=JsonFileStore(temp_store_dir),
        transport=transport,
        clock=FakeClock(),
        config=EngineConfig(store_dir=temp_store_dir),
    )
    summary = run_campaign_simulation(n_users=150, engine=engine)

    assert len(transport.delivered) == 150
    assert (Path(temp_store_dir) / "ab_test_results.json").exists()
    reloaded = NotificationEngine(store=JsonFileStore(temp_store_dir), clock=FakeClock())
    assert reloaded.analyze(summary["test_id"]).sample_size == 150
