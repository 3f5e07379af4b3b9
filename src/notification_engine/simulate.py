"""
Notification Campaign Simulator.

Drives a NotificationEngine through a synthetic audience: creates a running
A/B test, sends every user their variant of a base notification, then draws
opens, clicks and conversions from per-variant probabilities:
- opened ~ Bernoulli(open_prob)
- clicked | opened ~ Bernoulli(click_prob)
- converted | clicked ~ Bernoulli(conversion_prob)

Returns a run summary including the engine's analysis of the test.
"""

import logging
from datetime import timedelta
from typing import Dict, List, Optional

import numpy as np

from .clock import FakeClock
from .config import EngineConfig
from .engine import NotificationEngine
from .schema import (
    ABTest,
    ABTestVariant,
    NotificationContent,
    OutcomeKind,
    PrimaryMetric,
    TestStatus,
)
from .store import InMemoryStore
from .transport import RecordingTransport

logger = logging.getLogger(__name__)

SIMULATOR_SEED = 42

DEFAULT_VARIANT_RATES = {
    "control": {"open_prob": 0.30, "click_prob": 0.30, "conversion_prob": 0.20},
    "personalized": {"open_prob": 0.45, "click_prob": 0.40, "conversion_prob": 0.25},
}

BASE_NOTIFICATION = NotificationContent(
    id="hydration_nudge",
    type="motivational",
    category="wellness",
    title="Time to hydrate",
    body="A glass of water now keeps your streak going.",
)


def build_demo_test(test_id: str, start_date) -> ABTest:
    """Two-arm open-rate test: generic copy vs. personalized copy."""
    return ABTest(
        id=test_id,
        name="Hydration nudge copy",
        description="Does personalized copy lift opens on hydration reminders?",
        variants=[
            ABTestVariant(id="control", name="Generic copy", weight=50, is_control=True),
            ABTestVariant(
                id="personalized",
                name="Personalized copy",
                weight=50,
                content_override={"title": "Your body is asking for water", "priority": "high"},
            ),
        ],
        start_date=start_date,
        end_date=start_date + timedelta(days=14),
        status=TestStatus.RUNNING,
        primary_metric=PrimaryMetric.OPEN_RATE,
        secondary_metrics=[PrimaryMetric.CLICK_RATE, PrimaryMetric.CONVERSION_RATE],
        minimum_sample_size=100,
        confidence_level=95,
        created_by="simulator",
    )


def run_campaign_simulation(
    test_id: str = "sim_hydration_copy",
    n_users: int = 600,
    variant_rates: Optional[Dict[str, Dict[str, float]]] = None,
    engine: Optional[NotificationEngine] = None,
    test: Optional[ABTest] = None,
    random_seed: int = SIMULATOR_SEED,
) -> Dict:
    """
    Run a notification A/B campaign simulation.

    Args:
        test_id: Experiment identifier (ignored when ``test`` is given)
        n_users: Size of the synthetic audience
        variant_rates: variant_id -> open_prob / click_prob / conversion_prob
        engine: Engine to drive; defaults to an in-memory engine on a FakeClock
        test: Experiment definition; defaults to the two-arm hydration copy test
        random_seed: Random seed for reproducibility

    Returns:
        Dict with n_users, n_sent, per-variant sent/opened/clicked/converted
        counts and the analysis as a dict
    """
    np.random.seed(random_seed)
    variant_rates = variant_rates or DEFAULT_VARIANT_RATES

    if engine is None:
        engine = NotificationEngine(
            store=InMemoryStore(),
            transport=RecordingTransport(),
            clock=FakeClock(),
            config=EngineConfig(),
        )
    now = engine.clock.now()

    if test is None:
        test = build_demo_test(test_id, now)
    test_id = engine.create_test(test)

    user_ids: List[str] = [f"sim_user_{i:05d}" for i in range(n_users)]
    counts = {
        v.id: {"sent": 0, "opened": 0, "clicked": 0, "converted": 0}
        for v in test.variants
    }

    n_sent = 0
    for user_id in user_ids:
        notification_id = engine.send_test_notification(BASE_NOTIFICATION, test_id, user_id)
        if notification_id is None:
            continue
        n_sent += 1

        variant = engine.assign_variant(test_id, user_id)
        rates = variant_rates.get(variant.id, {})
        counts[variant.id]["sent"] += 1

        if np.random.random() >= rates.get("open_prob", 0.0):
            continue
        opened_at = now + timedelta(minutes=int(np.random.randint(1, 180)))
        engine.record_outcome(test_id, notification_id, user_id, OutcomeKind.OPENED, opened_at)
        counts[variant.id]["opened"] += 1

        if np.random.random() >= rates.get("click_prob", 0.0):
            continue
        engine.record_outcome(test_id, notification_id, user_id, OutcomeKind.CLICKED, opened_at + timedelta(minutes=1))
        counts[variant.id]["clicked"] += 1

        if np.random.random() >= rates.get("conversion_prob", 0.0):
            continue
        engine.record_outcome(
            test_id, notification_id, user_id, OutcomeKind.CONVERTED, opened_at + timedelta(minutes=5)
        )
        counts[variant.id]["converted"] += 1

    analysis = engine.analyze(test_id)
    logger.info(f"Simulation complete: {n_sent}/{n_users} notifications sent for test {test_id}")

    return {
        "test_id": test_id,
        "n_users": n_users,
        "n_sent": n_sent,
        "variants": counts,
        "analysis": analysis.to_dict(),
    }
