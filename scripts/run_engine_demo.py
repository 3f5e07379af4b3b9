#!/usr/bin/env python3
"""
Run full notification engine demo: schedule -> deliver -> interact -> experiment.

Uses an in-memory store, a logging transport and a fake clock so a simulated
day passes in well under a second.
"""

import json
import logging
import sys
from datetime import timedelta
from pathlib import Path

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    from src.notification_engine import (
        FakeClock,
        Frequency,
        InMemoryStore,
        InteractionKind,
        LoggingTransport,
        NotificationContent,
        NotificationEngine,
        RecurrencePattern,
        run_campaign_simulation,
    )

    clock = FakeClock()
    engine = NotificationEngine(store=InMemoryStore(), transport=LoggingTransport(), clock=clock)

    print("1. Learning activity patterns...")
    for hours in (0, 3, 10):
        engine.record_activity("demo_user", clock.now() + timedelta(hours=hours))
    engine.mark_active("demo_user")

    print("2. Scheduling notifications...")
    lunch = NotificationContent(
        id="lunch_reminder",
        type="meal_reminder",
        category="nutrition",
        title="Lunch time",
        body="Log your lunch to keep your nutrition goals on track.",
    )
    engine.schedule(
        lunch,
        "demo_user",
        clock.now().replace(hour=12, minute=0),
        is_recurring=True,
        recurrence=RecurrencePattern(frequency=Frequency.DAILY),
    )
    best = engine.get_optimal_time("demo_user", "training_reminder")
    print(f"   Optimal training reminder time: {best.isoformat()}")

    print("3. Advancing one simulated day...")
    engine.advance(timedelta(days=1))
    engine.record_interaction("lunch_reminder", "demo_user", InteractionKind.CLICKED)
    summary = engine.analytics("demo_user")
    print(json.dumps(summary.to_dict(), indent=2, default=str))

    print("4. Running A/B campaign simulation...")
    result = run_campaign_simulation(n_users=600)
    analysis = result["analysis"]
    print(f"   Sent: {result['n_sent']}, significant: {analysis['has_statistical_significance']}")
    print(f"   Winner: {analysis['winner']}")
    for rec in analysis["recommendations"]:
        print(f"   - {rec}")

    print("\nDone.")


if __name__ == "__main__":
    main()
