"""Tests for experiment management, delivery and analysis."""
from datetime import datetime, timedelta, timezone

import pytest

from src.notification_engine.analyze import analyze_test, determine_winner
from src.notification_engine.clock import FakeClock
from src.notification_engine.errors import NotFoundError, ValidationError
from src.notification_engine.experiments import ExperimentEngine, apply_override
from src.notification_engine.schema import (
    ABTest,
    ABTestResult,
    ABTestVariant,
    DeviceClass,
    NotificationContent,
    NotificationPriority,
    OutcomeKind,
    PrimaryMetric,
    TargetAudience,
    TestStatus,
    UserProfile,
)
from src.notification_engine.transport import RecordingTransport

START = datetime(2025, 1, 6, 9, 0)

BASE = NotificationContent(
    id="base",
    type="motivational",
    category="wellness",
    title="Keep moving",
    body="A short walk counts.",
    data={"source": "campaign"},
)


def _definition(test_id="exp_1", weights=(50, 50), control=True, treatment_is_control=False, **kwargs):
    variants = [
        ABTestVariant(id="control", name="Control", weight=weights[0], is_control=control),
        ABTestVariant(
            id="treatment",
            name="Treatment",
            weight=weights[1],
            is_control=treatment_is_control,
            content_override={"title": "You are on a roll", "priority": "high", "unknown": 1},
        ),
    ]
    fields = dict(status=TestStatus.RUNNING, minimum_sample_size=100, confidence_level=95)
    fields.update(kwargs)
    return ABTest(id=test_id, name="Copy test", variants=variants, start_date=START, **fields)


def _profile(user_id):
    return UserProfile(user_id=user_id, engagement_score=0.5, device_class=DeviceClass.MOBILE, timezone="UTC")


def _experiments(transport=None):
    return ExperimentEngine(transport or RecordingTransport(), _profile, FakeClock(START))


def _results(variant_id, n, opens, test_id="exp_1", sent_at=START):
    return [
        ABTestResult(
            test_id=test_id,
            variant_id=variant_id,
            user_id=f"{variant_id}_{i}",
            notification_id=f"n_{variant_id}_{i}",
            sent_at=sent_at,
            opened=i < opens,
            response_time_minutes=5 if i < opens else None,
        )
        for i in range(n)
    ]


@pytest.mark.parametrize(
    "definition",
    [
        _definition(weights=(50, 47)),
        _definition(control=False),
        _definition(control=True, treatment_is_control=True),
        _definition(end_date=START - timedelta(days=1)),
        _definition(minimum_sample_size=20),
        _definition(confidence_level=80),
        _definition(weights=(-10, 110)),
    ],
)
def test_invalid_definitions_rejected(definition):
    experiments = _experiments()
    with pytest.raises(ValidationError):
        experiments.create_test(definition)
    assert experiments.get_all_tests() == []


def test_create_test_keeps_status_and_normalizes():
    experiments = _experiments()
    definition = _definition(
        test_id="",
        status="draft",
        primary_metric="click_rate",
        target_audience=TargetAudience(device_classes=["mobile"]),
    )
    test_id = experiments.create_test(definition)
    test = experiments.get_test(test_id)
    assert test_id.startswith("test_")
    assert test.status == TestStatus.DRAFT
    assert test.primary_metric == PrimaryMetric.CLICK_RATE
    assert test.target_audience.device_classes == [DeviceClass.MOBILE]
    assert test.created_at == START
    assert experiments.get_active_tests() == []


def test_duplicate_test_id_rejected():
    experiments = _experiments()
    experiments.create_test(_definition())
    with pytest.raises(ValidationError):
        experiments.create_test(_definition())


def test_apply_override():
    variant = _definition().variants[1]
    merged = apply_override(BASE, variant, "new_id")
    assert merged.id == "new_id"
    assert merged.title == "You are on a roll"
    assert merged.priority == NotificationPriority.HIGH
    assert merged.body == BASE.body
    merged.data["x"] = 1
    assert "x" not in BASE.data


def test_send_test_notification_records_result():
    transport = RecordingTransport()
    experiments = _experiments(transport)
    experiments.create_test(_definition())

    notification_id = experiments.send_test_notification(BASE, "exp_1", "user_42")
    variant = experiments.assign_variant("exp_1", "user_42")

    assert notification_id.startswith(f"test_exp_1_{variant.id}_")
    delivered = transport.delivered[0]
    assert delivered.id == notification_id
    assert delivered.data["ab_test_id"] == "exp_1"
    assert delivered.data["ab_variant_id"] == variant.id
    assert delivered.data["source"] == "campaign"
    assert len(experiments.results) == 1
    assert experiments.results[0].variant_id == variant.id


def test_send_skipped_for_non_running_test():
    experiments = _experiments()
    experiments.create_test(_definition(status=TestStatus.PAUSED))
    assert experiments.send_test_notification(BASE, "exp_1", "user_42") is None
    assert experiments.send_test_notification(BASE, "missing", "user_42") is None
    assert experiments.results == []


def test_send_failure_records_nothing():
    experiments = _experiments(RecordingTransport(fail=True))
    experiments.create_test(_definition())
    assert experiments.send_test_notification(BASE, "exp_1", "user_42") is None
    assert experiments.results == []


def test_record_outcome_click_implies_open():
    experiments = _experiments()
    experiments.create_test(_definition())
    notification_id = experiments.send_test_notification(BASE, "exp_1", "user_42")

    clicked_at = START + timedelta(minutes=12)
    assert experiments.record_outcome("exp_1", notification_id, "user_42", OutcomeKind.CLICKED, clicked_at)
    result = experiments.results[0]
    assert result.clicked and result.opened
    assert result.opened_at == result.clicked_at == clicked_at
    assert result.response_time_minutes == 12

    assert experiments.record_outcome("exp_1", notification_id, "user_42", "converted", clicked_at)
    assert result.converted
    assert not experiments.record_outcome("exp_1", "unknown", "user_42", OutcomeKind.OPENED)


def test_analysis_significant_winner():
    test = _definition()
    results = _results("control", 100, 30) + _results("treatment", 100, 50)
    analytics = analyze_test(test, results)

    control, treatment = analytics.variants
    assert control.metrics.open_rate == 30.0
    assert treatment.metrics.open_rate == 50.0
    assert treatment.metrics.engagement_score == pytest.approx(0.2)
    assert control.metrics.avg_response_time_minutes == 5.0
    assert analytics.sample_size == 200
    assert analytics.has_statistical_significance
    assert analytics.winner.variant_id == "treatment"
    assert analytics.winner.improvement == pytest.approx(200 / 3)
    assert treatment.p_value < 0.01
    assert control.p_value is None
    assert analytics.srm_passed
    assert any("outperformed control" in r for r in analytics.recommendations)


def test_analysis_needs_sample_and_difference():
    test = _definition()
    small = analyze_test(test, _results("control", 40, 10) + _results("treatment", 40, 30))
    assert not small.has_statistical_significance
    assert any("Increase sample size - need 60 more participants" == r for r in small.recommendations)

    close = analyze_test(test, _results("control", 150, 45) + _results("treatment", 150, 55))
    assert not close.has_statistical_significance


def test_no_winner_when_control_best():
    analytics = analyze_test(_definition(), _results("control", 100, 60) + _results("treatment", 100, 40))
    assert analytics.winner is None
    assert "No clear winner detected - consider running the test longer" in analytics.recommendations


def test_winner_improvement_none_when_control_zero():
    analytics = analyze_test(_definition(), _results("control", 10, 0) + _results("treatment", 10, 5))
    winner = determine_winner(analytics.variants, PrimaryMetric.OPEN_RATE)
    assert winner.variant_id == "treatment"
    assert winner.improvement is None


def test_tie_with_control_has_no_winner_regardless_of_order():
    test = ABTest(
        id="exp_1",
        name="Order test",
        variants=[
            ABTestVariant(id="challenger", name="Challenger", weight=50),
            ABTestVariant(id="control", name="Control", weight=50, is_control=True),
        ],
        start_date=START,
        status=TestStatus.RUNNING,
    )
    analytics = analyze_test(test, _results("challenger", 100, 40) + _results("control", 100, 40))
    assert analytics.winner is None
    assert determine_winner(analytics.variants, PrimaryMetric.OPEN_RATE) is None
    assert not any("outperformed" in r for r in analytics.recommendations)

    better = analyze_test(test, _results("challenger", 100, 50) + _results("control", 100, 40))
    assert better.winner.variant_id == "challenger"
    assert better.winner.improvement == pytest.approx(25.0)


def test_aware_test_dates_stored_as_local_naive():
    experiments = _experiments()
    start = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)
    test_id = experiments.create_test(_definition(end_date=start + timedelta(days=7)))
    test = experiments.get_test(test_id)
    assert test.end_date.tzinfo is None
    assert test.end_date == (start + timedelta(days=7)).astimezone().replace(tzinfo=None)
    assert experiments.check_completion(test.end_date + timedelta(hours=1)) == [test_id]


def test_analysis_flags_sample_ratio_mismatch():
    analytics = analyze_test(_definition(), _results("control", 500, 100) + _results("treatment", 100, 20))
    assert not analytics.srm_passed
    assert any(r.startswith("Sample ratio mismatch") for r in analytics.recommendations)


def test_analysis_empty_and_unknown():
    experiments = _experiments()
    experiments.create_test(_definition())
    analytics = experiments.analyze("exp_1")
    assert analytics.sample_size == 0
    assert all(v.metrics.open_rate == 0.0 for v in analytics.variants)
    assert analytics.to_dict()["winner"] is None
    with pytest.raises(NotFoundError):
        experiments.analyze("missing")


def test_check_completion():
    experiments = _experiments()
    experiments.create_test(_definition("exp_1"))
    experiments.create_test(_definition("exp_2", end_date=START + timedelta(days=7)))
    experiments.create_test(_definition("exp_3"))
    experiments.results.extend(_results("control", 100, 30) + _results("treatment", 100, 50))

    assert experiments.check_completion(START + timedelta(days=1)) == ["exp_1"]
    assert experiments.check_completion(START + timedelta(days=7)) == ["exp_2"]
    assert experiments.get_test("exp_3").status == TestStatus.RUNNING


def test_status_update_and_delete():
    experiments = _experiments()
    experiments.create_test(_definition())
    experiments.results.extend(_results("control", 3, 1))

    assert experiments.update_test_status("exp_1", TestStatus.PAUSED)
    assert experiments.get_test("exp_1").status == TestStatus.PAUSED
    assert not experiments.update_test_status("missing", TestStatus.RUNNING)

    assert experiments.delete_test("exp_1")
    assert experiments.results == []
    assert not experiments.delete_test("exp_1")


def test_purge_old_results_and_completed_tests():
    experiments = _experiments()
    experiments.create_test(_definition("old", status=TestStatus.COMPLETED))
    experiments.create_test(_definition("live"))
    experiments.results.extend(_results("control", 2, 0, test_id="old"))
    experiments.results.extend(_results("control", 2, 0, test_id="live", sent_at=START + timedelta(days=100)))

    summary = experiments.purge(START + timedelta(days=120), retention_months=3)
    assert summary == {"results_removed": 2, "tests_removed": 1}
    assert [t.id for t in experiments.get_all_tests()] == ["live"]
