"""Tests for deterministic variant assignment and audience targeting."""
from datetime import datetime

import pytest

from src.notification_engine.assignment import (
    assign_users,
    assign_variant,
    hash_to_bucket,
    in_target_audience,
    pick_variant,
    string_hash,
)
from src.notification_engine.schema import (
    ABTest,
    ABTestVariant,
    DeviceClass,
    TargetAudience,
    TestStatus,
    UserProfile,
)


def _test(weights=(50, 50), status=TestStatus.RUNNING, audience=None):
    variants = [
        ABTestVariant(id=f"v{i}", name=f"Variant {i}", weight=w, is_control=(i == 0))
        for i, w in enumerate(weights)
    ]
    return ABTest(
        id="exp_1",
        name="Copy test",
        variants=variants,
        start_date=datetime(2025, 1, 1),
        status=status,
        target_audience=audience or TargetAudience(),
    )


def _profile(user_id="u1", **kwargs):
    defaults = dict(engagement_score=0.5, device_class=DeviceClass.MOBILE, timezone="UTC", segments=[])
    defaults.update(kwargs)
    return UserProfile(user_id=user_id, **defaults)


def test_string_hash_known_values():
    """31-polynomial over UTF-16 code units, signed 32-bit."""
    assert string_hash("") == 0
    assert string_hash("a") == 97
    assert string_hash("ab") == 97 * 31 + 98
    # overflows into the negative range
    assert string_hash("polygenelubricants") == -2147483648
    assert hash_to_bucket("polygene", "lubricants") == 48
    assert string_hash("hello world") == 1794106052


def test_bucket_deterministic_and_in_range():
    b1 = hash_to_bucket("user_001", "exp_1")
    b2 = hash_to_bucket("user_001", "exp_1")
    assert b1 == b2
    assert 0 <= b1 <= 99


def test_pick_variant_cumulative_walk():
    variants = _test(weights=(30, 70)).variants
    assert pick_variant(variants, 0).id == "v0"
    assert pick_variant(variants, 30).id == "v0"
    assert pick_variant(variants, 31).id == "v1"
    assert pick_variant(variants, 99).id == "v1"


def test_pick_variant_falls_back_to_control():
    variants = [
        ABTestVariant(id="a", name="A", weight=10),
        ABTestVariant(id="ctrl", name="Control", weight=10, is_control=True),
    ]
    assert pick_variant(variants, 50).id == "ctrl"


def test_assignment_only_for_running_tests():
    assert assign_variant(_test(status=TestStatus.DRAFT), _profile()) is None
    assert assign_variant(_test(status=TestStatus.PAUSED), _profile()) is None
    assert assign_variant(_test(), _profile()) is not None


def test_audience_filters_are_and_combined():
    audience = TargetAudience(
        min_engagement_score=0.3,
        device_classes=[DeviceClass.MOBILE],
        user_segments=["runners", "cyclists"],
    )
    assert in_target_audience(_profile(segments=["cyclists"]), audience)
    assert not in_target_audience(_profile(engagement_score=0.2, segments=["cyclists"]), audience)
    assert not in_target_audience(_profile(device_class=DeviceClass.DESKTOP, segments=["runners"]), audience)
    assert not in_target_audience(_profile(segments=["swimmers"]), audience)
    assert in_target_audience(_profile(), TargetAudience())


def test_audience_timezone_and_max_score():
    audience = TargetAudience(max_engagement_score=0.8, timezones=["Europe/Berlin"])
    assert in_target_audience(_profile(timezone="Europe/Berlin"), audience)
    assert not in_target_audience(_profile(timezone="UTC"), audience)
    assert not in_target_audience(_profile(timezone="Europe/Berlin", engagement_score=0.9), audience)


@pytest.mark.parametrize("weights", [(50, 50), (20, 30, 50)])
def test_assignment_distribution_matches_weights(weights):
    """Over 10,000 users each variant gets its weight within 5 points."""
    test = _test(weights=weights)
    assignments = assign_users(test, [f"user_{i}" for i in range(10000)])
    assert len(assignments) == 10000
    for variant in test.variants:
        share = sum(1 for v in assignments.values() if v == variant.id) / 10000
        assert abs(share - variant.weight / 100) <= 0.05
