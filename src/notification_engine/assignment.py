"""
Deterministic variant assignment for notification A/B tests.

Hashes (user_id + test_id) to a bucket in [0, 99] and walks the test's
variants in definition order until the cumulative weight reaches the
bucket. No per-user assignment table is stored: the same user always lands
in the same variant for as long as the test exists.

The hash is the 31-polynomial over UTF-16 code units truncated to a signed
32-bit integer. Changing it would move every existing user to a different
variant, so it must stay exactly as is.
"""

import logging
from collections import Counter
from typing import Dict, Iterable, List, Optional

from .schema import ABTest, ABTestVariant, TargetAudience, TestStatus, UserProfile

logger = logging.getLogger(__name__)


def string_hash(value: str) -> int:
    """Signed 32-bit ``h = h*31 + code_unit`` over the UTF-16 code units of ``value``."""
    h = 0
    data = value.encode("utf-16-le")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = (h * 31 + unit) & 0xFFFFFFFF
    return h - 0x100000000 if h & 0x80000000 else h


def hash_to_bucket(user_id: str, test_id: str) -> int:
    """
    Deterministic bucket in [0, 99].

    Same user + test always maps to the same bucket.
    """
    return abs(string_hash(user_id + test_id)) % 100


def pick_variant(variants: List[ABTestVariant], bucket: int) -> Optional[ABTestVariant]:
    """First variant whose cumulative weight reaches ``bucket``; control (or the first) as fallback."""
    cumulative = 0.0
    for variant in variants:
        cumulative += variant.weight
        if bucket <= cumulative:
            return variant
    fallback = next((v for v in variants if v.is_control), None)
    return fallback or (variants[0] if variants else None)


def in_target_audience(profile: UserProfile, audience: TargetAudience) -> bool:
    """All configured filters must match; filters left as None are skipped."""
    if audience.min_engagement_score is not None and profile.engagement_score < audience.min_engagement_score:
        return False
    if audience.max_engagement_score is not None and profile.engagement_score > audience.max_engagement_score:
        return False
    if audience.device_classes is not None and profile.device_class not in audience.device_classes:
        return False
    if audience.timezones is not None and profile.timezone not in audience.timezones:
        return False
    if audience.user_segments is not None and not any(s in profile.segments for s in audience.user_segments):
        return False
    return True


def assign_variant(test: ABTest, profile: UserProfile) -> Optional[ABTestVariant]:
    """
    Variant for this user, or None.

    Args:
        test: Experiment definition
        profile: Targeting attributes of the user

    Returns:
        None when the test is not running or the user is outside its audience
    """
    if test.status != TestStatus.RUNNING:
        return None
    if not in_target_audience(profile, test.target_audience):
        return None
    return pick_variant(test.variants, hash_to_bucket(profile.user_id, test.id))


def assign_users(test: ABTest, user_ids: Iterable[str]) -> Dict[str, str]:
    """
    Bucket many users at once, ignoring status and audience.

    Returns:
        Dict user_id -> variant_id
    """
    assignments = {}
    for user_id in user_ids:
        variant = pick_variant(test.variants, hash_to_bucket(user_id, test.id))
        if variant is not None:
            assignments[user_id] = variant.id

    counts = Counter(assignments.values())
    logger.info(
        f"Assignment complete: {len(assignments)} users -> "
        + ", ".join(f"{variant_id}={n}" for variant_id, n in sorted(counts.items()))
    )
    return assignments
