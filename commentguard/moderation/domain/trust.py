"""Trust level utilities for moderation."""

from __future__ import annotations

from commentguard.moderation.domain.models import TrustLevel, UserCommentStats
from commentguard.settings import PROD_ENVIRONMENTS

AUTO_APPROVE_MIN_LEVEL = TrustLevel.TRUSTED
CHALLENGE_EXEMPT_MIN_LEVEL = TrustLevel.TRUSTED


def calculate_trust_level(stats: UserCommentStats) -> TrustLevel:
    """Map comment history statistics to a trust level.

    Evaluated top to bottom, first match wins:

    - manually trusted by an admin: VERIFIED (3)
    - no approved comments: NEW (0)
    - exactly one approved comment: BASIC (1)
    - two or more approved and no recent rejections: TRUSTED (2)
    - two or more approved with a recent rejection: BASIC (1)
    """

    if stats.is_manually_trusted:
        return TrustLevel.VERIFIED
    if stats.approved_count <= 0:
        return TrustLevel.NEW
    if stats.approved_count == 1:
        return TrustLevel.BASIC
    if not stats.has_recent_rejections:
        return TrustLevel.TRUSTED
    return TrustLevel.BASIC


def can_auto_approve(level: int) -> bool:
    return level >= AUTO_APPROVE_MIN_LEVEL


def calculate_trust_level_from_db(
    approved_count: int,
    has_recent_rejections: bool,
    current_level: int,
) -> TrustLevel:
    """Recompute from stored values; a stored level of 3 is treated as manual trust."""

    return calculate_trust_level(
        UserCommentStats(
            approved_count=approved_count,
            has_recent_rejections=has_recent_rejections,
            is_manually_trusted=current_level == TrustLevel.VERIFIED,
        )
    )


def describe_trust_level(level: int) -> str:
    try:
        return TrustLevel(level).description
    except ValueError:
        return "Unknown"


def requires_challenge(environment: str, level: int) -> bool:
    """Whether a human-verification challenge must precede moderation."""

    if environment.lower() in PROD_ENVIRONMENTS:
        return level < CHALLENGE_EXEMPT_MIN_LEVEL
    return False
