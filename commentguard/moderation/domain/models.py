"""Records and value objects shared by the moderation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum, IntEnum
from typing import Any, Iterable, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

MAX_COMMENT_LENGTH = 2000


class CommentStatus(str, Enum):
    """Lifecycle states of a comment."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    DELETED = "deleted"


class ModerationSource(str, Enum):
    """Pipeline stage that produced a comment's status."""

    RULES = "rules"
    AI = "ai"
    MANUAL = "manual"
    FALLBACK = "fallback"


class TrustLevel(IntEnum):
    """Trust tiers derived from a user's comment history."""

    NEW = 0
    BASIC = 1
    TRUSTED = 2
    VERIFIED = 3

    @property
    def description(self) -> str:
        return _TRUST_DESCRIPTIONS[self]


_TRUST_DESCRIPTIONS = {
    TrustLevel.NEW: "New User",
    TrustLevel.BASIC: "Basic User",
    TrustLevel.TRUSTED: "Trusted User",
    TrustLevel.VERIFIED: "Verified User",
}


class CommentAuthor(BaseModel):
    """Author summary rendered next to a comment."""

    github_login: str
    avatar_url: Optional[str] = None
    github_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class Comment(BaseModel):
    """Represents a comment on a post."""

    id: int
    post_slug: str
    parent_id: Optional[int] = None
    user_id: int
    content: str
    status: CommentStatus = CommentStatus.PENDING
    moderation_source: Optional[ModerationSource] = None
    ai_score: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    ai_label: Optional[str] = None
    rule_score: int = Field(default=0, ge=0)
    rule_flags: List[str] = Field(default_factory=list)
    is_pinned: bool = False
    pinned_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CommentWithUser(Comment):
    """Comment joined with its author summary."""

    user: CommentAuthor


class CommentTree(CommentWithUser):
    """Approved comment with its approved replies."""

    children: List["CommentTree"] = Field(default_factory=list)


CommentTree.model_rebuild()


class CommentSubmission(BaseModel):
    """Inbound comment as accepted from the request layer."""

    post: str = Field(min_length=1)
    parent_id: Optional[int] = Field(default=None, gt=0)
    content: str = Field(min_length=1, max_length=MAX_COMMENT_LENGTH)
    challenge_token: Optional[str] = None


@dataclass(frozen=True, slots=True)
class UserCommentStats:
    """Projection of a user's comment history used for trust decisions."""

    approved_count: int = 0
    has_recent_rejections: bool = False
    is_manually_trusted: bool = False

    @staticmethod
    def from_history(
        history: Iterable[Comment],
        *,
        now: datetime | None = None,
        window: timedelta = timedelta(days=30),
        manually_trusted: bool = False,
    ) -> "UserCommentStats":
        """Count approvals and look for rejections inside the trailing window."""

        cutoff = (now or datetime.now(timezone.utc)) - window
        approved = 0
        recent_rejection = False
        for comment in history:
            if comment.status == CommentStatus.APPROVED:
                approved += 1
            elif comment.status == CommentStatus.REJECTED:
                created_at = comment.created_at
                if created_at.tzinfo is None:
                    created_at = created_at.replace(tzinfo=timezone.utc)
                if created_at > cutoff:
                    recent_rejection = True
        return UserCommentStats(
            approved_count=approved,
            has_recent_rejections=recent_rejection,
            is_manually_trusted=manually_trusted,
        )


@dataclass(frozen=True, slots=True)
class RuleCheckResult:
    """Aggregate output of the rule detectors."""

    rule_score: int
    rule_flags: tuple[str, ...]
    hard_rule_triggered: bool


@dataclass(frozen=True, slots=True)
class AICheckResult:
    """Normalized content-safety classifier outcome."""

    ai_score: float
    ai_label: str
    success: bool
    error: str | None = None
    categories: Mapping[str, float] = field(
        default_factory=lambda: {"spam": 0.0, "toxic": 0.0, "inappropriate": 0.0}
    )

    @staticmethod
    def failure(error: str) -> "AICheckResult":
        return AICheckResult(ai_score=0.0, ai_label="unknown", success=False, error=error)


@dataclass(frozen=True, slots=True)
class ModerationResult:
    """Verdict the caller persists alongside the new comment row."""

    status: CommentStatus
    source: ModerationSource
    rule_score: int
    rule_flags: tuple[str, ...]
    ai_score: float | None = None
    ai_label: str | None = None

    def to_record(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "moderation_source": self.source.value,
            "rule_score": self.rule_score,
            "rule_flags": list(self.rule_flags),
            "ai_score": self.ai_score,
            "ai_label": self.ai_label,
        }
