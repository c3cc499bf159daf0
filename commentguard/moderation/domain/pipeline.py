"""Top-level moderation entry points composing rules, trust and classification."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Iterable, Sequence

from commentguard.comments.tree import build_display_tree
from commentguard.moderation.domain.classifier import (
    ClassifierHandle,
    check_content_safety,
    check_with_heuristics,
)
from commentguard.moderation.domain.decision import make_decision
from commentguard.moderation.domain.models import (
    Comment,
    CommentSubmission,
    CommentTree,
    CommentWithUser,
    ModerationResult,
    TrustLevel,
    UserCommentStats,
)
from commentguard.moderation.domain.rules import RuleCorpus, RuleDetector, collect_recent_contents
from commentguard.moderation.domain.thresholds import DecisionThresholds
from commentguard.moderation.domain.trust import calculate_trust_level, requires_challenge
from commentguard.obs import logging as obs_logging
from commentguard.obs import metrics
from commentguard.settings import settings

logger = logging.getLogger(__name__)


async def moderate(
    content: str,
    trust_level: int,
    recent_contents: Sequence[str] = (),
    classifier: ClassifierHandle | None = None,
    *,
    corpus: RuleCorpus | None = None,
    thresholds: DecisionThresholds | None = None,
    use_heuristics: bool | None = None,
    timeout: float | None = None,
) -> ModerationResult:
    """Run the full pipeline for one comment and return its verdict."""

    rule_result = RuleDetector(corpus).check(content, recent_contents)
    heuristics = settings.moderation_heuristic_fallback if use_heuristics is None else use_heuristics
    if classifier is None and heuristics:
        ai_result = check_with_heuristics(content)
    else:
        ai_result = await check_content_safety(content, classifier, timeout=timeout)
    result = make_decision(rule_result, ai_result, trust_level, thresholds)

    metrics.observe_decision(result.status.value, result.source.value, result.rule_flags)
    logger.info(
        "comment moderated",
        extra={
            "status": result.status.value,
            "source": result.source.value,
            "rule_score": result.rule_score,
            "rule_flags": list(result.rule_flags),
            "ai_score": result.ai_score,
            "trust_level": int(trust_level),
            "classifier_error": ai_result.error,
        },
    )
    return result


class CommentModerationService:
    """Bundles the injected collaborators behind a submission-level API."""

    def __init__(
        self,
        *,
        classifier: ClassifierHandle | None = None,
        corpus: RuleCorpus | None = None,
        thresholds: DecisionThresholds | None = None,
        timeout: float | None = None,
        use_heuristics: bool | None = None,
        rejection_window: timedelta | None = None,
        recent_limit: int | None = None,
    ) -> None:
        self.classifier = classifier
        self.corpus = corpus or RuleCorpus.default()
        self.thresholds = thresholds or DecisionThresholds.default()
        self.timeout = timeout
        self.use_heuristics = use_heuristics
        self.rejection_window = rejection_window or timedelta(days=settings.moderation_rejection_window_days)
        self.recent_limit = recent_limit if recent_limit is not None else settings.moderation_recent_contents_limit

    def stats_for(self, history: Iterable[Comment], *, manually_trusted: bool = False) -> UserCommentStats:
        return UserCommentStats.from_history(
            history,
            window=self.rejection_window,
            manually_trusted=manually_trusted,
        )

    async def evaluate(
        self,
        content: str,
        stats: UserCommentStats,
        recent_contents: Sequence[str] = (),
    ) -> ModerationResult:
        level = calculate_trust_level(stats)
        return await moderate(
            content,
            level,
            recent_contents,
            self.classifier,
            corpus=self.corpus,
            thresholds=self.thresholds,
            use_heuristics=self.use_heuristics,
            timeout=self.timeout,
        )

    async def evaluate_submission(
        self,
        submission: CommentSubmission,
        stats: UserCommentStats,
        history: Iterable[Comment] = (),
    ) -> ModerationResult:
        recent = collect_recent_contents(history, limit=self.recent_limit)
        tokens = obs_logging.bind_context(post_slug=submission.post)
        try:
            return await self.evaluate(submission.content, stats, recent)
        finally:
            obs_logging.reset_context(tokens)

    def trust_level(self, stats: UserCommentStats) -> TrustLevel:
        return calculate_trust_level(stats)

    def challenge_missing(self, submission: CommentSubmission, stats: UserCommentStats) -> bool:
        """True when the submission must carry a challenge token and has none.

        Verifying a supplied token is left to the request layer.
        """

        required = requires_challenge(settings.environment, self.trust_level(stats))
        return required and not submission.challenge_token

    def thread(self, comments: Sequence[CommentWithUser]) -> list[CommentTree]:
        return build_display_tree(comments)
