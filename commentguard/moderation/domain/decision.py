"""Decision matrix combining rule, classifier and trust signals."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from commentguard.moderation.domain.models import (
    AICheckResult,
    CommentStatus,
    ModerationResult,
    ModerationSource,
    RuleCheckResult,
)
from commentguard.moderation.domain.thresholds import DecisionThresholds


@dataclass(frozen=True)
class DecisionInputs:
    rules: RuleCheckResult
    ai: AICheckResult
    trust_level: int
    thresholds: DecisionThresholds


Predicate = Callable[[DecisionInputs], bool]


@dataclass(frozen=True)
class DecisionRule:
    """One row of the matrix: when ``predicate`` holds, emit ``status`` from ``source``."""

    name: str
    predicate: Predicate
    status: CommentStatus
    source: ModerationSource


def _hard_rules(ctx: DecisionInputs) -> bool:
    return ctx.rules.hard_rule_triggered


def _classifier_unavailable(ctx: DecisionInputs) -> bool:
    return not ctx.ai.success


def _trusted_clean(ctx: DecisionInputs) -> bool:
    return (
        ctx.trust_level >= ctx.thresholds.auto_approve_trust_min
        and ctx.rules.rule_score == 0
        and ctx.ai.ai_score <= ctx.thresholds.auto_approve_ai_max
    )


def _high_ai_score(ctx: DecisionInputs) -> bool:
    return ctx.ai.ai_score >= ctx.thresholds.auto_reject_ai_min


def _combined_signals(ctx: DecisionInputs) -> bool:
    return (
        ctx.rules.rule_score >= ctx.thresholds.combined_reject_rule_min
        and ctx.ai.ai_score >= ctx.thresholds.combined_reject_ai_min
    )


def _always(ctx: DecisionInputs) -> bool:  # noqa: ARG001 - matrix signature
    return True


# Evaluated in order, first match wins. high_ai_score stays ahead of
# combined_signals.
DECISION_RULES: tuple[DecisionRule, ...] = (
    DecisionRule("hard_rules", _hard_rules, CommentStatus.REJECTED, ModerationSource.RULES),
    DecisionRule("classifier_unavailable", _classifier_unavailable, CommentStatus.PENDING, ModerationSource.FALLBACK),
    DecisionRule("trusted_clean", _trusted_clean, CommentStatus.APPROVED, ModerationSource.AI),
    DecisionRule("high_ai_score", _high_ai_score, CommentStatus.REJECTED, ModerationSource.AI),
    DecisionRule("combined_signals", _combined_signals, CommentStatus.REJECTED, ModerationSource.AI),
    DecisionRule("manual_review", _always, CommentStatus.PENDING, ModerationSource.AI),
)


def match_rule(
    rule_result: RuleCheckResult,
    ai_result: AICheckResult,
    trust_level: int,
    thresholds: DecisionThresholds | None = None,
) -> DecisionRule:
    ctx = DecisionInputs(
        rules=rule_result,
        ai=ai_result,
        trust_level=int(trust_level),
        thresholds=thresholds or DecisionThresholds.default(),
    )
    for rule in DECISION_RULES:
        if rule.predicate(ctx):
            return rule
    return DECISION_RULES[-1]


def make_decision(
    rule_result: RuleCheckResult,
    ai_result: AICheckResult,
    trust_level: int,
    thresholds: DecisionThresholds | None = None,
) -> ModerationResult:
    """Produce the final verdict; total and side-effect free."""

    rule = match_rule(rule_result, ai_result, trust_level, thresholds)
    return ModerationResult(
        status=rule.status,
        source=rule.source,
        rule_score=rule_result.rule_score,
        rule_flags=rule_result.rule_flags,
        ai_score=ai_result.ai_score if ai_result.success else None,
        ai_label=ai_result.ai_label if ai_result.success else None,
    )
