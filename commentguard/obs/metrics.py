"""Central registry for Prometheus metrics used by the moderation pipeline."""

from __future__ import annotations

from typing import Iterable

from prometheus_client import Counter, Histogram

MODERATION_DECISIONS_TOTAL = Counter(
    "commentguard_moderation_decisions_total",
    "Moderation verdicts by status and deciding stage",
    ["status", "source"],
)

MODERATION_RULE_FLAGS_TOTAL = Counter(
    "commentguard_moderation_rule_flags_total",
    "Rule detector flags raised on submitted comments",
    ["flag"],
)

CLASSIFIER_CALLS_TOTAL = Counter(
    "commentguard_classifier_calls_total",
    "Content safety classifier calls by outcome",
    ["outcome"],
)

CLASSIFIER_FAILURES_TOTAL = Counter(
    "commentguard_classifier_failures_total",
    "Content safety classifier failures by reason",
    ["reason"],
)

CLASSIFIER_LATENCY_SECONDS = Histogram(
    "commentguard_classifier_latency_seconds",
    "Content safety classifier latency in seconds",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 3.0, 5.0),
)

COMMENT_TREE_BUILD_TOTAL = Counter(
    "commentguard_comment_tree_build_total",
    "Comment trees assembled for display",
)


def observe_decision(status: str, source: str, flags: Iterable[str]) -> None:
    MODERATION_DECISIONS_TOTAL.labels(status=status, source=source).inc()
    for flag in flags:
        MODERATION_RULE_FLAGS_TOTAL.labels(flag=flag).inc()


def observe_classifier(outcome: str, elapsed_seconds: float | None = None) -> None:
    CLASSIFIER_CALLS_TOTAL.labels(outcome=outcome).inc()
    if elapsed_seconds is not None:
        CLASSIFIER_LATENCY_SECONDS.observe(elapsed_seconds)


def inc_classifier_failure(reason: str) -> None:
    CLASSIFIER_FAILURES_TOTAL.labels(reason=reason).inc()


def inc_comment_tree_built() -> None:
    COMMENT_TREE_BUILD_TOTAL.inc()
