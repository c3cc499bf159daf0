"""Configuration helpers for moderation decision thresholds."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from commentguard.moderation.domain.policy_files import read_policy_file


@dataclass(frozen=True)
class DecisionThresholds:
    """Policy thresholds consulted by the decision matrix."""

    auto_approve_ai_max: float = 0.15
    auto_reject_ai_min: float = 0.85
    combined_reject_ai_min: float = 0.65
    combined_reject_rule_min: int = 3
    auto_approve_trust_min: int = 2

    @staticmethod
    def default() -> "DecisionThresholds":
        return DecisionThresholds()

    @staticmethod
    def from_mapping(config: Mapping[str, Any]) -> "DecisionThresholds":
        base = DecisionThresholds.default()
        approve_cfg = config.get("auto_approve") or {}
        reject_cfg = config.get("auto_reject") or {}
        combined_cfg = config.get("combined_reject") or {}
        return DecisionThresholds(
            auto_approve_ai_max=float(approve_cfg.get("ai_max", base.auto_approve_ai_max)),
            auto_approve_trust_min=int(approve_cfg.get("trust_min", base.auto_approve_trust_min)),
            auto_reject_ai_min=float(reject_cfg.get("ai_min", base.auto_reject_ai_min)),
            combined_reject_ai_min=float(combined_cfg.get("ai_min", base.combined_reject_ai_min)),
            combined_reject_rule_min=int(combined_cfg.get("rule_min", base.combined_reject_rule_min)),
        )


def load_thresholds(path: str | Path | None) -> DecisionThresholds:
    """Load thresholds from a YAML (or JSON) file."""

    if not path:
        return DecisionThresholds.default()
    data = read_policy_file(path, kind="thresholds")
    if data is None:
        return DecisionThresholds.default()
    return DecisionThresholds.from_mapping(data)
