"""Loading helpers for moderation policy files (YAML or JSON)."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping

import yaml

logger = logging.getLogger(__name__)


def read_policy_file(path: str | Path, *, kind: str) -> Mapping[str, Any] | None:
    """Return the parsed mapping stored at ``path`` or ``None`` when unusable."""

    try:
        raw = Path(path).read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.warning("moderation %s file missing at %s; using defaults", kind, path)
        return None
    data = _parse(raw, kind=kind)
    if not isinstance(data, Mapping):
        logger.warning("moderation %s file invalid at %s; falling back to defaults", kind, path)
        return None
    return data


def _parse(raw: str, *, kind: str) -> Any:
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        logger.warning("failed to parse moderation %s YAML: %s", kind, exc)
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return None
