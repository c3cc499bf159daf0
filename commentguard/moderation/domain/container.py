"""Lightweight service container shared by moderation callers."""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from commentguard.moderation.domain.classifier import ClassifierHandle, WorkersAIClassifier
from commentguard.moderation.domain.pipeline import CommentModerationService
from commentguard.moderation.domain.rules import RuleCorpus, load_rule_corpus
from commentguard.moderation.domain.thresholds import DecisionThresholds, load_thresholds
from commentguard.obs import logging as obs_logging
from commentguard.settings import Settings, settings

logger = logging.getLogger(__name__)

_http_client: Optional[httpx.AsyncClient] = None
_service: Optional[CommentModerationService] = None


def _build_classifier(cfg: Settings) -> ClassifierHandle | None:
    global _http_client
    if not cfg.classifier_configured():
        log = logger.warning if cfg.is_prod() else logger.info
        log("content classifier not configured; heuristic fallback=%s", cfg.moderation_heuristic_fallback)
        return None
    # One pooled client per process; reconfiguring reuses it and aclose() releases it.
    if _http_client is None or _http_client.is_closed:
        _http_client = httpx.AsyncClient(timeout=cfg.moderation_classifier_timeout_seconds)
    return WorkersAIClassifier(
        http=_http_client,
        account_id=str(cfg.moderation_classifier_account_id),
        api_token=str(cfg.moderation_classifier_api_token),
        model=cfg.moderation_classifier_model,
        base_url=cfg.moderation_classifier_base_url,
    )


def configure(
    *,
    classifier: ClassifierHandle | None = None,
    corpus: RuleCorpus | None = None,
    thresholds: DecisionThresholds | None = None,
    cfg: Settings | None = None,
    init_logging: bool = False,
) -> CommentModerationService:
    """(Re)build the process-wide moderation service.

    Explicit collaborators win; anything omitted is built from settings.
    """

    global _service
    cfg = cfg or settings
    if init_logging:
        obs_logging.configure_logging()
    _service = CommentModerationService(
        classifier=classifier if classifier is not None else _build_classifier(cfg),
        corpus=corpus or load_rule_corpus(cfg.moderation_rules_path),
        thresholds=thresholds or load_thresholds(cfg.moderation_thresholds_path),
        timeout=cfg.moderation_classifier_timeout_seconds,
        use_heuristics=cfg.moderation_heuristic_fallback,
    )
    return _service


def get_service() -> CommentModerationService:
    if _service is None:
        return configure()
    return _service


async def aclose() -> None:
    """Release the HTTP client owned by the container, if any."""

    global _http_client, _service
    if _http_client is not None:
        await _http_client.aclose()
    _http_client = None
    _service = None
