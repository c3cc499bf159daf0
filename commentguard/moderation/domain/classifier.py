"""Content-safety classifier adapter and heuristic fallback scorer."""

from __future__ import annotations

import asyncio
import json
import logging
import math
import re
import time
from dataclasses import dataclass
from typing import Any, Mapping, Protocol, Union

import httpx

from commentguard.moderation.domain.models import AICheckResult
from commentguard.obs import metrics
from commentguard.settings import settings

logger = logging.getLogger(__name__)

HARMFUL_LABELS = ("toxic", "spam", "hate", "harassment", "violence", "sexual")

ERROR_NOT_CONFIGURED = "AI service not configured"
ERROR_TIMEOUT = "AI service timeout"
ERROR_INVALID_FORMAT = "Invalid AI response format"
ERROR_PARSE = "Failed to parse AI response"

MODERATION_PROMPT = """You are a content moderation assistant. Analyse the blog comment below and rate how likely it contains:
1. spam: advertising, promotion, meaningless or repeated content
2. toxic: insults, attacks, hate speech, harassment
3. inappropriate: sexual content, violence, illegal content

Comment:
\"\"\"
{content}
\"\"\"

Reply with scores between 0 and 1 (higher means more likely to violate), strictly in this JSON format:
{{"spam": 0.0, "toxic": 0.0, "inappropriate": 0.0, "overall": 0.0, "label": "safe"}}

label must be one of: safe, spam, toxic, inappropriate
overall must be the highest of the three scores
Return only the JSON object, nothing else."""

_JSON_BLOCK_RE = re.compile(r"\{[\s\S]*\}")
_SCORE_FIELDS = ("spam", "toxic", "inappropriate", "overall")


class ClassifierHandle(Protocol):
    """Outbound contract to the external content classification service."""

    async def run(self, prompt: str, *, max_tokens: int, temperature: float) -> Any:
        ...


class ClassifierError(RuntimeError):
    """Raised by classifier clients when the service reports a failure."""


@dataclass(frozen=True)
class ParseSuccess:
    spam: float
    toxic: float
    inappropriate: float
    overall: float
    label: str


@dataclass(frozen=True)
class ParseFailure:
    reason: str


ParseResult = Union[ParseSuccess, ParseFailure]


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, float(value)))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def parse_classifier_response(raw: str) -> ParseResult:
    """Strictly validate the classifier's JSON reply before anything trusts it."""

    match = _JSON_BLOCK_RE.search(raw)
    if not match:
        return ParseFailure("no JSON object in response")
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as exc:
        return ParseFailure(f"invalid JSON: {exc.msg}")
    if not isinstance(data, Mapping):
        return ParseFailure("JSON payload is not an object")
    for name in _SCORE_FIELDS:
        if not _is_number(data.get(name)):
            return ParseFailure(f"missing or non-numeric field: {name}")
    label = data.get("label")
    if not isinstance(label, str):
        return ParseFailure("missing or non-string field: label")
    return ParseSuccess(
        spam=_clamp(data["spam"]),
        toxic=_clamp(data["toxic"]),
        inappropriate=_clamp(data["inappropriate"]),
        overall=_clamp(data["overall"]),
        label=label,
    )


def _response_text(response: Any) -> str | None:
    if isinstance(response, str):
        return response
    if isinstance(response, Mapping) and isinstance(response.get("response"), str):
        return response["response"]
    return None


def _fail(reason: str, error: str) -> AICheckResult:
    metrics.inc_classifier_failure(reason)
    logger.warning("content classifier unavailable", extra={"reason": reason, "error": error})
    return AICheckResult.failure(error)


async def check_content_safety(
    content: str,
    classifier: ClassifierHandle | None,
    *,
    timeout: float | None = None,
    max_tokens: int | None = None,
    temperature: float | None = None,
) -> AICheckResult:
    """Score ``content`` with the external classifier; failures are returned, never raised."""

    if classifier is None:
        return _fail("not_configured", ERROR_NOT_CONFIGURED)

    limit = timeout if timeout is not None else settings.moderation_classifier_timeout_seconds
    prompt = MODERATION_PROMPT.format(content=content)
    start = time.perf_counter()
    try:
        response = await asyncio.wait_for(
            classifier.run(
                prompt,
                max_tokens=max_tokens if max_tokens is not None else settings.moderation_classifier_max_tokens,
                temperature=temperature if temperature is not None else settings.moderation_classifier_temperature,
            ),
            timeout=limit,
        )
    except (asyncio.TimeoutError, httpx.TimeoutException):
        metrics.observe_classifier("timeout", time.perf_counter() - start)
        return _fail("timeout", ERROR_TIMEOUT)
    except Exception as exc:  # any transport or client failure degrades to manual review
        metrics.observe_classifier("error", time.perf_counter() - start)
        return _fail("transport", f"AI service error: {exc}")
    elapsed = time.perf_counter() - start

    text = _response_text(response)
    if text is None:
        metrics.observe_classifier("invalid", elapsed)
        return _fail("invalid_format", ERROR_INVALID_FORMAT)
    parsed = parse_classifier_response(text)
    if isinstance(parsed, ParseFailure):
        logger.debug("classifier reply rejected: %s", parsed.reason)
        metrics.observe_classifier("invalid", elapsed)
        return _fail("parse", ERROR_PARSE)
    metrics.observe_classifier("ok", elapsed)
    return AICheckResult(
        ai_score=parsed.overall,
        ai_label=parsed.label,
        success=True,
        categories={"spam": parsed.spam, "toxic": parsed.toxic, "inappropriate": parsed.inappropriate},
    )


@dataclass(frozen=True)
class _HeuristicPattern:
    pattern: re.Pattern[str]
    weight: float


_HEURISTIC_PATTERNS = (
    _HeuristicPattern(re.compile(r"\b(buy|sell|discount|offer|free|click)\b", re.IGNORECASE), 0.1),
    _HeuristicPattern(re.compile(r"\b(http|www)\b", re.IGNORECASE), 0.05),
    _HeuristicPattern(re.compile(r"[!?]{3,}"), 0.1),
    _HeuristicPattern(re.compile(r"\$\d+"), 0.15),
    _HeuristicPattern(re.compile(r"\b(urgent|limited|act now|don't miss)\b", re.IGNORECASE), 0.2),
)
_HEURISTIC_PATTERN_CAP = 0.3
_HEURISTIC_SUSPICIOUS_ABOVE = 0.5


def check_with_heuristics(content: str) -> AICheckResult:
    """Keyword scoring used in place of the classifier when none is configured."""

    score = 0.0
    for item in _HEURISTIC_PATTERNS:
        hits = len(item.pattern.findall(content))
        if hits:
            score += min(hits * item.weight, _HEURISTIC_PATTERN_CAP)
    score = min(score, 1.0)
    label = "suspicious" if score > _HEURISTIC_SUSPICIOUS_ABOVE else "likely_safe"
    return AICheckResult(ai_score=score, ai_label=label, success=True)


@dataclass
class WorkersAIClassifier(ClassifierHandle):
    """Classifier backed by a Workers AI style text-generation REST endpoint."""

    http: httpx.AsyncClient
    account_id: str
    api_token: str
    model: str = "@cf/meta/llama-3.2-1b-instruct"
    base_url: str = "https://api.cloudflare.com/client/v4"

    def endpoint(self) -> str:
        return f"{self.base_url.rstrip('/')}/accounts/{self.account_id}/ai/run/{self.model}"

    async def run(self, prompt: str, *, max_tokens: int, temperature: float) -> Any:
        response = await self.http.post(
            self.endpoint(),
            headers={"Authorization": f"Bearer {self.api_token}"},
            json={"prompt": prompt, "max_tokens": max_tokens, "temperature": temperature},
        )
        response.raise_for_status()
        envelope = response.json()
        if isinstance(envelope, Mapping) and "result" in envelope:
            if envelope.get("success") is False:
                raise ClassifierError(f"classifier reported failure: {envelope.get('errors')}")
            return envelope["result"]
        return envelope
