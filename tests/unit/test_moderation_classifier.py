from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
import pytest
from prometheus_client import REGISTRY

from commentguard.moderation.domain.classifier import (
    ERROR_INVALID_FORMAT,
    ERROR_NOT_CONFIGURED,
    ERROR_PARSE,
    ERROR_TIMEOUT,
    ParseFailure,
    ParseSuccess,
    WorkersAIClassifier,
    check_content_safety,
    check_with_heuristics,
    parse_classifier_response,
)


class StubClassifier:
    def __init__(self, response: Any = None, *, delay: float = 0.0, error: Exception | None = None) -> None:
        self.response = response
        self.delay = delay
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def run(self, prompt: str, *, max_tokens: int, temperature: float) -> Any:
        self.calls.append({"prompt": prompt, "max_tokens": max_tokens, "temperature": temperature})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.response


def _reply(**overrides: Any) -> str:
    payload = {"spam": 0.05, "toxic": 0.02, "inappropriate": 0.0, "overall": 0.05, "label": "safe"}
    payload.update(overrides)
    return json.dumps(payload)


def test_parse_success_clamps_scores() -> None:
    parsed = parse_classifier_response(_reply(spam=1.4, toxic=-0.2, overall=0.9, label="spam"))
    assert parsed == ParseSuccess(spam=1.0, toxic=0.0, inappropriate=0.0, overall=0.9, label="spam")


def test_parse_extracts_json_from_chatter() -> None:
    parsed = parse_classifier_response(f"Sure, here you go:\n{_reply()}\nHope this helps")
    assert isinstance(parsed, ParseSuccess)
    assert parsed.overall == pytest.approx(0.05)


@pytest.mark.parametrize(
    "raw",
    [
        "no json here",
        "{not valid json}",
        '{"spam": 0.1, "toxic": 0.1, "inappropriate": 0.1, "overall": 0.1}',
        '{"spam": "0.1", "toxic": 0.1, "inappropriate": 0.1, "overall": 0.1, "label": "safe"}',
        '{"spam": true, "toxic": 0.1, "inappropriate": 0.1, "overall": 0.1, "label": "safe"}',
        '{"spam": 0.1, "toxic": 0.1, "inappropriate": 0.1, "overall": 0.1, "label": 3}',
    ],
)
def test_parse_failures(raw: str) -> None:
    assert isinstance(parse_classifier_response(raw), ParseFailure)


@pytest.mark.asyncio
async def test_missing_classifier_is_not_configured() -> None:
    result = await check_content_safety("hello", None)
    assert result.success is False
    assert result.error == ERROR_NOT_CONFIGURED
    assert result.ai_score == 0.0


@pytest.mark.asyncio
async def test_successful_classification() -> None:
    classifier = StubClassifier(_reply(spam=0.7, overall=0.7, label="spam"))
    result = await check_content_safety("buy my stuff", classifier)
    assert result.success is True
    assert result.ai_score == pytest.approx(0.7)
    assert result.ai_label == "spam"
    assert result.categories["spam"] == pytest.approx(0.7)
    call = classifier.calls[0]
    assert "buy my stuff" in call["prompt"]
    assert call["max_tokens"] == 200
    assert call["temperature"] == pytest.approx(0.1)


@pytest.mark.asyncio
async def test_mapping_response_is_unwrapped() -> None:
    result = await check_content_safety("hi", StubClassifier({"response": _reply(overall=0.3)}))
    assert result.success is True
    assert result.ai_score == pytest.approx(0.3)


@pytest.mark.asyncio
async def test_unexpected_response_shape() -> None:
    result = await check_content_safety("hi", StubClassifier(42))
    assert result.success is False
    assert result.error == ERROR_INVALID_FORMAT


@pytest.mark.asyncio
async def test_malformed_reply_is_a_failure_not_an_exception() -> None:
    result = await check_content_safety("hi", StubClassifier('{"overall": "high"}'))
    assert result.success is False
    assert result.error == ERROR_PARSE
    assert result.ai_label == "unknown"


@pytest.mark.asyncio
async def test_timeout_abandons_the_call() -> None:
    result = await check_content_safety("hi", StubClassifier(_reply(), delay=1.0), timeout=0.01)
    assert result.success is False
    assert result.error == ERROR_TIMEOUT
    assert result.ai_score == 0.0


@pytest.mark.asyncio
async def test_transport_errors_are_reported() -> None:
    result = await check_content_safety("hi", StubClassifier(error=RuntimeError("boom")))
    assert result.success is False
    assert result.error == "AI service error: boom"


def test_heuristics_clean_text() -> None:
    result = check_with_heuristics("Thanks for the thoughtful write-up.")
    assert result.success is True
    assert result.ai_score == 0.0
    assert result.ai_label == "likely_safe"


def test_heuristics_caps_each_pattern_and_total() -> None:
    result = check_with_heuristics("buy sell free click $10 $20 urgent limited act now!!!")
    assert result.success is True
    assert result.ai_score == pytest.approx(1.0)
    assert result.ai_label == "suspicious"

    single = check_with_heuristics("free free free free free")
    assert single.ai_score == pytest.approx(0.3)
    assert single.ai_label == "likely_safe"


@pytest.mark.asyncio
async def test_workers_ai_classifier_round_trip() -> None:
    seen: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["host"] = request.url.host
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "result": {"response": _reply(overall=0.4, label="spam")}})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        classifier = WorkersAIClassifier(http=http, account_id="acct", api_token="tok", base_url="https://ai.test/v4/")
        result = await check_content_safety("hello", classifier)

    assert result.success is True
    assert result.ai_score == pytest.approx(0.4)
    assert seen["host"] == "ai.test"
    assert seen["path"] == "/v4/accounts/acct/ai/run/@cf/meta/llama-3.2-1b-instruct"
    assert seen["auth"] == "Bearer tok"
    assert seen["body"]["max_tokens"] == 200
    assert seen["body"]["temperature"] == pytest.approx(0.1)


@pytest.mark.asyncio
async def test_workers_ai_http_error_degrades() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, json={"success": False, "errors": ["overloaded"]})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        classifier = WorkersAIClassifier(http=http, account_id="acct", api_token="tok")
        result = await check_content_safety("hello", classifier)

    assert result.success is False
    assert result.error is not None
    assert result.error.startswith("AI service error:")


@pytest.mark.asyncio
async def test_workers_ai_reported_failure_degrades() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": False, "errors": ["bad model"], "result": None})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        classifier = WorkersAIClassifier(http=http, account_id="acct", api_token="tok")
        result = await check_content_safety("hello", classifier)

    assert result.success is False
    assert "classifier reported failure" in (result.error or "")


def _classifier_calls(outcome: str) -> float:
    return REGISTRY.get_sample_value("commentguard_classifier_calls_total", {"outcome": outcome}) or 0.0


@pytest.mark.asyncio
async def test_rejected_replies_are_not_counted_as_ok() -> None:
    ok_before = _classifier_calls("ok")
    invalid_before = _classifier_calls("invalid")

    await check_content_safety("hi", StubClassifier('{"overall": "high"}'))
    await check_content_safety("hi", StubClassifier(42))
    assert _classifier_calls("ok") == ok_before
    assert _classifier_calls("invalid") == invalid_before + 2

    await check_content_safety("hi", StubClassifier(_reply()))
    assert _classifier_calls("ok") == ok_before + 1
