"""Structured logging helpers for the moderation pipeline."""

from __future__ import annotations

import json
import logging
import random
from contextvars import ContextVar, Token
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from commentguard.settings import settings

_REQUEST_ID: ContextVar[Optional[str]] = ContextVar("obs_request_id", default=None)
_USER_ID: ContextVar[Optional[str]] = ContextVar("obs_user_id", default=None)
_POST_SLUG: ContextVar[Optional[str]] = ContextVar("obs_post_slug", default=None)

_LOGGER_NAME = "commentguard"

# Comment bodies and classifier prompts never reach log sinks verbatim
_SENSITIVE_KEYWORDS = (
    "token",
    "secret",
    "authorization",
    "password",
    "email",
    "content",
    "prompt",
    "body",
    "ip",
)

_MAX_STRING_LENGTH = 256
_MAX_COLLECTION_ITEMS = 10

_RESERVED_ATTRS = frozenset(
    {
        "args",
        "msg",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "process",
        "processName",
        "message",
        "name",
        "taskName",
    }
)


def bind_context(
    *,
    request_id: Optional[str] = None,
    user_id: Optional[str] = None,
    post_slug: Optional[str] = None,
) -> Dict[str, Token]:
    """Bind contextual fields for the current moderation call and return reset tokens."""
    tokens: Dict[str, Token] = {}
    if request_id is not None:
        tokens["request_id"] = _REQUEST_ID.set(request_id)
    if user_id is not None:
        tokens["user_id"] = _USER_ID.set(user_id)
    if post_slug is not None:
        tokens["post_slug"] = _POST_SLUG.set(post_slug)
    return tokens


def reset_context(tokens: Dict[str, Token]) -> None:
    for key, token in tokens.items():
        if key == "request_id":
            _REQUEST_ID.reset(token)
        elif key == "user_id":
            _USER_ID.reset(token)
        elif key == "post_slug":
            _POST_SLUG.reset(token)


def _sanitize_value(value: Any) -> Any:
    if isinstance(value, str):
        return value if len(value) <= _MAX_STRING_LENGTH else f"{value[:_MAX_STRING_LENGTH]}…"
    if isinstance(value, dict):
        result: Dict[str, Any] = {}
        for idx, (key, nested) in enumerate(value.items()):
            if idx >= _MAX_COLLECTION_ITEMS:
                result["…"] = f"+{len(value) - _MAX_COLLECTION_ITEMS} keys"
                break
            result[key] = _sanitize_field(str(key), nested)
        return result
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [_sanitize_value(item) for item in list(value)]
        if len(items) > _MAX_COLLECTION_ITEMS:
            items = items[:_MAX_COLLECTION_ITEMS] + ["…"]
        return items
    return value


def _sanitize_field(key: str, value: Any) -> Any:
    lowered = key.lower()
    if any(keyword == lowered or keyword in lowered.split("_") for keyword in _SENSITIVE_KEYWORDS):
        return "[redacted]"
    return _sanitize_value(value)


class JSONLogFormatter(logging.Formatter):
    """Emit logs as JSON objects with structured fields."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (match logging api)
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
        payload: Dict[str, object] = {
            "ts": timestamp,
            "level": record.levelname.lower(),
            "msg": record.getMessage(),
            "logger": record.name,
            "service": settings.service_name,
            "env": settings.environment,
            "commit": settings.git_commit,
        }
        request_id = _REQUEST_ID.get()
        if request_id:
            payload["request_id"] = request_id
        user_id = _USER_ID.get()
        if user_id:
            payload["user_id"] = user_id
        post_slug = _POST_SLUG.get()
        if post_slug:
            payload["post"] = post_slug
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key in payload:
                continue
            payload[key] = _sanitize_field(key, value)
        return json.dumps(payload, separators=(",", ":"), default=str)


class InfoSamplingFilter(logging.Filter):
    """Randomly sample info-level logs, keep warnings/errors."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        if record.levelno != logging.INFO:
            return True
        rate = max(0.0, min(1.0, settings.obs_log_sampling_rate_info))
        if rate >= 1.0:
            return True
        return random.random() < rate


def configure_logging() -> logging.Logger:
    """Configure root logger with JSON formatting and sampling."""
    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(JSONLogFormatter())
    handler.addFilter(InfoSamplingFilter())
    root.addHandler(handler)
    root.setLevel(settings.obs_log_level)
    return logging.getLogger(_LOGGER_NAME)
