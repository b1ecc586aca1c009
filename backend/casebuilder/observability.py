from __future__ import annotations

from contextvars import ContextVar, Token
from datetime import datetime, timezone
import json
import logging
import re
from typing import Any, Mapping
from uuid import uuid4


REQUEST_ID_CONTEXT: ContextVar[str] = ContextVar("casebuilder_request_id", default="-")
REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")
_HANDLER_MARKER = "_casebuilder_handler"

SECRET_KEY_FRAGMENTS = (
    "authorization",
    "cookie",
    "password",
    "secret",
    "token",
    "api_key",
    "access_key",
    "private_key",
)

# Free-text case fields; logged only as a short preview.
CASE_TEXT_KEYS = {
    "content",
    "text",
    "markdown",
    "description",
    "agreement_map",
    "interest_map",
    "overall_assessment",
}
CASE_TEXT_PREVIEW_LENGTH = 48

BEARER_PATTERN = re.compile(r"(?i)\bBearer\s+[A-Za-z0-9\-._~+/]+=*")
AWS_ACCESS_KEY_PATTERN = re.compile(r"\b(?:AKIA|ASIA)[0-9A-Z]{16}\b")
EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")


def normalize_request_id(candidate: str | None) -> str:
    if candidate:
        trimmed = candidate.strip()
        if REQUEST_ID_PATTERN.fullmatch(trimmed):
            return trimmed
    return str(uuid4())


def set_request_id(request_id: str) -> Token[str]:
    return REQUEST_ID_CONTEXT.set(request_id)


def reset_request_id(token: Token[str]) -> None:
    REQUEST_ID_CONTEXT.reset(token)


def get_request_id() -> str:
    return REQUEST_ID_CONTEXT.get()


def _normalized_key(key: str) -> str:
    return key.strip().lower().replace("-", "_")


def _is_secret_key(key: str) -> bool:
    normalized = _normalized_key(key)
    return any(fragment in normalized for fragment in SECRET_KEY_FRAGMENTS)


def _truncate(value: str, limit: int) -> str:
    if len(value) > limit:
        return f"{value[:limit]}...[truncated {len(value) - limit} chars]"
    return value


def _scrub(value: str) -> str:
    scrubbed = BEARER_PATTERN.sub("Bearer [REDACTED]", value)
    scrubbed = AWS_ACCESS_KEY_PATTERN.sub("[REDACTED_AWS_ACCESS_KEY]", scrubbed)
    return EMAIL_PATTERN.sub("[REDACTED_EMAIL]", scrubbed)


def sanitize_for_logging(value: Any, *, max_string_length: int = 240) -> Any:
    """Make a log field safe: secrets redacted, case text cut to a preview."""
    if value is None:
        return None

    if isinstance(value, Mapping):
        sanitized: dict[str, Any] = {}
        for key, item in value.items():
            key_text = str(key)
            if _is_secret_key(key_text):
                sanitized[key_text] = "[REDACTED]"
            elif isinstance(item, str) and _normalized_key(key_text) in CASE_TEXT_KEYS:
                sanitized[key_text] = _truncate(_scrub(item), CASE_TEXT_PREVIEW_LENGTH)
            else:
                sanitized[key_text] = sanitize_for_logging(item, max_string_length=max_string_length)
        return sanitized

    if isinstance(value, (list, tuple)):
        return [sanitize_for_logging(item, max_string_length=max_string_length) for item in value]

    if isinstance(value, bytes):
        return f"[{len(value)} bytes]"

    if isinstance(value, str):
        return _truncate(_scrub(value), max_string_length)

    return value


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = get_request_id()
        return True


class JsonFormatter(logging.Formatter):
    _RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}

    def __init__(self, *, max_string_length: int = 240) -> None:
        super().__init__()
        self.max_string_length = max_string_length

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", get_request_id()),
        }
        extras = {key: value for key, value in record.__dict__.items() if key not in self._RECORD_ATTRS}
        extras.pop("request_id", None)
        payload.update(sanitize_for_logging(extras, max_string_length=self.max_string_length))

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)


def configure_logging(level_name: str, *, max_string_length: int = 240) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)

    if any(getattr(handler, _HANDLER_MARKER, False) for handler in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter(max_string_length=max_string_length))
    handler.addFilter(RequestIdFilter())
    setattr(handler, _HANDLER_MARKER, True)
    root.addHandler(handler)
