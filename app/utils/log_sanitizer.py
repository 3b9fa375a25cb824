"""Redaction helpers for structured log payloads."""

from __future__ import annotations

import re
from typing import Any, Optional

_REDACTED_VALUE = "***REDACTED***"
_SENSITIVE_KEYS = (
    "authorization",
    "x-api-key",
    "api_key",
    "apikey",
    "token",
    "secret",
    "password",
    "cookie",
)
_PAYLOAD_KEYS = ("body", "payload", "response", "raw", "prompt")
_MAX_TEXT_CHARS = 500
_TOKEN_PATTERNS = (
    re.compile(r"(?i)(bearer\s+)[^\s,;]+"),
    re.compile(r"(?i)(token\s*[=:]\s*)[^\s,;]+"),
    re.compile(r"(?i)(api[_-]?key\s*[=:]\s*)[^\s,;]+"),
    re.compile(r"(?i)(secret\s*[=:]\s*)[^\s,;]+"),
    re.compile(r"\b(sk-)[A-Za-z0-9_-]{8,}"),
)


def sanitize_for_log(value: Any, *, key: Optional[str] = None) -> Any:
    """Return a recursively sanitized copy of log payloads."""

    if isinstance(value, dict):
        sanitized: dict[str, Any] = {}
        for raw_key, raw_value in value.items():
            field = str(raw_key)
            if _contains_keyword(field, _SENSITIVE_KEYS):
                sanitized[field] = _REDACTED_VALUE
                continue
            sanitized[field] = sanitize_for_log(raw_value, key=field)
        return sanitized

    if isinstance(value, (list, tuple, set)):
        return [sanitize_for_log(item, key=key) for item in value]

    if isinstance(value, str):
        redacted = _redact_text(value)
        if key and _contains_keyword(key, _PAYLOAD_KEYS):
            return _redact_payload(redacted)
        if len(redacted) > _MAX_TEXT_CHARS:
            return redacted[:_MAX_TEXT_CHARS] + "..."
        return redacted

    return value


def sanitize_log_extra(**kwargs: Any) -> dict[str, Any]:
    """Helper for `extra=` payloads in structured logging."""

    return {key: sanitize_for_log(value, key=key) for key, value in kwargs.items()}


def _contains_keyword(field_name: str, keywords: tuple[str, ...]) -> bool:
    lowered = field_name.lower()
    return any(keyword in lowered for keyword in keywords)


def _redact_payload(raw: str) -> str:
    trimmed = raw.strip()
    if not trimmed:
        return ""
    return f"<redacted payload ({len(raw)} chars)>"


def _redact_text(raw: str) -> str:
    redacted = raw
    for pattern in _TOKEN_PATTERNS:
        redacted = pattern.sub(rf"\1{_REDACTED_VALUE}", redacted)
    return redacted
