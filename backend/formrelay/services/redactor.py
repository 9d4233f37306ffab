"""Sensitive data redaction for stored and exported request logs.

Field and header names are lower-cased and checked against an ordered set of
substring patterns; any match replaces the value with ``REDACTION_MARKER``.
Mappings and lists are walked recursively and strings holding a JSON object
or array are decoded, redacted and re-encoded. Other strings (XML, raw
templates) have no reliable field boundary and pass through untouched.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import Any

from formrelay.core.config import settings

REDACTION_MARKER = "***REDACTED***"

DEFAULT_SENSITIVE_PATTERNS: tuple[str, ...] = (
    "password",
    "passwd",
    "secret",
    "api_key",
    "api-key",
    "apikey",
    "token",
    "auth",
    "authorization",
    "bearer",
    "ssn",
    "social_security",
    "credit_card",
    "card_number",
)


def build_patterns(
    extra: Iterable[str] | None = None, include_defaults: bool = True
) -> tuple[str, ...]:
    """Default patterns followed by operator patterns, lower-cased and de-duplicated."""
    base = DEFAULT_SENSITIVE_PATTERNS if include_defaults else ()
    patterns: list[str] = []
    for pattern in (*base, *(extra or ())):
        normalized = str(pattern).strip().lower()
        if normalized and normalized not in patterns:
            patterns.append(normalized)
    return tuple(patterns)


class Redactor:
    """Replaces the values of sensitive keys with a fixed marker."""

    def __init__(self, patterns: Iterable[str] | None = None, include_defaults: bool = True):
        self.patterns = build_patterns(patterns, include_defaults=include_defaults)

    def is_sensitive(self, name: Any) -> bool:
        lowered = str(name).lower()
        return any(pattern in lowered for pattern in self.patterns)

    def redact(self, value: Any) -> Any:
        """Return ``value`` in the same shape with sensitive entries replaced."""
        if isinstance(value, Mapping):
            return self._redact_mapping(value)
        if isinstance(value, list | tuple):
            return [self.redact(item) for item in value]
        if isinstance(value, str):
            return self._redact_json_string(value)
        return value

    def redact_headers(self, headers: Any) -> dict[str, str]:
        """Redact a flat header mapping. Anything that is not a mapping yields ``{}``."""
        if headers is None:
            return {}
        if isinstance(headers, str):
            try:
                headers = json.loads(headers)
            except (ValueError, RecursionError):
                return {}
        if not hasattr(headers, "items"):
            return {}
        return {
            str(key): REDACTION_MARKER if self.is_sensitive(key) else str(value)
            for key, value in headers.items()
        }

    def _redact_mapping(self, data: Mapping[Any, Any]) -> dict[Any, Any]:
        redacted: dict[Any, Any] = {}
        for key, value in data.items():
            if self.is_sensitive(key):
                redacted[key] = REDACTION_MARKER
            elif isinstance(value, Mapping | list | tuple):
                redacted[key] = self.redact(value)
            else:
                redacted[key] = value
        return redacted

    def _redact_json_string(self, text: str) -> str:
        try:
            decoded = json.loads(text)
        except RecursionError:
            # Valid JSON nested too deeply to inspect; never store it unredacted.
            return REDACTION_MARKER
        except ValueError:
            return text
        if not isinstance(decoded, dict | list):
            return text
        try:
            return json.dumps(self.redact(decoded), ensure_ascii=False)
        except RecursionError:
            return REDACTION_MARKER


def default_redactor() -> Redactor:
    """Redactor built from the default patterns plus the configured ones."""
    return Redactor(settings.sensitive_patterns)
