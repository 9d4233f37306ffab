"""Tests for sensitive data redaction."""

import json
from unittest.mock import patch

import httpx

from formrelay.services.redactor import (
    DEFAULT_SENSITIVE_PATTERNS,
    REDACTION_MARKER,
    Redactor,
    build_patterns,
    default_redactor,
)


class TestBuildPatterns:
    def test_defaults_come_first(self):
        patterns = build_patterns(["Customer_ID"])
        assert patterns[: len(DEFAULT_SENSITIVE_PATTERNS)] == DEFAULT_SENSITIVE_PATTERNS
        assert patterns[-1] == "customer_id"

    def test_deduplicates_and_drops_blanks(self):
        assert build_patterns(["token", " ", "PIN", "pin"], include_defaults=False) == ("token", "pin")


class TestRedactor:
    def test_is_sensitive_is_case_insensitive_substring(self):
        redactor = Redactor()
        assert redactor.is_sensitive("X-Api-Key")
        assert redactor.is_sensitive("user_password_confirm")
        assert redactor.is_sensitive("Authorization")
        assert not redactor.is_sensitive("email")

    def test_redacts_nested_mappings_and_lists(self):
        redactor = Redactor()
        data = {
            "email": "a@example.com",
            "password": "hunter2",
            "profile": {"ssn": "123-45-6789", "city": "Oslo"},
            "cards": [{"card_number": "4111"}, {"label": "main"}],
        }
        assert redactor.redact(data) == {
            "email": "a@example.com",
            "password": REDACTION_MARKER,
            "profile": {"ssn": REDACTION_MARKER, "city": "Oslo"},
            "cards": [{"card_number": REDACTION_MARKER}, {"label": "main"}],
        }

    def test_does_not_mutate_input(self):
        data = {"token": "abc"}
        Redactor().redact(data)
        assert data == {"token": "abc"}

    def test_redacts_json_strings(self):
        redacted = Redactor().redact('{"name":"Zoë","api_key":"k"}')
        assert json.loads(redacted) == {"name": "Zoë", "api_key": REDACTION_MARKER}
        assert "Zoë" in redacted

    def test_non_json_strings_pass_through(self):
        xml = "<lead><password>x</password></lead>"
        assert Redactor().redact(xml) == xml
        assert Redactor().redact('"just a string"') == '"just a string"'

    def test_deeply_nested_json_string_is_withheld(self):
        nested = '{"token":' + "[" * 100000 + '"k"' + "]" * 100000 + "}"
        assert Redactor().redact(nested) == REDACTION_MARKER

    def test_other_values_pass_through(self):
        assert Redactor().redact(None) is None
        assert Redactor().redact(42) == 42

    def test_custom_patterns(self):
        redactor = Redactor(["phone"])
        assert redactor.redact({"phone": "555", "token": "t"}) == {
            "phone": REDACTION_MARKER,
            "token": REDACTION_MARKER,
        }

    def test_custom_patterns_without_defaults(self):
        redactor = Redactor(["phone"], include_defaults=False)
        assert redactor.redact({"phone": "555", "token": "t"}) == {
            "phone": REDACTION_MARKER,
            "token": "t",
        }


class TestRedactHeaders:
    def test_mapping(self):
        headers = {"Authorization": "Bearer abc", "Content-Type": "application/json"}
        assert Redactor().redact_headers(headers) == {
            "Authorization": REDACTION_MARKER,
            "Content-Type": "application/json",
        }

    def test_json_string(self):
        headers = json.dumps({"X-Auth-Token": "abc", "Accept": "*/*"})
        assert Redactor().redact_headers(headers) == {
            "X-Auth-Token": REDACTION_MARKER,
            "Accept": "*/*",
        }

    def test_httpx_headers(self):
        headers = httpx.Headers({"x-api-key": "k", "server": "nginx"})
        assert Redactor().redact_headers(headers) == {
            "x-api-key": REDACTION_MARKER,
            "server": "nginx",
        }

    def test_garbage_yields_empty_dict(self):
        assert Redactor().redact_headers(None) == {}
        assert Redactor().redact_headers("not json") == {}
        assert Redactor().redact_headers(["a"]) == {}
        assert Redactor().redact_headers("[" * 100000 + "]" * 100000) == {}


class TestDefaultRedactor:
    def test_uses_configured_patterns(self):
        with patch("formrelay.services.redactor.settings.sensitive_patterns", ["member_no"]):
            redactor = default_redactor()
        assert redactor.is_sensitive("Member_No")
        assert redactor.is_sensitive("password")


class TestIdempotence:
    def test_redacting_twice_changes_nothing(self):
        redactor = Redactor(["phone"])
        samples = [
            {"password": "p", "nested": {"phone": "1", "items": [{"token": "t"}]}},
            '{"api_key": "k", "name": "Zoë"}',
            ["a", {"secret": "s"}],
            "<xml/>",
        ]
        for sample in samples:
            once = redactor.redact(sample)
            assert redactor.redact(once) == once
