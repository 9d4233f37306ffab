"""Tests for body encoding, GET query strings and checkbox handling."""

import json

import pytest

from formrelay.core.errors import EncodingError
from formrelay.schemas.field_mapping import FieldKind, FieldMapping
from formrelay.services.body_encoder import (
    ContentType,
    apply_checkbox_template,
    build_record,
    build_url,
    carries_body,
    encode,
    fields_match,
    is_checked,
    normalize_field_name,
)


class TestEncode:
    def test_params_mapping_passes_through(self):
        encoded = encode("params", {"name": "Ada", "tags": ["a", "b"]})
        assert encoded.body == {"name": "Ada", "tags": ["a", "b"]}
        assert encoded.content_type_header is None

    def test_params_none_payload(self):
        assert encode(ContentType.PARAMS, None).body is None

    def test_params_rejects_non_mapping(self):
        with pytest.raises(EncodingError):
            encode("params", "name=Ada")

    def test_json_mapping_is_compact_utf8(self):
        encoded = encode("json", {"name": "Zoë", "n": 1})
        assert encoded.body == '{"name":"Zoë","n":1}'.encode()
        assert encoded.content_type_header == "application/json"

    def test_json_template_string_is_validated(self):
        encoded = encode("json", '{ "email": "a@example.com" }')
        assert json.loads(encoded.body) == {"email": "a@example.com"}

    def test_json_invalid_template_raises(self):
        with pytest.raises(EncodingError, match="Invalid JSON"):
            encode("json", '{"email": ')

    def test_json_nested_too_deeply_raises(self):
        with pytest.raises(EncodingError, match="nested too deeply"):
            encode("json", "[" * 100000 + "]" * 100000)

    def test_json_none_payload_is_empty_object(self):
        assert encode("json", None).body == b"{}"

    def test_json_unserializable_payload_raises(self):
        with pytest.raises(EncodingError):
            encode("json", {"when": object()})

    def test_xml_template_is_reserialized(self):
        encoded = encode("xml", "  <lead><name>Ada</name></lead>\n")
        assert encoded.content_type_header == "text/xml"
        assert encoded.body.startswith(b"<?xml")
        assert b"<lead><name>Ada</name></lead>" in encoded.body

    def test_xml_malformed_raises(self):
        with pytest.raises(EncodingError, match="XML structure is incorrect"):
            encode("xml", "<lead><name>Ada</lead>")

    def test_xml_entity_declarations_are_refused(self):
        template = (
            '<?xml version="1.0"?>'
            '<!DOCTYPE lead [<!ENTITY x "boom">]>'
            "<lead>&x;</lead>"
        )
        with pytest.raises(EncodingError):
            encode("xml", template)

    def test_xml_requires_string(self):
        with pytest.raises(EncodingError):
            encode("xml", {"name": "Ada"})

    def test_unknown_content_type(self):
        with pytest.raises(EncodingError, match="Unsupported content type"):
            encode("yaml", {})


class TestBuildUrl:
    def test_get_params_appended(self):
        url = build_url("https://api.example.com/leads", {"a": "1", "b": "x y"}, "GET", "params")
        assert url == "https://api.example.com/leads?a=1&b=x+y"

    def test_existing_query_uses_ampersand(self):
        url = build_url("https://api.example.com/leads?key=1", {"a": "1"}, "get", "params")
        assert url == "https://api.example.com/leads?key=1&a=1"

    def test_list_values_repeat(self):
        url = build_url("https://x.test/", {"tag": ["a", "b"]}, "GET", "params")
        assert url == "https://x.test/?tag=a&tag=b"

    def test_post_leaves_url_alone(self):
        assert build_url("https://x.test/", {"a": "1"}, "POST", "params") == "https://x.test/"

    def test_get_json_leaves_url_alone(self):
        assert build_url("https://x.test/", {"a": "1"}, "GET", "json") == "https://x.test/"

    def test_empty_payload(self):
        assert build_url("https://x.test/", {}, "GET", "params") == "https://x.test/"


class TestCarriesBody:
    @pytest.mark.parametrize(
        "method,content_type,expected",
        [
            ("POST", "params", True),
            ("PUT", "xml", True),
            ("GET", "params", False),
            ("GET", "xml", False),
            ("GET", "json", True),
        ],
    )
    def test_carries_body(self, method, content_type, expected):
        assert carries_body(method, content_type) is expected


class TestCheckboxes:
    def test_normalize_field_name(self):
        assert normalize_field_name("optIn") == "opt_in"
        assert normalize_field_name("opt-in") == "opt_in"
        assert normalize_field_name("OPT_IN") == "opt_in"

    def test_fields_match(self):
        assert fields_match("acceptTerms", "accept-terms")
        assert not fields_match("accept", "accept_terms")

    @pytest.mark.parametrize(
        "value,expected",
        [
            (["Yes"], True),
            ([""], False),
            ([], False),
            ("on", True),
            ("0", False),
            ("false", False),
            ("FALSE", False),
            ("", False),
            (None, False),
            (True, True),
            (False, False),
            (1, True),
            (0, False),
        ],
    )
    def test_is_checked(self, value, expected):
        assert is_checked(value) is expected

    def test_build_record_flattens_checkboxes(self):
        mappings = [
            FieldMapping(name="your-name", api_name="name"),
            FieldMapping(name="newsletter", kind=FieldKind.CHECKBOX),
            FieldMapping(name="terms", api_name="accepted", kind=FieldKind.CHECKBOX),
            FieldMapping(name="phone"),
        ]
        record = build_record(mappings, {"your-name": "Ada", "newsletter": ["Yes"]})
        assert record == {"name": "Ada", "newsletter": "1", "accepted": "0"}

    def test_apply_checkbox_template_fills_empty_slots(self):
        mappings = [
            FieldMapping(name="opt-in", kind=FieldKind.CHECKBOX),
            FieldMapping(name="gdpr", api_name="gdprConsent", kind=FieldKind.CHECKBOX),
        ]
        template = '{"email":"a@example.com","optIn":"","gdprConsent":null,"other":""}'
        filled = apply_checkbox_template(template, mappings, {"opt-in": ["on"]})
        assert json.loads(filled) == {
            "email": "a@example.com",
            "optIn": "1",
            "gdprConsent": "0",
            "other": "",
        }

    def test_apply_checkbox_template_keeps_filled_slots(self):
        mappings = [FieldMapping(name="optin", kind=FieldKind.CHECKBOX)]
        template = '{"optin":"yes"}'
        assert json.loads(apply_checkbox_template(template, mappings, {})) == {"optin": "yes"}

    def test_apply_checkbox_template_ignores_non_json(self):
        mappings = [FieldMapping(name="optin", kind=FieldKind.CHECKBOX)]
        assert apply_checkbox_template("<a/>", mappings, {}) == "<a/>"
        assert apply_checkbox_template("[1, 2]", mappings, {}) == "[1, 2]"

    def test_apply_checkbox_template_ignores_deeply_nested_json(self):
        mappings = [FieldMapping(name="optin", kind=FieldKind.CHECKBOX)]
        template = "[" * 100000 + "]" * 100000
        assert apply_checkbox_template(template, mappings, {}) == template

    def test_unchecked_checkbox_fills_template_with_zero(self):
        mappings = [FieldMapping(name="opt_in", kind=FieldKind.CHECKBOX)]
        filled = apply_checkbox_template('{"opt_in":""}', mappings, {"opt_in": ""})
        assert encode("json", filled).body == b'{"opt_in":"0"}'
