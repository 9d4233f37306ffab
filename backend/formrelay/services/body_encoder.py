"""Wire encoding of form payloads for params, JSON and XML endpoints."""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import urlencode
from xml.etree.ElementTree import ParseError, tostring

import defusedxml.ElementTree as DefusedET
from defusedxml import DefusedXmlException

from formrelay.core.errors import EncodingError
from formrelay.schemas.field_mapping import FieldKind, FieldMapping


class ContentType(str, Enum):
    """Body encodings supported for outbound requests."""

    PARAMS = "params"
    JSON = "json"
    XML = "xml"


CONTENT_TYPE_HEADERS = {
    ContentType.PARAMS: None,
    ContentType.JSON: "application/json",
    ContentType.XML: "text/xml",
}

CHECKED = "1"
UNCHECKED = "0"

# Submitted values that leave a checkbox unchecked.
FALSY_MARKERS = frozenset({"", "0", "false"})


@dataclass
class EncodedBody:
    """Encoded request body and the Content-Type header it needs, if any."""

    body: bytes | dict[str, Any] | None
    content_type_header: str | None


def encode(content_type: str | ContentType, payload: Any) -> EncodedBody:
    """Encode ``payload`` for the given content type.

    ``params`` payloads are flat mappings handed to the transport as-is (form
    encoded on send, or moved to the query string for GET). ``json`` accepts a
    mapping or a pre-filled template string, which must already be valid JSON.
    ``xml`` accepts a pre-filled template string only.

    Raises:
        EncodingError: The content type is unknown or the payload is malformed.
    """
    try:
        kind = ContentType(content_type)
    except ValueError as exc:
        raise EncodingError(f"Unsupported content type: {content_type}") from exc

    header = CONTENT_TYPE_HEADERS[kind]

    if kind is ContentType.PARAMS:
        if payload is None:
            return EncodedBody(None, header)
        if not isinstance(payload, Mapping):
            raise EncodingError("params payload must be a mapping of field names to values")
        return EncodedBody(dict(payload), header)

    if kind is ContentType.JSON:
        return EncodedBody(_encode_json(payload).encode("utf-8"), header)

    return EncodedBody(_encode_xml(payload), header)


def _encode_json(payload: Any) -> str:
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except RecursionError as exc:
            raise EncodingError("Invalid JSON: nested too deeply") from exc
        except ValueError as exc:
            raise EncodingError(f"Invalid JSON: {exc}") from exc
    elif payload is None:
        payload = {}
    try:
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))
    except (TypeError, ValueError, RecursionError) as exc:
        raise EncodingError(f"Payload is not JSON serializable: {exc}") from exc


def _encode_xml(payload: Any) -> bytes:
    if isinstance(payload, bytes):
        payload = payload.decode("utf-8")
    if not isinstance(payload, str):
        raise EncodingError("xml payload must be a pre-filled template string")
    try:
        root = DefusedET.fromstring(payload.strip())
    except (ParseError, DefusedXmlException) as exc:
        raise EncodingError(f"XML structure is incorrect: {exc}") from exc
    return tostring(root, encoding="utf-8", xml_declaration=True)


def build_url(url: str, payload: Any, method: str, content_type: str | ContentType) -> str:
    """Append a params payload to the URL as a query string for GET requests."""
    if (
        method.upper() != "GET"
        or ContentType(content_type) is not ContentType.PARAMS
        or not isinstance(payload, Mapping)
        or not payload
    ):
        return url
    query = urlencode(
        {str(k): ("" if v is None else v) for k, v in payload.items()},
        doseq=True,
    )
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{query}"


def carries_body(method: str, content_type: str | ContentType) -> bool:
    """Only JSON payloads travel in the body of a GET request."""
    return method.upper() != "GET" or ContentType(content_type) is ContentType.JSON


# Checkbox handling


def normalize_field_name(name: str) -> str:
    """``optIn``, ``opt-in`` and ``opt_in`` all normalize to ``opt_in``."""
    snake = re.sub(r"(?<=[a-z0-9])(?=[A-Z])", "_", name)
    return snake.replace("-", "_").lower()


def fields_match(left: str, right: str) -> bool:
    return normalize_field_name(left) == normalize_field_name(right)


def is_checked(value: Any) -> bool:
    """Whether a submitted checkbox value means checked.

    Checkbox groups arrive as lists; only the first element counts.
    """
    if isinstance(value, list | tuple):
        if not value:
            return False
        value = value[0]
    if value is None or value is False:
        return False
    if value is True:
        return True
    if isinstance(value, int | float):
        return value != 0
    return str(value).strip().lower() not in FALSY_MARKERS


def checkbox_value(submitted: Mapping[str, Any], field_name: str) -> str:
    return CHECKED if is_checked(submitted.get(field_name)) else UNCHECKED


def build_record(
    mappings: Iterable[FieldMapping], submitted: Mapping[str, Any]
) -> dict[str, Any]:
    """Build the logical payload from field mappings and submitted values.

    Checkbox fields always appear, flattened to "1"/"0"; text fields are
    copied only when submitted.
    """
    record: dict[str, Any] = {}
    for mapping in mappings:
        if mapping.kind is FieldKind.CHECKBOX:
            record[mapping.target] = checkbox_value(submitted, mapping.name)
        elif mapping.name in submitted:
            record[mapping.target] = submitted[mapping.name]
    return record


def apply_checkbox_template(
    template: str,
    mappings: Iterable[FieldMapping],
    submitted: Mapping[str, Any],
) -> str:
    """Fill empty checkbox slots of a pre-filled JSON template with "1"/"0".

    A slot is a top-level key whose value is ``""`` or ``null`` and whose name
    matches a checkbox field. Templates that are not JSON objects are returned
    untouched.
    """
    try:
        decoded = json.loads(template)
    except (ValueError, RecursionError):
        return template
    if not isinstance(decoded, dict):
        return template

    checkboxes = [m for m in mappings if m.kind is FieldKind.CHECKBOX]
    if not checkboxes:
        return template

    for key, current in decoded.items():
        if current not in ("", None):
            continue
        for mapping in checkboxes:
            if fields_match(key, mapping.name) or fields_match(key, mapping.target):
                decoded[key] = checkbox_value(submitted, mapping.name)
                break

    return json.dumps(decoded, ensure_ascii=False, separators=(",", ":"))
