"""Tests for CSV and JSON export of request logs."""

import csv
import io
import json
from datetime import UTC, datetime

import pytest

from formrelay.core.database import get_db
from formrelay.repositories.request_log_repository import RequestLogRepository
from formrelay.schemas.request_log import RequestLogFilters
from formrelay.services.export_service import (
    CSV_HEADERS,
    UTF8_BOM,
    ExportFormat,
    ExportService,
    export_filename,
)
from formrelay.services.redactor import REDACTION_MARKER, Redactor
from formrelay.services.request_log_store import RequestLogStore


@pytest.fixture
def db_session():
    """Create a database session for testing."""
    gen = get_db()
    db = next(gen)
    try:
        yield db
    finally:
        for _ in gen:
            pass


@pytest.fixture
def store(db_session):
    return RequestLogStore(db_session, enabled=True)


@pytest.fixture
def service():
    return ExportService(redactor=Redactor())


def _row(**overrides):
    row = {
        "id": 1,
        "origin_id": "3",
        "endpoint": "https://crm.example.com/leads",
        "method": "POST",
        "status": "server_error",
        "request_headers": '{"Authorization": "Bearer abc", "Accept": "*/*"}',
        "request_data": '{"name": "Zoë", "password": "hunter2"}',
        "response_headers": '{"content-type": "application/json"}',
        "response_data": '{"error": "down", "token": "t"}',
        "response_code": 503,
        "error_message": "Server error 503",
        "execution_time": 0.25,
        "retry_count": 3,
        "retry_of": None,
        "created_at": datetime(2026, 5, 1, 13, 45, tzinfo=UTC),
    }
    row.update(overrides)
    return row


def _read_csv(data: bytes):
    text = data.decode("utf-8")
    assert text.startswith(UTF8_BOM)
    return list(csv.reader(io.StringIO(text[len(UTF8_BOM):])))


class TestCsv:
    def test_header_and_row(self, service):
        rows = _read_csv(service.export_csv([_row()]))
        assert rows[0] == CSV_HEADERS
        assert rows[1] == [
            "1",
            "3",
            "https://crm.example.com/leads",
            "POST",
            "server_error",
            "503",
            "0.25",
            "3",
            "Server error 503",
            "2026-05-01T13:45:00+00:00",
        ]

    def test_missing_values_are_blank(self, service):
        rows = _read_csv(
            service.export_csv(
                [_row(response_code=None, execution_time=None, error_message=None, created_at=None)]
            )
        )
        assert rows[1][5] == ""
        assert rows[1][6] == ""
        assert rows[1][8] == ""
        assert rows[1][9] == ""

    def test_no_rows(self, service):
        assert _read_csv(service.export_csv([])) == [CSV_HEADERS]

    def test_bom_is_utf8_encoded(self, service):
        assert service.export_csv([]).startswith(b"\xef\xbb\xbf")


class TestJson:
    def test_redacts_headers_and_bodies(self, service):
        records = json.loads(service.export_json([_row()]))
        assert len(records) == 1
        record = records[0]
        assert record["request_headers"] == {"Authorization": REDACTION_MARKER, "Accept": "*/*"}
        assert json.loads(record["request_data"]) == {"name": "Zoë", "password": REDACTION_MARKER}
        assert json.loads(record["response_data"]) == {"error": "down", "token": REDACTION_MARKER}
        assert record["created_at"] == "2026-05-01T13:45:00+00:00"
        assert record["retry_count"] == 3

    def test_unicode_is_not_escaped(self, service):
        assert "Zoë" in service.export_json([_row()]).decode("utf-8")

    def test_pretty_printed(self, service):
        assert service.export_json([_row()]).decode("utf-8").startswith("[\n    {")

    def test_null_payloads_stay_null(self, service):
        record = json.loads(
            service.export_json([_row(request_headers=None, request_data=None, response_data=None)])
        )[0]
        assert record["request_headers"] is None
        assert record["request_data"] is None


class TestLimitsAndDispatch:
    def test_limit_caps_rows(self):
        service = ExportService(redactor=Redactor(), limit=2)
        records = json.loads(service.export_json([_row(id=i) for i in range(1, 6)]))
        assert [r["id"] for r in records] == [1, 2]

    def test_export_dispatches_on_format(self, service):
        assert service.export([_row()], "csv").startswith(b"\xef\xbb\xbf")
        assert json.loads(service.export([_row()], ExportFormat.JSON))[0]["id"] == 1

    def test_unknown_format(self, service):
        with pytest.raises(ValueError):
            service.export([], "xlsx")


class TestExportFiltered:
    def test_exports_matching_rows_from_store(self, store):
        repo = RequestLogRepository(store.db)
        for origin in ("1", "2", "2"):
            log = repo.create(origin_id=origin, endpoint="https://x.test", method="POST")
            repo.mark_completed(log.id, status="success")

        service = ExportService(redactor=Redactor())
        records = json.loads(service.export_filtered(store, "json", RequestLogFilters(origin_id="2")))
        assert {r["origin_id"] for r in records} == {"2"}
        assert len(records) == 2

    def test_respects_limit_over_pagination(self, store):
        repo = RequestLogRepository(store.db)
        for _ in range(4):
            repo.create(origin_id="1", endpoint="https://x.test", method="POST")

        service = ExportService(redactor=Redactor(), limit=3)
        rows = _read_csv(
            service.export_filtered(store, "csv", RequestLogFilters(page=2, per_page=1))
        )
        assert len(rows) == 4


class TestExportFilename:
    def test_filename(self):
        now = datetime(2026, 5, 1, 13, 45, 7, tzinfo=UTC)
        assert export_filename("csv", now) == "formrelay-logs_2026-05-01_13-45-07.csv"
        assert export_filename(ExportFormat.JSON, now) == "formrelay-logs_2026-05-01_13-45-07.json"


class TestRedactionInOutput:
    def test_bearer_token_never_leaks(self, service):
        rows = [
            _row(id=1),
            _row(id=2, request_headers='{"Accept": "*/*"}'),
            _row(id=3, request_headers='{"X-Trace": "1"}', request_data='{"q": "x"}'),
        ]
        for fmt in ("csv", "json"):
            output = service.export(rows, fmt)
            assert b"Bearer abc" not in output
            assert b"hunter2" not in output
        assert REDACTION_MARKER.encode() in service.export(rows, "json")
