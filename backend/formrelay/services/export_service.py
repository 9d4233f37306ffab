"""Export service for downloading request logs as CSV or JSON."""

from __future__ import annotations

import csv
import io
import json
import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from enum import Enum
from itertools import islice
from typing import Any

from formrelay.core.config import settings
from formrelay.schemas.request_log import RequestLogFilters, RequestLogResponse
from formrelay.services.redactor import Redactor, default_redactor
from formrelay.services.request_log_store import RequestLogStore

logger = logging.getLogger(__name__)

UTF8_BOM = "\ufeff"

CSV_HEADERS = [
    "ID",
    "Origin ID",
    "Endpoint",
    "Method",
    "Status",
    "Response Code",
    "Execution Time (s)",
    "Retry Count",
    "Error Message",
    "Created At",
]


class ExportFormat(str, Enum):
    CSV = "csv"
    JSON = "json"


class ExportService:
    """Serializes request log rows, redacting headers and bodies on the way out.

    Rows may be ``RequestLog`` instances or plain mappings with the same keys.
    Output is capped at ``limit`` rows; callers needing more must paginate.
    """

    def __init__(self, redactor: Redactor | None = None, limit: int | None = None):
        self.redactor = redactor or default_redactor()
        self.limit = settings.export_limit if limit is None else limit

    def export(self, rows: Iterable[Any], fmt: str | ExportFormat) -> bytes:
        export_format = ExportFormat(fmt)
        if export_format is ExportFormat.CSV:
            return self.export_csv(rows)
        return self.export_json(rows)

    def export_csv(self, rows: Iterable[Any]) -> bytes:
        """CSV with a UTF-8 byte-order mark so spreadsheet tools detect the encoding."""
        output = io.StringIO()
        output.write(UTF8_BOM)
        writer = csv.writer(output)
        writer.writerow(CSV_HEADERS)
        for record in self._sanitized(rows):
            writer.writerow(
                [
                    record["id"],
                    record["origin_id"],
                    record["endpoint"],
                    record["method"],
                    record["status"],
                    _fmt_optional(record["response_code"]),
                    _fmt_optional(record["execution_time"]),
                    record["retry_count"] or 0,
                    record["error_message"] or "",
                    _fmt_dt(record["created_at"]),
                ]
            )
        return output.getvalue().encode("utf-8")

    def export_json(self, rows: Iterable[Any]) -> bytes:
        """Pretty-printed JSON array, unicode left unescaped."""
        records = []
        for record in self._sanitized(rows):
            record["created_at"] = _fmt_dt(record["created_at"])
            records.append(record)
        return json.dumps(records, indent=4, ensure_ascii=False, default=str).encode("utf-8")

    def export_filtered(
        self,
        store: RequestLogStore,
        fmt: str | ExportFormat,
        filters: RequestLogFilters | None = None,
    ) -> bytes:
        """Query the store with the listing filters and export the first ``limit`` rows."""
        base = filters or RequestLogFilters()
        bounded = base.model_copy(update={"page": 1, "per_page": self.limit})
        rows, total = store.query(bounded)
        if total > self.limit:
            logger.info("Export truncated to %d of %d request logs", self.limit, total)
        return self.export(rows, fmt)

    def _sanitized(self, rows: Iterable[Any]) -> Iterable[dict[str, Any]]:
        for row in islice(rows, self.limit):
            yield self.sanitize(row)

    def sanitize(self, row: Any) -> dict[str, Any]:
        """Validate a row and redact its header and body fields."""
        record = RequestLogResponse.model_validate(row).model_dump()
        for field in ("request_headers", "response_headers"):
            if record[field] is not None:
                record[field] = self.redactor.redact_headers(record[field])
        for field in ("request_data", "response_data"):
            if record[field] is not None:
                record[field] = self.redactor.redact(record[field])
        return record


def export_filename(fmt: str | ExportFormat, now: datetime | None = None) -> str:
    """Download name such as ``formrelay-logs_2024-05-01_13-45-00.csv``."""
    stamp = (now or datetime.now(UTC)).strftime("%Y-%m-%d_%H-%M-%S")
    return f"formrelay-logs_{stamp}.{ExportFormat(fmt).value}"


def _fmt_dt(dt: datetime | None) -> str:
    """Format a datetime for export output."""
    if dt is None:
        return ""
    return dt.isoformat()


def _fmt_optional(value: Any) -> str:
    return "" if value is None else str(value)
