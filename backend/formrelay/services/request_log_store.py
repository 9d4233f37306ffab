"""Request log store: auditable record of every outbound delivery attempt.

Each physical HTTP call gets one row. A row is created pending when delivery
starts, its retry counter is bumped while the backoff loop runs, and it is
moved to a terminal status exactly once. Headers and bodies are redacted
before they are written.

Write operations never raise: a storage failure is logged and skipped so that
form processing carries on. Read operations raise ``StorageError``.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from formrelay.core.config import settings
from formrelay.core.errors import StorageError, TransportError
from formrelay.models.request_log import HttpMethod, RequestLog, RequestStatus
from formrelay.repositories.request_log_repository import RequestLogRepository
from formrelay.schemas.request_log import LogStatistics, ReplayRequest, RequestLogFilters
from formrelay.services.redactor import Redactor, default_redactor

logger = logging.getLogger(__name__)


def classify_status(outcome: httpx.Response | BaseException | None) -> RequestStatus:
    """Terminal status for a response or transport error."""
    if isinstance(outcome, httpx.Response):
        code = outcome.status_code
        if 200 <= code < 300:
            return RequestStatus.SUCCESS
        if 400 <= code < 500:
            return RequestStatus.CLIENT_ERROR
        if code >= 500:
            return RequestStatus.SERVER_ERROR
        return RequestStatus.ERROR
    if isinstance(outcome, TransportError) and outcome.is_timeout:
        return RequestStatus.TIMEOUT
    if isinstance(outcome, httpx.TimeoutException):
        return RequestStatus.TIMEOUT
    return RequestStatus.ERROR


def _as_text(body: Any) -> str | None:
    if body is None:
        return None
    if isinstance(body, bytes):
        return body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        return body
    return json.dumps(body, ensure_ascii=False, default=str)


def _created_at_utc(log: RequestLog) -> datetime:
    created = log.created_at
    if created.tzinfo is None:  # type: ignore[union-attr]
        created = created.replace(tzinfo=UTC)  # type: ignore[union-attr]
    return created  # type: ignore[return-value]


class RequestLogStore:
    """Service wrapping the request log repository with delivery semantics."""

    def __init__(
        self,
        db: Session,
        redactor: Redactor | None = None,
        enabled: bool | None = None,
    ):
        self.db = db
        self.repo = RequestLogRepository(db)
        self.redactor = redactor or default_redactor()
        self.enabled = settings.logging_enabled if enabled is None else enabled
        self._started: dict[int, float] = {}

    # Write path

    def start(
        self,
        origin_id: str,
        url: str,
        method: str,
        body: Any = None,
        headers: dict[str, str] | None = None,
        retry_of: int | None = None,
    ) -> int | None:
        """Persist a redacted pending row and return its id.

        Returns None when logging is disabled or the store is unavailable.
        """
        if not self.enabled:
            return None

        redacted_body = _as_text(self.redactor.redact(_as_text(body)))
        redacted_headers = json.dumps(self.redactor.redact_headers(headers or {}))

        try:
            log = self.repo.create(
                origin_id=str(origin_id),
                endpoint=url,
                method=str(method).upper(),
                request_data=redacted_body,
                request_headers=redacted_headers,
                retry_of=retry_of,
            )
        except SQLAlchemyError:
            self.db.rollback()
            logger.warning("Request log unavailable, skipping start for %s", url, exc_info=True)
            return None

        log_id = int(log.id)  # type: ignore[arg-type]
        self._started[log_id] = time.monotonic()
        return log_id

    def record_retry(self, log_id: int | None, retry_count: int) -> bool:
        """Update the retry counter of a pending row."""
        if log_id is None:
            return False
        try:
            return self.repo.update_retry_count(log_id, retry_count)
        except SQLAlchemyError:
            self.db.rollback()
            logger.warning("Request log unavailable, skipping retry count for %s", log_id)
            return False

    def complete(
        self,
        log_id: int | None,
        outcome: httpx.Response | BaseException | None,
        retry_count: int = 0,
    ) -> bool:
        """Move a pending row to its terminal status.

        Safe to call more than once: only the first call for a pending row has
        any effect.
        """
        if log_id is None:
            return False

        status = classify_status(outcome)
        fields: dict[str, Any] = {
            "status": status.value,
            "retry_count": retry_count,
        }

        if isinstance(outcome, httpx.Response):
            fields["response_code"] = outcome.status_code
            fields["response_headers"] = json.dumps(self.redactor.redact_headers(outcome.headers))
            fields["response_data"] = self.redactor.redact(outcome.text) if outcome.text else None
            if status is RequestStatus.ERROR:
                fields["error_message"] = f"Unexpected HTTP status {outcome.status_code}"
            elif status is not RequestStatus.SUCCESS:
                fields["error_message"] = f"HTTP {outcome.status_code} {outcome.reason_phrase}".strip()
        else:
            fields["error_message"] = str(outcome) if outcome is not None else "No response"

        try:
            fields["execution_time"] = self._elapsed(log_id)
            completed = self.repo.mark_completed(log_id, **fields)
        except SQLAlchemyError:
            self.db.rollback()
            logger.warning("Request log unavailable, skipping completion for %s", log_id)
            return False

        if not completed:
            logger.info("Request log %s was not pending, completion ignored", log_id)
        return completed

    def _elapsed(self, log_id: int) -> float:
        started = self._started.pop(log_id, None)
        if started is not None:
            return round(time.monotonic() - started, 4)
        # Row started by another store instance; fall back to its creation time.
        log = self.repo.get_by_id(log_id)
        if log is None:
            return 0.0
        return round((datetime.now(UTC) - _created_at_utc(log)).total_seconds(), 4)

    def delete(self, log_ids: Iterable[int]) -> int:
        """Delete rows by id. Returns the number removed, 0 if the store is down."""
        try:
            return self.repo.delete_by_ids(log_ids)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to delete request logs")
            return 0

    def delete_older_than(self, days: int) -> int:
        """Retention sweep: delete rows created more than ``days`` days ago."""
        cutoff = datetime.now(UTC) - timedelta(days=days)
        try:
            deleted = self.repo.delete_created_before(cutoff)
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to purge request logs older than %d days", days)
            return 0
        logger.info("Purged %d request logs older than %d days", deleted, days)
        return deleted

    # Read path

    @contextmanager
    def _reading(self) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StorageError(f"Request log store unavailable: {exc}") from exc

    def get(self, log_id: int) -> RequestLog | None:
        with self._reading():
            return self.repo.get_by_id(log_id)

    def query(self, filters: RequestLogFilters | None = None) -> tuple[list[RequestLog], int]:
        """Filtered, sorted page of rows plus the total number of matches."""
        with self._reading():
            return self.repo.get_all(filters or RequestLogFilters())

    def statistics(self, origin_id: str | None = None) -> LogStatistics:
        with self._reading():
            return LogStatistics(**self.repo.statistics(origin_id))

    def count_in_window(self, hours: int, status: str | None = None) -> int:
        """Rows created in the trailing ``hours``; status ``error`` means the error bucket."""
        since = datetime.now(UTC) - timedelta(hours=hours)
        with self._reading():
            return self.repo.count_since(since, status)

    def recent_errors(self, limit: int = 5) -> list[RequestLog]:
        with self._reading():
            return self.repo.recent_errors(limit)

    def recent_for_origin(self, origin_id: str, limit: int = 10) -> list[RequestLog]:
        with self._reading():
            return self.repo.recent_for_origin(origin_id, limit)

    def count_replays(self, log_id: int) -> int:
        with self._reading():
            return self.repo.count_replays_of(log_id)

    def count_replays_since(self, hours: int = 1) -> int:
        since = datetime.now(UTC) - timedelta(hours=hours)
        with self._reading():
            return self.repo.count_replays_since(since)

    def get_for_replay(self, log_id: int) -> ReplayRequest | None:
        """Rebuild the stored request, or None if missing or already successful."""
        with self._reading():
            log = self.repo.get_by_id(log_id)
        if log is None or log.status == RequestStatus.SUCCESS.value:
            return None

        try:
            headers = json.loads(log.request_headers) if log.request_headers else {}  # type: ignore[arg-type]
        except (ValueError, RecursionError):
            headers = {}
        if not isinstance(headers, dict):
            headers = {}

        return ReplayRequest(
            original_log_id=int(log.id),  # type: ignore[arg-type]
            origin_id=str(log.origin_id),
            url=str(log.endpoint),
            method=HttpMethod(str(log.method).upper()),
            body=log.request_data,  # type: ignore[arg-type]
            headers={str(k): str(v) for k, v in headers.items()},
        )
