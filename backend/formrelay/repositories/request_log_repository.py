"""RequestLog repository for data access."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import case, func, or_
from sqlalchemy.orm import Query, Session

from formrelay.core.date_filters import resolve_date_range
from formrelay.core.sorting import apply_order_by
from formrelay.models.request_log import ERROR_STATUSES, RequestLog, RequestStatus
from formrelay.schemas.request_log import RequestLogFilters

SORTABLE_FIELDS = (
    "id",
    "created_at",
    "origin_id",
    "endpoint",
    "method",
    "status",
    "response_code",
    "execution_time",
    "retry_count",
)


DELETE_CHUNK_SIZE = 500


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class RequestLogRepository:
    """Repository for RequestLog model."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        origin_id: str,
        endpoint: str,
        method: str,
        request_data: str | None = None,
        request_headers: str | None = None,
        retry_of: int | None = None,
        created_at: datetime | None = None,
    ) -> RequestLog:
        """Create a pending request log row."""
        log = RequestLog(
            origin_id=origin_id,
            endpoint=endpoint,
            method=method,
            status=RequestStatus.PENDING.value,
            request_data=request_data,
            request_headers=request_headers,
            retry_count=0,
            retry_of=retry_of,
        )
        if created_at is not None:
            log.created_at = created_at  # type: ignore[assignment]
        self.db.add(log)
        self.db.commit()
        self.db.refresh(log)
        return log

    def get_by_id(self, log_id: int) -> RequestLog | None:
        """Get a request log by ID."""
        return self.db.query(RequestLog).filter(RequestLog.id == log_id).first()

    def update_retry_count(self, log_id: int, retry_count: int) -> bool:
        """Set the retry counter of a row that is still pending."""
        updated = (
            self.db.query(RequestLog)
            .filter(
                RequestLog.id == log_id,
                RequestLog.status == RequestStatus.PENDING.value,
            )
            .update({RequestLog.retry_count: retry_count}, synchronize_session=False)
        )
        self.db.commit()
        return updated == 1

    def mark_completed(self, log_id: int, **fields: Any) -> bool:
        """Move a pending row to its terminal state.

        The update is conditional on the row still being pending, so a second
        call for the same id changes nothing and returns False.
        """
        values = {getattr(RequestLog, key): value for key, value in fields.items()}
        updated = (
            self.db.query(RequestLog)
            .filter(
                RequestLog.id == log_id,
                RequestLog.status == RequestStatus.PENDING.value,
            )
            .update(values, synchronize_session=False)
        )
        self.db.commit()
        return updated == 1

    def _filtered(self, filters: RequestLogFilters) -> Query:  # type: ignore[type-arg]
        query = self.db.query(RequestLog)

        if filters.origin_id:
            query = query.filter(RequestLog.origin_id == filters.origin_id)

        if filters.status and filters.status != "all":
            if filters.status == "error":
                query = query.filter(RequestLog.status.in_(ERROR_STATUSES))
            else:
                query = query.filter(RequestLog.status == filters.status)

        if filters.search and filters.search.strip():
            pattern = f"%{_escape_like(filters.search.strip())}%"
            query = query.filter(
                or_(
                    RequestLog.endpoint.ilike(pattern, escape="\\"),
                    RequestLog.error_message.ilike(pattern, escape="\\"),
                )
            )

        start, end = resolve_date_range(filters.date_filter, filters.date_start, filters.date_end)
        if start is not None:
            query = query.filter(RequestLog.created_at >= start)
        if end is not None:
            query = query.filter(RequestLog.created_at < end)

        return query

    def get_all(self, filters: RequestLogFilters) -> tuple[list[RequestLog], int]:
        """Get one page of request logs matching filters, plus the total match count."""
        query = self._filtered(filters)
        total = query.order_by(None).count()
        query = apply_order_by(query, RequestLog, filters.order_by, allowed_fields=SORTABLE_FIELDS)
        skip = (filters.page - 1) * filters.per_page
        rows = query.offset(skip).limit(filters.per_page).all()
        return rows, total

    def statistics(self, origin_id: str | None = None) -> dict[str, Any]:
        """Aggregate totals, success/failure counts, mean time and max retries."""
        query = self.db.query(
            func.count(RequestLog.id).label("total"),
            func.sum(
                case((RequestLog.status == RequestStatus.SUCCESS.value, 1), else_=0)
            ).label("success"),
            func.sum(case((RequestLog.status.in_(ERROR_STATUSES), 1), else_=0)).label("failed"),
            func.avg(RequestLog.execution_time).label("avg_execution_time"),
            func.max(RequestLog.retry_count).label("max_retries"),
        )
        if origin_id:
            query = query.filter(RequestLog.origin_id == origin_id)
        row = query.one()
        return {
            "total": int(row.total or 0),
            "success": int(row.success or 0),
            "failed": int(row.failed or 0),
            "avg_execution_time": float(row.avg_execution_time or 0.0),
            "max_retries": int(row.max_retries or 0),
        }

    def count_since(self, since: datetime, status: str | None = None) -> int:
        """Count rows created since a point in time, optionally by status or the error bucket."""
        query = self.db.query(func.count(RequestLog.id)).filter(RequestLog.created_at >= since)
        if status == "error":
            query = query.filter(RequestLog.status.in_(ERROR_STATUSES))
        elif status:
            query = query.filter(RequestLog.status == status)
        return query.scalar() or 0

    def recent_errors(self, limit: int = 5) -> list[RequestLog]:
        """Most recent rows in the error bucket."""
        return (
            self.db.query(RequestLog)
            .filter(RequestLog.status.in_(ERROR_STATUSES))
            .order_by(RequestLog.created_at.desc(), RequestLog.id.desc())
            .limit(limit)
            .all()
        )

    def recent_for_origin(self, origin_id: str, limit: int = 10) -> list[RequestLog]:
        """Most recent rows for one origin, newest first."""
        return (
            self.db.query(RequestLog)
            .filter(RequestLog.origin_id == origin_id)
            .order_by(RequestLog.created_at.desc(), RequestLog.id.desc())
            .limit(limit)
            .all()
        )

    def count_replays_of(self, log_id: int) -> int:
        """Number of manual replays chained directly from a row."""
        return (
            self.db.query(func.count(RequestLog.id)).filter(RequestLog.retry_of == log_id).scalar()
            or 0
        )

    def count_replays_since(self, since: datetime) -> int:
        """Number of manual replays created since a point in time."""
        return (
            self.db.query(func.count(RequestLog.id))
            .filter(RequestLog.retry_of.isnot(None), RequestLog.created_at >= since)
            .scalar()
            or 0
        )

    def delete_by_ids(self, log_ids: Iterable[int]) -> int:
        """Delete rows by id and return how many were removed."""
        ids = list(log_ids)
        if not ids:
            return 0
        # Replays keep their own history when the original disappears.
        self.db.query(RequestLog).filter(RequestLog.retry_of.in_(ids)).update(
            {RequestLog.retry_of: None}, synchronize_session=False
        )
        deleted = (
            self.db.query(RequestLog)
            .filter(RequestLog.id.in_(ids))
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted

    def delete_created_before(self, cutoff: datetime) -> int:
        """Delete every row created before ``cutoff``, in id chunks."""
        old_ids = [
            row.id
            for row in self.db.query(RequestLog.id)
            .filter(RequestLog.created_at < cutoff)
            .order_by(RequestLog.id.asc())
            .all()
        ]
        deleted = 0
        for start in range(0, len(old_ids), DELETE_CHUNK_SIZE):
            deleted += self.delete_by_ids(old_ids[start : start + DELETE_CHUNK_SIZE])
        return deleted
