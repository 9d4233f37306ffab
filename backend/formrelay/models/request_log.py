"""RequestLog model: one row per physical outbound HTTP call."""

from enum import Enum

from sqlalchemy import Column, DateTime, Float, ForeignKey, Index, Integer, String, Text

from formrelay.core.database import Base
from formrelay.models.shared import utc_now


class HttpMethod(str, Enum):
    """HTTP methods an endpoint may be called with."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class RequestStatus(str, Enum):
    """Lifecycle status of a request attempt."""

    PENDING = "pending"
    SUCCESS = "success"
    CLIENT_ERROR = "client_error"
    SERVER_ERROR = "server_error"
    TIMEOUT = "timeout"
    ERROR = "error"


# The "error" filter bucket used by admin listings and monitoring.
ERROR_STATUSES = (
    RequestStatus.CLIENT_ERROR.value,
    RequestStatus.SERVER_ERROR.value,
    RequestStatus.ERROR.value,
)

TERMINAL_STATUSES = tuple(s.value for s in RequestStatus if s is not RequestStatus.PENDING)


class RequestLog(Base):
    """Audit row for a single delivery attempt, including manual replays."""

    __tablename__ = "request_logs"
    __table_args__ = (
        Index("ix_request_logs_origin_id", "origin_id"),
        Index("ix_request_logs_status", "status"),
        Index("ix_request_logs_created_at", "created_at"),
        Index("ix_request_logs_retry_of", "retry_of"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    origin_id = Column(String(100), nullable=False)
    endpoint = Column(String(2048), nullable=False)
    method = Column(String(10), nullable=False)
    status = Column(String(20), nullable=False, default=RequestStatus.PENDING.value)
    request_headers = Column(Text, nullable=True)
    request_data = Column(Text, nullable=True)
    response_headers = Column(Text, nullable=True)
    response_data = Column(Text, nullable=True)
    response_code = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    execution_time = Column(Float, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    retry_of = Column(
        Integer,
        ForeignKey("request_logs.id", ondelete="SET NULL"),
        nullable=True,
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
