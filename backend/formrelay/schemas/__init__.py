from formrelay.schemas.field_mapping import FieldKind, FieldMapping
from formrelay.schemas.request_log import (
    BACKOFF_MULTIPLIER,
    DeliveryRequest,
    LogStatistics,
    ReplayRequest,
    RequestLogFilters,
    RequestLogResponse,
    RetryPolicy,
)

__all__ = [
    "BACKOFF_MULTIPLIER",
    "DeliveryRequest",
    "FieldKind",
    "FieldMapping",
    "LogStatistics",
    "ReplayRequest",
    "RequestLogFilters",
    "RequestLogResponse",
    "RetryPolicy",
]
