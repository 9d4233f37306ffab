from formrelay.models.alert_dispatch import AlertDispatch
from formrelay.models.request_log import (
    ERROR_STATUSES,
    TERMINAL_STATUSES,
    HttpMethod,
    RequestLog,
    RequestStatus,
)

__all__ = [
    "AlertDispatch",
    "ERROR_STATUSES",
    "HttpMethod",
    "RequestLog",
    "RequestStatus",
    "TERMINAL_STATUSES",
]
