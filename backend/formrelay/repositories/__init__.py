from formrelay.repositories.alert_dispatch_repository import AlertDispatchRepository
from formrelay.repositories.request_log_repository import RequestLogRepository

__all__ = ["AlertDispatchRepository", "RequestLogRepository"]
