import logging
from typing import Any

from arq import cron

from formrelay.core.config import settings
from formrelay.core.database import SessionLocal
from formrelay.services.alert_service import AlertService
from formrelay.services.delivery_client import DeliveryClient
from formrelay.services.replay_service import ReplayService
from formrelay.services.request_log_store import RequestLogStore
from formrelay.tasks import redis_settings

logger = logging.getLogger(__name__)


async def purge_old_logs_task(ctx: dict[str, Any]) -> int:
    """Background task: delete request logs older than the retention period.

    Runs daily at midnight.
    """
    db = SessionLocal()
    try:
        store = RequestLogStore(db)
        return store.delete_older_than(settings.log_retention_days)
    finally:
        db.close()


async def check_alerts_task(ctx: dict[str, Any]) -> bool:
    """Background task: notify when the last hour's delivery error rate is too high.

    Runs hourly.
    """
    db = SessionLocal()
    try:
        service = AlertService(RequestLogStore(db), db=db)
        return service.check_and_alert()
    finally:
        db.close()


async def replay_request_log_task(ctx: dict[str, Any], log_id: int) -> bool:
    """Background task: replay one failed request log row."""
    db = SessionLocal()
    try:
        store = RequestLogStore(db)
        service = ReplayService(store, DeliveryClient(store=store))
        result = service.retry(log_id)
        if not result.success:
            logger.info("Replay of request log %s did not succeed: %s", log_id, result.error)
        return result.success
    finally:
        db.close()


class WorkerSettings:
    functions = [
        purge_old_logs_task,
        check_alerts_task,
        replay_request_log_task,
    ]
    cron_jobs = [
        cron(purge_old_logs_task, hour=0, minute=0),  # daily at midnight
        cron(check_alerts_task, minute={0}),  # hourly
    ]
    redis_settings = redis_settings
