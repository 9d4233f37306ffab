from typing import Any

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from arq.jobs import Job

from formrelay.core.config import settings

# Redis connection settings
redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)


async def get_redis_pool() -> ArqRedis:
    """Get or create Redis pool for arq"""
    return await create_pool(redis_settings)


async def enqueue_task(task_name: str, *args: Any, **kwargs: Any) -> Job:
    """
    Enqueue a task to the arq worker.

    Args:
        task_name: Name of the task function
        *args: Positional arguments for the task
        **kwargs: Keyword arguments for the task

    Returns:
        Job object from arq
    """
    pool = await get_redis_pool()
    try:
        job = await pool.enqueue_job(task_name, *args, **kwargs)
        return job  # type: ignore[return-value]
    finally:
        await pool.close()


async def enqueue_purge_old_logs() -> Job:
    """Enqueue a retention sweep of the request log."""
    return await enqueue_task("purge_old_logs_task")


async def enqueue_check_alerts() -> Job:
    """Enqueue an error-rate check."""
    return await enqueue_task("check_alerts_task")


async def enqueue_replay(log_id: int) -> Job:
    """Enqueue a manual replay of one request log row."""
    return await enqueue_task("replay_request_log_task", log_id)
