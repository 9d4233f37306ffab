"""Manual replay of stored request log rows."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass

from formrelay.core.config import settings
from formrelay.core.errors import DeliveryError, RateLimited, RetryLimitExceeded
from formrelay.schemas.request_log import ReplayRequest
from formrelay.services.body_encoder import ContentType
from formrelay.services.delivery_client import DeliveryClient, DeliveryResult
from formrelay.services.request_log_store import RequestLogStore

logger = logging.getLogger(__name__)


@dataclass
class ReplayResult:
    """Result of replaying one log row."""

    success: bool
    response_code: int | None = None
    error: DeliveryError | None = None
    log_id: int | None = None
    retry_of: int | None = None

    @property
    def skipped(self) -> bool:
        """True when a replay limit stopped the request before any HTTP call."""
        return isinstance(self.error, RateLimited | RetryLimitExceeded)


@dataclass
class BulkActionResult:
    """Counts reported back for a bulk admin action."""

    succeeded: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def total(self) -> int:
        return self.succeeded + self.failed + self.skipped


def infer_content_type(headers: dict[str, str]) -> ContentType:
    """Body encoding implied by a stored Content-Type header."""
    value = ""
    for name, header_value in headers.items():
        if name.lower() == "content-type":
            value = header_value.lower()
            break
    if "json" in value:
        return ContentType.JSON
    if "xml" in value:
        return ContentType.XML
    return ContentType.PARAMS


class ReplayService:
    """Resubmits failed deliveries through the delivery client.

    Two limits apply, checked in this order: a global ceiling on replays
    created in the trailing hour, then a per-row ceiling on replays chained
    from the same log id. Both are counted from the request log itself.
    """

    def __init__(
        self,
        store: RequestLogStore,
        client: DeliveryClient,
        max_manual_retries: int | None = None,
        max_retries_per_hour: int | None = None,
    ):
        self.store = store
        self.client = client
        self.max_manual_retries = (
            settings.max_manual_retries if max_manual_retries is None else max_manual_retries
        )
        self.max_retries_per_hour = (
            settings.max_retries_per_hour if max_retries_per_hour is None else max_retries_per_hour
        )

    def retry(self, log_id: int) -> ReplayResult:
        """Replay one log row, returning the outcome instead of raising on limits."""
        recent = self.store.count_replays_since(hours=1)
        if recent >= self.max_retries_per_hour:
            logger.info("Replay of log %s rate limited (%d in the last hour)", log_id, recent)
            return ReplayResult(
                success=False,
                error=RateLimited(
                    f"Replay limit of {self.max_retries_per_hour} per hour reached"
                ),
                retry_of=log_id,
            )
        return self._retry_entry(log_id)

    def _retry_entry(self, log_id: int) -> ReplayResult:
        replays = self.store.count_replays(log_id)
        if replays >= self.max_manual_retries:
            return ReplayResult(
                success=False,
                error=RetryLimitExceeded(
                    f"Log {log_id} has already been replayed {replays} times"
                ),
                retry_of=log_id,
            )

        replay = self.store.get_for_replay(log_id)
        if replay is None:
            return ReplayResult(
                success=False,
                error=DeliveryError(f"Log {log_id} not found or not retryable"),
                retry_of=log_id,
            )

        result = self._resend(replay)
        logger.info(
            "Replayed log %s as log %s: %s",
            log_id,
            result.log_id,
            result.status_code if result.response is not None else result.error,
        )
        return ReplayResult(
            success=result.ok,
            response_code=result.status_code,
            error=None if result.ok else result.error,
            log_id=result.log_id,
            retry_of=log_id,
        )

    def _resend(self, replay: ReplayRequest) -> DeliveryResult:
        content_type = infer_content_type(replay.headers)
        body: object = replay.body
        if content_type is ContentType.PARAMS and isinstance(body, str):
            # Params bodies are stored as JSON objects.
            try:
                decoded = json.loads(body)
            except (ValueError, RecursionError):
                decoded = None
            body = decoded if isinstance(decoded, dict) else None

        return self.client.deliver(
            origin_id=replay.origin_id,
            url=replay.url,
            method=replay.method.value,
            body=body,
            headers=replay.headers,
            content_type=content_type.value,
            retry_of=replay.original_log_id,
        )

    def retry_many(self, log_ids: Iterable[int]) -> BulkActionResult:
        """Replay several rows, skipping those over a limit.

        Once the hourly budget is used up, the remaining ids are skipped
        without issuing any request.
        """
        outcome = BulkActionResult()
        issued = self.store.count_replays_since(hours=1)

        for log_id in log_ids:
            if issued >= self.max_retries_per_hour:
                outcome.skipped += 1
                continue

            result = self._retry_entry(log_id)
            if result.skipped:
                outcome.skipped += 1
                continue

            issued += 1
            if result.success:
                outcome.succeeded += 1
            else:
                outcome.failed += 1

        logger.info(
            "Bulk replay finished: %d succeeded, %d failed, %d skipped",
            outcome.succeeded,
            outcome.failed,
            outcome.skipped,
        )
        return outcome

    def delete_many(self, log_ids: Iterable[int]) -> BulkActionResult:
        """Delete rows by id. Ids that no longer exist are counted as skipped."""
        ids = list(dict.fromkeys(log_ids))
        if not ids:
            return BulkActionResult()
        deleted = self.store.delete(ids)
        return BulkActionResult(succeeded=deleted, skipped=len(ids) - deleted)
