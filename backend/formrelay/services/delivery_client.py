"""Outbound delivery client with bounded exponential-backoff retries."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import ValidationError

from formrelay.core.config import settings
from formrelay.core.errors import (
    ClientError,
    DeliveryError,
    EncodingError,
    ServerError,
    TransportError,
)
from formrelay.models.request_log import RequestStatus
from formrelay.schemas.request_log import DeliveryRequest, RetryPolicy
from formrelay.services.body_encoder import ContentType, build_url, carries_body, encode
from formrelay.services.request_log_store import RequestLogStore, classify_status

logger = logging.getLogger(__name__)

Middleware = Callable[[DeliveryRequest], DeliveryRequest]


@dataclass
class DeliveryResult:
    """Outcome of a delivery: the last response received, or the error that ended it."""

    response: httpx.Response | None = None
    error: DeliveryError | None = None
    retry_count: int = 0
    attempts: int = 0
    log_id: int | None = None

    @property
    def status_code(self) -> int | None:
        return self.response.status_code if self.response is not None else None

    @property
    def ok(self) -> bool:
        return self.response is not None and 200 <= self.response.status_code < 300

    @property
    def status(self) -> RequestStatus:
        return classify_status(self.response if self.response is not None else self.error)


class DeliveryClient:
    """Sends delivery requests, retrying transient failures.

    5xx responses and transport failures are retried up to
    ``retry_policy.max_retries`` times, sleeping
    ``base_delay_seconds * 1.5 ** attempt`` between attempts. Transport
    failures are only retried when ``retry_on_timeout`` is set. 4xx responses
    are never retried.

    Every attempt opens and closes its own ``httpx.Client``. When a
    ``RequestLogStore`` is attached, a pending row is written before the first
    attempt and completed once the loop ends.
    """

    def __init__(
        self,
        store: RequestLogStore | None = None,
        middleware: Iterable[Middleware] = (),
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
        timeout: float | None = None,
        max_redirects: int | None = None,
    ):
        self.store = store
        self.middleware = list(middleware)
        self.transport = transport
        self.sleep = sleep
        self.timeout = settings.request_timeout if timeout is None else timeout
        self.max_redirects = settings.max_redirects if max_redirects is None else max_redirects

    def use(self, middleware: Middleware) -> None:
        """Append a request transform, applied in registration order before sending."""
        self.middleware.append(middleware)

    def deliver(
        self,
        origin_id: str,
        url: str,
        method: str = "POST",
        body: Any = None,
        headers: Mapping[str, str] | None = None,
        content_type: str = ContentType.PARAMS.value,
        retry_policy: RetryPolicy | None = None,
        retry_of: int | None = None,
    ) -> DeliveryResult:
        """Encode a logical payload and send it.

        Encoding failures are returned without any HTTP call or log row.
        """
        method = method.upper()
        request_headers = dict(headers or {})
        encoded_body: Any = None

        try:
            if carries_body(method, content_type):
                encoded = encode(content_type, body)
                encoded_body = encoded.body
                if encoded.content_type_header:
                    request_headers = {
                        k: v for k, v in request_headers.items() if k.lower() != "content-type"
                    }
                    request_headers["Content-Type"] = encoded.content_type_header
            final_url = build_url(url, body, method, content_type)
        except (EncodingError, ValueError) as exc:
            error = exc if isinstance(exc, EncodingError) else EncodingError(str(exc))
            logger.warning("Payload for origin %s could not be encoded: %s", origin_id, error)
            return DeliveryResult(error=error)

        try:
            request = DeliveryRequest(
                url=final_url,
                method=method,
                body=encoded_body,
                headers=request_headers,
                retry_policy=retry_policy or RetryPolicy.from_settings(),
                origin_id=str(origin_id),
                retry_of=retry_of,
            )
        except ValidationError as exc:
            logger.warning("Invalid delivery request for origin %s: %s", origin_id, exc)
            return DeliveryResult(error=DeliveryError(f"Invalid delivery request: {exc}"))
        return self.send(request)

    def send(self, request: DeliveryRequest) -> DeliveryResult:
        """Execute the request with retries. Never raises."""
        for transform in self.middleware:
            try:
                request = transform(request)
            except Exception as exc:
                logger.exception("Delivery middleware failed for origin %s", request.origin_id)
                return DeliveryResult(error=DeliveryError(f"Middleware failed: {exc!r}"))

        policy = request.retry_policy
        method = request.method.value
        log_id = None
        if self.store is not None:
            log_id = self.store.start(
                request.origin_id,
                request.url,
                method,
                request.body,
                request.headers,
                retry_of=request.retry_of,
            )

        response: httpx.Response | None = None
        error: DeliveryError | None = None
        retry_count = 0
        attempts = 0

        finished = False
        try:
            for attempt in range(policy.max_retries + 1):
                attempts += 1
                response, error = self._attempt(request)

                if response is None:
                    retryable = isinstance(error, TransportError)
                    if retryable and policy.retry_on_timeout and attempt < policy.max_retries:
                        retry_count += 1
                        self._backoff(request, log_id, retry_count, policy, attempt, str(error))
                        continue
                    break

                code = response.status_code
                if 200 <= code < 300:
                    error = None
                    break
                if code >= 500:
                    error = ServerError(f"Server error {code} from {request.url}", code)
                    if attempt < policy.max_retries:
                        retry_count += 1
                        self._backoff(request, log_id, retry_count, policy, attempt, f"HTTP {code}")
                        continue
                    break
                if 400 <= code < 500:
                    error = ClientError(f"Client error {code} from {request.url}", code)
                else:
                    error = DeliveryError(f"Unexpected HTTP status {code} from {request.url}")
                break
            finished = True
        finally:
            # The pending row is closed even if the loop is interrupted.
            if not finished:
                response, error = None, DeliveryError("Delivery aborted unexpectedly")
            if self.store is not None:
                self.store.complete(
                    log_id, response if response is not None else error, retry_count
                )

        return DeliveryResult(
            response=response,
            error=error,
            retry_count=retry_count,
            attempts=attempts,
            log_id=log_id,
        )

    def _backoff(
        self,
        request: DeliveryRequest,
        log_id: int | None,
        retry_count: int,
        policy: RetryPolicy,
        attempt: int,
        reason: str,
    ) -> None:
        if self.store is not None:
            self.store.record_retry(log_id, retry_count)
        delay = policy.delay_for(attempt)
        logger.info(
            "Retrying %s %s (retry %d of %d, log %s) in %.2fs after %s",
            request.method.value,
            request.url,
            retry_count,
            policy.max_retries,
            log_id,
            delay,
            reason,
        )
        self.sleep(delay)

    def _attempt(
        self, request: DeliveryRequest
    ) -> tuple[httpx.Response | None, DeliveryError | None]:
        """One physical HTTP call."""
        kwargs: dict[str, Any] = {"headers": request.headers}
        if isinstance(request.body, Mapping):
            kwargs["data"] = dict(request.body)
        elif isinstance(request.body, bytes | str):
            kwargs["content"] = request.body

        try:
            with httpx.Client(
                timeout=self.timeout,
                follow_redirects=True,
                max_redirects=self.max_redirects,
                verify=True,
                transport=self.transport,
            ) as client:
                response = client.request(request.method.value, request.url, **kwargs)
        except httpx.TimeoutException as exc:
            logger.warning("Delivery to %s timed out: %s", request.url, exc)
            return None, TransportError(f"Request timed out: {exc}", is_timeout=True)
        except httpx.TransportError as exc:
            logger.warning("Delivery to %s failed: %s", request.url, exc)
            return None, TransportError(f"Connection failed: {exc}")
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            logger.warning("Delivery to %s aborted: %s", request.url, exc)
            return None, DeliveryError(str(exc))
        except (ValueError, TypeError) as exc:
            # Raised while building the request, e.g. a header value that is not ASCII.
            logger.warning("Request to %s could not be built: %s", request.url, exc)
            return None, DeliveryError(f"Request could not be built: {exc}")
        return response, None
