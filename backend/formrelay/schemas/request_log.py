"""Request log, retry policy and delivery request schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from formrelay.core.config import settings
from formrelay.models.request_log import HttpMethod

BACKOFF_MULTIPLIER = 1.5


class RetryPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=3, ge=0, le=10)
    base_delay_seconds: float = Field(default=1.0, ge=0)
    retry_on_timeout: bool = True

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_retries=settings.default_max_retries,
            base_delay_seconds=settings.default_retry_delay,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff before the retry that follows ``attempt`` (0-based)."""
        return self.base_delay_seconds * BACKOFF_MULTIPLIER**attempt


class DeliveryRequest(BaseModel):
    """A fully formed outbound request, ready for the delivery client."""

    url: str = Field(min_length=1, max_length=2048)
    method: HttpMethod = HttpMethod.POST
    body: Any = None
    headers: dict[str, str] = Field(default_factory=dict)
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy.from_settings)
    origin_id: str = ""
    retry_of: int | None = None

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.upper()
        return v


class RequestLogFilters(BaseModel):
    origin_id: str | None = None
    status: str | None = None
    search: str | None = None
    date_filter: str | None = None
    date_start: str | None = None
    date_end: str | None = None
    order_by: str | None = None
    page: int = Field(default=1, ge=1)
    per_page: int = Field(default=20, ge=1)


class RequestLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    origin_id: str
    endpoint: str
    method: str
    status: str
    request_headers: str | None = None
    request_data: str | None = None
    response_headers: str | None = None
    response_data: str | None = None
    response_code: int | None = None
    error_message: str | None = None
    execution_time: float | None = None
    retry_count: int = 0
    retry_of: int | None = None
    created_at: datetime | None = None


class LogStatistics(BaseModel):
    total: int = 0
    success: int = 0
    failed: int = 0
    avg_execution_time: float = 0.0
    max_retries: int = 0


class ReplayRequest(BaseModel):
    """Request reconstructed from a stored failed attempt."""

    original_log_id: int
    origin_id: str
    url: str
    method: HttpMethod
    body: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
