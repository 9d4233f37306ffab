"""Hourly error-rate monitoring for outbound deliveries."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Protocol

from sqlalchemy.orm import Session

from formrelay.core.config import settings
from formrelay.models.request_log import RequestLog
from formrelay.repositories.alert_dispatch_repository import AlertDispatchRepository
from formrelay.services.request_log_store import RequestLogStore

logger = logging.getLogger(__name__)

RECENT_ERROR_LIMIT = 5


@dataclass
class AlertSummary:
    """Last-hour statistics handed to a notifier."""

    error_count: int
    error_rate: float
    total_requests: int
    recent_errors: list[RequestLog] = field(default_factory=list)


class Notifier(Protocol):
    def notify(self, summary: AlertSummary, recipients: list[str]) -> bool: ...


class LoggingNotifier:
    """Notifier that writes the alert to the application log."""

    def notify(self, summary: AlertSummary, recipients: list[str]) -> bool:
        logger.warning(
            "High delivery error rate: %d errors out of %d requests (%.2f%%) in the last hour; "
            "alerting %s",
            summary.error_count,
            summary.total_requests,
            summary.error_rate,
            ", ".join(recipients) or "nobody",
        )
        for log in summary.recent_errors:
            logger.warning(
                "  log %s %s %s -> %s: %s",
                log.id,
                log.method,
                log.endpoint,
                log.status,
                log.error_message or log.response_code,
            )
        return True


def parse_recipients(value: str) -> list[str]:
    """Split a comma-separated recipient list, dropping blanks."""
    return [part.strip() for part in value.split(",") if part.strip()]


class AlertService:
    """Raises an alert when the last hour's error count or rate crosses a threshold.

    A cooldown suppresses repeat alerts; the time of the last alert is read
    from the ``alert_dispatches`` table.
    """

    def __init__(
        self,
        store: RequestLogStore,
        notifier: Notifier | None = None,
        db: Session | None = None,
        enabled: bool | None = None,
        error_threshold: int | None = None,
        rate_threshold: float | None = None,
        cooldown_hours: int | None = None,
        recipients: str | None = None,
    ):
        self.store = store
        self.notifier = notifier or LoggingNotifier()
        self.dispatches = AlertDispatchRepository(db if db is not None else store.db)
        self.enabled = settings.alerts_enabled if enabled is None else enabled
        self.error_threshold = (
            settings.alert_error_threshold if error_threshold is None else error_threshold
        )
        self.rate_threshold = (
            settings.alert_rate_threshold if rate_threshold is None else rate_threshold
        )
        self.cooldown_hours = (
            settings.alert_cooldown_hours if cooldown_hours is None else cooldown_hours
        )
        self.recipients = parse_recipients(
            settings.alert_recipients if recipients is None else recipients
        )

    def in_cooldown(self, now: datetime | None = None) -> bool:
        last = self.dispatches.latest()
        if last is None:
            return False
        sent_at = last.created_at
        if sent_at.tzinfo is None:  # type: ignore[union-attr]
            sent_at = sent_at.replace(tzinfo=UTC)  # type: ignore[union-attr]
        now = now or datetime.now(UTC)
        return now < sent_at + timedelta(hours=self.cooldown_hours)  # type: ignore[operator]

    def hourly_summary(self) -> AlertSummary:
        total = self.store.count_in_window(1)
        errors = self.store.count_in_window(1, "error")
        rate = round(errors / total * 100, 2) if total > 0 else 0.0
        return AlertSummary(
            error_count=errors,
            error_rate=rate,
            total_requests=total,
            recent_errors=self.store.recent_errors(RECENT_ERROR_LIMIT),
        )

    def should_alert(self, summary: AlertSummary) -> bool:
        return (
            summary.error_count >= self.error_threshold
            or summary.error_rate >= self.rate_threshold
        )

    def check_and_alert(self) -> bool:
        """Check the last hour and notify if needed. Returns True when an alert went out."""
        if not self.enabled:
            return False
        if self.in_cooldown():
            logger.debug("Alert check skipped, still in cooldown")
            return False

        summary = self.hourly_summary()
        if not self.should_alert(summary):
            return False

        try:
            sent = self.notifier.notify(summary, self.recipients)
        except Exception:
            logger.exception("Failed to send delivery error alert")
            return False
        if not sent:
            return False

        self.dispatches.create(
            error_count=summary.error_count,
            error_rate=summary.error_rate,
            total_requests=summary.total_requests,
            recipients=", ".join(self.recipients) or None,
        )
        logger.info(
            "Delivery error alert sent: %d errors, %.2f%% error rate",
            summary.error_count,
            summary.error_rate,
        )
        return True
