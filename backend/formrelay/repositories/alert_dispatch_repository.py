"""AlertDispatch repository for data access."""

from __future__ import annotations

from sqlalchemy.orm import Session

from formrelay.models.alert_dispatch import AlertDispatch


class AlertDispatchRepository:
    """Repository for AlertDispatch model."""

    def __init__(self, db: Session):
        self.db = db

    def create(
        self,
        error_count: int,
        error_rate: float,
        total_requests: int,
        recipients: str | None = None,
    ) -> AlertDispatch:
        """Record an alert that was handed to the notifier."""
        dispatch = AlertDispatch(
            error_count=error_count,
            error_rate=error_rate,
            total_requests=total_requests,
            recipients=recipients,
        )
        self.db.add(dispatch)
        self.db.commit()
        self.db.refresh(dispatch)
        return dispatch

    def latest(self) -> AlertDispatch | None:
        """Most recently sent alert, if any."""
        return (
            self.db.query(AlertDispatch)
            .order_by(AlertDispatch.created_at.desc(), AlertDispatch.id.desc())
            .first()
        )
