"""AlertDispatch model recording each error-rate alert that was sent."""

from sqlalchemy import Column, DateTime, Float, Integer, String

from formrelay.core.database import Base
from formrelay.models.shared import utc_now


class AlertDispatch(Base):
    """One row per alert handed to the notifier; the latest drives the cooldown."""

    __tablename__ = "alert_dispatches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    error_count = Column(Integer, nullable=False)
    error_rate = Column(Float, nullable=False)
    total_requests = Column(Integer, nullable=False)
    recipients = Column(String(1000), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)
