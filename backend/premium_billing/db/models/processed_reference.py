"""ProcessedPaymentReference model for webhook idempotency tracking."""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, String

from premium_billing.db.base import Base


class ProcessedPaymentReference(Base):
    """Tracks claimed provider references so each payment is applied at most once.

    status:
        - processing: claimed, application in flight
        - applied: subscription updated
        - user_not_found / provider_rejected: acknowledged without state change
    """

    __tablename__ = "processed_payment_references"

    reference = Column(String(255), primary_key=True)
    event_kind = Column(String(100), nullable=False)
    status = Column(String(30), nullable=False, default="processing")
    user_id = Column(String(128), nullable=True)
    claimed_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    completed_at = Column(DateTime(timezone=True), nullable=True)
