"""SubscriptionRecord model: one premium subscription window per user."""

from datetime import UTC, datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, String

from premium_billing.db.base import Base


class SubscriptionRecord(Base):
    __tablename__ = "subscription_records"

    user_id = Column(String(128), ForeignKey("users.id"), primary_key=True)

    is_premium = Column(Boolean, nullable=False, default=False)
    subscription_start = Column(Date, nullable=True)
    subscription_end = Column(Date, nullable=True)
    last_payment_reference = Column(String(255), nullable=True)

    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )
