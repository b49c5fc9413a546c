"""User model: the identities payments are matched against by email."""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime, Index, String, func

from premium_billing.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(128), primary_key=True)
    email = Column(String(320), unique=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))

    # Payer emails are matched case-insensitively, so they must be unique that way too
    __table_args__ = (Index("ix_users_email_lower", func.lower(email), unique=True),)
