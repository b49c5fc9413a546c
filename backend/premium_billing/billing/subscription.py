"""Subscription state machine: charge.success → premium window.

States per user are NoSubscription (no record, or never premium) and Active.
A successful charge always lands in Active; the window it produces depends on
the ExtensionPolicy. Record writes for one user are serialized by a per-user
lock, and the write commits together with the idempotency claim so a failed
write leaves nothing behind.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, date, datetime
from enum import StrEnum

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from premium_billing.billing.directory import UserDirectory
from premium_billing.billing.idempotency import ClaimStatus, IdempotencyGuard
from premium_billing.billing.window import DEFAULT_EXTENSION_POLICY, ExtensionPolicy, next_window
from premium_billing.core.exceptions import DirectoryUnavailableError, RecordWriteFailedError, UserNotFoundError
from premium_billing.core.locking import SubscriptionLock
from premium_billing.db.models.subscription import SubscriptionRecord

logger = structlog.get_logger(__name__)


class SubscriptionState(StrEnum):
    NO_SUBSCRIPTION = "no_subscription"
    ACTIVE = "active"


@dataclass(frozen=True)
class SubscriptionSnapshot:
    user_id: str
    is_premium: bool
    subscription_start: date | None
    subscription_end: date | None
    last_payment_reference: str | None

    @classmethod
    def from_record(cls, record: SubscriptionRecord) -> "SubscriptionSnapshot":
        return cls(
            user_id=record.user_id,
            is_premium=bool(record.is_premium),
            subscription_start=record.subscription_start,
            subscription_end=record.subscription_end,
            last_payment_reference=record.last_payment_reference,
        )

    @property
    def state(self) -> SubscriptionState:
        return SubscriptionState.ACTIVE if self.is_premium else SubscriptionState.NO_SUBSCRIPTION


class SubscriptionStateMachine:
    """The only writer of SubscriptionRecord rows."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        directory: UserDirectory,
        lock: SubscriptionLock | None = None,
        *,
        guard: IdempotencyGuard | None = None,
        policy: ExtensionPolicy = DEFAULT_EXTENSION_POLICY,
        directory_timeout: float = 5.0,
        lock_wait: float = 10.0,
    ):
        self.session_factory = session_factory
        self.directory = directory
        self.lock = lock
        self.guard = guard
        self.policy = ExtensionPolicy(policy)
        self.directory_timeout = directory_timeout
        self.lock_wait = lock_wait

    async def resolve_user(self, email: str) -> str:
        """Map a payer email to a user id.

        Raises:
            UserNotFoundError: no user has this email
            DirectoryUnavailableError: the lookup timed out
        """
        try:
            user_id = await asyncio.wait_for(self.directory.find_user_id(email), timeout=self.directory_timeout)
        except TimeoutError as e:
            raise DirectoryUnavailableError(f"User lookup timed out after {self.directory_timeout}s") from e
        if user_id is None:
            raise UserNotFoundError(email)
        return user_id

    @asynccontextmanager
    async def _serialized(self, user_id: str):
        if self.lock is None:
            yield
            return
        async with self.lock.hold(user_id, wait_timeout=self.lock_wait):
            yield

    async def apply_charge_succeeded(self, payer_email: str, reference: str, paid_at: datetime) -> SubscriptionSnapshot:
        """Activate (or renew) premium for the payer of ``reference``.

        Raises:
            UserNotFoundError: the payer email has no user
            DirectoryUnavailableError: the user lookup timed out
            LockTimeoutError: another write for this user held the lock too long
            RecordWriteFailedError: the record (and claim) could not be committed
        """
        user_id = await self.resolve_user(payer_email)
        async with self._serialized(user_id):
            snapshot = await self._write(user_id, reference, paid_at)

        logger.info(
            "subscription_activated",
            user_id=user_id,
            reference=reference,
            subscription_start=str(snapshot.subscription_start),
            subscription_end=str(snapshot.subscription_end),
            policy=self.policy.value,
        )
        return snapshot

    async def _write(self, user_id: str, reference: str, paid_at: datetime) -> SubscriptionSnapshot:
        if paid_at.tzinfo is None:
            paid_at = paid_at.replace(tzinfo=UTC)
        paid_on = paid_at.astimezone(UTC).date()

        async with self.session_factory() as session:
            try:
                record = await session.get(SubscriptionRecord, user_id)
                if record is None:
                    record = SubscriptionRecord(user_id=user_id, is_premium=False)
                    session.add(record)

                if record.is_premium and record.last_payment_reference == reference:
                    logger.info("subscription_payment_already_applied", user_id=user_id, reference=reference)
                else:
                    window = next_window(
                        paid_on,
                        current_start=record.subscription_start if record.is_premium else None,
                        current_end=record.subscription_end if record.is_premium else None,
                        policy=self.policy,
                    )
                    record.is_premium = True
                    record.subscription_start = window.start
                    record.subscription_end = window.end
                    record.last_payment_reference = reference

                snapshot = SubscriptionSnapshot.from_record(record)

                if self.guard is not None:
                    await self.guard.complete(session, reference, ClaimStatus.APPLIED, user_id)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error("subscription_write_failed", user_id=user_id, reference=reference, error=str(e))
                raise RecordWriteFailedError(reference, str(e)) from e

        return snapshot

    async def get_snapshot(self, user_id: str) -> SubscriptionSnapshot | None:
        async with self.session_factory() as session:
            record = await session.get(SubscriptionRecord, user_id)
            return SubscriptionSnapshot.from_record(record) if record is not None else None
