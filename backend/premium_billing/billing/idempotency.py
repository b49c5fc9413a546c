"""At-most-once application of provider references.

The claim is a primary-key insert into ``processed_payment_references``: the
database decides which of several concurrent deliveries wins, so there is no
read-then-write window. A claim left in ``processing`` by a worker that died
is taken over once it is older than ``stale_after_seconds``; the takeover is a
conditional UPDATE, so again only one redelivery can win it.
"""

from datetime import UTC, datetime, timedelta
from enum import StrEnum

import structlog
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from premium_billing.core.exceptions import RecordWriteFailedError
from premium_billing.db.models.processed_reference import ProcessedPaymentReference

logger = structlog.get_logger(__name__)


class ClaimStatus(StrEnum):
    PROCESSING = "processing"
    APPLIED = "applied"
    USER_NOT_FOUND = "user_not_found"
    PROVIDER_REJECTED = "provider_rejected"


class IdempotencyGuard:
    """Durable processed-reference set."""

    DEFAULT_STALE_AFTER_SECONDS = 300

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        stale_after_seconds: int | None = None,
    ):
        self.session_factory = session_factory
        self.stale_after = timedelta(seconds=stale_after_seconds or self.DEFAULT_STALE_AFTER_SECONDS)

    async def claim(self, reference: str, event_kind: str) -> bool:
        """Return True if the reference is now claimed by the caller, False if already seen.

        A reference is claimable when it was never seen, or when its earlier
        claim is still ``processing`` and older than the stale threshold.
        """
        async with self.session_factory() as session:
            try:
                session.add(ProcessedPaymentReference(reference=reference, event_kind=event_kind))
                await session.commit()
                return True
            except IntegrityError:
                await session.rollback()
            except SQLAlchemyError as e:
                await session.rollback()
                raise RecordWriteFailedError(reference, f"claim failed: {e}") from e

        return await self._take_over_stale(reference, event_kind)

    async def _take_over_stale(self, reference: str, event_kind: str) -> bool:
        now = datetime.now(UTC)
        async with self.session_factory() as session:
            try:
                result = await session.execute(
                    update(ProcessedPaymentReference)
                    .where(
                        ProcessedPaymentReference.reference == reference,
                        ProcessedPaymentReference.status == ClaimStatus.PROCESSING.value,
                        ProcessedPaymentReference.claimed_at < now - self.stale_after,
                    )
                    .values(event_kind=event_kind, claimed_at=now)
                )
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise RecordWriteFailedError(reference, f"stale claim takeover failed: {e}") from e

        if result.rowcount == 1:
            logger.warning("stale_claim_taken_over", reference=reference, stale_after=self.stale_after.total_seconds())
            return True
        return False

    async def complete(
        self,
        session: AsyncSession,
        reference: str,
        status: ClaimStatus,
        user_id: str | None = None,
    ) -> None:
        """Mark a claim finished inside the caller's transaction (caller commits)."""
        await session.execute(
            update(ProcessedPaymentReference)
            .where(ProcessedPaymentReference.reference == reference)
            .values(status=status.value, user_id=user_id, completed_at=datetime.now(UTC))
        )

    async def finish(self, reference: str, status: ClaimStatus, user_id: str | None = None) -> None:
        """Mark a claim finished in its own transaction."""
        async with self.session_factory() as session:
            try:
                await self.complete(session, reference, status, user_id)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                # The claim row already blocks redelivery; only the outcome label is lost.
                logger.warning("claim_finish_failed", reference=reference, status=status.value, error=str(e))

    async def release(self, reference: str) -> None:
        """Forget an in-flight claim so a redelivery of the reference is processed."""
        async with self.session_factory() as session:
            try:
                await session.execute(
                    delete(ProcessedPaymentReference).where(
                        ProcessedPaymentReference.reference == reference,
                        ProcessedPaymentReference.status == ClaimStatus.PROCESSING.value,
                    )
                )
                await session.commit()
                logger.info("claim_released", reference=reference)
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error("claim_release_failed", reference=reference, error=str(e))

    async def status_of(self, reference: str) -> str | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(ProcessedPaymentReference.status).where(ProcessedPaymentReference.reference == reference)
            )
            return result.scalar_one_or_none()
