"""Tests for the subscription state machine."""

import asyncio
from datetime import UTC, date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from premium_billing.billing.directory import SqlUserDirectory
from premium_billing.billing.idempotency import ClaimStatus, IdempotencyGuard
from premium_billing.billing.subscription import SubscriptionState, SubscriptionStateMachine
from premium_billing.billing.window import ExtensionPolicy
from premium_billing.core.exceptions import (
    DirectoryUnavailableError,
    LockTimeoutError,
    RecordWriteFailedError,
    UserNotFoundError,
)
from premium_billing.core.locking import SubscriptionLock

pytestmark = pytest.mark.integration

PAID_AT = datetime(2024, 3, 10, 9, 15, tzinfo=UTC)


@pytest.fixture
async def machine(session_factory, redis, add_user):
    await add_user("user-a", "a@example.com")
    guard = IdempotencyGuard(session_factory)
    return SubscriptionStateMachine(
        session_factory,
        SqlUserDirectory(session_factory),
        SubscriptionLock(redis),
        guard=guard,
    )


async def test_user_without_record_has_no_subscription(machine):
    assert await machine.get_snapshot("user-a") is None


async def test_first_payment_activates_one_month(machine):
    await machine.guard.claim("ref-123", "charge.success")

    snapshot = await machine.apply_charge_succeeded("a@example.com", "ref-123", PAID_AT)

    assert snapshot.state == SubscriptionState.ACTIVE
    assert snapshot.subscription_start == date(2024, 3, 10)
    assert snapshot.subscription_end == date(2024, 4, 10)
    assert snapshot.last_payment_reference == "ref-123"
    assert await machine.get_snapshot("user-a") == snapshot


async def test_write_commits_claim_as_applied(machine):
    await machine.guard.claim("ref-123", "charge.success")

    await machine.apply_charge_succeeded("a@example.com", "ref-123", PAID_AT)

    assert await machine.guard.status_of("ref-123") == ClaimStatus.APPLIED


async def test_email_match_is_case_insensitive(machine):
    snapshot = await machine.apply_charge_succeeded("A@Example.COM", "ref-1", PAID_AT)

    assert snapshot.user_id == "user-a"


async def test_paid_at_uses_utc_calendar_date(machine):
    # 2024-03-10 23:30 at UTC-05:00 is already 2024-03-11 in UTC
    paid_at = datetime(2024, 3, 10, 23, 30, tzinfo=timezone(timedelta(hours=-5)))

    snapshot = await machine.apply_charge_succeeded("a@example.com", "ref-1", paid_at)

    assert snapshot.subscription_start == date(2024, 3, 11)


async def test_month_end_clamps(machine):
    snapshot = await machine.apply_charge_succeeded("a@example.com", "ref-1", datetime(2024, 1, 31, tzinfo=UTC))

    assert snapshot.subscription_end == date(2024, 2, 29)


async def test_same_reference_applied_twice_is_noop(machine):
    first = await machine.apply_charge_succeeded("a@example.com", "ref-123", PAID_AT)

    second = await machine.apply_charge_succeeded("a@example.com", "ref-123", PAID_AT + timedelta(days=5))

    assert second == first


async def test_reset_policy_restarts_window(machine):
    await machine.apply_charge_succeeded("a@example.com", "ref-1", PAID_AT)

    snapshot = await machine.apply_charge_succeeded("a@example.com", "ref-2", PAID_AT + timedelta(days=10))

    assert snapshot.subscription_start == date(2024, 3, 20)
    assert snapshot.subscription_end == date(2024, 4, 20)
    assert snapshot.last_payment_reference == "ref-2"


async def test_stack_policy_extends_window(session_factory, redis, add_user):
    await add_user("user-s", "s@example.com")
    machine = SubscriptionStateMachine(
        session_factory,
        SqlUserDirectory(session_factory),
        SubscriptionLock(redis),
        policy=ExtensionPolicy.STACK,
    )
    await machine.apply_charge_succeeded("s@example.com", "ref-1", PAID_AT)

    snapshot = await machine.apply_charge_succeeded("s@example.com", "ref-2", PAID_AT + timedelta(days=10))

    assert snapshot.subscription_start == date(2024, 3, 10)
    assert snapshot.subscription_end == date(2024, 5, 10)


async def test_unknown_email_raises_user_not_found(machine):
    with pytest.raises(UserNotFoundError) as exc_info:
        await machine.apply_charge_succeeded("nobody@example.com", "ref-1", PAID_AT)

    assert exc_info.value.email == "nobody@example.com"


async def test_slow_directory_raises_unavailable(session_factory):
    class SlowDirectory:
        async def find_user_id(self, email):
            await asyncio.sleep(1)
            return "user-a"

    machine = SubscriptionStateMachine(session_factory, SlowDirectory(), directory_timeout=0.05)

    with pytest.raises(DirectoryUnavailableError):
        await machine.apply_charge_succeeded("a@example.com", "ref-1", PAID_AT)


async def test_lock_contention_raises_lock_timeout(machine, redis):
    await machine.lock.acquire("user-a", "other-worker")
    machine.lock_wait = 0.1

    with pytest.raises(LockTimeoutError):
        await machine.apply_charge_succeeded("a@example.com", "ref-1", PAID_AT)

    assert await machine.get_snapshot("user-a") is None


async def test_failed_write_leaves_record_untouched(session_factory, add_user):
    await add_user("user-f", "f@example.com")
    guard = MagicMock()
    guard.complete = AsyncMock(side_effect=OperationalError("UPDATE", {}, Exception("connection lost")))
    machine = SubscriptionStateMachine(session_factory, SqlUserDirectory(session_factory), guard=guard)

    with pytest.raises(RecordWriteFailedError) as exc_info:
        await machine.apply_charge_succeeded("f@example.com", "ref-1", PAID_AT)

    assert exc_info.value.reference == "ref-1"
    assert await machine.get_snapshot("user-f") is None


async def test_concurrent_payments_for_same_user_both_land(machine):
    await asyncio.gather(
        machine.apply_charge_succeeded("a@example.com", "ref-1", PAID_AT),
        machine.apply_charge_succeeded("a@example.com", "ref-2", PAID_AT),
    )

    snapshot = await machine.get_snapshot("user-a")
    assert snapshot.is_premium is True
    assert snapshot.last_payment_reference in {"ref-1", "ref-2"}
    assert snapshot.subscription_end == date(2024, 4, 10)
