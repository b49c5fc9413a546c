"""Shared test fixtures for all test groups."""

import json
import os

import pytest
from fakeredis import FakeAsyncRedis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from premium_billing.billing.signature import compute_signature
from premium_billing.db.base import Base, build_session_factory

TEST_SECRET = "sk_test_0123456789abcdef"


def _test_db_url(tmp_path) -> str:
    return os.getenv("TEST_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'billing.db'}")


@pytest.fixture
def test_db_url(tmp_path) -> str:
    return _test_db_url(tmp_path)


@pytest.fixture
async def engine(test_db_url):
    """Async engine with a freshly created schema."""
    import premium_billing.db.models  # noqa: F401

    engine = create_async_engine(test_db_url, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest.fixture
async def redis():
    """Provide fakeredis async client."""
    client = FakeAsyncRedis(decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def add_user(session_factory):
    """Insert a user row; returns an async callable (user_id, email)."""
    from premium_billing.db.models.user import User

    async def _add(user_id: str, email: str) -> None:
        async with session_factory() as session:
            session.add(User(id=user_id, email=email))
            await session.commit()

    return _add


def build_charge_body(
    reference: str = "ref-123",
    email: str | None = "a@example.com",
    paid_at: str | None = "2024-03-10T00:00:00Z",
    event: str = "charge.success",
) -> bytes:
    """Build a Paystack-shaped webhook body as raw bytes."""
    data: dict = {"id": 302961, "reference": reference, "amount": 500000, "currency": "NGN", "status": "success"}
    if email is not None:
        data["customer"] = {"id": 84312, "email": email}
    if paid_at is not None:
        data["paid_at"] = paid_at
    return json.dumps({"event": event, "data": data}).encode("utf-8")


@pytest.fixture
def charge_body():
    return build_charge_body


@pytest.fixture
def sign():
    def _sign(body: bytes, secret: str = TEST_SECRET) -> str:
        return compute_signature(secret, body)

    return _sign


class FakePaystack:
    """In-memory stand-in for PaystackClient."""

    def __init__(self):
        from premium_billing.billing.provider import InitializedTransaction, VerificationStatus

        self.verify_status = VerificationStatus.SUCCESS
        self.verified: list[str] = []
        self.initialized: list[tuple[str, int]] = []
        self.init_error: Exception | None = None
        self.transaction = InitializedTransaction(
            access_code="ac_test_123",
            authorization_url="https://checkout.paystack.com/ac_test_123",
            reference="txn-ref-1",
        )
        self.closed = False

    async def verify_transaction(self, reference: str):
        self.verified.append(reference)
        return self.verify_status

    async def initialize_transaction(self, email: str, amount_minor: int):
        self.initialized.append((email, amount_minor))
        if self.init_error is not None:
            raise self.init_error
        return self.transaction

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_provider() -> FakePaystack:
    return FakePaystack()


@pytest.fixture
def webhook_secret() -> str:
    return TEST_SECRET
