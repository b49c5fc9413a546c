"""API-specific test fixtures."""

from contextlib import asynccontextmanager

import pytest
from fakeredis import FakeAsyncRedis
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import create_async_engine

from premium_billing.db.base import Base, build_session_factory

API_USERS = {"user-a": "a@example.com", "user-b": "b@example.com"}


@pytest.fixture
def api_settings(webhook_secret):
    from premium_billing.core.config import Settings

    return Settings(
        debug=True,
        paystack_secret_key=webhook_secret,
        payment_rate_limit=3,
        subscription_lock_wait_seconds=1.0,
    )


@pytest.fixture
def api_client(test_db_url, api_settings, fake_provider):
    """FastAPI test client with a test database, fakeredis and a fake Paystack.

    Everything async is created inside the TestClient's own event loop via
    the test lifespan, the same way the production lifespan wires the app.
    """
    from fastapi import HTTPException

    import premium_billing.db.models  # noqa: F401
    from premium_billing.api.routes import api_router
    from premium_billing.core.wiring import wire_services
    from premium_billing.db.models.user import User
    from premium_billing.main import generic_exception_handler, http_exception_handler

    @asynccontextmanager
    async def test_lifespan(app: FastAPI):
        """Test lifespan - initialize DB and Redis in TestClient's event loop."""
        engine = create_async_engine(test_db_url, echo=False)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
        factory = build_session_factory(engine)

        async with factory() as session:
            session.add_all([User(id=user_id, email=email) for user_id, email in API_USERS.items()])
            await session.commit()

        redis = FakeAsyncRedis(decode_responses=True)
        app.state.shutting_down = False
        wire_services(app, api_settings, factory, redis, fake_provider)
        yield
        await redis.aclose()
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        await engine.dispose()

    app = FastAPI(
        title=api_settings.app_name,
        description="Premium Billing - Test Client",
        version="0.1.0",
        lifespan=test_lifespan,
    )

    # Exception handlers (needed for debug_id testing)
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(Exception)(generic_exception_handler)

    app.include_router(api_router, prefix="/api")

    with TestClient(app) as client:
        yield client


@pytest.fixture
def app_call(api_client):
    """Run an async callable against ``app.state`` inside the client's event loop."""

    def _call(fn):
        async def _run():
            return await fn(api_client.app.state)

        return api_client.portal.call(_run)

    return _call
