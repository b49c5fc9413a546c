"""Construction of the webhook pipeline's collaborators.

Everything is built once per process (in the app lifespan) and stored on
``app.state``; routes reach it through the dependencies in ``api.deps``.
"""

from fastapi import FastAPI
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from premium_billing.billing.directory import SqlUserDirectory, UserDirectory
from premium_billing.billing.idempotency import IdempotencyGuard
from premium_billing.billing.processor import WebhookProcessor
from premium_billing.billing.provider import PaystackClient
from premium_billing.billing.subscription import SubscriptionStateMachine
from premium_billing.core.alerts import OperatorAlerts
from premium_billing.core.config import Settings
from premium_billing.core.locking import SubscriptionLock
from premium_billing.core.rate_limit import RateLimiter


def build_paystack_client(settings: Settings) -> PaystackClient:
    return PaystackClient(
        settings.paystack_secret_key,
        settings.paystack_base_url,
        timeout=settings.provider_timeout_seconds,
        max_attempts=settings.provider_max_attempts,
    )


def wire_services(
    app: FastAPI,
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    redis: Redis,
    provider: PaystackClient,
    directory: UserDirectory | None = None,
) -> WebhookProcessor:
    """Build the pipeline and attach it (and its collaborators) to ``app.state``."""
    guard = IdempotencyGuard(session_factory, stale_after_seconds=settings.claim_stale_after_seconds)
    state_machine = SubscriptionStateMachine(
        session_factory,
        directory or SqlUserDirectory(session_factory),
        SubscriptionLock(redis, ttl=settings.subscription_lock_ttl_seconds),
        guard=guard,
        policy=settings.subscription_extension_policy,
        directory_timeout=settings.directory_timeout_seconds,
        lock_wait=settings.subscription_lock_wait_seconds,
    )
    processor = WebhookProcessor(
        settings.paystack_secret_key,
        guard,
        state_machine,
        provider=provider,
        alerts=OperatorAlerts(redis),
        reverify=settings.provider_reverification_enabled,
    )

    app.state.session_factory = session_factory
    app.state.redis = redis
    app.state.paystack_client = provider
    app.state.webhook_processor = processor
    app.state.payment_rate_limiter = RateLimiter(
        redis,
        limit=settings.payment_rate_limit,
        window_seconds=settings.payment_rate_limit_window_seconds,
    )
    return processor
