"""FastAPI dependencies resolving the collaborators built in the app lifespan."""

from fastapi import HTTPException, Request

from premium_billing.billing.processor import WebhookProcessor
from premium_billing.billing.provider import PaystackClient
from premium_billing.core.rate_limit import RateLimiter


def get_webhook_processor(request: Request) -> WebhookProcessor:
    return request.app.state.webhook_processor


def get_paystack_client(request: Request) -> PaystackClient:
    return request.app.state.paystack_client


def get_payment_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.payment_rate_limiter


async def enforce_payment_rate_limit(request: Request) -> None:
    """Reject the request with 429 once the client exhausts its window."""
    limiter = get_payment_rate_limiter(request)
    client_key = request.client.host if request.client else "unknown"
    allowed, _remaining, reset_at = await limiter.hit(client_key)
    if not allowed:
        raise HTTPException(
            status_code=429,
            detail="Too many requests, please try again later.",
            headers={"X-RateLimit-Reset": str(reset_at)},
        )
