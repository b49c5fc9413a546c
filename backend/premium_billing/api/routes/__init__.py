from fastapi import APIRouter

from premium_billing.api.routes import health, payments, webhooks

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(webhooks.router, tags=["webhooks"])
api_router.include_router(payments.router, tags=["payments"])
