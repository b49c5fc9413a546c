"""Paystack webhook route.

The handler takes the body as raw bytes; signature verification needs the
exact payload, so nothing parses it before the processor does.
"""

from datetime import UTC, datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request

from premium_billing.api.deps import get_webhook_processor
from premium_billing.billing.events import RawWebhookRequest
from premium_billing.billing.processor import OutcomeKind, WebhookProcessor
from premium_billing.billing.signature import SIGNATURE_HEADER

logger = structlog.get_logger(__name__)

router = APIRouter()

_ERROR_DETAILS: dict[OutcomeKind, str] = {
    OutcomeKind.MALFORMED_EVENT: "Invalid webhook event",
    OutcomeKind.PROVIDER_UNREACHABLE: "Payment provider unavailable, retry later",
    OutcomeKind.RETRY_LATER: "Webhook could not be processed, retry later",
    OutcomeKind.RECORD_WRITE_FAILED: "Webhook processing failed",
}


@router.post("/webhook")
async def paystack_webhook(
    request: Request,
    processor: WebhookProcessor = Depends(get_webhook_processor),
):
    """Receive a Paystack event; 2xx means "do not redeliver"."""
    body = await request.body()
    outcome = await processor.handle(
        RawWebhookRequest(
            body=body,
            signature=request.headers.get(SIGNATURE_HEADER),
            received_at=datetime.now(UTC),
        )
    )

    if outcome.acknowledged:
        return {"status": "ok", "outcome": outcome.kind.value}

    if outcome.kind == OutcomeKind.SIGNATURE_INVALID:
        raise HTTPException(status_code=403, detail=f"Forbidden: {outcome.detail}")

    detail = _ERROR_DETAILS.get(outcome.kind, "Webhook processing failed")
    if outcome.kind == OutcomeKind.MALFORMED_EVENT and outcome.detail:
        detail = f"{detail}: {outcome.detail}"
    raise HTTPException(status_code=outcome.status_code, detail=detail)
