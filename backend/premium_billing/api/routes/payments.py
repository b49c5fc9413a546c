"""Payment initiation: creates a Paystack access code for checkout."""

from decimal import ROUND_HALF_UP

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from premium_billing.api.deps import enforce_payment_rate_limit, get_paystack_client
from premium_billing.api.schemas.payments import (
    AccessCodeData,
    AccessCodeRequest,
    AccessCodeResponse,
    PaymentErrorResponse,
)
from premium_billing.billing.provider import PaystackClient
from premium_billing.core.config import get_settings
from premium_billing.core.exceptions import ProviderRejectedError, ProviderUnreachableError

logger = structlog.get_logger(__name__)

router = APIRouter()


def _error(status_code: int, message: str, error: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=PaymentErrorResponse(message=message, error=error).model_dump(),
    )


@router.post(
    "/create-access-code",
    response_model=AccessCodeResponse,
    dependencies=[Depends(enforce_payment_rate_limit)],
)
async def create_access_code(
    body: AccessCodeRequest,
    client: PaystackClient = Depends(get_paystack_client),
):
    """Initialize a Paystack transaction and return its access code."""
    email = (body.email or "").strip()
    if not email or body.amount is None:
        return _error(400, "Email and amount are required.")
    if body.amount <= 0:
        return _error(400, "Amount must be greater than zero.")

    minor_units = get_settings().currency_minor_units
    amount_minor = int((body.amount * minor_units).to_integral_value(rounding=ROUND_HALF_UP))

    try:
        transaction = await client.initialize_transaction(email, amount_minor)
    except (ProviderRejectedError, ProviderUnreachableError) as e:
        logger.error("access_code_creation_failed", error=str(e), error_type=type(e).__name__)
        return _error(500, "Failed to create access code.", str(e))

    logger.info("access_code_created", reference=transaction.reference, amount_minor=amount_minor)
    response = AccessCodeResponse(
        message="Access code created successfully.",
        data=AccessCodeData(
            access_code=transaction.access_code,
            authorization_url=transaction.authorization_url,
        ),
    )
    return JSONResponse(status_code=200, content=response.model_dump(by_alias=True))
