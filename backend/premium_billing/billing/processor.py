"""Inbound webhook pipeline.

raw bytes → signature check → parse → claim reference → (re-verify with
Paystack) → apply to subscription. ``WebhookProcessor.handle`` is the only
entry point; it returns a WebhookOutcome and leaves HTTP concerns to the route.
"""

import asyncio
from dataclasses import dataclass
from enum import StrEnum

import structlog

from premium_billing.billing.events import ChargeSucceeded, OtherEvent, RawWebhookRequest, parse_event
from premium_billing.billing.idempotency import ClaimStatus, IdempotencyGuard
from premium_billing.billing.provider import PaystackClient, VerificationStatus
from premium_billing.billing.signature import verify_signature
from premium_billing.billing.subscription import SubscriptionSnapshot, SubscriptionStateMachine
from premium_billing.core.alerts import OperatorAlerts
from premium_billing.core.exceptions import (
    ProviderUnreachableError,
    RecordWriteFailedError,
    RetryableBillingError,
    UserNotFoundError,
)

logger = structlog.get_logger(__name__)


class OutcomeKind(StrEnum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    USER_NOT_FOUND = "user_not_found"
    PROVIDER_REJECTED = "provider_rejected"
    SIGNATURE_INVALID = "signature_invalid"
    MALFORMED_EVENT = "malformed_event"
    PROVIDER_UNREACHABLE = "provider_unreachable"
    RETRY_LATER = "retry_later"
    RECORD_WRITE_FAILED = "record_write_failed"


STATUS_CODES: dict[OutcomeKind, int] = {
    OutcomeKind.APPLIED: 200,
    OutcomeKind.DUPLICATE: 200,
    OutcomeKind.IGNORED: 200,
    OutcomeKind.USER_NOT_FOUND: 200,
    OutcomeKind.PROVIDER_REJECTED: 200,
    OutcomeKind.SIGNATURE_INVALID: 403,
    OutcomeKind.MALFORMED_EVENT: 400,
    OutcomeKind.PROVIDER_UNREACHABLE: 503,
    OutcomeKind.RETRY_LATER: 503,
    OutcomeKind.RECORD_WRITE_FAILED: 500,
}


@dataclass(frozen=True)
class WebhookOutcome:
    kind: OutcomeKind
    reference: str | None = None
    detail: str | None = None
    subscription: SubscriptionSnapshot | None = None

    @property
    def status_code(self) -> int:
        return STATUS_CODES[self.kind]

    @property
    def acknowledged(self) -> bool:
        return self.status_code < 300


class WebhookProcessor:
    def __init__(
        self,
        secret: str,
        guard: IdempotencyGuard,
        state_machine: SubscriptionStateMachine,
        *,
        provider: PaystackClient | None = None,
        alerts: OperatorAlerts | None = None,
        reverify: bool = True,
    ):
        self.secret = secret
        self.guard = guard
        self.state_machine = state_machine
        self.provider = provider
        self.alerts = alerts or OperatorAlerts(None)
        self.reverify = reverify and provider is not None

    async def handle(self, request: RawWebhookRequest) -> WebhookOutcome:
        if not self.secret:
            logger.error("webhook_secret_missing")
        if not verify_signature(self.secret, request.body, request.signature):
            reason = "missing signature" if not request.signature else "invalid signature"
            logger.warning("webhook_signature_invalid", reason=reason, body_bytes=len(request.body))
            return WebhookOutcome(OutcomeKind.SIGNATURE_INVALID, detail=reason)

        result = parse_event(request.body)
        if not result.ok:
            logger.warning(
                "webhook_malformed_event",
                error_kind=result.error.kind.value,
                detail=result.error.detail,
                event_kind=result.error.event_kind,
            )
            return WebhookOutcome(OutcomeKind.MALFORMED_EVENT, detail=f"{result.error.kind.value}: {result.error.detail}")

        event = result.event
        if isinstance(event, OtherEvent):
            logger.info("webhook_event_ignored", event_kind=event.kind, reference=event.reference)
            return WebhookOutcome(OutcomeKind.IGNORED, reference=event.reference, detail=event.kind)

        return await self._handle_charge(event, request)

    async def _handle_charge(self, event: ChargeSucceeded, request: RawWebhookRequest) -> WebhookOutcome:
        reference = event.reference
        log = logger.bind(reference=reference, event_kind=event.kind)

        try:
            claimed = await self.guard.claim(reference, event.kind)
        except RecordWriteFailedError as e:
            log.error("webhook_claim_failed", error=str(e))
            return WebhookOutcome(OutcomeKind.RECORD_WRITE_FAILED, reference=reference, detail=str(e))

        if not claimed:
            log.info("webhook_duplicate_ignored")
            return WebhookOutcome(OutcomeKind.DUPLICATE, reference=reference)

        try:
            if self.reverify:
                status = await self.provider.verify_transaction(reference)
                if status == VerificationStatus.UNREACHABLE:
                    raise ProviderUnreachableError(f"Could not re-verify '{reference}' with Paystack")
                if status == VerificationStatus.NOT_SUCCESS:
                    await self.guard.finish(reference, ClaimStatus.PROVIDER_REJECTED)
                    await self.alerts.raise_alert(
                        "provider_rejected", reference=reference, payer_email=event.payer_email
                    )
                    return WebhookOutcome(OutcomeKind.PROVIDER_REJECTED, reference=reference)

            paid_at = event.paid_at or request.received_at
            snapshot = await self.state_machine.apply_charge_succeeded(event.payer_email, reference, paid_at)
        except UserNotFoundError as e:
            await self.guard.finish(reference, ClaimStatus.USER_NOT_FOUND)
            await self.alerts.raise_alert("user_not_found", reference=reference, payer_email=e.email)
            return WebhookOutcome(OutcomeKind.USER_NOT_FOUND, reference=reference, detail=str(e))
        except RecordWriteFailedError as e:
            await self.guard.release(reference)
            return WebhookOutcome(OutcomeKind.RECORD_WRITE_FAILED, reference=reference, detail=str(e))
        except ProviderUnreachableError as e:
            await self.guard.release(reference)
            log.warning("webhook_provider_unreachable", error=str(e))
            return WebhookOutcome(OutcomeKind.PROVIDER_UNREACHABLE, reference=reference, detail=str(e))
        except RetryableBillingError as e:
            await self.guard.release(reference)
            log.warning("webhook_retry_later", error=str(e), error_type=type(e).__name__)
            return WebhookOutcome(OutcomeKind.RETRY_LATER, reference=reference, detail=str(e))
        except BaseException:
            # Includes cancellation: an unfinished claim must not outlive the request
            await asyncio.shield(self.guard.release(reference))
            raise

        return WebhookOutcome(OutcomeKind.APPLIED, reference=reference, subscription=snapshot)
