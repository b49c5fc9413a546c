"""Typed payment events parsed from verified webhook bodies.

``parse_event`` never raises: callers get a ParseResult holding either the
event or a ParseError describing why the body was rejected.
"""

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

CHARGE_SUCCESS = "charge.success"


@dataclass(frozen=True)
class RawWebhookRequest:
    """An inbound webhook exactly as received on the wire."""

    body: bytes
    signature: str | None
    received_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True)
class ChargeSucceeded:
    reference: str
    payer_email: str
    paid_at: datetime | None = None
    kind: str = CHARGE_SUCCESS


@dataclass(frozen=True)
class OtherEvent:
    """Any event kind this service does not act on; acknowledged and ignored."""

    kind: str
    reference: str | None = None


PaymentEvent = ChargeSucceeded | OtherEvent


class ParseErrorKind(StrEnum):
    MALFORMED_PAYLOAD = "malformed_payload"
    MISSING_FIELD = "missing_field"
    INVALID_TIMESTAMP = "invalid_timestamp"


@dataclass(frozen=True)
class ParseError:
    kind: ParseErrorKind
    detail: str
    event_kind: str | None = None


@dataclass(frozen=True)
class ParseResult:
    event: PaymentEvent | None = None
    error: ParseError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 provider timestamp; naive values are taken as UTC.

    Returns None when the value is not a valid timestamp.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _fail(kind: ParseErrorKind, detail: str, event_kind: str | None = None) -> ParseResult:
    return ParseResult(error=ParseError(kind=kind, detail=detail, event_kind=event_kind))


def _parse_charge_success(data: Any) -> ParseResult:
    if not isinstance(data, dict):
        return _fail(ParseErrorKind.MISSING_FIELD, "data", CHARGE_SUCCESS)

    reference = data.get("reference")
    if not isinstance(reference, str) or not reference.strip():
        return _fail(ParseErrorKind.MISSING_FIELD, "data.reference", CHARGE_SUCCESS)

    customer = data.get("customer")
    email = customer.get("email") if isinstance(customer, dict) else None
    if not isinstance(email, str) or not email.strip():
        return _fail(ParseErrorKind.MISSING_FIELD, "data.customer.email", CHARGE_SUCCESS)

    paid_at = None
    raw_paid_at = data.get("paid_at")
    if raw_paid_at is not None:
        paid_at = parse_timestamp(raw_paid_at)
        if paid_at is None:
            return _fail(ParseErrorKind.INVALID_TIMESTAMP, f"data.paid_at={raw_paid_at!r}", CHARGE_SUCCESS)

    return ParseResult(
        event=ChargeSucceeded(
            reference=reference.strip(),
            payer_email=email.strip(),
            paid_at=paid_at,
        )
    )


def parse_event(raw_body: bytes) -> ParseResult:
    """Turn verified webhook bytes into a PaymentEvent.

    Must only be called after the signature over the same bytes has been
    verified.
    """
    try:
        payload = json.loads(raw_body)
    except (UnicodeDecodeError, ValueError) as e:
        return _fail(ParseErrorKind.MALFORMED_PAYLOAD, f"body is not JSON: {e}")

    if not isinstance(payload, dict):
        return _fail(ParseErrorKind.MALFORMED_PAYLOAD, "body is not a JSON object")

    kind = payload.get("event")
    if not isinstance(kind, str) or not kind:
        return _fail(ParseErrorKind.MISSING_FIELD, "event")

    data = payload.get("data")

    if kind == CHARGE_SUCCESS:
        return _parse_charge_success(data)

    reference = data.get("reference") if isinstance(data, dict) else None
    return ParseResult(event=OtherEvent(kind=kind, reference=reference if isinstance(reference, str) else None))
