"""Paystack API client: transaction re-verification and initialization.

Calls are bounded by a timeout and retried at most ``max_attempts - 1`` times,
and only for transport failures and 5xx/429 answers. Everything else is a
definitive answer from the provider.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Any
from urllib.parse import quote

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from premium_billing.core.exceptions import ProviderRejectedError, ProviderUnreachableError

logger = structlog.get_logger(__name__)

_RETRYABLE_STATUS = {429, 500, 502, 503, 504}
_CREDENTIAL_STATUS = {401, 403}


class VerificationStatus(StrEnum):
    SUCCESS = "success"
    NOT_SUCCESS = "not_success"
    UNREACHABLE = "unreachable"


@dataclass(frozen=True)
class InitializedTransaction:
    access_code: str
    authorization_url: str
    reference: str | None = None


class _TransientProviderError(Exception):
    def __init__(self, message: str, response: httpx.Response | None = None):
        self.response = response
        super().__init__(message)


class PaystackClient:
    """Async wrapper around the two Paystack endpoints this service calls."""

    def __init__(
        self,
        secret_key: str,
        base_url: str = "https://api.paystack.co",
        *,
        timeout: float = 5.0,
        max_attempts: int = 2,
        retry_wait: Any = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.max_attempts = max(1, max_attempts)
        self.retry_wait = retry_wait or wait_exponential(multiplier=0.5, min=0.5, max=2)
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {secret_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _send_once(self, method: str, path: str, payload: dict | None) -> httpx.Response:
        try:
            response = await self._client.request(method, path, json=payload)
        except httpx.TransportError as e:
            raise _TransientProviderError(f"{type(e).__name__}: {e}") from e
        if response.status_code in _RETRYABLE_STATUS:
            raise _TransientProviderError(f"HTTP {response.status_code}", response)
        return response

    async def _request(self, method: str, path: str, payload: dict | None = None) -> httpx.Response:
        """Send a request, retrying transient failures.

        Raises:
            ProviderUnreachableError: when every attempt failed transiently
        """
        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception_type(_TransientProviderError),
                stop=stop_after_attempt(self.max_attempts),
                wait=self.retry_wait,
                reraise=False,
                before_sleep=lambda rs: logger.warning(
                    "paystack_request_retrying",
                    path=path,
                    attempt=rs.attempt_number,
                    error=str(rs.outcome.exception()),
                ),
            ):
                with attempt:
                    return await self._send_once(method, path, payload)
        except RetryError as e:
            last = e.last_attempt.exception()
            logger.error("paystack_unreachable", path=path, attempts=self.max_attempts, error=str(last))
            raise ProviderUnreachableError(f"Paystack {method} {path} failed: {last}") from last

    async def verify_transaction(self, reference: str) -> VerificationStatus:
        """Ask Paystack whether the transaction behind ``reference`` succeeded."""
        try:
            response = await self._request("GET", f"/transaction/verify/{quote(reference, safe='')}")
        except ProviderUnreachableError:
            return VerificationStatus.UNREACHABLE

        if response.status_code in _CREDENTIAL_STATUS:
            logger.error("paystack_credential_rejected", status_code=response.status_code)
            return VerificationStatus.UNREACHABLE
        if response.status_code != 200:
            logger.info("paystack_verify_not_found", reference=reference, status_code=response.status_code)
            return VerificationStatus.NOT_SUCCESS

        try:
            body = response.json()
        except ValueError:
            logger.error("paystack_verify_bad_body", reference=reference)
            return VerificationStatus.UNREACHABLE

        if not isinstance(body, dict):
            body = {}
        data = body.get("data")
        if body.get("status") is True and isinstance(data, dict) and data.get("status") == "success":
            return VerificationStatus.SUCCESS

        logger.info(
            "paystack_verify_not_success",
            reference=reference,
            transaction_status=data.get("status") if isinstance(data, dict) else None,
        )
        return VerificationStatus.NOT_SUCCESS

    async def initialize_transaction(self, email: str, amount_minor: int) -> InitializedTransaction:
        """Start a transaction and return the checkout access code.

        Raises:
            ProviderUnreachableError: Paystack could not be reached
            ProviderRejectedError: Paystack refused the request
        """
        response = await self._request(
            "POST",
            "/transaction/initialize",
            {"email": email, "amount": amount_minor},
        )

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400 or not isinstance(body, dict) or body.get("status") is not True:
            message = body.get("message") if isinstance(body, dict) else None
            raise ProviderRejectedError(None, message or f"HTTP {response.status_code}")

        data = body.get("data") or {}
        return InitializedTransaction(
            access_code=data.get("access_code", ""),
            authorization_url=data.get("authorization_url", ""),
            reference=data.get("reference"),
        )
