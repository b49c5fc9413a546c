"""Webhook signature verification.

Paystack signs every webhook with HMAC-SHA512 over the exact request body,
keyed by the account secret, and sends the lowercase hex digest in the
``x-paystack-signature`` header. The digest must be computed over the bytes
as received: decoding, whitespace changes or JSON round-trips produce a
different digest.
"""

import hashlib
import hmac

SIGNATURE_HEADER = "x-paystack-signature"


def compute_signature(secret: str, raw_body: bytes) -> str:
    """Return the lowercase hex HMAC-SHA512 of ``raw_body`` keyed by ``secret``."""
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()


def verify_signature(secret: str | None, raw_body: bytes, claimed_signature: str | None) -> bool:
    """Check a claimed webhook signature in constant time.

    Returns False when the secret is unset, the signature is absent or not
    ASCII, or the digests differ.
    """
    if not secret or not claimed_signature:
        return False
    if not isinstance(raw_body, (bytes, bytearray)):
        raise TypeError("raw_body must be the unparsed request bytes")

    claimed = claimed_signature.strip()
    # Header values arrive latin-1 decoded; a hex digest is always ASCII
    if not claimed.isascii():
        return False

    expected = compute_signature(secret, bytes(raw_body))
    return hmac.compare_digest(expected.encode("ascii"), claimed.encode("ascii"))
