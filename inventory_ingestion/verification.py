"""
Webhook signature verification.

Signatures are hex-encoded HMAC-SHA256 over the exact request body bytes,
sent in the ``X-Webhook-Signature`` header (an optional ``sha256=`` prefix
is accepted).  Comparison is constant-time.

With no secret configured every request is accepted.  This is an explicit,
insecure fallback for local setups and is logged on every call as
``webhook_signature_unverified``.
"""

import hashlib
import hmac

from inventory_kernel.exceptions import SignatureError
from inventory_kernel.logging_config import get_logger

logger = get_logger("ingestion.verification")

SIGNATURE_PREFIX = "sha256="


def compute_signature(secret: str, raw_payload: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), raw_payload, hashlib.sha256).hexdigest()


def verify_signature(secret: str | None, raw_payload: bytes, signature: str | None) -> bool:
    if not secret:
        logger.warning(
            "webhook_signature_unverified",
            extra={"reason": "no_secret_configured"},
        )
        return True
    if not signature:
        return False

    candidate = signature.strip()
    if candidate.lower().startswith(SIGNATURE_PREFIX):
        candidate = candidate[len(SIGNATURE_PREFIX):]

    expected = compute_signature(secret, raw_payload)
    return hmac.compare_digest(expected.encode("ascii"), candidate.lower().encode("utf-8"))


def require_valid_signature(secret: str | None, raw_payload: bytes, signature: str | None) -> None:
    """Raise SignatureError unless ``verify_signature`` accepts the request."""
    if verify_signature(secret, raw_payload, signature):
        return
    reason = "Missing signature" if not signature else "Invalid signature"
    logger.warning("webhook_signature_rejected", extra={"reason": reason})
    raise SignatureError(reason)
