import hashlib
import hmac
import logging

from django.utils import timezone

logger = logging.getLogger(__name__)

# Webhook signature parsing constants
EXPECTED_KEY_VALUE_PARTS = 2  # Expected parts when splitting key=value format
DEFAULT_SIGNATURE_TOLERANCE = 300  # seconds


class SecurityError(Exception):
    """🔒 Security-related errors in webhook processing"""


class WebhookPayloadError(Exception):
    """Signed webhook body that is not a usable event (bad JSON, missing session)"""


# ===============================================================================
# SIGNATURE VERIFICATION
# ===============================================================================


def parse_stripe_signature_header(stripe_signature: str) -> tuple[int | None, list[str]]:
    """Split "t=...,v1=...,v1=..." into the timestamp and every v1 signature."""
    timestamp = None
    signatures: list[str] = []

    for element in stripe_signature.split(","):
        parts = element.strip().split("=", 1)
        if len(parts) != EXPECTED_KEY_VALUE_PARTS:
            continue  # Skip malformed elements
        key, value = parts
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                return None, []
        elif key == "v1":
            signatures.append(value)

    return timestamp, signatures


def verify_stripe_signature(
    payload_body: bytes, stripe_signature: str, webhook_secret: str, tolerance: int = DEFAULT_SIGNATURE_TOLERANCE
) -> bool:
    """
    🔐 Verify Stripe webhook signature with timestamp validation

    Stripe signature format: t=timestamp,v1=signature
    The signed payload is "{timestamp}.{raw body}", HMAC-SHA256 with the
    endpoint secret. Timestamps outside the tolerance window are rejected.
    """
    if not stripe_signature or not webhook_secret:
        return False

    timestamp, signatures = parse_stripe_signature_header(stripe_signature)
    if not timestamp or not signatures:
        return False

    # Check timestamp (prevent replay attacks)
    current_time = int(timezone.now().timestamp())
    if abs(current_time - timestamp) > tolerance:
        logger.warning(f"⏰ [Webhook] Stripe webhook timestamp outside tolerance: {current_time - timestamp}s")
        return False

    signed_payload = str(timestamp).encode("utf-8") + b"." + payload_body
    expected_signature = hmac.new(webhook_secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()

    return any(hmac.compare_digest(signature, expected_signature) for signature in signatures)


def sign_stripe_payload(payload_body: bytes, webhook_secret: str, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header value for a payload (local tooling and tests)."""
    timestamp = timestamp if timestamp is not None else int(timezone.now().timestamp())
    signed_payload = str(timestamp).encode("utf-8") + b"." + payload_body
    signature = hmac.new(webhook_secret.encode("utf-8"), signed_payload, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"
