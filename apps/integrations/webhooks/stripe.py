import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from apps.common.config import get_storefront_config
from apps.integrations.fulfillment import FulfillmentOutcome, FulfillmentReconciler

from .base import SecurityError, WebhookPayloadError, verify_stripe_signature

logger = logging.getLogger(__name__)

CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
CHECKOUT_SESSION_ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"


@dataclass(frozen=True)
class WebhookProcessingResult:
    """Result of webhook processing: what happened and, if anything, the fulfillment outcome."""

    event_id: str
    event_type: str
    message: str
    outcome: FulfillmentOutcome | None = None

    @property
    def skipped(self) -> bool:
        return self.outcome is None


StripeEventHandler = Callable[[str, dict[str, Any]], WebhookProcessingResult]


# ===============================================================================
# STRIPE WEBHOOK PROCESSOR
# ===============================================================================


class StripeWebhookProcessor:
    """
    💳 Stripe webhook processor

    Handles Stripe events:
    - checkout.session.completed → fulfill when the session is paid
    - checkout.session.async_payment_succeeded → fulfill (delayed payment methods)
    Everything else is acknowledged and skipped.
    """

    source_name = "stripe"

    def __init__(self, reconciler: FulfillmentReconciler | None = None) -> None:
        self.reconciler = reconciler or FulfillmentReconciler()
        # Event handler registry - maps event types to handler methods
        self._event_handlers: dict[str, StripeEventHandler] = {
            CHECKOUT_SESSION_COMPLETED: self.handle_checkout_session_completed,
            CHECKOUT_SESSION_ASYNC_PAYMENT_SUCCEEDED: self.handle_async_payment_succeeded,
        }

    def verify_signature(self, raw_body: bytes, signature: str) -> None:
        """🔐 Raise SecurityError unless the body is signed with the endpoint secret"""
        config = get_storefront_config()
        if not config.stripe_webhook_secret:
            logger.error("🔒 [Webhook] Stripe webhook secret not configured - failing secure")
            raise SecurityError("Webhook secret not configured")

        if not verify_stripe_signature(
            payload_body=raw_body,
            stripe_signature=signature,
            webhook_secret=config.stripe_webhook_secret,
            tolerance=config.stripe_webhook_tolerance,
        ):
            raise SecurityError("Invalid Stripe signature")

    def process(self, raw_body: bytes, signature: str) -> WebhookProcessingResult:
        """
        🔄 Verify, parse and dispatch one Stripe event

        Raises:
            SecurityError: signature missing or wrong (nothing is processed)
            WebhookPayloadError: body is not a usable JSON event object
            FulfillmentError: a paid session could not be turned into an order
        """
        self.verify_signature(raw_body, signature)

        try:
            payload = json.loads(raw_body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise WebhookPayloadError("Invalid JSON payload") from e
        if not isinstance(payload, dict):
            raise WebhookPayloadError("Webhook payload must be a JSON object")

        event_id = str(payload.get("id", ""))
        event_type = str(payload.get("type", ""))

        handler = self._event_handlers.get(event_type)
        if handler is None:
            logger.info(f"⏭️ [Webhook] Skipping Stripe event type: {event_type}")
            return WebhookProcessingResult(event_id, event_type, f"Skipped event type: {event_type}")

        return handler(event_id, payload)

    def handle_checkout_session_completed(self, event_id: str, payload: dict[str, Any]) -> WebhookProcessingResult:
        session = self._session_object(payload)
        if session.get("payment_status") != "paid":
            # Delayed payment methods complete later via async_payment_succeeded
            return WebhookProcessingResult(
                event_id, CHECKOUT_SESSION_COMPLETED, f"Session {session.get('id')} awaiting payment"
            )
        return self._fulfill(event_id, CHECKOUT_SESSION_COMPLETED, session)

    def handle_async_payment_succeeded(self, event_id: str, payload: dict[str, Any]) -> WebhookProcessingResult:
        return self._fulfill(event_id, CHECKOUT_SESSION_ASYNC_PAYMENT_SUCCEEDED, self._session_object(payload))

    def _fulfill(self, event_id: str, event_type: str, session: dict[str, Any]) -> WebhookProcessingResult:
        session_id = session.get("id")
        if not session_id:
            raise WebhookPayloadError("Checkout session event without session id")

        outcome = self.reconciler.fulfill(str(session_id))
        logger.info(f"💳 [Webhook] {event_type} {event_id} for session {session_id}: {outcome.value}")
        return WebhookProcessingResult(event_id, event_type, f"Session {session_id}: {outcome.value}", outcome)

    @staticmethod
    def _session_object(payload: dict[str, Any]) -> dict[str, Any]:
        data = payload.get("data")
        session = data.get("object") if isinstance(data, dict) else None
        if not isinstance(session, dict):
            raise WebhookPayloadError("Checkout session event without session object")
        return session
