"""
🔒 Stripe webhook endpoint: signature verification, event dispatch and
fulfillment responses.
"""

import json
import time
from unittest.mock import patch

from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse

from apps.billing.gateways import PaymentGatewayError
from apps.integrations.fulfillment import FulfillmentOutcome, FulfillmentReconciler
from apps.integrations.webhooks.base import (
    SecurityError,
    WebhookPayloadError,
    parse_stripe_signature_header,
    sign_stripe_payload,
    verify_stripe_signature,
)
from apps.integrations.webhooks.stripe import StripeWebhookProcessor
from apps.orders.models import Order
from tests.factories.payments import FakePaymentGateway, build_session
from tests.factories.storefront import create_product, create_user

SECRET = "whsec_test_secret"


class SignatureVerificationTests(SimpleTestCase):
    body = b'{"id": "evt_1", "type": "checkout.session.completed"}'

    def test_valid_signature(self) -> None:
        header = sign_stripe_payload(self.body, SECRET)
        self.assertTrue(verify_stripe_signature(self.body, header, SECRET))

    def test_wrong_secret(self) -> None:
        header = sign_stripe_payload(self.body, "whsec_other")
        self.assertFalse(verify_stripe_signature(self.body, header, SECRET))

    def test_tampered_body(self) -> None:
        header = sign_stripe_payload(self.body, SECRET)
        self.assertFalse(verify_stripe_signature(self.body + b" ", header, SECRET))

    def test_stale_timestamp(self) -> None:
        header = sign_stripe_payload(self.body, SECRET, timestamp=int(time.time()) - 301)
        self.assertFalse(verify_stripe_signature(self.body, header, SECRET, tolerance=300))

    def test_future_timestamp_outside_tolerance(self) -> None:
        header = sign_stripe_payload(self.body, SECRET, timestamp=int(time.time()) + 600)
        self.assertFalse(verify_stripe_signature(self.body, header, SECRET))

    def test_any_matching_v1_signature_is_accepted(self) -> None:
        header = sign_stripe_payload(self.body, SECRET)
        timestamp, signatures = parse_stripe_signature_header(header)
        rotated = f"t={timestamp},v1={'0' * 64},v1={signatures[0]}"
        self.assertTrue(verify_stripe_signature(self.body, rotated, SECRET))

    def test_missing_or_malformed_header(self) -> None:
        for header in ("", "garbage", "t=abc,v1=deadbeef", "v1=deadbeef", f"t={int(time.time())}"):
            self.assertFalse(verify_stripe_signature(self.body, header, SECRET), header)

    def test_missing_secret_fails_closed(self) -> None:
        header = sign_stripe_payload(self.body, SECRET)
        self.assertFalse(verify_stripe_signature(self.body, header, ""))


class StripeWebhookProcessorTests(TestCase):
    databases = {"default", "catalog"}

    def setUp(self) -> None:
        self.user = create_user()
        self.shirt = create_product()
        self.gateway = FakePaymentGateway()
        self.gateway.sessions["cs_test_1"] = build_session("cs_test_1", self.user.pk, [(self.shirt, 1)])

    def _process(self, payload: dict):
        body = json.dumps(payload).encode()
        processor = StripeWebhookProcessor(reconciler=FulfillmentReconciler(self.gateway))
        return processor.process(body, sign_stripe_payload(body, SECRET))

    def test_bad_signature_raises_security_error(self) -> None:
        with self.assertRaises(SecurityError):
            StripeWebhookProcessor().process(b"{}", "t=1,v1=bad")
        self.assertEqual(Order.objects.count(), 0)

    @override_settings(STRIPE_WEBHOOK_SECRET="")
    def test_unconfigured_secret_rejects_everything(self) -> None:
        body = b"{}"
        with self.assertRaises(SecurityError):
            StripeWebhookProcessor().process(body, sign_stripe_payload(body, SECRET))

    def test_completed_paid_session_is_fulfilled(self) -> None:
        result = self._process(
            {"id": "evt_1", "type": "checkout.session.completed",
             "data": {"object": {"id": "cs_test_1", "payment_status": "paid"}}}
        )

        self.assertEqual(result.outcome, FulfillmentOutcome.CREATED)
        self.assertFalse(result.skipped)
        self.assertTrue(Order.objects.filter(payment_session_id="cs_test_1").exists())

    def test_completed_unpaid_session_waits_for_async_payment(self) -> None:
        result = self._process(
            {"id": "evt_2", "type": "checkout.session.completed",
             "data": {"object": {"id": "cs_test_1", "payment_status": "unpaid"}}}
        )

        self.assertTrue(result.skipped)
        self.assertEqual(Order.objects.count(), 0)
        self.assertEqual(self.gateway.retrieved, [])

    def test_async_payment_succeeded_is_fulfilled(self) -> None:
        result = self._process(
            {"id": "evt_3", "type": "checkout.session.async_payment_succeeded",
             "data": {"object": {"id": "cs_test_1"}}}
        )
        self.assertEqual(result.outcome, FulfillmentOutcome.CREATED)

    def test_other_events_are_skipped(self) -> None:
        result = self._process({"id": "evt_4", "type": "charge.refunded", "data": {"object": {}}})

        self.assertTrue(result.skipped)
        self.assertEqual(result.event_type, "charge.refunded")

    def test_session_event_without_id_is_malformed(self) -> None:
        with self.assertRaises(WebhookPayloadError):
            self._process({"id": "evt_5", "type": "checkout.session.async_payment_succeeded", "data": {"object": {}}})


class StripeWebhookViewTests(TestCase):
    databases = {"default", "catalog"}

    def setUp(self) -> None:
        self.url = reverse("integrations:stripe_webhook")
        self.user = create_user()
        self.shirt = create_product(price="50.00")
        self.gateway = FakePaymentGateway()
        self.gateway.sessions["cs_test_1"] = build_session("cs_test_1", self.user.pk, [(self.shirt, 2)])
        patcher = patch(
            "apps.integrations.fulfillment.PaymentGatewayFactory.get_default_gateway", return_value=self.gateway
        )
        patcher.start()
        self.addCleanup(patcher.stop)

    def _post(self, payload, signature: str | None = None):
        body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
        if signature is None:
            signature = sign_stripe_payload(body, SECRET)
        return self.client.post(self.url, data=body, content_type="application/json", HTTP_STRIPE_SIGNATURE=signature)

    @staticmethod
    def _completed(event_id: str = "evt_1") -> dict:
        return {
            "id": event_id,
            "type": "checkout.session.completed",
            "data": {"object": {"id": "cs_test_1", "payment_status": "paid"}},
        }

    def test_paid_session_creates_order(self) -> None:
        response = self._post(self._completed())

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "created")
        self.user.refresh_from_db()
        self.assertEqual(self.user.loyalty_points, 100)

    def test_redelivery_acknowledged_without_duplicate(self) -> None:
        self._post(self._completed("evt_1"))
        response = self._post(self._completed("evt_1"))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "already_fulfilled")
        self.assertEqual(Order.objects.filter(payment_session_id="cs_test_1").count(), 1)
        self.user.refresh_from_db()
        self.assertEqual(self.user.loyalty_points, 100)

    def test_invalid_signature_is_400(self) -> None:
        response = self._post(self._completed(), signature="t=1,v1=forged")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["message"], "Invalid signature")
        self.assertEqual(Order.objects.count(), 0)

    def test_missing_signature_is_400(self) -> None:
        response = self.client.post(self.url, data=json.dumps(self._completed()), content_type="application/json")
        self.assertEqual(response.status_code, 400)

    def test_malformed_json_is_400(self) -> None:
        response = self._post(b"{not json")
        self.assertEqual(response.status_code, 400)

    def test_unhandled_event_is_acknowledged(self) -> None:
        response = self._post({"id": "evt_9", "type": "customer.created", "data": {"object": {}}})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "skipped")

    def test_fulfillment_failure_is_500_for_provider_retry(self) -> None:
        self.gateway.error = PaymentGatewayError("provider timeout")

        response = self._post(self._completed())

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["message"], "Fulfillment failed")
        self.assertNotIn("timeout", response.content.decode())

    def test_unusable_gateway_is_500_not_malformed(self) -> None:
        with patch(
            "apps.integrations.fulfillment.PaymentGatewayFactory.get_default_gateway",
            side_effect=ValueError("Payment gateway 'stripe' not properly configured"),
        ):
            with self.assertLogs("apps.integrations.fulfillment", level="CRITICAL"):
                response = self._post(self._completed())

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json()["message"], "Fulfillment failed")
        self.assertNotIn("not properly configured", response.content.decode())

    def test_get_not_allowed(self) -> None:
        self.assertEqual(self.client.get(self.url).status_code, 405)
