"""
Payment-session checkout: nothing is written to the ledger until the
provider confirms payment; the session carries everything fulfillment needs.
"""

import json
from decimal import Decimal

import pytest
from django.test import TestCase, override_settings

from apps.billing.gateways import PaymentGatewayError
from apps.billing.payment_service import (
    METADATA_PROMOTION_CODE,
    METADATA_SHIPPING_ADDRESS,
    METADATA_USER_ID,
    PaymentSessionService,
    from_cents,
    to_cents,
)
from apps.orders.models import Order
from apps.orders.services import CheckoutService
from apps.orders.validation import CheckoutError
from apps.promotions.models import PersonalizedCodeUsage
from apps.promotions.services import ALREADY_USED, EXPIRED
from tests.factories.payments import FakePaymentGateway
from tests.factories.storefront import cart_line, create_product, create_promotion, create_user, shipping_address


@pytest.mark.parametrize(
    ("amount", "cents"),
    [("19.99", 1999), ("0.00", 0), ("100", 10000), ("0.005", 1), ("12.344", 1234)],
)
def test_to_cents(amount: str, cents: int) -> None:
    assert to_cents(Decimal(amount)) == cents


def test_from_cents() -> None:
    assert from_cents(1999) == Decimal("19.99")
    assert from_cents(0) == Decimal("0.00")
    assert str(from_cents(9000)) == "90.00"


class PaymentSessionServiceTests(TestCase):
    databases = {"default", "catalog"}

    def setUp(self) -> None:
        self.user = create_user(email="buyer@example.com")
        self.shirt = create_product(name="Linen Shirt", price="50.00")
        self.gateway = FakePaymentGateway()

    def _create(self, cart, code=None):
        return PaymentSessionService.create_session(
            self.user, cart, shipping_address(), code, gateway=self.gateway
        )

    def test_session_carries_lines_metadata_and_discount(self) -> None:
        promotion = create_promotion(code="SAVE10")

        result = self._create([cart_line(self.shirt, quantity=2)], code="save10")

        handle = result.unwrap()
        self.assertEqual(handle.session_id, "cs_test_1")
        self.assertEqual(handle.url, "https://pay.example.com/cs_test_1")

        request = self.gateway.created[0]
        self.assertEqual(len(request.line_items), 1)
        line = request.line_items[0]
        self.assertEqual((line.product_id, line.name, line.unit_amount_cents, line.quantity), (
            self.shirt.pk, "Linen Shirt", 5000, 2
        ))
        self.assertEqual(request.discount_cents, 1000)
        self.assertEqual(request.discount_label, "SAVE10")
        self.assertEqual(request.currency, "usd")
        self.assertEqual(request.customer_email, "buyer@example.com")
        self.assertEqual(request.metadata[METADATA_USER_ID], str(self.user.pk))
        self.assertEqual(request.metadata[METADATA_PROMOTION_CODE], "SAVE10")
        self.assertEqual(json.loads(request.metadata[METADATA_SHIPPING_ADDRESS]), shipping_address())

        # Deferred: no order, no points, no usage until fulfillment
        self.assertEqual(Order.objects.count(), 0)
        self.user.refresh_from_db()
        promotion.refresh_from_db()
        self.assertEqual(self.user.loyalty_points, 0)
        self.assertEqual(promotion.usage_count, 0)

    def test_session_without_code(self) -> None:
        self._create([cart_line(self.shirt)]).unwrap()

        request = self.gateway.created[0]
        self.assertEqual(request.discount_cents, 0)
        self.assertEqual(request.metadata[METADATA_PROMOTION_CODE], "")

    @override_settings(STOREFRONT_CURRENCY="EUR", CHECKOUT_CANCEL_URL="https://shop.example.com/cart")
    def test_currency_and_urls_come_from_settings(self) -> None:
        self._create([cart_line(self.shirt)]).unwrap()

        request = self.gateway.created[0]
        self.assertEqual(request.currency, "eur")
        self.assertEqual(request.cancel_url, "https://shop.example.com/cart")
        self.assertIn("{CHECKOUT_SESSION_ID}", request.success_url)

    def test_invalid_code_never_reaches_provider(self) -> None:
        create_promotion(code="OLD", end_date="2000-01-01T00:00:00Z")

        result = self._create([cart_line(self.shirt)], code="OLD")

        error = result.unwrap_err()
        self.assertEqual(error.code, CheckoutError.PROMOTION_INVALID)
        self.assertEqual(error.reason, EXPIRED)
        self.assertEqual(self.gateway.created, [])

    def test_invalid_cart_never_reaches_provider(self) -> None:
        result = self._create([])
        self.assertEqual(result.unwrap_err().code, CheckoutError.EMPTY_CART)
        self.assertEqual(self.gateway.created, [])

    def test_unknown_product_never_reaches_provider(self) -> None:
        result = self._create([{"product_id": 999, "name": "Ghost", "price": "5.00", "quantity": 1}])
        self.assertEqual(result.unwrap_err().code, CheckoutError.UNKNOWN_PRODUCT)
        self.assertEqual(self.gateway.created, [])

    def test_provider_failure_is_reported(self) -> None:
        self.gateway.error = PaymentGatewayError("card network down")

        result = self._create([cart_line(self.shirt)])

        error = result.unwrap_err()
        self.assertEqual(error.code, CheckoutError.PAYMENT_PROVIDER_ERROR)
        self.assertNotIn("card network", error.message)
        self.assertEqual(Order.objects.count(), 0)


class PersonalizedCodeReservationTests(TestCase):
    databases = {"default", "catalog"}

    def setUp(self) -> None:
        self.user = create_user(email="buyer@example.com")
        self.shirt = create_product(name="Linen Shirt", price="50.00")
        self.gateway = FakePaymentGateway()
        self.code = f"WISH-{self.user.pk}-{self.shirt.pk}"

    def _create(self):
        return PaymentSessionService.create_session(
            self.user, [cart_line(self.shirt, quantity=2)], shipping_address(), self.code, gateway=self.gateway
        )

    def test_code_is_spent_when_the_session_opens(self) -> None:
        self._create().unwrap()

        usage = PersonalizedCodeUsage.objects.get(user=self.user, code=self.code)
        self.assertIsNone(usage.order)
        self.assertEqual(self.gateway.created[0].discount_cents, 1000)

    def test_second_session_with_same_code_is_rejected(self) -> None:
        self._create().unwrap()

        error = self._create().unwrap_err()

        self.assertEqual(error.code, CheckoutError.PROMOTION_INVALID)
        self.assertEqual(error.reason, ALREADY_USED)
        self.assertEqual(len(self.gateway.created), 1)
        self.assertEqual(PersonalizedCodeUsage.objects.filter(user=self.user, code=self.code).count(), 1)

    def test_synchronous_checkout_cannot_reuse_a_reserved_code(self) -> None:
        self._create().unwrap()

        result = CheckoutService.checkout(self.user, [cart_line(self.shirt)], shipping_address(), self.code)

        self.assertEqual(result.unwrap_err().reason, ALREADY_USED)
        self.assertEqual(Order.objects.count(), 0)

    def test_provider_failure_releases_the_code(self) -> None:
        self.gateway.error = PaymentGatewayError("card network down")

        self.assertEqual(self._create().unwrap_err().code, CheckoutError.PAYMENT_PROVIDER_ERROR)
        self.assertFalse(PersonalizedCodeUsage.objects.filter(user=self.user, code=self.code).exists())

        self.gateway.error = None
        self.assertEqual(self._create().unwrap().session_id, "cs_test_1")
