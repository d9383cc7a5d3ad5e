"""
Synchronous checkout: totals, loyalty award, promotion bookkeeping and
all-or-nothing rollback.
"""

from decimal import Decimal
from unittest.mock import patch

import pytest
from django.db import transaction
from django.test import TestCase

from apps.orders.models import InvalidStatusTransition, Order, OrderItem, OrderStatus
from apps.orders.services import CheckoutService, OrderQueryService, OrderService
from apps.orders.validation import CheckoutError, OrderTotals, validate_shipping_address
from apps.promotions.models import DiscountType, PersonalizedCodeUsage
from apps.promotions.services import ALREADY_USED, INVALID_CODE, TIER_NOT_MET, USAGE_LIMIT_REACHED
from tests.factories.storefront import (
    cart_line,
    create_order,
    create_product,
    create_promotion,
    create_user,
    shipping_address,
)


class CheckoutServiceTests(TestCase):
    databases = {"default", "catalog"}

    def setUp(self) -> None:
        self.user = create_user()
        self.shirt = create_product(name="Linen Shirt", price="50.00")

    def _checkout(self, cart, code=None, address=None):
        return CheckoutService.checkout(self.user, cart, address or shipping_address(), code)

    def test_percentage_code_end_to_end(self) -> None:
        promotion = create_promotion(code="SAVE10", discount_value="10")

        result = self._checkout([cart_line(self.shirt, quantity=2)], code="save10")

        self.assertTrue(result.is_ok())
        order = result.unwrap()
        self.assertEqual(order.subtotal, Decimal("100.00"))
        self.assertEqual(order.discount_amount, Decimal("10.00"))
        self.assertEqual(order.final_total, Decimal("90.00"))
        self.assertEqual(order.applied_promotion_code, "SAVE10")
        self.assertEqual(order.status, OrderStatus.COMPLETED)
        self.assertEqual(order.shipping_address, shipping_address())

        item = OrderItem.objects.get(order=order)
        self.assertEqual((item.product_id, item.product_name, item.unit_price, item.quantity), (
            self.shirt.pk, "Linen Shirt", Decimal("50.00"), 2
        ))

        self.user.refresh_from_db()
        promotion.refresh_from_db()
        self.assertEqual(self.user.loyalty_points, 90)
        self.assertEqual(promotion.usage_count, 1)

    def test_checkout_without_code(self) -> None:
        order = self._checkout([cart_line(self.shirt, quantity=2)]).unwrap()

        self.assertEqual(order.final_total, Decimal("100.00"))
        self.assertIsNone(order.applied_promotion_code)
        self.user.refresh_from_db()
        self.assertEqual(self.user.loyalty_points, 100)

    def test_fixed_discount_above_subtotal_gives_free_order(self) -> None:
        bag = create_product(name="Tote Bag", price="40.00")
        create_promotion(code="FIFTYOFF", discount_type=DiscountType.FIXED_AMOUNT, discount_value="50")

        order = self._checkout([cart_line(bag)], code="FIFTYOFF").unwrap()

        self.assertEqual(order.discount_amount, Decimal("40.00"))
        self.assertEqual(order.final_total, Decimal("0.00"))
        self.user.refresh_from_db()
        self.assertEqual(self.user.loyalty_points, 0)

    def test_points_are_floored(self) -> None:
        cheap = create_product(name="Socks", price="9.99")
        self._checkout([cart_line(cheap, quantity=3)])  # 29.97

        self.user.refresh_from_db()
        self.assertEqual(self.user.loyalty_points, 29)

    def test_invalid_code_writes_nothing(self) -> None:
        result = self._checkout([cart_line(self.shirt)], code="BOGUS")

        error = result.unwrap_err()
        self.assertEqual(error.code, CheckoutError.PROMOTION_INVALID)
        self.assertEqual(error.reason, INVALID_CODE)
        self.assertEqual(Order.objects.count(), 0)
        self.user.refresh_from_db()
        self.assertEqual(self.user.loyalty_points, 0)

    def test_tier_checked_against_current_balance(self) -> None:
        create_promotion(code="SILVER5", applicable_tier="Silver")
        self.user.loyalty_points = 500  # stale in-memory value; database says 0

        result = self._checkout([cart_line(self.shirt)], code="SILVER5")

        self.assertEqual(result.unwrap_err().reason, TIER_NOT_MET)

    def test_usage_limit_race_rolls_everything_back(self) -> None:
        promotion = create_promotion(code="LASTONE", max_uses=1)

        with patch("apps.orders.services.PromotionService.increment_usage", return_value=False):
            result = self._checkout([cart_line(self.shirt, quantity=2)], code="LASTONE")

        error = result.unwrap_err()
        self.assertEqual(error.code, CheckoutError.PROMOTION_INVALID)
        self.assertEqual(error.reason, USAGE_LIMIT_REACHED)
        self.assertEqual(Order.objects.count(), 0)
        self.assertEqual(OrderItem.objects.count(), 0)
        self.user.refresh_from_db()
        promotion.refresh_from_db()
        self.assertEqual(self.user.loyalty_points, 0)
        self.assertEqual(promotion.usage_count, 0)

    def test_exhausted_code_rejected_before_any_write(self) -> None:
        create_promotion(code="LASTONE", max_uses=1)
        other = create_user(email="first@example.com")
        CheckoutService.checkout(other, [cart_line(self.shirt)], shipping_address(), "LASTONE").unwrap()

        result = self._checkout([cart_line(self.shirt)], code="LASTONE")

        self.assertEqual(result.unwrap_err().reason, USAGE_LIMIT_REACHED)
        self.assertEqual(Order.objects.filter(user=self.user).count(), 0)

    def test_welcome_code_only_on_first_order(self) -> None:
        create_promotion(code="WELCOME10", max_uses_per_user=1)

        self.assertTrue(self._checkout([cart_line(self.shirt)], code="WELCOME10").is_ok())
        result = self._checkout([cart_line(self.shirt)], code="WELCOME10")

        self.assertEqual(result.unwrap_err().reason, ALREADY_USED)
        self.assertEqual(Order.objects.filter(user=self.user).count(), 1)

    def test_personalized_code_consumed_once(self) -> None:
        code = f"WISH-{self.user.pk}-{self.shirt.pk}"

        order = self._checkout([cart_line(self.shirt, quantity=2)], code=code).unwrap()

        self.assertEqual(order.discount_amount, Decimal("10.00"))
        usage = PersonalizedCodeUsage.objects.get(user=self.user, code=code)
        self.assertEqual(usage.order, order)

        second = self._checkout([cart_line(self.shirt)], code=code)
        self.assertEqual(second.unwrap_err().reason, ALREADY_USED)

    def test_empty_cart(self) -> None:
        self.assertEqual(self._checkout([]).unwrap_err().code, CheckoutError.EMPTY_CART)

    def test_incomplete_address(self) -> None:
        result = self._checkout([cart_line(self.shirt)], address=shipping_address(country=""))
        self.assertEqual(result.unwrap_err().code, CheckoutError.INCOMPLETE_ADDRESS)
        self.assertEqual(Order.objects.count(), 0)

    def test_unknown_product(self) -> None:
        line = {"product_id": 424242, "name": "Ghost", "price": "1.00", "quantity": 1}

        result = self._checkout([cart_line(self.shirt), line])

        error = result.unwrap_err()
        self.assertEqual(error.code, CheckoutError.UNKNOWN_PRODUCT)
        self.assertIn("424242", error.message)

    def test_cart_prices_are_used_for_the_snapshot(self) -> None:
        order = self._checkout([cart_line(self.shirt, price="45.00")]).unwrap()

        self.assertEqual(order.items.get().unit_price, Decimal("45.00"))
        self.assertEqual(order.final_total, Decimal("45.00"))


class OrderModelTests(TestCase):
    databases = {"default", "catalog"}

    def setUp(self) -> None:
        self.user = create_user()
        self.product = create_product()

    def test_inconsistent_totals_refused(self) -> None:
        with self.assertRaises(ValueError):
            Order.objects.create(
                user=self.user,
                subtotal=Decimal("100.00"),
                discount_amount=Decimal("10.00"),
                final_total=Decimal("95.00"),
                **{f"shipping_{k}": v for k, v in shipping_address().items()},
            )

    def test_completed_is_final(self) -> None:
        order = create_order(self.user, self.product)
        self.assertFalse(order.can_transition_to("Shipped"))
        with self.assertRaises(InvalidStatusTransition):
            order.transition_to("Shipped")

    def test_line_total(self) -> None:
        order = create_order(self.user, self.product, quantity=3)
        self.assertEqual(order.items.get().line_total, Decimal("150.00"))

    def test_product_deletion_keeps_snapshot(self) -> None:
        order = create_order(self.user, self.product)
        self.product.delete()

        item = order.items.get()
        self.assertIsNone(item.product_id)
        self.assertEqual(item.product_name, "Linen Shirt")


class OrderQueryServiceTests(TestCase):
    databases = {"default", "catalog"}

    def test_orders_newest_first_and_scoped_to_user(self) -> None:
        user = create_user()
        other = create_user(email="other@example.com")
        product = create_product()
        first = create_order(user, product)
        second = create_order(user, product, quantity=2)
        create_order(other, product)

        self.assertEqual(list(OrderQueryService.orders_for_user(user)), [second, first])
        self.assertEqual(OrderQueryService.count_for_user(user), 2)

    def test_find_by_payment_session(self) -> None:
        user = create_user()
        order = create_order(user, create_product(), payment_session_id="cs_test_123")

        self.assertEqual(OrderQueryService.find_by_payment_session("cs_test_123"), order)
        self.assertIsNone(OrderQueryService.find_by_payment_session("cs_missing"))
        self.assertIsNone(OrderQueryService.find_by_payment_session(""))


@pytest.mark.django_db(transaction=True, databases=["default", "catalog"])
def test_order_construction_requires_transaction() -> None:
    user = create_user()
    product = create_product()
    address = validate_shipping_address(shipping_address()).unwrap()
    totals = OrderTotals(Decimal("50.00"), Decimal("0.00"), Decimal("50.00"))

    with pytest.raises(RuntimeError):
        OrderService.create_order_with_effects(user=user, lines=[], shipping_address=address, totals=totals)

    with transaction.atomic():
        order = OrderService.create_order_with_effects(user=user, lines=[], shipping_address=address, totals=totals)
    assert Order.objects.filter(pk=order.pk).exists()
