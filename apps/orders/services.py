"""
Order services for the storefront platform.

OrderService.create_order_with_effects is the single order-construction
sequence shared by synchronous checkout and payment-session fulfillment:
order and items, loyalty award, promotion usage and personalized-code usage
all commit together or not at all.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.db import transaction
from django.db.models import QuerySet

from apps.common.types import Err, Ok, Result
from apps.products.services import ProductService
from apps.promotions.services import (
    ALREADY_USED,
    REASON_MESSAGES,
    USAGE_LIMIT_REACHED,
    CodeAlreadyUsedError,
    PersonalizedCodeService,
    PromotionDecision,
    PromotionEvaluator,
    PromotionService,
)
from apps.users.loyalty import LoyaltyService, points_for_amount
from apps.users.models import User

from .models import Order, OrderItem, OrderStatus
from .validation import (
    CartLine,
    CheckoutError,
    OrderTotals,
    ShippingAddress,
    calculate_subtotal,
    compute_totals,
    validate_cart,
    validate_shipping_address,
)

if TYPE_CHECKING:
    from apps.promotions.models import Promotion
    from apps.promotions.services import PersonalizedCode

logger = logging.getLogger(__name__)


class PromotionLimitReachedError(Exception):
    """Promotion usage counter was already at max_uses when incrementing."""


# ===============================================================================
# ORDER CONSTRUCTION
# ===============================================================================


class OrderService:
    """Order creation shared by every checkout path."""

    @staticmethod
    def create_order_with_effects(  # noqa: PLR0913
        *,
        user: User,
        lines: Iterable[CartLine],
        shipping_address: ShippingAddress,
        totals: OrderTotals,
        promotion_code: str | None = None,
        promotion: Promotion | None = None,
        personalized_code: PersonalizedCode | None = None,
        payment_session_id: str | None = None,
        payment_captured: bool = False,
    ) -> Order:
        """
        Persist the order and apply its side effects.

        Must be called inside transaction.atomic. With payment_captured=False
        a promotion conflict raises and the caller's transaction rolls back.
        With payment_captured=True the customer has already been charged, so
        conflicts are logged for an operator and the order is still written.
        """
        if not transaction.get_connection().in_atomic_block:
            raise RuntimeError("create_order_with_effects must run inside transaction.atomic()")

        order = Order.objects.create(
            user=user,
            status=OrderStatus.COMPLETED,
            subtotal=totals.subtotal,
            discount_amount=totals.discount_amount,
            final_total=totals.final_total,
            applied_promotion_code=promotion_code or None,
            payment_session_id=payment_session_id,
            **shipping_address.as_order_fields(),
        )
        OrderItem.objects.bulk_create(
            [
                OrderItem(
                    order=order,
                    product_id=line.product_id,
                    product_name=line.name,
                    unit_price=line.price,
                    quantity=line.quantity,
                )
                for line in lines
            ]
        )

        LoyaltyService.award_points(user.pk, points_for_amount(totals.final_total))

        if promotion is not None and not PromotionService.increment_usage(promotion.pk):
            if not payment_captured:
                raise PromotionLimitReachedError(promotion.code)
            logger.error(
                f"🔥 [Orders] Promotion {promotion.code} over its usage limit on paid order {order.pk}",
                extra={"order_id": order.pk, "promotion_code": promotion.code},
            )

        if personalized_code is not None and not (
            # Paid sessions reserved the code when the session was opened
            payment_captured and PersonalizedCodeService.attach_order(user, personalized_code.code, order)
        ):
            try:
                PersonalizedCodeService.consume(user, personalized_code.code, order=order)
            except CodeAlreadyUsedError:
                if not payment_captured:
                    raise
                logger.critical(
                    f"🚨 [Orders] Personalized code {personalized_code.code} reused on paid order {order.pk}",
                    extra={"order_id": order.pk, "promotion_code": personalized_code.code},
                )

        logger.info(
            f"✅ [Orders] Created order {order.pk} for user {user.pk}: "
            f"subtotal={totals.subtotal} discount={totals.discount_amount} total={totals.final_total}",
            extra={"order_id": order.pk, "payment_session_id": payment_session_id},
        )
        return order


# ===============================================================================
# SYNCHRONOUS CHECKOUT
# ===============================================================================


class CheckoutService:
    """Synchronous checkout: validate, price, persist and award in one transaction."""

    @classmethod
    def checkout(
        cls,
        user: User,
        cart: Iterable[Mapping[str, Any]] | None,
        shipping_address: Mapping[str, Any] | None,
        promotion_code: str | None = None,
    ) -> Result[Order, CheckoutError]:
        lines_result = validate_cart(cart)
        if lines_result.is_err():
            return lines_result
        address_result = validate_shipping_address(shipping_address)
        if address_result.is_err():
            return address_result

        lines = lines_result.unwrap()
        address = address_result.unwrap()

        unknown = cls.unknown_products(lines)
        if unknown:
            message = f"Unknown products in cart: {', '.join(map(str, unknown))}"
            return Err(CheckoutError(CheckoutError.UNKNOWN_PRODUCT, message))

        subtotal = calculate_subtotal(lines)

        try:
            with transaction.atomic():
                decision: PromotionDecision | None = None
                if promotion_code and promotion_code.strip():
                    # Fresh, locked balance so tier and welcome checks see committed state
                    locked_user = User.objects.select_for_update().get(pk=user.pk)
                    decision = PromotionEvaluator.evaluate(promotion_code, locked_user, subtotal, lock=True)
                    if not decision.valid:
                        logger.info(
                            f"🎟️ [Checkout] Promotion {decision.code} rejected at checkout for user {user.pk}: "
                            f"{decision.reason}",
                            extra={"promotion_code": decision.code, "reason": decision.reason},
                        )
                        return Err(CheckoutError.promotion_invalid(decision))

                totals = compute_totals(subtotal, decision.discount_amount if decision else Decimal("0.00"))
                order = OrderService.create_order_with_effects(
                    user=user,
                    lines=lines,
                    shipping_address=address,
                    totals=totals,
                    promotion_code=decision.code if decision else None,
                    promotion=decision.promotion if decision else None,
                    personalized_code=decision.personalized_code if decision else None,
                )
        except PromotionLimitReachedError:
            return Err(CheckoutError.promotion_rejected(USAGE_LIMIT_REACHED, REASON_MESSAGES[USAGE_LIMIT_REACHED]))
        except CodeAlreadyUsedError:
            return Err(CheckoutError.promotion_rejected(ALREADY_USED, REASON_MESSAGES[ALREADY_USED]))

        return Ok(order)

    @staticmethod
    def unknown_products(lines: list[CartLine]) -> list[int]:
        product_ids = [line.product_id for line in lines]
        known = ProductService.get_products_by_ids(product_ids)
        return sorted({product_id for product_id in product_ids if product_id not in known})


# ===============================================================================
# QUERIES
# ===============================================================================


class OrderQueryService:
    @staticmethod
    def orders_for_user(user: User) -> QuerySet[Order]:
        """Newest first, items prefetched."""
        return Order.objects.filter(user=user).prefetch_related("items").order_by("-created_at", "-id")

    @staticmethod
    def find_by_payment_session(session_id: str) -> Order | None:
        if not session_id:
            return None
        return Order.objects.filter(payment_session_id=session_id).first()

    @staticmethod
    def count_for_user(user: User) -> int:
        return Order.objects.filter(user=user).count()
