"""
Payment-session checkout for the storefront platform.

Creating a session writes nothing to the ledger: the order, loyalty award
and promotion usage are all deferred to fulfillment, which trusts only what
is recorded on the session (line items, amounts and the metadata below).
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from apps.common.config import get_storefront_config
from apps.common.types import Cents, Err, Money, Ok, Result
from apps.orders.services import CheckoutService
from apps.orders.validation import CheckoutError, calculate_subtotal, validate_cart, validate_shipping_address
from apps.promotions.services import (
    ALREADY_USED,
    REASON_MESSAGES,
    CodeAlreadyUsedError,
    PersonalizedCode,
    PersonalizedCodeService,
    PromotionEvaluator,
)
from apps.users.models import User

from .gateways import BasePaymentGateway, PaymentGatewayError, PaymentGatewayFactory
from .gateways.base import PaymentLineItem, PaymentSessionHandle, PaymentSessionRequest

logger = logging.getLogger(__name__)

# Session metadata keys read back by fulfillment
METADATA_USER_ID = "user_id"
METADATA_PROMOTION_CODE = "promotion_code"
METADATA_SHIPPING_ADDRESS = "shipping_address"


def to_cents(amount: Money) -> Cents:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_cents(cents: Cents) -> Money:
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


class PaymentSessionService:
    """
    💳 Asynchronous checkout: hand the cart to a hosted payment session
    """

    @staticmethod
    def create_session(
        user: User,
        cart: Iterable[Mapping[str, Any]] | None,
        shipping_address: Mapping[str, Any] | None,
        promotion_code: str | None = None,
        *,
        gateway: BasePaymentGateway | None = None,
    ) -> Result[PaymentSessionHandle, CheckoutError]:
        lines_result = validate_cart(cart)
        if lines_result.is_err():
            return lines_result
        address_result = validate_shipping_address(shipping_address)
        if address_result.is_err():
            return address_result

        lines = lines_result.unwrap()
        address = address_result.unwrap()

        unknown = CheckoutService.unknown_products(lines)
        if unknown:
            message = f"Unknown products in cart: {', '.join(map(str, unknown))}"
            return Err(CheckoutError(CheckoutError.UNKNOWN_PRODUCT, message))

        subtotal = calculate_subtotal(lines)
        code = ""
        discount = Decimal("0.00")
        reserved: PersonalizedCode | None = None
        if promotion_code and promotion_code.strip():
            decision = PromotionEvaluator.evaluate(promotion_code, user, subtotal)
            if not decision.valid:
                return Err(CheckoutError.promotion_invalid(decision))
            code = decision.code
            discount = decision.discount_amount
            reserved = decision.personalized_code

        if reserved is not None:
            # The discount is granted once the coupon reaches the provider, so the code is spent now
            try:
                PersonalizedCodeService.consume(user, reserved.code)
            except CodeAlreadyUsedError:
                return Err(CheckoutError.promotion_rejected(ALREADY_USED, REASON_MESSAGES[ALREADY_USED]))

        config = get_storefront_config()
        request = PaymentSessionRequest(
            line_items=[
                PaymentLineItem(
                    product_id=line.product_id,
                    name=line.name,
                    unit_amount_cents=to_cents(line.price),
                    quantity=line.quantity,
                )
                for line in lines
            ],
            currency=config.currency,
            success_url=config.checkout_success_url,
            cancel_url=config.checkout_cancel_url,
            metadata={
                METADATA_USER_ID: str(user.pk),
                METADATA_PROMOTION_CODE: code,
                METADATA_SHIPPING_ADDRESS: json.dumps(address.as_dict()),
            },
            discount_cents=to_cents(discount),
            discount_label=code,
            customer_email=user.email or None,
        )

        try:
            payment_gateway = gateway or PaymentGatewayFactory.get_default_gateway()
            handle = payment_gateway.create_checkout_session(request)
        except (PaymentGatewayError, ValueError) as e:
            logger.error(f"🔥 [Checkout] Payment session creation failed for user {user.pk}: {e}")
            if reserved is not None:
                PersonalizedCodeService.release(user, reserved.code)
            return Err(
                CheckoutError(
                    CheckoutError.PAYMENT_PROVIDER_ERROR,
                    "Payment provider is unavailable. Please try again later.",
                )
            )

        logger.info(
            f"💳 [Checkout] Payment session {handle.session_id} created for user {user.pk} "
            f"(subtotal {subtotal}, discount {discount})",
            extra={"payment_session_id": handle.session_id, "promotion_code": code},
        )
        return Ok(handle)
