"""
Stripe Payment Gateway for the storefront platform
Hosted Checkout Sessions with per-line product tags and one-off discounts.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import stripe

from apps.common.config import get_storefront_config

from .base import (
    BasePaymentGateway,
    PaymentGatewayError,
    PaymentGatewayFactory,
    PaymentLineItem,
    PaymentSessionDetails,
    PaymentSessionHandle,
    PaymentSessionRequest,
)

logger = logging.getLogger(__name__)

PRODUCT_ID_METADATA_KEY = "product_id"
LINE_ITEMS_PAGE_SIZE = 100


def _as_dict(obj: Any) -> dict[str, Any]:
    """Plain dict from a StripeObject, mapping or None."""
    if obj is None:
        return {}
    if isinstance(obj, Mapping):
        return dict(obj)
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return dict(to_dict())
    return dict(obj)


def _parse_product_id(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


# ===============================================================================
# STRIPE GATEWAY IMPLEMENTATION
# ===============================================================================


class StripeGateway(BasePaymentGateway):
    """
    💳 Stripe payment gateway implementation

    The API key is passed per request; the global stripe.api_key is never set.
    """

    def __init__(self, api_key: str | None = None) -> None:
        super().__init__()
        self._api_key = api_key if api_key is not None else get_storefront_config().stripe_secret_key

    @property
    def gateway_name(self) -> str:
        return "stripe"

    def validate_configuration(self) -> bool:
        if not self._api_key:
            self.logger.error("❌ [Stripe] STRIPE_SECRET_KEY not configured")
            return False
        return True

    def create_checkout_session(self, request: PaymentSessionRequest) -> PaymentSessionHandle:
        params: dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [self._line_item_params(item, request.currency) for item in request.line_items],
            "metadata": dict(request.metadata),
            "success_url": request.success_url,
            "cancel_url": request.cancel_url,
        }
        if request.customer_email:
            params["customer_email"] = request.customer_email

        try:
            if request.discount_cents > 0:
                coupon = stripe.Coupon.create(
                    amount_off=request.discount_cents,
                    currency=request.currency,
                    duration="once",
                    name=request.discount_label or "Promotion",
                    api_key=self._api_key,
                )
                params["discounts"] = [{"coupon": coupon.id}]

            session = stripe.checkout.Session.create(api_key=self._api_key, **params)
        except stripe.StripeError as e:
            self.logger.error(f"🔥 [Stripe] Checkout session creation failed: {e}")
            raise PaymentGatewayError(str(e)) from e

        self.logger.info(
            f"✅ [Stripe] Created checkout session {session.id} "
            f"({len(request.line_items)} lines, discount {request.discount_cents} cents)"
        )
        return PaymentSessionHandle(session_id=session.id, url=getattr(session, "url", None))

    def retrieve_checkout_session(self, session_id: str) -> PaymentSessionDetails:
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self._api_key)
            line_items = stripe.checkout.Session.list_line_items(
                session_id,
                limit=LINE_ITEMS_PAGE_SIZE,
                expand=["data.price.product"],
                api_key=self._api_key,
            )
            items = [self._parse_line_item(item) for item in line_items.auto_paging_iter()]
        except stripe.StripeError as e:
            self.logger.error(f"🔥 [Stripe] Failed to retrieve checkout session {session_id}: {e}")
            raise PaymentGatewayError(str(e)) from e

        total_details = getattr(session, "total_details", None)
        return PaymentSessionDetails(
            session_id=session.id,
            payment_status=getattr(session, "payment_status", "") or "",
            metadata={key: str(value) for key, value in _as_dict(getattr(session, "metadata", None)).items()},
            amount_subtotal_cents=int(getattr(session, "amount_subtotal", 0) or 0),
            amount_discount_cents=int(getattr(total_details, "amount_discount", 0) or 0),
            amount_total_cents=int(getattr(session, "amount_total", 0) or 0),
            line_items=items,
        )

    @staticmethod
    def _line_item_params(item: PaymentLineItem, currency: str) -> dict[str, Any]:
        return {
            "price_data": {
                "currency": currency,
                "product_data": {
                    "name": item.name,
                    "metadata": {PRODUCT_ID_METADATA_KEY: str(item.product_id)},
                },
                "unit_amount": item.unit_amount_cents,
            },
            "quantity": item.quantity,
        }

    @staticmethod
    def _parse_line_item(item: Any) -> PaymentLineItem:
        price = getattr(item, "price", None)
        product = getattr(price, "product", None)
        # Unexpanded product is just an id string; no tag to recover then
        product_metadata = _as_dict(getattr(product, "metadata", None)) if not isinstance(product, str) else {}
        return PaymentLineItem(
            product_id=_parse_product_id(product_metadata.get(PRODUCT_ID_METADATA_KEY)),
            name=getattr(item, "description", "") or getattr(product, "name", "") or "",
            unit_amount_cents=int(getattr(price, "unit_amount", 0) or 0),
            quantity=int(getattr(item, "quantity", 0) or 0),
        )


# ===============================================================================
# GATEWAY REGISTRATION
# ===============================================================================

PaymentGatewayFactory.register_gateway("stripe", StripeGateway)
