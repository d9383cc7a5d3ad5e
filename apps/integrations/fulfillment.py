"""
Payment-session fulfillment.

Turns a paid checkout session into exactly one ledger order. The session
recorded by the payment provider is the only input trusted here: line
items, amounts and metadata all come from it, never from the original
client request.

This module's logger is the operator alert channel for money-moved-but-
no-order conditions.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from enum import Enum

from django.db import IntegrityError, OperationalError, transaction

from apps.billing.gateways import BasePaymentGateway, PaymentGatewayError, PaymentGatewayFactory
from apps.billing.gateways.base import PaymentSessionDetails
from apps.billing.payment_service import (
    METADATA_PROMOTION_CODE,
    METADATA_SHIPPING_ADDRESS,
    METADATA_USER_ID,
    from_cents,
)
from apps.common.config import get_storefront_config
from apps.orders.models import Order
from apps.orders.services import OrderQueryService, OrderService
from apps.orders.validation import CartLine, OrderTotals, ShippingAddress, validate_shipping_address
from apps.products.services import ProductService
from apps.promotions.models import Promotion, normalize_code
from apps.promotions.services import PersonalizedCode, PersonalizedCodeService
from apps.users.models import User

logger = logging.getLogger(__name__)


class FulfillmentOutcome(str, Enum):
    CREATED = "created"
    ALREADY_FULFILLED = "already_fulfilled"
    NOT_PAID = "not_paid"


# ===============================================================================
# Errors
# ===============================================================================


class FulfillmentError(Exception):
    """Fulfillment could not produce an order for a payment session."""

    def __init__(self, session_id: str, message: str) -> None:
        super().__init__(f"{session_id}: {message}")
        self.session_id = session_id


class FulfillmentIntegrityError(FulfillmentError):
    """Session data cannot be mapped onto the ledger (unknown product, bad metadata)."""


class FulfillmentRetryExhaustedError(FulfillmentError):
    """Transient conflicts persisted through every attempt."""

    def __init__(self, session_id: str, attempts: int) -> None:
        super().__init__(session_id, f"gave up after {attempts} attempts")
        self.attempts = attempts


# ===============================================================================
# Fulfillment plan
# ===============================================================================


@dataclass(frozen=True)
class FulfillmentPlan:
    session_id: str
    user: User
    lines: list[CartLine]
    shipping_address: ShippingAddress
    totals: OrderTotals
    promotion_code: str | None
    promotion: Promotion | None
    personalized_code: PersonalizedCode | None


class FulfillmentReconciler:
    """
    🔄 Idempotent, retrying order creation for paid payment sessions

    - Redelivery of an already fulfilled session is a no-op.
    - OperationalError (write conflict, lock timeout, deadlock) is retried
      with exponential backoff.
    - IntegrityError on the payment_session_id key means a concurrent
      delivery won; anything else propagates.
    """

    def __init__(
        self,
        gateway: BasePaymentGateway | None = None,
        *,
        max_attempts: int | None = None,
        base_delay: float | None = None,
    ) -> None:
        config = get_storefront_config()
        self._gateway = gateway
        self.max_attempts = max_attempts or config.fulfillment_max_attempts
        self.base_delay = config.fulfillment_retry_base_delay if base_delay is None else base_delay

    @property
    def gateway(self) -> BasePaymentGateway:
        if self._gateway is None:
            self._gateway = PaymentGatewayFactory.get_default_gateway()
        return self._gateway

    def fulfill(self, session_id: str) -> FulfillmentOutcome:
        if OrderQueryService.find_by_payment_session(session_id) is not None:
            logger.info(f"⏭️ [Fulfillment] Session {session_id} already fulfilled, ignoring redelivery")
            return FulfillmentOutcome.ALREADY_FULFILLED

        try:
            details = self.gateway.retrieve_checkout_session(session_id)
        except ValueError as e:
            # Gateway missing or not configured: money may have moved with no way to read the session
            logger.critical(
                f"🚨 [Fulfillment] No usable payment gateway for session {session_id}: {e}",
                extra={"payment_session_id": session_id},
            )
            raise FulfillmentError(session_id, f"payment gateway not configured: {e}") from e
        except PaymentGatewayError as e:
            logger.error(f"🔥 [Fulfillment] Could not retrieve session {session_id}: {e}")
            raise FulfillmentError(session_id, f"payment provider unavailable: {e}") from e

        if not details.is_paid:
            logger.info(f"⏳ [Fulfillment] Session {session_id} not paid yet ({details.payment_status})")
            return FulfillmentOutcome.NOT_PAID

        try:
            plan = self._build_plan(details)
        except FulfillmentIntegrityError as e:
            logger.critical(
                f"🚨 [Fulfillment] Paid session {session_id} cannot be mapped to an order: {e}",
                extra={"payment_session_id": session_id},
            )
            raise

        return self._commit_with_retry(plan)

    # ---------------------------------------------------------------------------
    # Transaction + retry
    # ---------------------------------------------------------------------------

    def _commit_with_retry(self, plan: FulfillmentPlan) -> FulfillmentOutcome:
        last_error: OperationalError | None = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                with transaction.atomic():
                    order = self._create_order(plan)
            except IntegrityError:
                if OrderQueryService.find_by_payment_session(plan.session_id) is not None:
                    logger.info(
                        f"⏭️ [Fulfillment] Session {plan.session_id} fulfilled concurrently, treating as success"
                    )
                    return FulfillmentOutcome.ALREADY_FULFILLED
                logger.critical(
                    f"🚨 [Fulfillment] Integrity failure creating order for paid session {plan.session_id}",
                    extra={"payment_session_id": plan.session_id},
                )
                raise
            except OperationalError as e:
                last_error = e
                if attempt == self.max_attempts:
                    break
                delay = self.base_delay * (2 ** (attempt - 1))
                logger.warning(
                    f"⚠️ [Fulfillment] Transient conflict on session {plan.session_id} "
                    f"(attempt {attempt}/{self.max_attempts}), retrying in {delay:.2f}s: {e}"
                )
                time.sleep(delay)
                continue

            if order is None:
                return FulfillmentOutcome.ALREADY_FULFILLED
            logger.info(
                f"✅ [Fulfillment] Session {plan.session_id} fulfilled as order {order.pk} (attempt {attempt})",
                extra={"payment_session_id": plan.session_id, "order_id": order.pk},
            )
            return FulfillmentOutcome.CREATED

        logger.critical(
            f"🚨 [Fulfillment] Retries exhausted for paid session {plan.session_id}; manual reconciliation needed",
            extra={"payment_session_id": plan.session_id},
        )
        raise FulfillmentRetryExhaustedError(plan.session_id, self.max_attempts) from last_error

    @staticmethod
    def _create_order(plan: FulfillmentPlan) -> Order | None:
        # Re-check inside the transaction; a redelivery may have committed meanwhile
        if Order.objects.filter(payment_session_id=plan.session_id).exists():
            return None

        return OrderService.create_order_with_effects(
            user=plan.user,
            lines=plan.lines,
            shipping_address=plan.shipping_address,
            totals=plan.totals,
            promotion_code=plan.promotion_code,
            promotion=plan.promotion,
            personalized_code=plan.personalized_code,
            payment_session_id=plan.session_id,
            payment_captured=True,
        )

    # ---------------------------------------------------------------------------
    # Session -> plan
    # ---------------------------------------------------------------------------

    def _build_plan(self, details: PaymentSessionDetails) -> FulfillmentPlan:
        session_id = details.session_id
        user = self._resolve_user(session_id, details.metadata.get(METADATA_USER_ID))
        address = self._resolve_address(session_id, details.metadata.get(METADATA_SHIPPING_ADDRESS))
        lines = self._resolve_lines(details)
        totals = self._resolve_totals(details)

        code = normalize_code(details.metadata.get(METADATA_PROMOTION_CODE, "")) or None
        promotion = None
        personalized = None
        if code:
            personalized = PersonalizedCodeService.parse(code)
            if personalized is not None and personalized.user_id != user.pk:
                logger.error(f"🔥 [Fulfillment] Session {session_id} carries another user's personalized code {code}")
                personalized = None
            elif personalized is None:
                promotion = Promotion.objects.filter(code=code).first()
                if promotion is None:
                    logger.error(f"🔥 [Fulfillment] Session {session_id} references unknown promotion {code}")

        return FulfillmentPlan(
            session_id=session_id,
            user=user,
            lines=lines,
            shipping_address=address,
            totals=totals,
            promotion_code=code,
            promotion=promotion,
            personalized_code=personalized,
        )

    @staticmethod
    def _resolve_user(session_id: str, raw_user_id: str | None) -> User:
        try:
            return User.objects.get(pk=int(raw_user_id or ""))
        except (TypeError, ValueError) as e:
            raise FulfillmentIntegrityError(session_id, f"missing or malformed user id {raw_user_id!r}") from e
        except User.DoesNotExist as e:
            raise FulfillmentIntegrityError(session_id, f"unknown user {raw_user_id}") from e

    @staticmethod
    def _resolve_address(session_id: str, raw_address: str | None) -> ShippingAddress:
        try:
            address = json.loads(raw_address or "")
        except json.JSONDecodeError as e:
            raise FulfillmentIntegrityError(session_id, "shipping address metadata is not valid JSON") from e
        if not isinstance(address, dict):
            raise FulfillmentIntegrityError(session_id, "shipping address metadata is not an object")

        result = validate_shipping_address(address)
        if result.is_err():
            raise FulfillmentIntegrityError(session_id, result.unwrap_err().message)
        return result.unwrap()

    @staticmethod
    def _resolve_lines(details: PaymentSessionDetails) -> list[CartLine]:
        session_id = details.session_id
        if not details.line_items:
            raise FulfillmentIntegrityError(session_id, "session has no line items")

        untagged = [item.name for item in details.line_items if item.product_id is None]
        if untagged:
            raise FulfillmentIntegrityError(session_id, f"line items without product tag: {', '.join(untagged)}")

        products = ProductService.get_products_by_ids([item.product_id for item in details.line_items])
        lines: list[CartLine] = []
        for item in details.line_items:
            product = products.get(item.product_id)
            if product is None:
                raise FulfillmentIntegrityError(session_id, f"line item maps to unknown product {item.product_id}")
            if item.quantity < 1:
                raise FulfillmentIntegrityError(session_id, f"line item {item.product_id} has quantity {item.quantity}")
            lines.append(
                CartLine(
                    product_id=product.pk,
                    name=item.name or product.name,
                    price=from_cents(item.unit_amount_cents),
                    quantity=item.quantity,
                )
            )
        return lines

    @staticmethod
    def _resolve_totals(details: PaymentSessionDetails) -> OrderTotals:
        subtotal = from_cents(details.amount_subtotal_cents)
        discount = from_cents(details.amount_discount_cents)
        final_total = from_cents(details.amount_total_cents)

        if discount < 0 or discount > subtotal or final_total != subtotal - discount:
            raise FulfillmentIntegrityError(
                details.session_id,
                f"charged amounts do not reconcile: subtotal={subtotal} discount={discount} total={final_total}",
            )
        return OrderTotals(subtotal=subtotal, discount_amount=discount, final_total=final_total)
