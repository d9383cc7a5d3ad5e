"""
Cart and shipping-address validation for checkout.

Everything here runs before any storage write, so a rejected request can
never leave partial state behind.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any

from apps.common.types import Err, Money, Ok, Result

if TYPE_CHECKING:
    from apps.promotions.services import PromotionDecision

CENT = Decimal("0.01")

SHIPPING_ADDRESS_FIELDS = ("full_name", "street_address", "city", "state", "postal_code", "country")
CART_LINE_FIELDS = ("product_id", "name", "price", "quantity")


# ===============================================================================
# Errors
# ===============================================================================


@dataclass(frozen=True)
class CheckoutError:
    """
    Client-facing checkout failure.

    code is machine-readable (EMPTY_CART, INVALID_CART_LINE,
    INCOMPLETE_ADDRESS, UNKNOWN_PRODUCT, PROMOTION_INVALID,
    PAYMENT_PROVIDER_ERROR); reason carries
    the promotion reason code when code is PROMOTION_INVALID.
    """

    code: str
    message: str
    reason: str = ""

    EMPTY_CART = "EMPTY_CART"
    INVALID_CART_LINE = "INVALID_CART_LINE"
    INCOMPLETE_ADDRESS = "INCOMPLETE_ADDRESS"
    UNKNOWN_PRODUCT = "UNKNOWN_PRODUCT"
    PROMOTION_INVALID = "PROMOTION_INVALID"
    PAYMENT_PROVIDER_ERROR = "PAYMENT_PROVIDER_ERROR"

    @classmethod
    def promotion_invalid(cls, decision: PromotionDecision) -> CheckoutError:
        return cls.promotion_rejected(decision.reason, decision.message)

    @classmethod
    def promotion_rejected(cls, reason: str, message: str) -> CheckoutError:
        return cls(
            code=cls.PROMOTION_INVALID,
            message=f"Your promotion is no longer valid: {message}",
            reason=reason,
        )

    @property
    def is_promotion_error(self) -> bool:
        return self.code == self.PROMOTION_INVALID


# ===============================================================================
# Value objects
# ===============================================================================


@dataclass(frozen=True)
class CartLine:
    product_id: int
    name: str
    price: Money
    quantity: int

    @property
    def line_total(self) -> Money:
        return self.price * self.quantity


@dataclass(frozen=True)
class ShippingAddress:
    full_name: str
    street_address: str
    city: str
    state: str
    postal_code: str
    country: str

    def as_dict(self) -> dict[str, str]:
        return {field: getattr(self, field) for field in SHIPPING_ADDRESS_FIELDS}

    def as_order_fields(self) -> dict[str, str]:
        return {f"shipping_{field}": getattr(self, field) for field in SHIPPING_ADDRESS_FIELDS}


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Money
    discount_amount: Money
    final_total: Money


# ===============================================================================
# Validation
# ===============================================================================


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_line(index: int, raw: Mapping[str, Any]) -> Result[CartLine, CheckoutError]:
    missing = [field for field in CART_LINE_FIELDS if _blank(raw.get(field))]
    if missing:
        return Err(
            CheckoutError(
                CheckoutError.INVALID_CART_LINE,
                f"Cart item {index + 1} is missing: {', '.join(missing)}",
            )
        )

    try:
        product_id = int(raw["product_id"])
        price = Decimal(str(raw["price"]))
        quantity = int(raw["quantity"])
    except (TypeError, ValueError, InvalidOperation):
        return Err(CheckoutError(CheckoutError.INVALID_CART_LINE, f"Cart item {index + 1} has invalid values"))

    if not price.is_finite() or price < 0:
        return Err(CheckoutError(CheckoutError.INVALID_CART_LINE, f"Cart item {index + 1} has an invalid price"))
    if quantity < 1:
        return Err(CheckoutError(CheckoutError.INVALID_CART_LINE, f"Cart item {index + 1} quantity must be at least 1"))

    return Ok(
        CartLine(
            product_id=product_id,
            name=str(raw["name"]).strip(),
            price=price.quantize(CENT, rounding=ROUND_HALF_UP),
            quantity=quantity,
        )
    )


def validate_cart(cart: Iterable[Mapping[str, Any]] | None) -> Result[list[CartLine], CheckoutError]:
    """Validate raw cart lines; the first bad line rejects the whole cart."""
    raw_lines = list(cart or [])
    if not raw_lines:
        return Err(CheckoutError(CheckoutError.EMPTY_CART, "Cart is empty."))

    lines: list[CartLine] = []
    for index, raw in enumerate(raw_lines):
        if not isinstance(raw, Mapping):
            return Err(CheckoutError(CheckoutError.INVALID_CART_LINE, f"Cart item {index + 1} is malformed"))
        result = _parse_line(index, raw)
        if result.is_err():
            return result
        lines.append(result.unwrap())
    return Ok(lines)


def validate_shipping_address(address: Mapping[str, Any] | None) -> Result[ShippingAddress, CheckoutError]:
    """All address fields are required and must be non-blank."""
    address = address or {}
    missing = [field for field in SHIPPING_ADDRESS_FIELDS if _blank(address.get(field))]
    if missing:
        return Err(
            CheckoutError(
                CheckoutError.INCOMPLETE_ADDRESS,
                f"Shipping address is incomplete: {', '.join(missing)}",
            )
        )
    return Ok(ShippingAddress(**{field: str(address[field]).strip() for field in SHIPPING_ADDRESS_FIELDS}))


def calculate_subtotal(lines: Iterable[CartLine]) -> Money:
    subtotal = sum((line.line_total for line in lines), Decimal("0.00"))
    return subtotal.quantize(CENT, rounding=ROUND_HALF_UP)


def compute_totals(subtotal: Money, discount: Money) -> OrderTotals:
    """Clamp the discount into [0, subtotal] and derive the final total."""
    subtotal = Decimal(subtotal).quantize(CENT, rounding=ROUND_HALF_UP)
    discount = max(Decimal("0.00"), min(Decimal(discount), subtotal)).quantize(CENT, rounding=ROUND_HALF_UP)
    return OrderTotals(subtotal=subtotal, discount_amount=discount, final_total=subtotal - discount)
