"""
Promotion services for the storefront platform.
Business logic for promotion validation, discount calculation and
personalized (user-scoped) offer codes.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any

from django.db import IntegrityError, transaction
from django.db.models import F, Q
from django.utils import timezone

from apps.common.config import get_storefront_config
from apps.users.loyalty import LoyaltyTier, meets_tier

from .models import DiscountType, PersonalizedCodeFamily, PersonalizedCodeUsage, Promotion, normalize_code

if TYPE_CHECKING:
    from apps.orders.models import Order
    from apps.users.models import User

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

PERSONALIZED_CODE_PATTERN = re.compile(r"^(WISH|CAT)-(\d+)-([A-Z0-9]+)$")

# ===============================================================================
# Reason codes
# ===============================================================================

INVALID_CODE = "INVALID_CODE"
NOT_ACTIVE = "NOT_ACTIVE"
NOT_STARTED = "NOT_STARTED"
EXPIRED = "EXPIRED"
USAGE_LIMIT_REACHED = "USAGE_LIMIT_REACHED"
TIER_NOT_MET = "TIER_NOT_MET"
ALREADY_USED = "ALREADY_USED"

REASON_MESSAGES: dict[str, str] = {
    INVALID_CODE: "Invalid promotion code.",
    NOT_ACTIVE: "This promotion is no longer active.",
    NOT_STARTED: "This promotion has not started yet.",
    EXPIRED: "This promotion has expired.",
    USAGE_LIMIT_REACHED: "This promotion has reached its usage limit.",
    TIER_NOT_MET: "You need {tier} tier for this promotion.",
    ALREADY_USED: "This promotion code has already been used.",
}
WELCOME_ALREADY_USED_MESSAGE = "Welcome offer already used."


class CodeAlreadyUsedError(Exception):
    """Raised when a personalized code has already been consumed by the user."""


# ===============================================================================
# Data Classes for Results
# ===============================================================================


@dataclass(frozen=True)
class PromotionDecision:
    """
    Outcome of evaluating a promotion code against a user and subtotal.

    Attributes:
        valid: Whether the code can be applied.
        reason: Machine-readable reason when invalid (see reason codes above).
        message: Human-readable message when invalid.
        discount_amount: Discount granted when valid, never above the subtotal.
        promotion: The resolved Promotion row (None for personalized codes).
        personalized_code: Parsed personalized code, when that path was used.
    """

    valid: bool
    code: str = ""
    reason: str = ""
    message: str = ""
    discount_amount: Decimal = ZERO
    promotion: Promotion | None = None
    personalized_code: PersonalizedCode | None = None

    @classmethod
    def rejected(cls, code: str, reason: str, **fmt: Any) -> PromotionDecision:
        return cls(valid=False, code=code, reason=reason, message=REASON_MESSAGES[reason].format(**fmt))

    @property
    def is_personalized(self) -> bool:
        return self.personalized_code is not None


@dataclass(frozen=True)
class PersonalizedCode:
    code: str
    family: str
    user_id: int
    suffix: str


@dataclass(frozen=True)
class PersonalizedOffer:
    code: str
    family: str
    discount_percent: Decimal
    description: str


# ===============================================================================
# Discount calculation
# ===============================================================================


def quantize_money(amount: Decimal) -> Decimal:
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_discount(discount_type: str, value: Decimal, subtotal: Decimal) -> Decimal:
    """
    Compute the discount for a subtotal.

    The result is clamped to [0, subtotal] and rounded to cents, so a
    percentage above 100 or a fixed amount above the subtotal can never
    produce a negative total.
    """
    subtotal = Decimal(subtotal)
    value = Decimal(value)

    if discount_type == DiscountType.PERCENTAGE:
        discount = subtotal * value / Decimal("100")
    elif discount_type == DiscountType.FIXED_AMOUNT:
        discount = value
    elif discount_type == DiscountType.FREE_SHIPPING:
        discount = ZERO
    else:
        raise ValueError(f"Unknown discount type: {discount_type}")

    discount = max(ZERO, min(discount, subtotal))
    return quantize_money(discount)


# ===============================================================================
# Personalized codes
# ===============================================================================


class PersonalizedCodeService:
    """Single-use, user-scoped codes (WISH-{userId}-{suffix} / CAT-{userId}-{suffix})."""

    @staticmethod
    def parse(code: str) -> PersonalizedCode | None:
        normalized = normalize_code(code)
        match = PERSONALIZED_CODE_PATTERN.match(normalized)
        if not match:
            return None
        family, user_id, suffix = match.groups()
        return PersonalizedCode(code=normalized, family=family, user_id=int(user_id), suffix=suffix)

    @staticmethod
    def is_available(user: User, code: str) -> bool:
        return not PersonalizedCodeUsage.objects.filter(user=user, code=normalize_code(code)).exists()

    @classmethod
    def consume(cls, user: User, code: str, order: Order | None = None) -> PersonalizedCodeUsage:
        """
        Record that the user has used a personalized code.

        Runs in a savepoint so a duplicate leaves the enclosing transaction
        usable. Raises CodeAlreadyUsedError on duplicate; callers must then
        withhold the discount.
        """
        parsed = cls.parse(code)
        if parsed is None:
            raise ValueError(f"Not a personalized code: {code}")

        try:
            with transaction.atomic():
                usage = PersonalizedCodeUsage.objects.create(
                    user=user,
                    code=parsed.code,
                    family=parsed.family,
                    order=order,
                )
        except IntegrityError as e:
            raise CodeAlreadyUsedError(parsed.code) from e

        logger.info(
            f"🎟️ [Promotions] Personalized code {parsed.code} consumed by user {user.pk}",
            extra={"user_id": user.pk, "code": parsed.code},
        )
        return usage

    @staticmethod
    def attach_order(user: User, code: str, order: Order) -> bool:
        """Link a usage reserved at payment-session creation to the order it paid for."""
        updated = PersonalizedCodeUsage.objects.filter(
            user=user, code=normalize_code(code), order__isnull=True
        ).update(order=order)
        return updated == 1

    @staticmethod
    def release(user: User, code: str) -> None:
        """Drop a reservation that never reached the payment provider."""
        PersonalizedCodeUsage.objects.filter(user=user, code=normalize_code(code), order__isnull=True).delete()


# ===============================================================================
# Evaluation
# ===============================================================================


class PromotionEvaluator:
    """
    Decides whether a code applies to a user's order and how much it is worth.

    Checks short-circuit in a fixed order so the reported reason is
    deterministic.
    """

    @classmethod
    def evaluate(  # noqa: PLR0911
        cls,
        code: str,
        user: User,
        subtotal: Decimal,
        *,
        order_count: int | None = None,
        now: datetime | None = None,
        lock: bool = False,
    ) -> PromotionDecision:
        normalized = normalize_code(code)
        if not normalized:
            return PromotionDecision.rejected(normalized, INVALID_CODE)

        personalized = PersonalizedCodeService.parse(normalized)
        if personalized is not None:
            return cls._evaluate_personalized(personalized, user, subtotal)

        queryset = Promotion.objects.all()
        if lock:
            queryset = queryset.select_for_update()
        promotion = queryset.filter(code=normalized).first()
        if promotion is None:
            return PromotionDecision.rejected(normalized, INVALID_CODE)

        if not promotion.is_active:
            return PromotionDecision.rejected(normalized, NOT_ACTIVE)

        window = promotion.window_status(now or timezone.now())
        if window:
            return PromotionDecision.rejected(normalized, window)

        if promotion.is_exhausted:
            return PromotionDecision.rejected(normalized, USAGE_LIMIT_REACHED)

        if promotion.applicable_tier:
            tier = LoyaltyTier(promotion.applicable_tier)
            if not meets_tier(user.loyalty_points, tier):
                return PromotionDecision.rejected(normalized, TIER_NOT_MET, tier=tier.value)

        if cls._is_welcome_code(promotion):
            if order_count is None:
                order_count = cls._order_count(user)
            if order_count > 0:
                return PromotionDecision(
                    valid=False, code=normalized, reason=ALREADY_USED, message=WELCOME_ALREADY_USED_MESSAGE
                )

        return PromotionDecision(
            valid=True,
            code=normalized,
            discount_amount=calculate_discount(promotion.discount_type, promotion.discount_value, subtotal),
            promotion=promotion,
        )

    @staticmethod
    def _evaluate_personalized(personalized: PersonalizedCode, user: User, subtotal: Decimal) -> PromotionDecision:
        # Codes are minted per user; someone else's code is simply unknown here
        if personalized.user_id != user.pk:
            return PromotionDecision.rejected(personalized.code, INVALID_CODE)

        if not PersonalizedCodeService.is_available(user, personalized.code):
            return PromotionDecision.rejected(personalized.code, ALREADY_USED)

        percent = get_storefront_config().personalized_discount_percent
        return PromotionDecision(
            valid=True,
            code=personalized.code,
            discount_amount=calculate_discount(DiscountType.PERCENTAGE, percent, subtotal),
            personalized_code=personalized,
        )

    @staticmethod
    def _is_welcome_code(promotion: Promotion) -> bool:
        return (
            promotion.max_uses_per_user == 1
            and promotion.code == normalize_code(get_storefront_config().welcome_promotion_code)
        )

    @staticmethod
    def _order_count(user: User) -> int:
        from apps.orders.services import OrderQueryService  # noqa: PLC0415

        return OrderQueryService.count_for_user(user)


# ===============================================================================
# Promotion bookkeeping and listing
# ===============================================================================


class PromotionService:
    @staticmethod
    def increment_usage(promotion_id: int) -> bool:
        """
        Atomically bump usage_count by one without passing max_uses.

        Returns False when the limit was already reached (no row updated).
        """
        updated = Promotion.objects.filter(
            Q(max_uses__isnull=True) | Q(usage_count__lt=F("max_uses")),
            pk=promotion_id,
        ).update(usage_count=F("usage_count") + 1, updated_at=timezone.now())
        return updated == 1

    @staticmethod
    def eligible_for(user: User, *, now: datetime | None = None) -> list[Promotion]:
        """Active, in-window, non-exhausted promotions the user's tier qualifies for."""
        now = now or timezone.now()
        candidates = Promotion.objects.filter(is_active=True).filter(
            Q(start_date__isnull=True) | Q(start_date__lte=now),
            Q(end_date__isnull=True) | Q(end_date__gte=now),
        ).filter(Q(max_uses__isnull=True) | Q(usage_count__lt=F("max_uses")))

        has_ordered: bool | None = None
        eligible: list[Promotion] = []
        for promotion in candidates:
            if promotion.applicable_tier and not meets_tier(
                user.loyalty_points, LoyaltyTier(promotion.applicable_tier)
            ):
                continue
            if PromotionEvaluator._is_welcome_code(promotion):
                if has_ordered is None:
                    has_ordered = PromotionEvaluator._order_count(user) > 0
                if has_ordered:
                    continue
            eligible.append(promotion)
        return eligible


class PersonalizedOfferService:
    """Builds the one personalized offer a user currently qualifies for, if any."""

    @classmethod
    def offer_for(cls, user: User) -> PersonalizedOffer | None:
        percent = Decimal(get_storefront_config().personalized_discount_percent)

        product_id = cls._first_wishlist_product(user)
        if product_id is not None:
            code = f"{PersonalizedCodeFamily.WISHLIST.value}-{user.pk}-{product_id}"
            if PersonalizedCodeService.is_available(user, code):
                return PersonalizedOffer(
                    code=code,
                    family=PersonalizedCodeFamily.WISHLIST.value,
                    discount_percent=percent,
                    description=f"{percent}% off an item from your wishlist",
                )

        category = cls._favourite_category(user)
        if category:
            code = f"{PersonalizedCodeFamily.CATEGORY.value}-{user.pk}-{category}"
            if PersonalizedCodeService.is_available(user, code):
                return PersonalizedOffer(
                    code=code,
                    family=PersonalizedCodeFamily.CATEGORY.value,
                    discount_percent=percent,
                    description=f"{percent}% off your favourite category: {category.lower()}",
                )

        return None

    @staticmethod
    def _first_wishlist_product(user: User) -> int | None:
        from apps.catalog.services import WishlistService  # noqa: PLC0415

        product_ids = WishlistService.list_product_ids(user.pk)
        return product_ids[0] if product_ids else None

    @staticmethod
    def _favourite_category(user: User) -> str | None:
        """Most-ordered category; ties go to the category seen first."""
        from apps.orders.models import OrderItem  # noqa: PLC0415

        counts: dict[str, int] = {}
        items = (
            OrderItem.objects.filter(order__user=user, product__isnull=False)
            .order_by("order__created_at", "order_id", "id")
            .values_list("product__category", "quantity")
        )
        for category, quantity in items:
            suffix = re.sub(r"[^A-Z0-9]", "", (category or "").upper())
            if suffix:
                counts[suffix] = counts.get(suffix, 0) + quantity

        if not counts:
            return None
        # max() keeps the first maximal key in insertion order
        return max(counts, key=lambda k: counts[k])
