"""
Promotion models for the storefront platform.

Supports:
- Promotion codes (percentage, fixed amount, free shipping)
- Validity windows and total usage limits
- Loyalty tier gating (Silver / Gold)
- Single-use personalized codes tracked outside the promotion table
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, ClassVar

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

logger = logging.getLogger(__name__)

# ===============================================================================
# Choices
# ===============================================================================


class DiscountType(models.TextChoices):
    PERCENTAGE = "PERCENTAGE", _("Percentage Discount")
    FIXED_AMOUNT = "FIXED_AMOUNT", _("Fixed Amount Discount")
    FREE_SHIPPING = "FREE_SHIPPING", _("Free Shipping")


class ApplicableTier(models.TextChoices):
    SILVER = "Silver", _("Silver (100+ points)")
    GOLD = "Gold", _("Gold (500+ points)")


class PersonalizedCodeFamily(models.TextChoices):
    WISHLIST = "WISH", _("Wishlist offer")
    CATEGORY = "CAT", _("Favourite category offer")


# ===============================================================================
# Promotion
# ===============================================================================


def normalize_code(code: str) -> str:
    """Normalize promotion code to uppercase and trimmed."""
    return (code or "").upper().strip()


class Promotion(models.Model):
    """
    Promotion code that provides a discount at checkout.

    usage_count is only ever incremented, once per fulfilled order that
    applied the code, and never exceeds max_uses when a limit is set.
    """

    code = models.CharField(
        max_length=50,
        unique=True,
        help_text=_("Unique promotion code (case-insensitive, stored upper-case)"),
    )
    description = models.TextField(help_text=_("Description shown to customers"))

    discount_type = models.CharField(max_length=20, choices=DiscountType.choices)
    discount_value = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
        help_text=_("Percent for PERCENTAGE, amount for FIXED_AMOUNT, ignored for FREE_SHIPPING"),
    )

    is_active = models.BooleanField(default=True, db_index=True)
    applicable_tier = models.CharField(
        max_length=10,
        choices=ApplicableTier.choices,
        blank=True,
        default="",
        help_text=_("Loyalty tier required to use this code (blank = everyone)"),
    )

    # Validity window (null = unbounded on that side)
    start_date = models.DateTimeField(null=True, blank=True)
    end_date = models.DateTimeField(null=True, blank=True)

    # Usage limits
    max_uses = models.PositiveIntegerField(null=True, blank=True, help_text=_("Maximum total uses (null = unlimited)"))
    max_uses_per_user = models.PositiveIntegerField(
        null=True,
        blank=True,
        default=1,
        help_text=_("Maximum uses per user (null = unlimited)"),
    )
    usage_count = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "promotions"
        verbose_name = _("Promotion")
        verbose_name_plural = _("Promotions")
        ordering: ClassVar[tuple[str, ...]] = ("code",)
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["is_active", "start_date", "end_date"], name="idx_promotion_validity"),
        )
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.CheckConstraint(
                condition=Q(max_uses__isnull=True) | Q(usage_count__lte=F("max_uses")),
                name="promotion_usage_within_limit",
            ),
        )

    def __str__(self) -> str:
        return f"{self.code} - {self.get_discount_type_display()}"

    def save(self, *args: Any, **kwargs: Any) -> None:
        """Normalize code to uppercase before saving."""
        self.code = normalize_code(self.code)
        super().save(*args, **kwargs)

    def clean(self) -> None:
        super().clean()
        if self.end_date and self.start_date and self.end_date < self.start_date:
            raise ValidationError("end_date must be after start_date")
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > Decimal("100"):
            # Allowed by the evaluator (clamped), but almost always a typo
            logger.warning(f"⚠️ [Promotions] {self.code} has a percentage above 100: {self.discount_value}")

    @property
    def is_exhausted(self) -> bool:
        return self.max_uses is not None and self.usage_count >= self.max_uses

    def window_status(self, now: Any = None) -> str:
        """Return "", "NOT_STARTED" or "EXPIRED" for the given instant."""
        now = now or timezone.now()
        if self.start_date and now < self.start_date:
            return "NOT_STARTED"
        if self.end_date and now > self.end_date:
            return "EXPIRED"
        return ""


# ===============================================================================
# Personalized code usage
# ===============================================================================


class PersonalizedCodeUsage(models.Model):
    """
    Consumption record for a user-scoped generated code (WISH-/CAT-).

    These codes have no Promotion row; one record per (user, code) is what
    makes them single-use.
    """

    user = models.ForeignKey(
        "users.User",
        on_delete=models.CASCADE,
        related_name="personalized_code_usages",
    )
    code = models.CharField(max_length=80)
    family = models.CharField(max_length=10, choices=PersonalizedCodeFamily.choices)
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="personalized_code_usages",
    )
    used_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "promotion_personalized_code_usages"
        verbose_name = _("Personalized Code Usage")
        verbose_name_plural = _("Personalized Code Usages")
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.UniqueConstraint(fields=["user", "code"], name="unique_personalized_code_per_user"),
        )

    def __str__(self) -> str:
        return f"{self.code} used by user {self.user_id}"
