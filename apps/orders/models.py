"""
Order models for the storefront platform.
Orders are written once, atomically with their items, by either the
synchronous checkout or the payment-session fulfillment path.
"""

from decimal import Decimal
from typing import Any, ClassVar

from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

# ===============================================================================
# ORDER STATUS
# ===============================================================================


class OrderStatus(models.TextChoices):
    COMPLETED = "Completed", _("Completed")


# Explicit transition table. Completed orders are final for now; new states
# (shipped, cancelled, refunded) get their edges declared here.
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    OrderStatus.COMPLETED: frozenset(),
}


class InvalidStatusTransition(Exception):
    pass


# ===============================================================================
# ORDER MODELS
# ===============================================================================


class Order(models.Model):
    """
    Customer order snapshot.

    Totals invariant: final_total = subtotal - discount_amount, with
    0 <= discount_amount <= subtotal. payment_session_id is the idempotency
    key for the payment-session path and is unique when present.
    """

    user = models.ForeignKey(
        "users.User",
        on_delete=models.PROTECT,
        related_name="orders",
    )
    status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.COMPLETED,
    )

    # Amounts in currency units, 2 dp
    subtotal = models.DecimalField(
        max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal("0.00"))]
    )
    discount_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    final_total = models.DecimalField(max_digits=12, decimal_places=2)
    applied_promotion_code = models.CharField(max_length=80, blank=True, null=True)

    # Shipping address snapshot
    shipping_full_name = models.CharField(max_length=200)
    shipping_street_address = models.CharField(max_length=255)
    shipping_city = models.CharField(max_length=100)
    shipping_state = models.CharField(max_length=100)
    shipping_postal_code = models.CharField(max_length=20)
    shipping_country = models.CharField(max_length=100)

    payment_session_id = models.CharField(
        max_length=255,
        unique=True,
        null=True,
        blank=True,
        help_text=_("External payment session id; set only for orders fulfilled from a payment session"),
    )

    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        db_table = "orders"
        verbose_name = _("Order")
        verbose_name_plural = _("Orders")
        ordering: ClassVar[tuple[str, ...]] = ("-created_at", "-id")
        indexes: ClassVar[tuple[models.Index, ...]] = (
            models.Index(fields=["user", "-created_at"], name="idx_order_user_created"),
        )
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.CheckConstraint(
                condition=Q(discount_amount__gte=0) & Q(discount_amount__lte=F("subtotal")),
                name="order_discount_within_subtotal",
            ),
            models.CheckConstraint(condition=Q(final_total__gte=0), name="order_final_total_non_negative"),
        )

    def __str__(self) -> str:
        return f"Order #{self.pk} - user {self.user_id} - {self.final_total}"

    @property
    def shipping_address(self) -> dict[str, str]:
        return {
            "full_name": self.shipping_full_name,
            "street_address": self.shipping_street_address,
            "city": self.shipping_city,
            "state": self.shipping_state,
            "postal_code": self.shipping_postal_code,
            "country": self.shipping_country,
        }

    def save(self, *args: Any, **kwargs: Any) -> None:
        if self.final_total != self.subtotal - self.discount_amount:
            raise ValueError(
                f"Inconsistent order totals: {self.subtotal} - {self.discount_amount} != {self.final_total}"
            )
        super().save(*args, **kwargs)

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in ALLOWED_TRANSITIONS.get(self.status, frozenset())

    def transition_to(self, new_status: str) -> None:
        if not self.can_transition_to(new_status):
            raise InvalidStatusTransition(f"Order {self.pk}: {self.status} -> {new_status} is not allowed")
        self.status = new_status
        self.save(update_fields=["status"])


class OrderItem(models.Model):
    """
    Line item snapshot: name and unit price as they were when ordered,
    independent of later catalog changes.
    """

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    product = models.ForeignKey(
        "products.Product",
        on_delete=models.SET_NULL,
        null=True,
        related_name="order_items",
    )
    product_name = models.CharField(max_length=200)
    unit_price = models.DecimalField(
        max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal("0.00"))]
    )
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])

    class Meta:
        db_table = "order_items"
        verbose_name = _("Order Item")
        verbose_name_plural = _("Order Items")
        ordering: ClassVar[tuple[str, ...]] = ("id",)
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.CheckConstraint(condition=Q(quantity__gte=1), name="order_item_quantity_positive"),
        )

    def __str__(self) -> str:
        return f"{self.quantity} x {self.product_name}"

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def save(self, *args: Any, **kwargs: Any) -> None:
        if self.quantity < 1:
            raise ValueError("Order item quantity must be at least 1")
        super().save(*args, **kwargs)
