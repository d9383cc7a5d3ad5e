"""
Product models for the storefront platform
Ledger copy of the catalog: identity, price and the wishlist counter.
"""

from __future__ import annotations

from decimal import Decimal
from typing import ClassVar

from django.core.validators import MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _


class Product(models.Model):
    """
    Sellable product.

    Checkout never reads live prices from here for historical orders;
    OrderItem keeps its own snapshot.
    """

    name = models.CharField(max_length=200)
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
        help_text=_("Current unit price"),
    )
    category = models.CharField(max_length=100, db_index=True)

    # Merchandising flags
    is_new = models.BooleanField(default=False)
    is_best_seller = models.BooleanField(default=False)

    # Maintained by the wishlist dual-write from the catalog store
    wishlist_count = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "products"
        verbose_name = _("Product")
        verbose_name_plural = _("Products")
        ordering: ClassVar[tuple[str, ...]] = ("name",)

    def __str__(self) -> str:
        return f"{self.name} ({self.price})"
