"""
Product services for the storefront platform.
"""

from __future__ import annotations

import logging

from django.db.models import Case, F, PositiveIntegerField, When

from apps.products.models import Product

logger = logging.getLogger(__name__)


class ProductService:
    """Ledger-side product lookups and counters."""

    @staticmethod
    def get_products_by_ids(product_ids: list[int]) -> dict[int, Product]:
        """Fetch products keyed by id; unknown ids are simply absent."""
        return Product.objects.in_bulk(product_ids)

    @staticmethod
    def adjust_wishlist_count(product_id: int, delta: int) -> bool:
        """
        Atomically move the wishlist counter, never below zero.
        Returns False when the product does not exist.
        """
        if delta >= 0:
            expression = F("wishlist_count") + delta
        else:
            # Clamp at zero in the database to stay race-free
            expression = Case(
                When(wishlist_count__gte=-delta, then=F("wishlist_count") + delta),
                default=0,
                output_field=PositiveIntegerField(),
            )
        updated = Product.objects.filter(pk=product_id).update(wishlist_count=expression)
        if not updated:
            logger.warning(f"⚠️ [Products] Wishlist counter update for unknown product {product_id}")
        return bool(updated)
