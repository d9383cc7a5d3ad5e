"""
Catalog store services: wishlist and feedback.

Writes here never share a transaction with the ledger. The ledger's
product wishlist counter is updated best-effort after the catalog write.
"""

from __future__ import annotations

import logging

from django.db import DatabaseError, IntegrityError, transaction

from apps.common.routers import CATALOG_DB_ALIAS
from apps.common.types import Err, Ok, Result
from apps.products.services import ProductService

from .models import Feedback, WishlistEntry

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


class WishlistService:
    @staticmethod
    def list_product_ids(user_id: int) -> list[int]:
        """Wishlisted product ids in the order they were added."""
        entries = WishlistEntry.objects.filter(user_id=user_id).order_by("added_at", "id")
        return list(entries.values_list("product_id", flat=True))

    @classmethod
    def add(cls, user_id: int, product_id: int) -> Result[bool, str]:
        """Add a product; Ok(False) when it was already on the list."""
        if not ProductService.get_products_by_ids([product_id]):
            return Err("Product not found")

        try:
            with transaction.atomic(using=CATALOG_DB_ALIAS):
                WishlistEntry.objects.create(user_id=user_id, product_id=product_id)
        except IntegrityError:
            return Ok(False)

        cls._sync_counter(product_id, 1)
        logger.info(f"♥ [Wishlist] User {user_id} added product {product_id}")
        return Ok(True)

    @classmethod
    def remove(cls, user_id: int, product_id: int) -> bool:
        deleted, _ = WishlistEntry.objects.filter(user_id=user_id, product_id=product_id).delete()
        if deleted:
            cls._sync_counter(product_id, -1)
            logger.info(f"💔 [Wishlist] User {user_id} removed product {product_id}")
        return bool(deleted)

    @staticmethod
    def _sync_counter(product_id: int, delta: int) -> None:
        # Catalog entry is already committed; a counter drift is acceptable, a failed request is not
        try:
            ProductService.adjust_wishlist_count(product_id, delta)
        except DatabaseError:
            logger.exception(f"⚠️ [Wishlist] Ledger wishlist counter update failed for product {product_id}")


class FeedbackService:
    @staticmethod
    def submit(
        user_id: int, comment: str, product_id: int | None = None, rating: int | None = None
    ) -> Result[Feedback, str]:
        comment = (comment or "").strip()
        if not comment:
            return Err("Comment is required.")
        if rating is not None and not (MIN_RATING <= rating <= MAX_RATING):
            return Err("Rating must be a number between 1 and 5.")

        feedback = Feedback.objects.create(user_id=user_id, product_id=product_id, rating=rating, comment=comment)
        logger.info(f"💬 [Feedback] User {user_id} submitted feedback {feedback.pk}")
        return Ok(feedback)
