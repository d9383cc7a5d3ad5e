"""
Catalog/Feedback store models.

These live in the ``catalog`` database. References to ledger users and
products are plain integer ids: there are no cross-database foreign keys,
and a dangling id (deleted product, deleted user) is tolerated.
"""

from typing import ClassVar

from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class WishlistEntry(models.Model):
    user_id = models.PositiveBigIntegerField(db_index=True)
    product_id = models.PositiveBigIntegerField()
    added_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "catalog_wishlist_entries"
        verbose_name = _("Wishlist Entry")
        verbose_name_plural = _("Wishlist Entries")
        ordering: ClassVar[tuple[str, ...]] = ("added_at", "id")
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.UniqueConstraint(fields=["user_id", "product_id"], name="unique_wishlist_product_per_user"),
        )

    def __str__(self) -> str:
        return f"user {self.user_id} ♥ product {self.product_id}"


class Feedback(models.Model):
    """Free-form customer feedback, optionally about one product with a 1-5 rating."""

    user_id = models.PositiveBigIntegerField(db_index=True)
    product_id = models.PositiveBigIntegerField(null=True, blank=True, db_index=True)
    rating = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(1), MaxValueValidator(5)],
    )
    comment = models.TextField()
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "catalog_feedback"
        verbose_name = _("Feedback")
        verbose_name_plural = _("Feedback")
        ordering: ClassVar[tuple[str, ...]] = ("-created_at",)
        constraints: ClassVar[tuple[models.BaseConstraint, ...]] = (
            models.CheckConstraint(
                condition=models.Q(rating__isnull=True) | models.Q(rating__gte=1, rating__lte=5),
                name="feedback_rating_range",
            ),
        )

    def __str__(self) -> str:
        return f"Feedback {self.pk} by user {self.user_id}"


class CustomerProfile(models.Model):
    """Denormalized copy of ledger user details. Never authoritative for loyalty points."""

    user_id = models.PositiveBigIntegerField(unique=True)
    email = models.EmailField()
    first_name = models.CharField(max_length=150, blank=True)
    last_name = models.CharField(max_length=150, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "catalog_customer_profiles"
        verbose_name = _("Customer Profile")
        verbose_name_plural = _("Customer Profiles")

    def __str__(self) -> str:
        return self.email
