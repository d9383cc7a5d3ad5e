from decimal import Decimal

import django.core.validators
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("orders", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Promotion",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "code",
                    models.CharField(
                        help_text="Unique promotion code (case-insensitive, stored upper-case)",
                        max_length=50,
                        unique=True,
                    ),
                ),
                ("description", models.TextField(help_text="Description shown to customers")),
                (
                    "discount_type",
                    models.CharField(
                        choices=[
                            ("PERCENTAGE", "Percentage Discount"),
                            ("FIXED_AMOUNT", "Fixed Amount Discount"),
                            ("FREE_SHIPPING", "Free Shipping"),
                        ],
                        max_length=20,
                    ),
                ),
                (
                    "discount_value",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="Percent for PERCENTAGE, amount for FIXED_AMOUNT, ignored for FREE_SHIPPING",
                        max_digits=10,
                        validators=[django.core.validators.MinValueValidator(Decimal("0.00"))],
                    ),
                ),
                ("is_active", models.BooleanField(db_index=True, default=True)),
                (
                    "applicable_tier",
                    models.CharField(
                        blank=True,
                        choices=[("Silver", "Silver (100+ points)"), ("Gold", "Gold (500+ points)")],
                        default="",
                        help_text="Loyalty tier required to use this code (blank = everyone)",
                        max_length=10,
                    ),
                ),
                ("start_date", models.DateTimeField(blank=True, null=True)),
                ("end_date", models.DateTimeField(blank=True, null=True)),
                (
                    "max_uses",
                    models.PositiveIntegerField(blank=True, help_text="Maximum total uses (null = unlimited)", null=True),
                ),
                (
                    "max_uses_per_user",
                    models.PositiveIntegerField(
                        blank=True, default=1, help_text="Maximum uses per user (null = unlimited)", null=True
                    ),
                ),
                ("usage_count", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Promotion",
                "verbose_name_plural": "Promotions",
                "db_table": "promotions",
                "ordering": ("code",),
                "indexes": [
                    models.Index(fields=["is_active", "start_date", "end_date"], name="idx_promotion_validity")
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("max_uses__isnull", True), ("usage_count__lte", models.F("max_uses")), _connector="OR"),
                        name="promotion_usage_within_limit",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="PersonalizedCodeUsage",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(max_length=80)),
                (
                    "family",
                    models.CharField(
                        choices=[("WISH", "Wishlist offer"), ("CAT", "Favourite category offer")], max_length=10
                    ),
                ),
                ("used_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "order",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="personalized_code_usages",
                        to="orders.order",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="personalized_code_usages",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Personalized Code Usage",
                "verbose_name_plural": "Personalized Code Usages",
                "db_table": "promotion_personalized_code_usages",
                "constraints": [
                    models.UniqueConstraint(fields=("user", "code"), name="unique_personalized_code_per_user")
                ],
            },
        ),
    ]
