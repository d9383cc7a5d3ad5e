"""
Django management command to seed the default storefront promotions.
Safe to run repeatedly: existing codes are left alone unless --force is given.
"""

from decimal import Decimal
from typing import Any, ClassVar

from django.core.management.base import BaseCommand, CommandParser

from apps.promotions.models import ApplicableTier, DiscountType, Promotion


class Command(BaseCommand):
    """🎁 Seed default promotions"""

    help = "Seed the default storefront promotions (welcome, Silver and Gold tier offers)"

    DEFAULT_PROMOTIONS: ClassVar[list[dict[str, Any]]] = [
        {
            "code": "WELCOME10",
            "description": "10% off your first order!",
            "discount_type": DiscountType.PERCENTAGE,
            "discount_value": Decimal("10"),
            "applicable_tier": "",
            "max_uses_per_user": 1,
        },
        {
            "code": "FREESHIP100",
            "description": "Free Shipping (Silver Tier - 100+ points)",
            "discount_type": DiscountType.FREE_SHIPPING,
            "discount_value": Decimal("0"),
            "applicable_tier": ApplicableTier.SILVER,
            "max_uses_per_user": None,
        },
        {
            "code": "GOLD10",
            "description": "10% Off (Gold Tier - 500+ points)",
            "discount_type": DiscountType.PERCENTAGE,
            "discount_value": Decimal("10"),
            "applicable_tier": ApplicableTier.GOLD,
            "max_uses_per_user": None,
        },
    ]

    def add_arguments(self, parser: CommandParser) -> None:
        parser.add_argument(
            "--force",
            action="store_true",
            help="Overwrite description, discount and tier of existing promotions",
        )

    def handle(self, *args: Any, **options: Any) -> None:
        force = options.get("force", False)
        created_count = 0
        updated_count = 0

        self.stdout.write(self.style.SUCCESS("🎁 Seeding default promotions..."))

        for data in self.DEFAULT_PROMOTIONS:
            defaults = {key: value for key, value in data.items() if key != "code"}
            promotion, created = Promotion.objects.get_or_create(
                code=data["code"], defaults={**defaults, "is_active": True}
            )
            if created:
                created_count += 1
                self.stdout.write(f"  ✅ Created promotion: {promotion.code}")
            elif force:
                for field, value in defaults.items():
                    setattr(promotion, field, value)
                promotion.save()
                updated_count += 1
                self.stdout.write(f"  🔄 Updated promotion: {promotion.code}")
            else:
                self.stdout.write(f"  ⏭️  Skipped existing: {promotion.code} (use --force to update)")

        self.stdout.write(
            self.style.SUCCESS(f"✅ Promotions seeded: {created_count} created, {updated_count} updated")
        )
