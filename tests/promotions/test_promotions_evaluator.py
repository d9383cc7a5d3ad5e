"""
PromotionEvaluator: check ordering, tier gates, welcome code and
personalized single-use codes.
"""

from datetime import timedelta
from decimal import Decimal

from django.core.management import call_command
from django.test import TestCase, override_settings
from django.utils import timezone

from apps.catalog.models import WishlistEntry
from apps.promotions.models import ApplicableTier, DiscountType, PersonalizedCodeUsage, Promotion
from apps.promotions.services import (
    ALREADY_USED,
    EXPIRED,
    INVALID_CODE,
    NOT_ACTIVE,
    NOT_STARTED,
    TIER_NOT_MET,
    USAGE_LIMIT_REACHED,
    WELCOME_ALREADY_USED_MESSAGE,
    CodeAlreadyUsedError,
    PersonalizedCodeService,
    PersonalizedOfferService,
    PromotionEvaluator,
    PromotionService,
)
from tests.factories.storefront import create_order, create_product, create_promotion, create_user


class PromotionEvaluatorTests(TestCase):
    databases = {"default", "catalog"}

    def setUp(self) -> None:
        self.user = create_user()
        self.now = timezone.now()

    def test_valid_percentage_code(self) -> None:
        promotion = create_promotion(code="SAVE10", discount_value="10")

        decision = PromotionEvaluator.evaluate("save10", self.user, Decimal("100.00"))

        self.assertTrue(decision.valid)
        self.assertEqual(decision.code, "SAVE10")
        self.assertEqual(decision.discount_amount, Decimal("10.00"))
        self.assertEqual(decision.promotion, promotion)
        self.assertFalse(decision.is_personalized)

    def test_code_is_case_and_whitespace_insensitive(self) -> None:
        create_promotion(code="SAVE10")
        self.assertTrue(PromotionEvaluator.evaluate("  SaVe10 ", self.user, Decimal("20.00")).valid)

    def test_unknown_and_blank_codes_are_invalid(self) -> None:
        for code in ("NOPE", "", "   "):
            decision = PromotionEvaluator.evaluate(code, self.user, Decimal("10.00"))
            self.assertFalse(decision.valid)
            self.assertEqual(decision.reason, INVALID_CODE)
            self.assertEqual(decision.message, "Invalid promotion code.")

    def test_inactive_code(self) -> None:
        create_promotion(code="OLD", is_active=False)
        self.assertEqual(PromotionEvaluator.evaluate("OLD", self.user, Decimal("10")).reason, NOT_ACTIVE)

    def test_not_started_code(self) -> None:
        create_promotion(code="SOON", start_date=self.now + timedelta(days=1))
        self.assertEqual(PromotionEvaluator.evaluate("SOON", self.user, Decimal("10")).reason, NOT_STARTED)

    def test_expired_code(self) -> None:
        create_promotion(code="GONE", end_date=self.now - timedelta(seconds=1))
        decision = PromotionEvaluator.evaluate("GONE", self.user, Decimal("10"))
        self.assertEqual(decision.reason, EXPIRED)
        self.assertEqual(decision.message, "This promotion has expired.")

    def test_window_is_inclusive_at_evaluation_instant(self) -> None:
        create_promotion(code="EDGE", start_date=self.now, end_date=self.now)
        self.assertTrue(PromotionEvaluator.evaluate("EDGE", self.user, Decimal("10"), now=self.now).valid)

    def test_exhausted_code(self) -> None:
        create_promotion(code="LIMITED", max_uses=5, usage_count=5)
        self.assertEqual(
            PromotionEvaluator.evaluate("LIMITED", self.user, Decimal("10")).reason, USAGE_LIMIT_REACHED
        )

    def test_first_failing_check_wins(self) -> None:
        create_promotion(code="MESSY", is_active=False, end_date=self.now - timedelta(days=1), max_uses=1, usage_count=1)
        self.assertEqual(PromotionEvaluator.evaluate("MESSY", self.user, Decimal("10")).reason, NOT_ACTIVE)

        create_promotion(code="MESSIER", end_date=self.now - timedelta(days=1), max_uses=1, usage_count=1)
        self.assertEqual(PromotionEvaluator.evaluate("MESSIER", self.user, Decimal("10")).reason, EXPIRED)

    def test_tier_gate_boundary(self) -> None:
        create_promotion(code="SILVERONLY", applicable_tier=ApplicableTier.SILVER)

        self.user.loyalty_points = 99
        decision = PromotionEvaluator.evaluate("SILVERONLY", self.user, Decimal("10"))
        self.assertEqual(decision.reason, TIER_NOT_MET)
        self.assertEqual(decision.message, "You need Silver tier for this promotion.")

        self.user.loyalty_points = 100
        self.assertTrue(PromotionEvaluator.evaluate("SILVERONLY", self.user, Decimal("10")).valid)

    def test_gold_code_rejects_silver_customer(self) -> None:
        create_promotion(code="GOLD10", applicable_tier=ApplicableTier.GOLD)
        self.user.loyalty_points = 499
        self.assertEqual(PromotionEvaluator.evaluate("GOLD10", self.user, Decimal("10")).reason, TIER_NOT_MET)

    def test_fixed_amount_clamped_to_subtotal(self) -> None:
        create_promotion(code="FIFTY", discount_type=DiscountType.FIXED_AMOUNT, discount_value="50")
        decision = PromotionEvaluator.evaluate("FIFTY", self.user, Decimal("40.00"))
        self.assertEqual(decision.discount_amount, Decimal("40.00"))

    def test_free_shipping_has_no_monetary_discount(self) -> None:
        create_promotion(code="FREESHIP", discount_type=DiscountType.FREE_SHIPPING, discount_value="0")
        decision = PromotionEvaluator.evaluate("FREESHIP", self.user, Decimal("40.00"))
        self.assertTrue(decision.valid)
        self.assertEqual(decision.discount_amount, Decimal("0.00"))


class WelcomeCodeTests(TestCase):
    databases = {"default", "catalog"}

    def setUp(self) -> None:
        self.user = create_user()
        self.product = create_product()
        create_promotion(code="WELCOME10", max_uses_per_user=1)

    def test_welcome_code_valid_before_first_order(self) -> None:
        self.assertTrue(PromotionEvaluator.evaluate("WELCOME10", self.user, Decimal("50")).valid)

    def test_welcome_code_rejected_after_any_order(self) -> None:
        create_order(self.user, self.product)

        decision = PromotionEvaluator.evaluate("WELCOME10", self.user, Decimal("50"))

        self.assertFalse(decision.valid)
        self.assertEqual(decision.reason, ALREADY_USED)
        self.assertEqual(decision.message, WELCOME_ALREADY_USED_MESSAGE)

    def test_supplied_order_count_is_used(self) -> None:
        decision = PromotionEvaluator.evaluate("WELCOME10", self.user, Decimal("50"), order_count=1)
        self.assertEqual(decision.reason, ALREADY_USED)

    @override_settings(WELCOME_PROMOTION_CODE="HELLO5")
    def test_welcome_code_is_configurable(self) -> None:
        create_order(self.user, self.product)
        create_promotion(code="HELLO5", max_uses_per_user=1)

        self.assertTrue(PromotionEvaluator.evaluate("WELCOME10", self.user, Decimal("50")).valid)
        self.assertEqual(PromotionEvaluator.evaluate("HELLO5", self.user, Decimal("50")).reason, ALREADY_USED)


class PersonalizedCodeTests(TestCase):
    databases = {"default", "catalog"}

    def setUp(self) -> None:
        self.user = create_user()
        self.other = create_user(email="other@example.com")

    def test_own_code_grants_personalized_percent(self) -> None:
        decision = PromotionEvaluator.evaluate(f"WISH-{self.user.pk}-7", self.user, Decimal("80.00"))

        self.assertTrue(decision.valid)
        self.assertTrue(decision.is_personalized)
        self.assertIsNone(decision.promotion)
        self.assertEqual(decision.discount_amount, Decimal("8.00"))

    @override_settings(PERSONALIZED_DISCOUNT_PERCENT="25")
    def test_personalized_percent_is_configurable(self) -> None:
        decision = PromotionEvaluator.evaluate(f"CAT-{self.user.pk}-APPAREL", self.user, Decimal("80.00"))
        self.assertEqual(decision.discount_amount, Decimal("20.00"))

    def test_someone_elses_code_is_unknown(self) -> None:
        decision = PromotionEvaluator.evaluate(f"WISH-{self.other.pk}-7", self.user, Decimal("80.00"))
        self.assertEqual(decision.reason, INVALID_CODE)

    def test_code_is_single_use(self) -> None:
        code = f"WISH-{self.user.pk}-7"
        PersonalizedCodeService.consume(self.user, code)

        decision = PromotionEvaluator.evaluate(code, self.user, Decimal("80.00"))
        self.assertEqual(decision.reason, ALREADY_USED)

        with self.assertRaises(CodeAlreadyUsedError):
            PersonalizedCodeService.consume(self.user, code.lower())
        self.assertEqual(PersonalizedCodeUsage.objects.filter(user=self.user).count(), 1)

    def test_consume_rejects_plain_codes(self) -> None:
        with self.assertRaises(ValueError):
            PersonalizedCodeService.consume(self.user, "SAVE10")


class PromotionServiceTests(TestCase):
    databases = {"default", "catalog"}

    def setUp(self) -> None:
        self.user = create_user()
        self.now = timezone.now()

    def test_increment_usage_stops_at_limit(self) -> None:
        promotion = create_promotion(code="TWICE", max_uses=2)

        self.assertTrue(PromotionService.increment_usage(promotion.pk))
        self.assertTrue(PromotionService.increment_usage(promotion.pk))
        self.assertFalse(PromotionService.increment_usage(promotion.pk))

        promotion.refresh_from_db()
        self.assertEqual(promotion.usage_count, 2)

    def test_increment_usage_without_limit(self) -> None:
        promotion = create_promotion(code="ENDLESS", max_uses=None)
        for _ in range(3):
            self.assertTrue(PromotionService.increment_usage(promotion.pk))
        promotion.refresh_from_db()
        self.assertEqual(promotion.usage_count, 3)

    def test_eligible_for_filters_unusable_codes(self) -> None:
        create_promotion(code="OPEN")
        create_promotion(code="OFF", is_active=False)
        create_promotion(code="LATER", start_date=self.now + timedelta(days=2))
        create_promotion(code="PAST", end_date=self.now - timedelta(days=2))
        create_promotion(code="USEDUP", max_uses=1, usage_count=1)
        create_promotion(code="GOLD10", applicable_tier=ApplicableTier.GOLD)
        create_promotion(code="FREESHIP100", applicable_tier=ApplicableTier.SILVER)

        self.user.loyalty_points = 150
        codes = [promotion.code for promotion in PromotionService.eligible_for(self.user)]

        self.assertEqual(codes, ["FREESHIP100", "OPEN"])

    def test_eligible_for_hides_welcome_after_first_order(self) -> None:
        create_promotion(code="WELCOME10", max_uses_per_user=1)
        self.assertEqual([p.code for p in PromotionService.eligible_for(self.user)], ["WELCOME10"])

        create_order(self.user, create_product())
        self.assertEqual(PromotionService.eligible_for(self.user), [])


class PersonalizedOfferTests(TestCase):
    databases = {"default", "catalog"}

    def setUp(self) -> None:
        self.user = create_user()
        self.shirt = create_product(name="Linen Shirt", category="Apparel")
        self.lamp = create_product(name="Desk Lamp", price="30.00", category="Home & Garden")

    def test_no_history_means_no_offer(self) -> None:
        self.assertIsNone(PersonalizedOfferService.offer_for(self.user))

    def test_wishlist_offer_comes_first(self) -> None:
        WishlistEntry.objects.create(user_id=self.user.pk, product_id=self.lamp.pk)
        create_order(self.user, self.shirt, quantity=3)

        offer = PersonalizedOfferService.offer_for(self.user)

        self.assertEqual(offer.code, f"WISH-{self.user.pk}-{self.lamp.pk}")
        self.assertEqual(offer.family, "WISH")
        self.assertEqual(offer.discount_percent, Decimal("10"))

    def test_category_offer_uses_most_ordered_category(self) -> None:
        create_order(self.user, self.shirt, quantity=1)
        create_order(self.user, self.lamp, quantity=2)

        offer = PersonalizedOfferService.offer_for(self.user)

        self.assertEqual(offer.code, f"CAT-{self.user.pk}-HOMEGARDEN")
        self.assertEqual(offer.family, "CAT")
        self.assertIn("home", offer.description)

    def test_category_tie_goes_to_first_seen(self) -> None:
        create_order(self.user, self.shirt, quantity=2)
        create_order(self.user, self.lamp, quantity=2)

        self.assertEqual(PersonalizedOfferService.offer_for(self.user).code, f"CAT-{self.user.pk}-APPAREL")

    def test_used_wishlist_code_falls_back_to_category(self) -> None:
        WishlistEntry.objects.create(user_id=self.user.pk, product_id=self.lamp.pk)
        create_order(self.user, self.shirt)
        PersonalizedCodeService.consume(self.user, f"WISH-{self.user.pk}-{self.lamp.pk}")

        self.assertEqual(PersonalizedOfferService.offer_for(self.user).code, f"CAT-{self.user.pk}-APPAREL")


class SeedPromotionsCommandTests(TestCase):
    databases = {"default", "catalog"}

    def test_seeds_default_promotions_once(self) -> None:
        call_command("seed_promotions", verbosity=0)
        call_command("seed_promotions", verbosity=0)

        self.assertEqual(
            sorted(Promotion.objects.values_list("code", flat=True)), ["FREESHIP100", "GOLD10", "WELCOME10"]
        )
        self.assertEqual(Promotion.objects.get(code="GOLD10").applicable_tier, ApplicableTier.GOLD)
        self.assertEqual(Promotion.objects.get(code="WELCOME10").max_uses_per_user, 1)

    def test_force_restores_defaults(self) -> None:
        call_command("seed_promotions", verbosity=0)
        Promotion.objects.filter(code="GOLD10").update(discount_value=Decimal("99"))

        call_command("seed_promotions", "--force", verbosity=0)

        self.assertEqual(Promotion.objects.get(code="GOLD10").discount_value, Decimal("10.00"))
