"""
Loyalty tiers and point accounting.

Tier thresholds live here and nowhere else: the promotion evaluator, the
eligible-promotions listing and the loyalty summary all read them from this
module so the gates cannot drift apart between endpoints.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal
from enum import Enum

from django.db.models import F

from apps.users.models import User

logger = logging.getLogger(__name__)


class LoyaltyTier(str, Enum):
    BRONZE = "Bronze"
    SILVER = "Silver"
    GOLD = "Gold"


TIER_THRESHOLDS: dict[LoyaltyTier, int] = {
    LoyaltyTier.BRONZE: 0,
    LoyaltyTier.SILVER: 100,
    LoyaltyTier.GOLD: 500,
}

# Highest first, for "which tier am I in" lookups
_TIERS_DESCENDING = sorted(TIER_THRESHOLDS.items(), key=lambda item: item[1], reverse=True)


def tier_for_points(points: int) -> LoyaltyTier:
    """Return the highest tier whose threshold the balance reaches."""
    for tier, threshold in _TIERS_DESCENDING:
        if points >= threshold:
            return tier
    return LoyaltyTier.BRONZE


def meets_tier(points: int, tier: LoyaltyTier | str | None) -> bool:
    """True when a balance satisfies the tier gate (no tier = no gate)."""
    if not tier:
        return True
    return points >= TIER_THRESHOLDS[LoyaltyTier(tier)]


def points_for_amount(amount: Decimal) -> int:
    """One point per whole currency unit: floor(amount), never negative."""
    if amount <= 0:
        return 0
    return int(amount.to_integral_value(rounding=ROUND_FLOOR))


@dataclass(frozen=True)
class LoyaltySummary:
    points: int
    tier: LoyaltyTier
    next_tier: LoyaltyTier | None
    points_to_next_tier: int | None


class LoyaltyService:
    """Loyalty point operations on the ledger user record."""

    @staticmethod
    def award_points(user_id: int, points: int) -> int:
        """
        Atomically add points to a user's balance.

        Must run inside the caller's transaction so the award commits or
        rolls back together with the order that earned it.
        """
        if points < 0:
            raise ValueError("Loyalty points are never decremented")
        if points == 0:
            return 0

        updated = User.objects.filter(pk=user_id).update(loyalty_points=F("loyalty_points") + points)
        if updated != 1:
            raise User.DoesNotExist(f"User {user_id} not found for loyalty award")

        logger.info(
            f"⭐ [Loyalty] Awarded {points} points to user {user_id}",
            extra={"user_id": user_id, "points": points},
        )
        return points

    @staticmethod
    def get_summary(user: User) -> LoyaltySummary:
        points = user.loyalty_points
        tier = tier_for_points(points)

        next_tier = None
        points_to_next = None
        for candidate, threshold in sorted(TIER_THRESHOLDS.items(), key=lambda item: item[1]):
            if threshold > points:
                next_tier = candidate
                points_to_next = threshold - points
                break

        return LoyaltySummary(
            points=points,
            tier=tier,
            next_tier=next_tier,
            points_to_next_tier=points_to_next,
        )
