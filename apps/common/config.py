"""
Centralized storefront configuration.

Secrets and tunables are read from Django settings once, frozen, and served
through get_storefront_config(). Nothing in the application mutates them
after startup.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from functools import lru_cache

from django.conf import settings

logger = logging.getLogger(__name__)

# ===============================================================================
# HELPER: SAFE VALUE PARSING
# ===============================================================================


def _get_positive_int(setting_name: str, default: int) -> int:
    """Get a positive integer from settings with validation."""
    value = getattr(settings, setting_name, default)
    try:
        result = int(value)
    except (TypeError, ValueError):
        result = default
    return max(1, result)  # Ensure at least 1


def _get_decimal(setting_name: str, default: str) -> Decimal:
    """Get a non-negative decimal from settings with validation."""
    value = getattr(settings, setting_name, default)
    try:
        # Always convert to string first to avoid float precision issues
        result = Decimal(str(value))
    except (TypeError, ValueError, InvalidOperation):
        result = Decimal(default)
    return max(Decimal("0"), result)


def _get_float(setting_name: str, default: float) -> float:
    value = getattr(settings, setting_name, default)
    try:
        return max(0.0, float(value))
    except (TypeError, ValueError):
        return default


# ===============================================================================
# STOREFRONT CONFIG
# ===============================================================================


@dataclass(frozen=True)
class StorefrontConfig:
    """Read-only view over storefront settings and secrets."""

    currency: str
    welcome_promotion_code: str
    personalized_discount_percent: Decimal
    fulfillment_max_attempts: int
    fulfillment_retry_base_delay: float
    stripe_secret_key: str
    stripe_webhook_secret: str
    stripe_webhook_tolerance: int
    checkout_success_url: str
    checkout_cancel_url: str
    payment_gateway: str


@lru_cache(maxsize=1)
def get_storefront_config() -> StorefrontConfig:
    """Build the storefront configuration once per process."""
    config = StorefrontConfig(
        currency=(getattr(settings, "STOREFRONT_CURRENCY", "usd") or "usd").lower(),
        welcome_promotion_code=(getattr(settings, "WELCOME_PROMOTION_CODE", "WELCOME10") or "").upper().strip(),
        personalized_discount_percent=_get_decimal("PERSONALIZED_DISCOUNT_PERCENT", "10"),
        fulfillment_max_attempts=_get_positive_int("FULFILLMENT_MAX_ATTEMPTS", 3),
        fulfillment_retry_base_delay=_get_float("FULFILLMENT_RETRY_BASE_DELAY", 0.1),
        stripe_secret_key=getattr(settings, "STRIPE_SECRET_KEY", "") or "",
        stripe_webhook_secret=getattr(settings, "STRIPE_WEBHOOK_SECRET", "") or "",
        stripe_webhook_tolerance=_get_positive_int("STRIPE_WEBHOOK_TOLERANCE", 300),
        checkout_success_url=getattr(
            settings, "CHECKOUT_SUCCESS_URL", "http://localhost:3001/order-success?session_id={CHECKOUT_SESSION_ID}"
        ),
        checkout_cancel_url=getattr(settings, "CHECKOUT_CANCEL_URL", "http://localhost:3001/cart"),
        payment_gateway=getattr(settings, "DEFAULT_PAYMENT_GATEWAY", "stripe"),
    )
    if not config.stripe_webhook_secret:
        logger.warning("⚠️ [Config] STRIPE_WEBHOOK_SECRET not configured - payment webhooks will be rejected")
    return config


def reset_storefront_config() -> None:
    """Drop the cached configuration (settings overrides in tests)."""
    get_storefront_config.cache_clear()
