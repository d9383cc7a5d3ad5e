"""
Per-user throttles for API endpoints (rates in REST_FRAMEWORK settings).

UserRateThrottle keys on the authenticated user and reads its rate from
DEFAULT_THROTTLE_RATES[scope], which works for function-based views.
"""

from rest_framework.throttling import UserRateThrottle


class CheckoutThrottle(UserRateThrottle):
    """Throttling for order and payment-session creation"""

    scope = "checkout"


class PromotionApplyThrottle(UserRateThrottle):
    """Throttling for promotion code previews (code guessing)"""

    scope = "promotion_apply"


class FeedbackThrottle(UserRateThrottle):
    scope = "feedback"
