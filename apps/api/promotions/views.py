"""
Promotion API Views
Read-only preview of a promotion code; nothing is reserved or consumed.
"""

import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response

from apps.api.throttling import PromotionApplyThrottle
from apps.common.config import get_storefront_config
from apps.promotions.models import DiscountType
from apps.promotions.services import ALREADY_USED, INVALID_CODE, TIER_NOT_MET, PromotionEvaluator

from .serializers import ApplyPromotionInputSerializer

logger = logging.getLogger(__name__)

REJECTION_STATUS: dict[str, int] = {
    INVALID_CODE: status.HTTP_404_NOT_FOUND,
    TIER_NOT_MET: status.HTTP_403_FORBIDDEN,
    ALREADY_USED: status.HTTP_403_FORBIDDEN,
}


@api_view(["POST"])
@permission_classes([IsAuthenticated])
@throttle_classes([PromotionApplyThrottle])
def apply_promotion(request: Request) -> Response:
    """
    Check a code for the current user and show what it would be worth.
    The code is evaluated again, against then-current state, at checkout.
    """
    serializer = ApplyPromotionInputSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(
            {"error": "Invalid input", "details": serializer.errors}, status=status.HTTP_400_BAD_REQUEST
        )

    data = serializer.validated_data
    decision = PromotionEvaluator.evaluate(data["code"], request.user, data["subtotal"])
    if not decision.valid:
        logger.info(f"🎟️ [Promotions API] User {request.user.pk} tried {decision.code}: {decision.reason}")
        return Response(
            {"error": "promotion_invalid", "reason": decision.reason, "message": decision.message},
            status=REJECTION_STATUS.get(decision.reason, status.HTTP_400_BAD_REQUEST),
        )

    payload = {
        "message": "Promotion applied successfully!",
        "code": decision.code,
        "discount_amount": str(decision.discount_amount),
    }
    if decision.is_personalized:
        payload.update(
            {
                "description": "Personalized offer",
                "discount_type": DiscountType.PERCENTAGE.value,
                "discount_value": str(get_storefront_config().personalized_discount_percent),
            }
        )
    else:
        payload.update(
            {
                "description": decision.promotion.description,
                "discount_type": decision.promotion.discount_type,
                "discount_value": str(decision.promotion.discount_value),
            }
        )
    return Response(payload)
