"""
Customer self-service API Views (/api/users/me/...)
Loyalty balance, order history, eligible promotions and wishlist.
"""

import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response

from apps.api.checkout.serializers import OrderSerializer
from apps.api.promotions.serializers import PersonalizedOfferSerializer, PromotionSerializer
from apps.catalog.services import WishlistService
from apps.orders.services import OrderQueryService
from apps.promotions.services import PersonalizedOfferService, PromotionService
from apps.users.loyalty import LoyaltyService

from .serializers import LoyaltySummarySerializer, WishlistAddSerializer

logger = logging.getLogger(__name__)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def my_loyalty(request: Request) -> Response:
    request.user.refresh_from_db(fields=["loyalty_points"])
    summary = LoyaltyService.get_summary(request.user)
    return Response(LoyaltySummarySerializer(summary).data)


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def my_orders(request: Request) -> Response:
    """Order history, newest first."""
    orders = OrderQueryService.orders_for_user(request.user)
    data = OrderSerializer(orders, many=True).data
    return Response({"results": data, "count": len(data)})


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def my_promotions(request: Request) -> Response:
    """Promotions the user can currently apply, plus a personalized offer if one exists."""
    request.user.refresh_from_db(fields=["loyalty_points"])
    promotions = PromotionService.eligible_for(request.user)
    offer = PersonalizedOfferService.offer_for(request.user)
    return Response(
        {
            "promotions": PromotionSerializer(promotions, many=True).data,
            "personalized_offer": PersonalizedOfferSerializer(offer).data if offer else None,
        }
    )


@api_view(["GET", "POST"])
@permission_classes([IsAuthenticated])
def my_wishlist(request: Request) -> Response:
    if request.method == "GET":
        return Response({"product_ids": WishlistService.list_product_ids(request.user.pk)})

    serializer = WishlistAddSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(
            {"error": "Valid Product ID is required", "details": serializer.errors},
            status=status.HTTP_400_BAD_REQUEST,
        )

    result = WishlistService.add(request.user.pk, serializer.validated_data["product_id"])
    if result.is_err():
        return Response({"error": result.unwrap_err()}, status=status.HTTP_404_NOT_FOUND)

    created = result.unwrap()
    return Response(
        {"message": "Product added to wishlist" if created else "Product already in wishlist"},
        status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
    )


@api_view(["DELETE"])
@permission_classes([IsAuthenticated])
def remove_from_wishlist(request: Request, product_id: int) -> Response:
    removed = WishlistService.remove(request.user.pk, product_id)
    if not removed:
        return Response({"error": "Product not in wishlist"}, status=status.HTTP_404_NOT_FOUND)
    return Response({"message": "Product removed from wishlist"})
