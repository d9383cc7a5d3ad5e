"""
Checkout API Views
Synchronous checkout and hosted payment-session creation.
"""

import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response

from apps.api.throttling import CheckoutThrottle
from apps.billing.payment_service import PaymentSessionService
from apps.orders.services import CheckoutService
from apps.orders.validation import CheckoutError
from apps.users.loyalty import points_for_amount

from .serializers import CheckoutInputSerializer, OrderSerializer

logger = logging.getLogger(__name__)


def checkout_error_response(error: CheckoutError) -> Response:
    """Map a CheckoutError to the API error envelope."""
    if error.is_promotion_error:
        return Response(
            {"error": "promotion_invalid", "reason": error.reason, "message": error.message},
            status=status.HTTP_400_BAD_REQUEST,
        )
    if error.code == CheckoutError.PAYMENT_PROVIDER_ERROR:
        return Response({"error": error.code.lower(), "message": error.message}, status=status.HTTP_502_BAD_GATEWAY)
    return Response({"error": error.code.lower(), "message": error.message}, status=status.HTTP_400_BAD_REQUEST)


def _validated_checkout_input(request: Request) -> tuple[dict | None, Response | None]:
    serializer = CheckoutInputSerializer(data=request.data)
    if not serializer.is_valid():
        return None, Response(
            {"error": "Invalid input", "details": serializer.errors}, status=status.HTTP_400_BAD_REQUEST
        )
    return serializer.validated_data, None


@api_view(["POST"])
@permission_classes([IsAuthenticated])
@throttle_classes([CheckoutThrottle])
def checkout(request: Request) -> Response:
    """
    Place an order immediately: order, loyalty points and promotion usage
    are committed together.
    """
    data, error_response = _validated_checkout_input(request)
    if error_response is not None:
        return error_response

    logger.info(f"🛒 [Checkout API] Checkout request from user {request.user.pk} ({len(data['cart'])} lines)")
    result = CheckoutService.checkout(
        request.user,
        data["cart"],
        data["shipping_address"],
        data.get("promotion_code") or None,
    )
    if result.is_err():
        return checkout_error_response(result.unwrap_err())

    order = result.unwrap()
    return Response(
        {
            "message": "Order placed successfully!",
            "order_id": order.pk,
            "loyalty_points_awarded": points_for_amount(order.final_total),
            "order": OrderSerializer(order).data,
        },
        status=status.HTTP_201_CREATED,
    )


@api_view(["POST"])
@permission_classes([IsAuthenticated])
@throttle_classes([CheckoutThrottle])
def create_payment_session(request: Request) -> Response:
    """
    Start a hosted payment session. The order is created later, when the
    payment provider confirms the payment.
    """
    data, error_response = _validated_checkout_input(request)
    if error_response is not None:
        return error_response

    result = PaymentSessionService.create_session(
        request.user,
        data["cart"],
        data["shipping_address"],
        data.get("promotion_code") or None,
    )
    if result.is_err():
        return checkout_error_response(result.unwrap_err())

    handle = result.unwrap()
    return Response({"session_id": handle.session_id, "url": handle.url}, status=status.HTTP_201_CREATED)
