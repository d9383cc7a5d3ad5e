import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response

from apps.api.throttling import FeedbackThrottle
from apps.catalog.services import FeedbackService

from .serializers import FeedbackInputSerializer

logger = logging.getLogger(__name__)


@api_view(["POST"])
@permission_classes([IsAuthenticated])
@throttle_classes([FeedbackThrottle])
def submit_feedback(request: Request) -> Response:
    serializer = FeedbackInputSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(
            {"error": "Invalid input", "details": serializer.errors}, status=status.HTTP_400_BAD_REQUEST
        )

    data = serializer.validated_data
    result = FeedbackService.submit(
        request.user.pk, data["comment"], product_id=data["product_id"], rating=data["rating"]
    )
    if result.is_err():
        return Response({"error": result.unwrap_err()}, status=status.HTTP_400_BAD_REQUEST)

    return Response(
        {"message": "Feedback submitted successfully!", "feedback_id": result.unwrap().pk},
        status=status.HTTP_201_CREATED,
    )
