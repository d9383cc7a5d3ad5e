import logging
from typing import Any

from django.http import HttpRequest, JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt
from django_ratelimit.decorators import ratelimit  # type: ignore[import-untyped]

from .fulfillment import FulfillmentError
from .webhooks.base import SecurityError, WebhookPayloadError
from .webhooks.stripe import StripeWebhookProcessor

logger = logging.getLogger(__name__)


# ===============================================================================
# WEBHOOK ENDPOINT VIEWS
# ===============================================================================


@method_decorator(
    [
        csrf_exempt,
        ratelimit(key="ip", rate="60/m", method="POST", block=False),  # 60 webhooks per minute per IP
        ratelimit(key="ip", rate="1000/h", method="POST", block=False),  # 1000 webhooks per hour per IP
    ],
    name="dispatch",
)
class StripeWebhookView(View):
    """
    💳 Stripe checkout webhook endpoint

    - 200: processed, skipped, or already fulfilled
    - 400: unsigned or malformed request, rejected without processing
    - 429: rate limited
    - 500: paid session could not be fulfilled (Stripe retries)
    """

    http_method_names = ["post"]
    processor_class = StripeWebhookProcessor

    def post(self, request: HttpRequest, *args: Any, **kwargs: Any) -> JsonResponse:
        if getattr(request, "limited", False):
            logger.warning(f"🚨 [Security] Rate limit exceeded for Stripe webhook from IP: {self.get_client_ip(request)}")
            return JsonResponse(
                {"status": "rate_limited", "message": "Too many webhook requests. Please slow down."}, status=429
            )

        # Raw body, not re-serialized JSON: the signature covers exact bytes
        raw_body = request.body
        signature = request.headers.get("Stripe-Signature", "")

        try:
            result = self.processor_class().process(raw_body, signature)
        except SecurityError as e:
            logger.error(f"🔒 [Security] Rejected Stripe webhook from {self.get_client_ip(request)}: {e}")
            return JsonResponse({"status": "error", "message": "Invalid signature"}, status=400)
        except WebhookPayloadError as e:
            logger.warning(f"⚠️ [Webhook] Malformed Stripe webhook: {e}")
            return JsonResponse({"status": "error", "message": str(e)}, status=400)
        except FulfillmentError as e:
            logger.error(f"🔥 [Webhook] Fulfillment failed for session {e.session_id}: {e}")
            # SECURITY: Never expose internal exception details to external callers
            return JsonResponse({"status": "error", "message": "Fulfillment failed"}, status=500)

        return JsonResponse(
            {
                "status": "skipped" if result.skipped else result.outcome.value,
                "message": result.message,
            }
        )

    @staticmethod
    def get_client_ip(request: HttpRequest) -> str:
        return request.META.get("REMOTE_ADDR", "") or "unknown"
