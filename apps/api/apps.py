# ===============================================================================
# STOREFRONT API APP CONFIGURATION 🛠️
# ===============================================================================

from django.apps import AppConfig


class ApiConfig(AppConfig):
    """
    Configuration for the storefront's centralized API app.

    This app provides REST API endpoints for:
    - Checkout (synchronous and payment-session)
    - Promotion preview
    - Customer self-service (loyalty, orders, wishlist, promotions)
    - Feedback
    """

    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.api"
    label = "storefront_api"  # Unique label to avoid conflicts
    verbose_name = "Storefront API"
