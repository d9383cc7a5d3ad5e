"""
URL configuration for the storefront platform.
"""

from django.urls import include, path

# ===============================================================================
# MAIN URL PATTERNS
# ===============================================================================

urlpatterns = [
    # Storefront JSON API (session-authenticated)
    path("api/", include("apps.api.urls")),
    # External integrations & webhooks
    path("integrations/", include("apps.integrations.urls")),
]
