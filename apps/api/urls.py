# ===============================================================================
# STOREFRONT API MAIN URLS 🚀
# ===============================================================================
#
# URL Structure:
#   /api/checkout/    → Synchronous checkout and payment sessions
#   /api/promotions/  → Promotion code preview
#   /api/users/me/    → Loyalty, orders, promotions, wishlist
#   /api/feedback/    → Customer feedback
#

from django.urls import include, path

app_name = "api"

urlpatterns = [
    path("checkout/", include("apps.api.checkout.urls")),
    path("promotions/", include("apps.api.promotions.urls")),
    path("users/", include("apps.api.users.urls")),
    path("feedback/", include("apps.api.catalog.urls")),
]
