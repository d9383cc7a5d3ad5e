from django.urls import path

from . import views

app_name = "integrations"

urlpatterns = [
    # Stripe checkout webhooks
    path("webhooks/stripe/", views.StripeWebhookView.as_view(), name="stripe_webhook"),
]
