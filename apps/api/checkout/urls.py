"""
Checkout API URLs
"""

from django.urls import path

from . import views

app_name = "checkout"

urlpatterns = [
    path("", views.checkout, name="checkout"),
    path("session/", views.create_payment_session, name="create_session"),
]
