from django.urls import path

from . import views

app_name = "users"

urlpatterns = [
    path("me/loyalty/", views.my_loyalty, name="loyalty"),
    path("me/orders/", views.my_orders, name="orders"),
    path("me/promotions/", views.my_promotions, name="promotions"),
    path("me/wishlist/", views.my_wishlist, name="wishlist"),
    path("me/wishlist/<int:product_id>/", views.remove_from_wishlist, name="wishlist_remove"),
]
