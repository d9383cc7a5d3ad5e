"""
Checkout API Serializers
Input validation for cart, shipping address and order responses.
"""

from decimal import Decimal

from rest_framework import serializers

from apps.orders.models import Order, OrderItem


class CartItemInputSerializer(serializers.Serializer):
    product_id = serializers.IntegerField(min_value=1)
    name = serializers.CharField(max_length=200)
    price = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0.00"))
    quantity = serializers.IntegerField(min_value=1)


class ShippingAddressSerializer(serializers.Serializer):
    full_name = serializers.CharField(max_length=200)
    street_address = serializers.CharField(max_length=255)
    city = serializers.CharField(max_length=100)
    state = serializers.CharField(max_length=100)
    postal_code = serializers.CharField(max_length=20)
    country = serializers.CharField(max_length=100)


class CheckoutInputSerializer(serializers.Serializer):
    cart = CartItemInputSerializer(many=True, allow_empty=False)
    shipping_address = ShippingAddressSerializer()
    promotion_code = serializers.CharField(max_length=80, required=False, allow_blank=True, default="")


class OrderItemSerializer(serializers.ModelSerializer):
    """Order item with pricing snapshot for API responses"""

    class Meta:
        model = OrderItem
        fields = ["product_id", "product_name", "unit_price", "quantity"]


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    shipping_address = serializers.DictField(child=serializers.CharField(), read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "status",
            "subtotal",
            "discount_amount",
            "final_total",
            "applied_promotion_code",
            "shipping_address",
            "items",
            "created_at",
        ]
        read_only_fields = fields
