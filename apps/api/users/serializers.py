from rest_framework import serializers


class LoyaltySummarySerializer(serializers.Serializer):
    loyalty_points = serializers.IntegerField(source="points")
    tier = serializers.CharField(source="tier.value")
    next_tier = serializers.CharField(source="next_tier.value", allow_null=True, default=None)
    points_to_next_tier = serializers.IntegerField(allow_null=True)


class WishlistAddSerializer(serializers.Serializer):
    product_id = serializers.IntegerField(min_value=1)
