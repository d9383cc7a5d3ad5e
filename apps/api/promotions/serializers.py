from decimal import Decimal

from rest_framework import serializers

from apps.promotions.models import Promotion


class ApplyPromotionInputSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=80)
    subtotal = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal("0.00"), required=False, default=Decimal("0.00")
    )


class PromotionSerializer(serializers.ModelSerializer):
    class Meta:
        model = Promotion
        fields = [
            "code",
            "description",
            "discount_type",
            "discount_value",
            "applicable_tier",
            "start_date",
            "end_date",
        ]
        read_only_fields = fields


class PersonalizedOfferSerializer(serializers.Serializer):
    code = serializers.CharField()
    family = serializers.CharField()
    discount_percent = serializers.DecimalField(max_digits=5, decimal_places=2)
    description = serializers.CharField()
