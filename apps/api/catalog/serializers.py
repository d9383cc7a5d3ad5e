from rest_framework import serializers


class FeedbackInputSerializer(serializers.Serializer):
    comment = serializers.CharField()
    product_id = serializers.IntegerField(min_value=1, required=False, allow_null=True, default=None)
    rating = serializers.IntegerField(min_value=1, max_value=5, required=False, allow_null=True, default=None)
