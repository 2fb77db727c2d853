# accounting/api/serializers/funding.py

from rest_framework import serializers


class FundingAllocationItemSerializer(serializers.Serializer):
    source_transaction_id = serializers.IntegerField()
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    entry_index = serializers.IntegerField(required=False, default=0, min_value=0)

    def validate_amount(self, value):
        if value is None:
            raise serializers.ValidationError("amount is required")
        if value <= 0:
            raise serializers.ValidationError("amount must be > 0")
        return value


class FundingAllocationCreateSerializer(serializers.Serializer):
    """
    Input serializer (Swagger-visible).
    """

    target_transaction_id = serializers.IntegerField()
    organization_id = serializers.CharField(
        max_length=64, required=False, allow_blank=True, allow_null=True
    )
    allocations = FundingAllocationItemSerializer(many=True)

    def validate_allocations(self, value):
        if not value:
            raise serializers.ValidationError("At least one allocation is required")
        return value
