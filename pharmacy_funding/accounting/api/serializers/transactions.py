# accounting/api/serializers/transactions.py

from rest_framework import serializers

from accounting.models.entry import TransactionEntry
from accounting.models.transaction import TransactionGroup


class TransactionEntrySerializer(serializers.ModelSerializer):
    """
    Output serializer (DB truth) for one entry line.
    """

    account_code = serializers.CharField(source="account.code", read_only=True)
    account_name = serializers.CharField(source="account.name", read_only=True)
    source_group_number = serializers.CharField(
        source="source_transaction.group_number", read_only=True, default=None
    )

    class Meta:
        model = TransactionEntry
        fields = [
            "id",
            "sequence",
            "account",
            "account_code",
            "account_name",
            "debit_amount",
            "credit_amount",
            "description",
            "source_transaction",
            "source_group_number",
            "funding_path",
        ]
        read_only_fields = fields


class TransactionGroupSerializer(serializers.ModelSerializer):
    entries = TransactionEntrySerializer(many=True, read_only=True)

    class Meta:
        model = TransactionGroup
        fields = [
            "id",
            "group_number",
            "description",
            "transaction_date",
            "status",
            "total_amount",
            "organization_id",
            "confirmed_at",
            "cancelled_at",
            "cancel_reason",
            "version",
            "created_at",
            "updated_at",
            "entries",
        ]
        read_only_fields = fields


class TransactionEntryInputSerializer(serializers.Serializer):
    account_id = serializers.IntegerField()
    debit_amount = serializers.DecimalField(
        max_digits=14, decimal_places=2, required=False, default=0
    )
    credit_amount = serializers.DecimalField(
        max_digits=14, decimal_places=2, required=False, default=0
    )
    description = serializers.CharField(required=False, allow_blank=True, default="")
    source_transaction_id = serializers.IntegerField(required=False, allow_null=True)


class TransactionCreateSerializer(serializers.Serializer):
    """
    Input serializer (Swagger-visible).
    """

    group_number = serializers.CharField(max_length=50)
    description = serializers.CharField()
    transaction_date = serializers.DateTimeField(required=False, allow_null=True)
    status = serializers.ChoiceField(
        choices=[TransactionGroup.STATUS_DRAFT, TransactionGroup.STATUS_CONFIRMED],
        required=False,
        default=TransactionGroup.STATUS_DRAFT,
    )
    organization_id = serializers.CharField(
        max_length=64, required=False, allow_blank=True, allow_null=True
    )
    entries = TransactionEntryInputSerializer(many=True)

    def validate_entries(self, value):
        if not value:
            raise serializers.ValidationError("At least one entry is required")
        return value


class TransactionEntriesUpdateSerializer(serializers.Serializer):
    entries = TransactionEntryInputSerializer(many=True)


class TransactionCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")
