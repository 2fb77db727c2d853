# accounting/api/filters.py

import django_filters

from accounting.models.transaction import TransactionGroup


class TransactionGroupFilter(django_filters.FilterSet):
    """
    /api/accounting/transactions/?status=confirmed
    /api/accounting/transactions/?date_from=2024-01-01&date_to=2024-01-31
    /api/accounting/transactions/?group_number=TXN-001
    """

    status = django_filters.ChoiceFilter(choices=TransactionGroup.STATUS_CHOICES)
    date_from = django_filters.IsoDateTimeFilter(
        field_name="transaction_date", lookup_expr="gte"
    )
    date_to = django_filters.IsoDateTimeFilter(
        field_name="transaction_date", lookup_expr="lte"
    )
    group_number = django_filters.CharFilter(lookup_expr="icontains")

    class Meta:
        model = TransactionGroup
        fields = ["status", "date_from", "date_to", "group_number"]
