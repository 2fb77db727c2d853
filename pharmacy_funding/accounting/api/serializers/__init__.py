# accounting/api/serializers/__init__.py

from accounting.api.serializers.accounts import AccountListSerializer
from accounting.api.serializers.funding import (
    FundingAllocationCreateSerializer,
    FundingAllocationItemSerializer,
)
from accounting.api.serializers.transactions import (
    TransactionCancelSerializer,
    TransactionCreateSerializer,
    TransactionEntriesUpdateSerializer,
    TransactionEntryInputSerializer,
    TransactionEntrySerializer,
    TransactionGroupSerializer,
)

__all__ = [
    "AccountListSerializer",
    "FundingAllocationCreateSerializer",
    "FundingAllocationItemSerializer",
    "TransactionCancelSerializer",
    "TransactionCreateSerializer",
    "TransactionEntriesUpdateSerializer",
    "TransactionEntryInputSerializer",
    "TransactionEntrySerializer",
    "TransactionGroupSerializer",
]
