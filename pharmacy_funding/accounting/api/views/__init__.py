# accounting/api/views/__init__.py

"""
accounting.api.views package

Important:
- The ViewSet is defined in accounting.api.view (singular).
- Do NOT import accounting.api.urls from here to avoid circular imports.
"""

from accounting.api.view import TransactionGroupViewSet

from accounting.api.views.accounts import OwnerAccountsView
from accounting.api.views.funding import (
    FundingAllocationView,
    FundingFlowAnalysisView,
    FundingSourcesView,
    FundingStatisticsView,
    FundingUsageView,
    FundingValidationView,
)

__all__ = [
    "TransactionGroupViewSet",
    "OwnerAccountsView",
    "FundingAllocationView",
    "FundingFlowAnalysisView",
    "FundingSourcesView",
    "FundingStatisticsView",
    "FundingUsageView",
    "FundingValidationView",
]
