# accounting/api/urls.py

from django.urls import include, path
from rest_framework.routers import DefaultRouter

# The ViewSet lives in accounting/api/view.py (singular).
# Import directly to avoid circular imports through views/__init__.py.
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

router = DefaultRouter()
router.register("transactions", TransactionGroupViewSet, basename="transaction")

urlpatterns = [
    # Router endpoints
    path("", include(router.urls)),
    # Funding traceability
    path("funding/sources/", FundingSourcesView.as_view(), name="funding-sources"),
    path(
        "funding/usage/<int:transaction_id>/",
        FundingUsageView.as_view(),
        name="funding-usage",
    ),
    path(
        "funding/allocations/",
        FundingAllocationView.as_view(),
        name="funding-allocations",
    ),
    path(
        "funding/flow-analysis/",
        FundingFlowAnalysisView.as_view(),
        name="funding-flow-analysis",
    ),
    path(
        "funding/statistics/",
        FundingStatisticsView.as_view(),
        name="funding-statistics",
    ),
    path(
        "funding/validate/<int:transaction_id>/",
        FundingValidationView.as_view(),
        name="funding-validate",
    ),
    # Master data (read-only)
    path("accounts/", OwnerAccountsView.as_view(), name="accounts"),
]
