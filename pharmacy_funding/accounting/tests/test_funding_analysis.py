# accounting/tests/test_funding_analysis.py

from __future__ import annotations

from datetime import date
from decimal import Decimal

from django.test import TestCase

from accounting.models.account import Account
from accounting.models.transaction import TransactionGroup
from accounting.services.exceptions import FundingServiceError
from accounting.services.funding_service import (
    DateRange,
    get_available_funding_sources,
    get_funding_flow_analysis,
    get_funding_statistics,
    track_funding_usage,
)
from accounting.tests.utils import make_accounts, make_funded, make_source, make_user, scope_for


class FundingSourceFinderTests(TestCase):
    def setUp(self):
        self.user = make_user("finder_owner")
        self.scope = scope_for(self.user)
        self.cash, self.grants = make_accounts(self.user)
        self.bank = Account.objects.create(
            created_by=self.user, code="1100", name="Bank", account_type=Account.ASSET
        )

        self.big = make_source(self.user, "BIG", "1000.00", debit_account=self.cash, credit_account=self.grants)
        self.mid = make_source(self.user, "MID", "500.00", debit_account=self.bank, credit_account=self.grants)
        self.spent = make_source(self.user, "SPENT", "200.00", debit_account=self.cash, credit_account=self.grants)

        self._draft_spend("USE-BIG", "300.00", self.big)
        self._draft_spend("USE-SPENT", "200.00", self.spent)

        make_source(
            self.user, "DRAFT-SRC", "9999.00",
            debit_account=self.cash, credit_account=self.grants,
            status=TransactionGroup.STATUS_DRAFT,
        )
        make_source(
            self.user, "CANCELLED-SRC", "9999.00",
            debit_account=self.cash, credit_account=self.grants,
            status=TransactionGroup.STATUS_CANCELLED,
        )

    def _draft_spend(self, number, amount, source):
        return make_funded(
            self.user, number, amount, source=source,
            debit_account=self.cash, credit_account=self.grants,
            status=TransactionGroup.STATUS_DRAFT,
        )

    def test_only_confirmed_sources_with_money_left_largest_first(self):
        sources = get_available_funding_sources(scope=self.scope)

        self.assertEqual([s["group_number"] for s in sources], ["BIG", "MID"])
        self.assertEqual(sources[0]["available_amount"], Decimal("700.00"))
        self.assertEqual(sources[0]["used_amount"], Decimal("300.00"))
        self.assertEqual(sources[1]["available_amount"], Decimal("500.00"))

    def test_account_info_comes_from_first_entry(self):
        sources = get_available_funding_sources(scope=self.scope)

        self.assertEqual(
            sources[1]["account_info"],
            {"account_id": self.bank.pk, "account_name": "Bank", "account_code": "1100"},
        )

    def test_account_filter(self):
        sources = get_available_funding_sources(scope=self.scope, account_id=self.bank.pk)

        self.assertEqual([s["group_number"] for s in sources], ["MID"])

    def test_finder_agrees_with_usage_tracker(self):
        for row in get_available_funding_sources(scope=self.scope):
            usage = track_funding_usage(source_transaction_id=row["transaction_id"], scope=self.scope)
            self.assertEqual(row["available_amount"], usage["remaining_amount"])

    def test_invalid_account_id(self):
        with self.assertRaises(FundingServiceError):
            get_available_funding_sources(scope=self.scope, account_id="cash")

    def test_other_owner_sees_nothing(self):
        self.assertEqual(
            get_available_funding_sources(scope=scope_for(make_user("finder_other"))), []
        )


class FundingFlowAnalysisTests(TestCase):
    def setUp(self):
        self.user = make_user("flow_owner")
        self.scope = scope_for(self.user)
        self.cash, self.grants = make_accounts(self.user)

        # Dates are BASE_DATE (2024-03-01) + days.
        self.a = make_source(self.user, "A", "1000.00", debit_account=self.cash, credit_account=self.grants, days=0)
        self.b = make_source(self.user, "B", "400.00", debit_account=self.cash, credit_account=self.grants, days=10)

        for number, amount in (("A-1", "250.00"), ("A-2", "250.00")):
            make_funded(
                self.user, number, amount, source=self.a,
                debit_account=self.cash, credit_account=self.grants,
                status=TransactionGroup.STATUS_DRAFT,
            )
        make_funded(
            self.user, "B-1", "400.00", source=self.b,
            debit_account=self.cash, credit_account=self.grants,
            status=TransactionGroup.STATUS_DRAFT,
        )

    def test_totals_and_utilization(self):
        analysis = get_funding_flow_analysis(scope=self.scope)

        self.assertEqual(analysis["total_funding_sources"], 2)
        self.assertEqual(analysis["total_funding_amount"], Decimal("1400.00"))
        self.assertEqual(analysis["total_used_amount"], Decimal("900.00"))
        self.assertEqual(analysis["total_available_amount"], Decimal("500.00"))
        self.assertEqual(analysis["utilization_rate"], 64.29)

    def test_flow_details_sorted_by_utilization(self):
        details = get_funding_flow_analysis(scope=self.scope)["flow_details"]

        self.assertEqual([d["source_group_number"] for d in details], ["B", "A"])
        self.assertEqual(details[0]["utilization_rate"], 100.0)
        self.assertEqual(details[1]["utilization_rate"], 50.0)
        self.assertEqual(details[1]["usage_count"], 2)
        self.assertEqual(details[1]["available_amount"], Decimal("500.00"))

    def test_date_range_is_inclusive(self):
        analysis = get_funding_flow_analysis(
            scope=self.scope,
            date_range=DateRange(start=date(2024, 3, 1), end=date(2024, 3, 5)),
        )

        self.assertEqual(analysis["total_funding_sources"], 1)
        self.assertEqual(analysis["flow_details"][0]["source_group_number"], "A")

    def test_reversed_date_range_is_rejected(self):
        with self.assertRaises(FundingServiceError):
            get_funding_flow_analysis(
                scope=self.scope,
                date_range=DateRange(start=date(2024, 4, 1), end=date(2024, 3, 1)),
            )

    def test_no_sources_means_zero_utilization(self):
        analysis = get_funding_flow_analysis(scope=scope_for(make_user("flow_empty")))

        self.assertEqual(analysis["total_funding_sources"], 0)
        self.assertEqual(analysis["utilization_rate"], 0.0)
        self.assertEqual(analysis["flow_details"], [])

    def test_statistics_summary(self):
        stats = get_funding_statistics(scope=self.scope)

        self.assertEqual(
            stats,
            {
                "total_sources": 2,
                "total_amount": Decimal("1400.00"),
                "used_amount": Decimal("900.00"),
                "available_amount": Decimal("500.00"),
                "utilization_rate": 64.29,
            },
        )
