# accounting/tests/test_funding_validation.py

from __future__ import annotations

from django.test import TestCase, override_settings

from accounting.models.entry import TransactionEntry
from accounting.models.transaction import TransactionGroup
from accounting.services.exceptions import NotFoundOrForbidden
from accounting.services.funding_service import (
    CIRCULAR_REFERENCE_ISSUE,
    NO_ENTRIES_ISSUE,
    PROVENANCE_TOO_DEEP_ISSUE,
    validate_funding_allocation,
)
from accounting.tests.utils import make_accounts, make_funded, make_source, make_user, scope_for


class FundingAllocationValidatorTests(TestCase):
    def setUp(self):
        self.user = make_user("validator_owner")
        self.scope = scope_for(self.user)
        self.cash, self.grants = make_accounts(self.user)

        self.source = make_source(
            self.user, "SRC-A", "1000.00", debit_account=self.cash, credit_account=self.grants
        )

    def _funded(self, number, amount, *, source=None, status=TransactionGroup.STATUS_CONFIRMED):
        return make_funded(
            self.user,
            number,
            amount,
            source=source if source is not None else self.source,
            debit_account=self.cash,
            credit_account=self.grants,
            status=status,
        )

    def _validate(self, txn):
        return validate_funding_allocation(transaction_id=txn.pk, scope=self.scope)

    def test_transaction_without_entries(self):
        empty = TransactionGroup.objects.create(
            group_number="EMPTY",
            description="No lines",
            created_by=self.user,
        )

        result = self._validate(empty)

        self.assertFalse(result["is_valid"])
        self.assertEqual(result["issues"], [NO_ENTRIES_ISSUE])
        self.assertEqual(result["recommendations"], [])

    def test_valid_allocation_has_no_issues(self):
        spend = self._funded("SPD-1", "300.00")

        result = self._validate(spend)

        self.assertTrue(result["is_valid"])
        self.assertEqual(result["issues"], [])

    def test_unfunded_lines_only_produce_recommendations(self):
        unfunded = make_source(
            self.user, "PLAIN", "50.00", debit_account=self.cash, credit_account=self.grants
        )

        result = self._validate(unfunded)

        self.assertTrue(result["is_valid"])
        self.assertEqual(len(result["recommendations"]), 2)
        self.assertIn("entry 1", result["recommendations"][0])

    def test_transaction_is_not_checked_against_its_own_draw(self):
        # Uses the entire source; must not be flagged for consuming itself.
        spend = self._funded("SPD-ALL", "1000.00")

        result = self._validate(spend)

        self.assertTrue(result["is_valid"], result["issues"])

    def test_draw_exceeding_what_others_left_is_flagged(self):
        self._funded("SPD-1", "800.00")
        late = self._funded("SPD-2", "300.00")

        result = self._validate(late)

        self.assertFalse(result["is_valid"])
        self.assertEqual(len(result["issues"]), 1)
        self.assertIn("exceeds the available amount 200.00", result["issues"][0])

    def test_unconfirmed_source_is_flagged(self):
        draft_source = make_source(
            self.user, "SRC-DRAFT", "500.00",
            debit_account=self.cash, credit_account=self.grants,
            status=TransactionGroup.STATUS_DRAFT,
        )
        spend = self._funded("SPD-1", "100.00", source=draft_source)

        result = self._validate(spend)

        self.assertFalse(result["is_valid"])
        self.assertTrue(any("not confirmed" in issue for issue in result["issues"]))

    def test_self_reference_is_circular(self):
        txn = make_source(
            self.user, "SELF", "100.00", debit_account=self.cash, credit_account=self.grants
        )
        TransactionEntry.objects.filter(transaction=txn, sequence=0).update(
            source_transaction=txn
        )

        result = self._validate(txn)

        self.assertFalse(result["is_valid"])
        self.assertIn(CIRCULAR_REFERENCE_ISSUE, result["issues"])

    def test_multi_hop_cycle_is_circular(self):
        first = make_source(
            self.user, "LOOP-1", "100.00", debit_account=self.cash, credit_account=self.grants
        )
        second = self._funded("LOOP-2", "50.00", source=first)
        TransactionEntry.objects.filter(transaction=first, sequence=0).update(
            source_transaction=second
        )

        result = self._validate(first)

        self.assertFalse(result["is_valid"])
        self.assertIn(CIRCULAR_REFERENCE_ISSUE, result["issues"])

    @override_settings(FUNDING_MAX_PATH_DEPTH=2)
    def test_too_deep_provenance_is_not_reported_as_a_cycle(self):
        prev = self.source
        for i in range(4):
            prev = self._funded(f"HOP-{i}", "1.00", source=prev)

        result = self._validate(prev)

        self.assertFalse(result["is_valid"])
        self.assertIn(PROVENANCE_TOO_DEEP_ISSUE, result["issues"])
        self.assertNotIn(CIRCULAR_REFERENCE_ISSUE, result["issues"])

    def test_out_of_scope_source_becomes_an_issue(self):
        stranger = make_user("validator_stranger")
        s_cash, s_grants = make_accounts(stranger)
        foreign = make_source(stranger, "FOREIGN", "900.00", debit_account=s_cash, credit_account=s_grants)
        spend = self._funded("SPD-1", "100.00")
        TransactionEntry.objects.filter(transaction=spend, sequence=0).update(
            source_transaction=foreign
        )

        result = self._validate(spend)

        self.assertFalse(result["is_valid"])
        self.assertIn("funding source check failed", result["issues"][0])

    def test_malformed_entry_becomes_an_issue(self):
        spend = self._funded("SPD-1", "100.00")
        TransactionEntry.objects.filter(transaction=spend, sequence=1).update(
            debit_amount=0, credit_amount=0
        )

        result = self._validate(spend)

        self.assertFalse(result["is_valid"])
        self.assertTrue(result["issues"][0].startswith("Entry 2:"))

    def test_missing_transaction_raises(self):
        with self.assertRaises(NotFoundOrForbidden):
            validate_funding_allocation(transaction_id=424242, scope=self.scope)

    def test_other_owner_cannot_validate(self):
        spend = self._funded("SPD-1", "100.00")

        with self.assertRaises(NotFoundOrForbidden):
            validate_funding_allocation(
                transaction_id=spend.pk, scope=scope_for(make_user("validator_other"))
            )
