# accounting/tests/test_funding_allocation.py

from __future__ import annotations

from decimal import Decimal

from django.test import TestCase, override_settings

from accounting.models.entry import TransactionEntry
from accounting.models.transaction import TransactionGroup
from accounting.services.exceptions import (
    CircularFunding,
    FundingServiceError,
    ImmutableTransaction,
    InsufficientFunds,
    NotFoundOrForbidden,
)
from accounting.services.funding_service import (
    create_funding_allocation,
    funding_ancestry,
    track_funding_usage,
    validate_funding_allocation,
)
from accounting.tests.utils import make_accounts, make_funded, make_source, make_user, scope_for


class FundingAllocationWriterTests(TestCase):
    def setUp(self):
        self.user = make_user("alloc_owner")
        self.scope = scope_for(self.user)
        self.cash, self.grants = make_accounts(self.user)

        self.source = make_source(
            self.user, "SRC-A", "1000.00", debit_account=self.cash, credit_account=self.grants
        )

    def _draft(self, number, amount, *, source=None):
        return make_funded(
            self.user,
            number,
            amount,
            source=source,
            debit_account=self.cash,
            credit_account=self.grants,
            status=TransactionGroup.STATUS_DRAFT,
        )

    def _allocate(self, target, *allocations):
        return create_funding_allocation(
            target_transaction_id=target.pk,
            allocations=list(allocations),
            scope=self.scope,
        )

    def test_allocation_writes_source_and_funding_path(self):
        target = self._draft("DRF-1", "400.00")
        version_before = target.version

        result = self._allocate(
            target, {"source_transaction_id": self.source.pk, "amount": "400.00"}
        )

        self.assertTrue(result["success"])
        self.assertEqual(len(result["allocations"]), 1)
        row = result["allocations"][0]
        self.assertEqual(row["source_transaction_id"], self.source.pk)
        self.assertEqual(row["amount"], Decimal("400.00"))
        self.assertEqual(row["source_description"], self.source.description)
        self.assertEqual(row["remaining_amount"], Decimal("600.00"))

        entry = TransactionEntry.objects.get(transaction=target, sequence=0)
        self.assertEqual(entry.source_transaction_id, self.source.pk)
        self.assertEqual(entry.funding_path, [self.source.pk])

        target.refresh_from_db()
        self.assertGreater(target.version, version_before)

    def test_allocation_amount_must_match_the_tagged_entry(self):
        target = self._draft("DRF-BIG", "5000.00")

        with self.assertRaises(FundingServiceError) as ctx:
            self._allocate(target, {"source_transaction_id": self.source.pk, "amount": "100.00"})

        self.assertNotIsInstance(ctx.exception, InsufficientFunds)
        self.assertIn("does not match entry 0 amount 5000.00", str(ctx.exception))
        entry = TransactionEntry.objects.get(transaction=target, sequence=0)
        self.assertIsNone(entry.source_transaction_id)

        usage = track_funding_usage(source_transaction_id=self.source.pk, scope=self.scope)
        self.assertEqual(usage["used_amount"], Decimal("0.00"))
        self.assertGreaterEqual(usage["remaining_amount"], Decimal("0"))

    def test_entry_larger_than_remaining_cannot_be_tagged(self):
        target = self._draft("DRF-BIG", "5000.00")

        with self.assertRaises(InsufficientFunds) as ctx:
            self._allocate(target, {"source_transaction_id": self.source.pk, "amount": "5000.00"})

        self.assertEqual(ctx.exception.available, Decimal("1000.00"))

    def test_reallocating_an_existing_draw_does_not_count_it_twice(self):
        target = self._draft("DRF-1", "700.00", source=self.source)
        self.assertTrue(
            validate_funding_allocation(transaction_id=target.pk, scope=self.scope)["is_valid"]
        )

        result = self._allocate(
            target, {"source_transaction_id": self.source.pk, "amount": "700.00"}
        )

        self.assertEqual(result["allocations"][0]["remaining_amount"], Decimal("300.00"))
        usage = track_funding_usage(source_transaction_id=self.source.pk, scope=self.scope)
        self.assertEqual(usage["used_amount"], Decimal("700.00"))
        self.assertEqual(usage["remaining_amount"], Decimal("300.00"))

    def test_draws_on_other_entries_of_the_target_still_count(self):
        target = TransactionGroup.objects.create(
            group_number="DRF-SPLIT",
            description="Two lines",
            status=TransactionGroup.STATUS_DRAFT,
            total_amount=Decimal("1200.00"),
            created_by=self.user,
        )
        TransactionEntry.objects.create(
            transaction=target, sequence=0, account=self.cash, debit_amount=Decimal("600.00"),
            source_transaction=self.source, funding_path=[self.source.pk],
        )
        TransactionEntry.objects.create(
            transaction=target, sequence=1, account=self.cash, debit_amount=Decimal("600.00")
        )
        TransactionEntry.objects.create(
            transaction=target, sequence=2, account=self.grants, credit_amount=Decimal("1200.00")
        )

        with self.assertRaises(InsufficientFunds) as ctx:
            self._allocate(
                target,
                {"source_transaction_id": self.source.pk, "amount": "600.00", "entry_index": 1},
            )

        self.assertEqual(ctx.exception.available, Decimal("400.00"))

    def test_same_entry_twice_in_one_call_is_rejected(self):
        second = make_source(
            self.user, "SRC-B", "500.00", debit_account=self.cash, credit_account=self.grants
        )
        target = self._draft("DRF-1", "100.00")

        with self.assertRaises(FundingServiceError) as ctx:
            self._allocate(
                target,
                {"source_transaction_id": self.source.pk, "amount": "100.00"},
                {"source_transaction_id": second.pk, "amount": "100.00"},
            )

        self.assertIn("more than once", str(ctx.exception))

    def test_allocation_up_to_exact_remaining_then_nothing_more(self):
        make_funded(
            self.user, "USED-1", "300.00", source=self.source,
            debit_account=self.cash, credit_account=self.grants,
        )
        target = self._draft("DRF-1", "700.00")

        self._allocate(target, {"source_transaction_id": self.source.pk, "amount": "700.00"})

        usage = track_funding_usage(source_transaction_id=self.source.pk, scope=self.scope)
        self.assertEqual(usage["used_amount"], Decimal("1000.00"))
        self.assertEqual(usage["remaining_amount"], Decimal("0.00"))

        another = self._draft("DRF-2", "1.00")
        with self.assertRaises(InsufficientFunds) as ctx:
            self._allocate(another, {"source_transaction_id": self.source.pk, "amount": "1.00"})

        self.assertEqual(ctx.exception.available, Decimal("0.00"))
        self.assertEqual(ctx.exception.source, "SRC-A")
        self.assertIn("exceeds available amount", str(ctx.exception))

    def test_confirmed_target_is_immutable(self):
        target = make_funded(
            self.user, "CNF-1", "100.00", source=None,
            debit_account=self.cash, credit_account=self.grants,
        )

        with self.assertRaises(ImmutableTransaction):
            self._allocate(target, {"source_transaction_id": self.source.pk, "amount": "100.00"})

        entry = TransactionEntry.objects.get(transaction=target, sequence=0)
        self.assertIsNone(entry.source_transaction_id)

    def test_cancelled_target_is_immutable(self):
        target = self._draft("DRF-1", "100.00")
        target.status = TransactionGroup.STATUS_CANCELLED
        target.save(update_fields=["status"])

        with self.assertRaises(ImmutableTransaction):
            self._allocate(target, {"source_transaction_id": self.source.pk, "amount": "100.00"})

    def test_same_source_twice_in_one_call_is_cross_checked(self):
        target = TransactionGroup.objects.create(
            group_number="DRF-BATCH",
            description="Two lines",
            status=TransactionGroup.STATUS_DRAFT,
            total_amount=Decimal("1200.00"),
            created_by=self.user,
        )
        for seq, amount in enumerate(("600.00", "600.00")):
            TransactionEntry.objects.create(
                transaction=target, sequence=seq, account=self.cash, debit_amount=Decimal(amount)
            )
        TransactionEntry.objects.create(
            transaction=target, sequence=2, account=self.grants, credit_amount=Decimal("1200.00")
        )

        with self.assertRaises(InsufficientFunds) as ctx:
            self._allocate(
                target,
                {"source_transaction_id": self.source.pk, "amount": "600.00", "entry_index": 0},
                {"source_transaction_id": self.source.pk, "amount": "600.00", "entry_index": 1},
            )

        self.assertEqual(ctx.exception.available, Decimal("400.00"))
        self.assertFalse(
            TransactionEntry.objects.filter(
                transaction=target, source_transaction__isnull=False
            ).exists()
        )

    def test_out_of_scope_source_is_not_found(self):
        stranger = make_user("alloc_stranger")
        s_cash, s_grants = make_accounts(stranger)
        foreign = make_source(stranger, "FOREIGN", "5000.00", debit_account=s_cash, credit_account=s_grants)
        target = self._draft("DRF-1", "100.00")

        with self.assertRaises(NotFoundOrForbidden):
            self._allocate(target, {"source_transaction_id": foreign.pk, "amount": "100.00"})

    def test_out_of_scope_target_is_not_found(self):
        target = self._draft("DRF-1", "100.00")

        with self.assertRaises(NotFoundOrForbidden):
            create_funding_allocation(
                target_transaction_id=target.pk,
                allocations=[{"source_transaction_id": self.source.pk, "amount": "100.00"}],
                scope=scope_for(make_user("alloc_other")),
            )

    def test_entry_index_out_of_range(self):
        target = self._draft("DRF-1", "100.00")

        with self.assertRaises(FundingServiceError):
            self._allocate(
                target,
                {"source_transaction_id": self.source.pk, "amount": "10.00", "entry_index": 5},
            )

    def test_non_positive_amount_is_rejected(self):
        target = self._draft("DRF-1", "100.00")

        with self.assertRaises(FundingServiceError):
            self._allocate(target, {"source_transaction_id": self.source.pk, "amount": "0"})

    def test_empty_allocation_list_is_rejected(self):
        target = self._draft("DRF-1", "100.00")

        with self.assertRaises(FundingServiceError):
            self._allocate(target)

    def test_self_funding_is_circular(self):
        target = self._draft("DRF-1", "100.00")

        with self.assertRaises(CircularFunding):
            self._allocate(target, {"source_transaction_id": target.pk, "amount": "10.00"})

    def test_multi_hop_cycle_is_rejected(self):
        target = self._draft("DRF-1", "100.00")
        middle = make_funded(
            self.user, "MID", "50.00", source=target,
            debit_account=self.cash, credit_account=self.grants,
        )
        outer = make_funded(
            self.user, "OUT", "40.00", source=middle,
            debit_account=self.cash, credit_account=self.grants,
        )

        with self.assertRaises(CircularFunding):
            self._allocate(target, {"source_transaction_id": outer.pk, "amount": "10.00"})

    def test_repeated_allocation_extends_funding_path(self):
        second = make_source(
            self.user, "SRC-B", "500.00", debit_account=self.cash, credit_account=self.grants
        )
        target = self._draft("DRF-1", "100.00")

        self._allocate(target, {"source_transaction_id": self.source.pk, "amount": "100.00"})
        self._allocate(target, {"source_transaction_id": second.pk, "amount": "100.00"})

        entry = TransactionEntry.objects.get(transaction=target, sequence=0)
        self.assertEqual(entry.source_transaction_id, second.pk)
        self.assertEqual(entry.funding_path, [self.source.pk, second.pk])


class FundingAncestryTests(TestCase):
    def setUp(self):
        self.user = make_user("ancestry_owner")
        self.cash, self.grants = make_accounts(self.user)

    def _chain(self, length):
        prev = make_source(self.user, "ROOT", "100.00", debit_account=self.cash, credit_account=self.grants)
        chain = [prev]
        for i in range(length):
            prev = make_funded(
                self.user, f"HOP-{i}", "1.00", source=prev,
                debit_account=self.cash, credit_account=self.grants,
            )
            chain.append(prev)
        return chain

    def test_ancestry_follows_every_hop(self):
        chain = self._chain(3)

        ancestry = funding_ancestry(source_transaction_id=chain[-1].pk)

        self.assertEqual(ancestry, {t.pk for t in chain[:-1]})

    @override_settings(FUNDING_MAX_PATH_DEPTH=2)
    def test_depth_bound_is_enforced(self):
        chain = self._chain(4)

        with self.assertRaises(FundingServiceError):
            funding_ancestry(source_transaction_id=chain[-1].pk)


class FundingWalkthroughTests(TestCase):
    """Usage, cancellation and allocation on one source, step by step."""

    def test_source_lifecycle(self):
        user = make_user("walkthrough_owner")
        scope = scope_for(user)
        cash, grants = make_accounts(user)
        a = make_source(user, "A", "1000.00", debit_account=cash, credit_account=grants)

        usage = track_funding_usage(source_transaction_id=a.pk, scope=scope)
        self.assertEqual((usage["used_amount"], usage["remaining_amount"]), (Decimal("0.00"), Decimal("1000.00")))

        make_funded(user, "B", "300.00", source=a, debit_account=cash, credit_account=grants)
        make_funded(
            user, "C", "500.00", source=a, debit_account=cash, credit_account=grants,
            status=TransactionGroup.STATUS_CANCELLED,
        )

        usage = track_funding_usage(source_transaction_id=a.pk, scope=scope)
        self.assertEqual((usage["used_amount"], usage["remaining_amount"]), (Decimal("300.00"), Decimal("700.00")))

        d = make_funded(
            user, "D", "700.00", source=None, debit_account=cash, credit_account=grants,
            status=TransactionGroup.STATUS_DRAFT,
        )

        with self.assertRaises(InsufficientFunds) as ctx:
            create_funding_allocation(
                target_transaction_id=d.pk,
                allocations=[{"source_transaction_id": a.pk, "amount": "800.00"}],
                scope=scope,
            )
        self.assertEqual(ctx.exception.requested, Decimal("800.00"))
        self.assertEqual(ctx.exception.available, Decimal("700.00"))

        create_funding_allocation(
            target_transaction_id=d.pk,
            allocations=[{"source_transaction_id": a.pk, "amount": "700.00"}],
            scope=scope,
        )

        usage = track_funding_usage(source_transaction_id=a.pk, scope=scope)
        self.assertEqual((usage["used_amount"], usage["remaining_amount"]), (Decimal("1000.00"), Decimal("0.00")))
