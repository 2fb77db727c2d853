# accounting/services/transaction_service.py

"""
======================================================
PATH: accounting/services/transaction_service.py
======================================================
TRANSACTION SERVICE (LIFECYCLE)

The ONLY place allowed to:
- Create TransactionGroup + TransactionEntry rows
- Replace the entries of a draft
- Move a transaction draft -> confirmed -> cancelled

Funding references requested at creation time are written through
funding_service.create_funding_allocation so availability, scope and
cycle checks are never bypassed.
"""

from __future__ import annotations

import logging
from datetime import datetime

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Avg, Count, Q, Sum
from django.utils import timezone

from accounting.models.account import Account
from accounting.models.entry import TransactionEntry
from accounting.models.transaction import TransactionGroup
from accounting.services.exceptions import (
    FundingInUse,
    FundingServiceError,
    TransactionServiceError,
)
from accounting.services.funding_service import (
    DateRange,
    create_funding_allocation,
    get_scoped_transaction,
)
from accounting.services.money import ZERO, money
from accounting.services.scope import OwnerScope

logger = logging.getLogger(__name__)

CREATABLE_STATUSES = {TransactionGroup.STATUS_DRAFT, TransactionGroup.STATUS_CONFIRMED}


# ------------------------------------------------------------
# Entry normalization
# ------------------------------------------------------------


def _normalize_entries(*, scope: OwnerScope, entries) -> list[dict]:
    if not isinstance(entries, (list, tuple)):
        raise TransactionServiceError("entries must be a list")

    account_ids = set()
    rows: list[dict] = []

    for idx, raw in enumerate(entries, start=1):
        if not isinstance(raw, dict):
            raise TransactionServiceError(f"Entry {idx}: must be an object/dict")

        try:
            account_id = int(raw.get("account_id"))
        except (TypeError, ValueError) as exc:
            raise TransactionServiceError(f"Entry {idx}: account_id is required") from exc

        try:
            debit = money(raw.get("debit_amount"))
            credit = money(raw.get("credit_amount"))
        except FundingServiceError as exc:
            raise TransactionServiceError(f"Entry {idx}: {exc}") from exc

        if debit < ZERO or credit < ZERO:
            raise TransactionServiceError(f"Entry {idx}: amounts cannot be negative")
        if debit > ZERO and credit > ZERO:
            raise TransactionServiceError(f"Entry {idx}: cannot have both debit and credit")
        if debit == ZERO and credit == ZERO:
            raise TransactionServiceError(f"Entry {idx}: must have a debit or credit amount")

        source_id = raw.get("source_transaction_id")
        if source_id in ("", None):
            source_id = None
        else:
            try:
                source_id = int(source_id)
            except (TypeError, ValueError) as exc:
                raise TransactionServiceError(
                    f"Entry {idx}: source_transaction_id must be an integer"
                ) from exc

        account_ids.add(account_id)
        rows.append(
            {
                "account_id": account_id,
                "debit_amount": debit,
                "credit_amount": credit,
                "description": str(raw.get("description") or "").strip(),
                "source_transaction_id": source_id,
            }
        )

    accounts = {
        a.pk: a for a in Account.objects.filter(pk__in=account_ids, created_by_id=scope.owner_id)
    }
    for idx, row in enumerate(rows, start=1):
        account = accounts.get(row["account_id"])
        if account is None:
            raise TransactionServiceError(
                f"Entry {idx}: account {row['account_id']} does not exist or is not accessible"
            )
        if not account.is_active:
            raise TransactionServiceError(f"Entry {idx}: account {account.code} is inactive")

    return rows


def _write_entries(*, txn: TransactionGroup, rows: list[dict]) -> list[dict]:
    """
    Persist entry rows without funding references.
    Returns the allocation requests implied by rows carrying source_transaction_id.
    """
    allocations = []
    for sequence, row in enumerate(rows):
        TransactionEntry.objects.create(
            transaction=txn,
            sequence=sequence,
            account_id=row["account_id"],
            debit_amount=row["debit_amount"],
            credit_amount=row["credit_amount"],
            description=row["description"],
        )
        if row["source_transaction_id"] is not None:
            allocations.append(
                {
                    "source_transaction_id": row["source_transaction_id"],
                    "amount": row["debit_amount"] or row["credit_amount"],
                    "entry_index": sequence,
                }
            )
    return allocations


def _as_aware_dt(dt: datetime | None) -> datetime:
    if dt is None:
        return timezone.now()
    if timezone.is_naive(dt):
        return timezone.make_aware(dt, timezone.get_current_timezone())
    return dt


# ------------------------------------------------------------
# Create / update
# ------------------------------------------------------------


@transaction.atomic
def create_transaction_group(
    *,
    scope: OwnerScope,
    group_number: str,
    description: str,
    transaction_date: datetime | None = None,
    entries,
    status: str = TransactionGroup.STATUS_DRAFT,
) -> TransactionGroup:
    group_number = (group_number or "").strip()
    if not group_number:
        raise TransactionServiceError("group_number is required")
    if status not in CREATABLE_STATUSES:
        raise TransactionServiceError(f"Cannot create a transaction with status '{status}'")

    # NULL organization_id never collides in the unique constraint
    if TransactionGroup.objects.filter(
        created_by_id=scope.owner_id,
        organization_id=scope.organization_id,
        group_number=group_number,
    ).exists():
        raise TransactionServiceError(f"Transaction number {group_number} already exists")

    rows = _normalize_entries(scope=scope, entries=entries)

    try:
        txn = TransactionGroup.objects.create(
            group_number=group_number,
            description=description,
            transaction_date=_as_aware_dt(transaction_date),
            status=TransactionGroup.STATUS_DRAFT,
            created_by_id=scope.owner_id,
            organization_id=scope.organization_id,
        )
    except ValidationError as exc:
        raise TransactionServiceError(str(exc)) from exc

    allocations = _write_entries(txn=txn, rows=rows)

    txn.recalculate_total()
    txn.save(update_fields=["total_amount"])

    if allocations:
        create_funding_allocation(
            target_transaction_id=txn.pk,
            allocations=allocations,
            scope=scope,
        )
        txn.refresh_from_db()

    if status == TransactionGroup.STATUS_CONFIRMED:
        txn = confirm_transaction_group(transaction_id=txn.pk, scope=scope)

    logger.info(
        "Transaction group created",
        extra={
            "transaction_id": txn.pk,
            "group_number": txn.group_number,
            "status": txn.status,
            "total_amount": str(txn.total_amount),
        },
    )
    return txn


@transaction.atomic
def update_transaction_entries(
    *,
    transaction_id,
    scope: OwnerScope,
    entries,
) -> TransactionGroup:
    """Replace every entry of a draft transaction."""
    txn = get_scoped_transaction(transaction_id=transaction_id, scope=scope, for_update=True)
    if not txn.is_draft:
        raise TransactionServiceError(
            f"Only draft transactions can be edited ({txn.group_number} is {txn.status})"
        )

    rows = _normalize_entries(scope=scope, entries=entries)

    txn.entries.all().delete()
    allocations = _write_entries(txn=txn, rows=rows)

    txn.recalculate_total()
    txn.save(update_fields=["total_amount"])

    if allocations:
        create_funding_allocation(
            target_transaction_id=txn.pk,
            allocations=allocations,
            scope=scope,
        )
        txn.refresh_from_db()

    logger.info(
        "Transaction entries replaced",
        extra={"transaction_id": txn.pk, "entry_count": len(rows)},
    )
    return txn


# ------------------------------------------------------------
# Lifecycle
# ------------------------------------------------------------


@transaction.atomic
def confirm_transaction_group(*, transaction_id, scope: OwnerScope) -> TransactionGroup:
    txn = get_scoped_transaction(transaction_id=transaction_id, scope=scope, for_update=True)
    if not txn.is_draft:
        raise TransactionServiceError(
            f"Only draft transactions can be confirmed ({txn.group_number} is {txn.status})"
        )

    totals = txn.entries.aggregate(
        debit=Sum("debit_amount"),
        credit=Sum("credit_amount"),
        n=Count("id"),
    )
    if not totals["n"]:
        raise TransactionServiceError("Cannot confirm a transaction without entries")

    debit = money(totals["debit"])
    credit = money(totals["credit"])
    if debit != credit:
        raise TransactionServiceError(
            f"Transaction is not balanced: debit {debit} != credit {credit}"
        )

    txn.status = TransactionGroup.STATUS_CONFIRMED
    txn.confirmed_at = timezone.now()
    txn.total_amount = debit
    txn.save(update_fields=["status", "confirmed_at", "total_amount"])

    logger.info(
        "Transaction group confirmed",
        extra={"transaction_id": txn.pk, "group_number": txn.group_number},
    )
    return txn


@transaction.atomic
def cancel_transaction_group(
    *,
    transaction_id,
    scope: OwnerScope,
    reason: str = "",
) -> TransactionGroup:
    txn = get_scoped_transaction(transaction_id=transaction_id, scope=scope, for_update=True)
    if txn.is_cancelled:
        raise TransactionServiceError(f"Transaction {txn.group_number} is already cancelled")

    dependants = (
        TransactionEntry.objects.filter(source_transaction_id=txn.pk)
        .exclude(transaction_id=txn.pk)
        .exclude(transaction__status=TransactionGroup.STATUS_CANCELLED)
        .values_list("transaction__group_number", flat=True)
        .distinct()
    )
    dependants = sorted(dependants)
    if dependants:
        raise FundingInUse(
            f"Transaction {txn.group_number} still funds: {', '.join(dependants)}"
        )

    txn.status = TransactionGroup.STATUS_CANCELLED
    txn.cancelled_at = timezone.now()
    txn.cancel_reason = (reason or "").strip()[:255]
    txn.save(update_fields=["status", "cancelled_at", "cancel_reason"])

    logger.warning(
        "Transaction group cancelled",
        extra={
            "transaction_id": txn.pk,
            "group_number": txn.group_number,
            "reason": txn.cancel_reason,
        },
    )
    return txn


# ------------------------------------------------------------
# Read models
# ------------------------------------------------------------


def calculate_transaction_balance(*, transaction_id, scope: OwnerScope) -> dict:
    """
    Balance of a confirmed transaction as seen by confirmed dependants only.

    Drafts still count toward funding usage elsewhere; this view is the
    settled position.
    """
    txn = get_scoped_transaction(transaction_id=transaction_id, scope=scope)
    if not txn.is_confirmed:
        raise TransactionServiceError(
            f"Balance is only available for confirmed transactions ({txn.group_number} is {txn.status})"
        )

    referencing = (
        TransactionEntry.objects.filter(
            source_transaction_id=txn.pk,
            transaction__status=TransactionGroup.STATUS_CONFIRMED,
            **scope.filter_kwargs("transaction__"),
        )
        .exclude(transaction_id=txn.pk)
        .select_related("transaction")
    )

    used = ZERO
    referenced_by: dict[int, dict] = {}
    for entry in referencing:
        amount = entry.debit_amount if entry.debit_amount > ZERO else entry.credit_amount
        used += money(amount)

        ref = entry.transaction
        row = referenced_by.setdefault(
            ref.pk,
            {
                "transaction_id": ref.pk,
                "group_number": ref.group_number,
                "description": ref.description,
                "used_amount": ZERO,
            },
        )
        row["used_amount"] += money(amount)

    total = money(txn.total_amount)
    available = total - used
    if available < ZERO:
        available = ZERO

    return {
        "transaction_id": txn.pk,
        "total_amount": total,
        "used_amount": money(used),
        "available_amount": available,
        "referenced_by_count": len(referenced_by),
        "referenced_by_transactions": list(referenced_by.values()),
    }


def get_transaction_statistics(
    *,
    scope: OwnerScope,
    date_range: DateRange | None = None,
) -> dict:
    qs = TransactionGroup.objects.filter(**scope.filter_kwargs())
    if date_range is not None:
        start, end = date_range.bounds()
        qs = qs.filter(transaction_date__gte=start, transaction_date__lte=end)

    agg = qs.aggregate(
        total=Count("id"),
        draft=Count("id", filter=Q(status=TransactionGroup.STATUS_DRAFT)),
        confirmed=Count("id", filter=Q(status=TransactionGroup.STATUS_CONFIRMED)),
        cancelled=Count("id", filter=Q(status=TransactionGroup.STATUS_CANCELLED)),
        amount=Sum("total_amount"),
        average=Avg("total_amount"),
    )

    return {
        "total_transactions": agg["total"] or 0,
        "draft_count": agg["draft"] or 0,
        "confirmed_count": agg["confirmed"] or 0,
        "cancelled_count": agg["cancelled"] or 0,
        "total_amount": money(agg["amount"]),
        "average_amount": money(agg["average"]),
    }
