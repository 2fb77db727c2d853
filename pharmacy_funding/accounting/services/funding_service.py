# accounting/services/funding_service.py

"""
======================================================
PATH: accounting/services/funding_service.py
======================================================
FUNDING SERVICE (ALLOCATION & TRACEABILITY ENGINE)

This module answers ONE question:
"How much of a transaction's amount has been consumed by the transactions
that name it as their funding source, and how much remains?"

Operations:
- track_funding_usage            (usage tracker, the primitive)
- usage_totals                   (same numbers for many sources in one query)
- get_available_funding_sources  (finder)
- create_funding_allocation      (writer, atomic + row-locked)
- get_funding_flow_analysis      (analyzer)
- get_funding_statistics         (analyzer summary)
- validate_funding_allocation    (validator, never raises on business rules)
- funding_ancestry               (provenance walk used for cycle checks)

RULES:
- Every operation receives an explicit OwnerScope
- Cancelled transactions never consume funds
- A transaction never consumes its own funds
- Results are plain dicts (Decimals for money); views own JSON conversion
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal

from django.conf import settings
from django.db import transaction
from django.db.models import Case, Count, DecimalField, F, Prefetch, Q, Sum, Value, When
from django.db.models.functions import Coalesce
from django.utils import timezone

from accounting.models.entry import TransactionEntry
from accounting.models.transaction import TransactionGroup
from accounting.services.exceptions import (
    CircularFunding,
    FundingIntegrityError,
    FundingServiceError,
    ImmutableTransaction,
    InsufficientFunds,
    NotFoundOrForbidden,
)
from accounting.services.money import ZERO, entry_amount, money, percentage
from accounting.services.scope import OwnerScope

logger = logging.getLogger(__name__)

NO_ENTRIES_ISSUE = "交易沒有分錄"
CIRCULAR_REFERENCE_ISSUE = (
    "circular reference: a transaction cannot be its own funding source"
)
PROVENANCE_TOO_DEEP_ISSUE = (
    "funding provenance is too deep to check for circular references"
)

DEFAULT_MAX_PATH_DEPTH = 64


# ============================================================
# INPUT SHAPES
# ============================================================


@dataclass(frozen=True)
class DateRange:
    """
    Inclusive transaction_date window.

    Plain dates expand to whole days (start-of-day .. end-of-day).
    """

    start: date | datetime
    end: date | datetime

    def bounds(self) -> tuple[datetime, datetime]:
        start = _as_aware_dt(self.start, end_of_day=False)
        end = _as_aware_dt(self.end, end_of_day=True)
        if end < start:
            raise FundingServiceError("date range end must not be before start")
        return start, end


@dataclass(frozen=True)
class FundingAllocation:
    """
    One requested draw of `amount` from `source_transaction_id`
    onto the target entry at `entry_index`.
    """

    source_transaction_id: int
    amount: Decimal
    entry_index: int = 0

    @staticmethod
    def from_raw(raw, *, index: int | None = None) -> "FundingAllocation":
        if isinstance(raw, FundingAllocation):
            return raw

        prefix = f"Allocation {index + 1}: " if index is not None else ""
        if not isinstance(raw, dict):
            raise FundingServiceError(f"{prefix}must be an object/dict")

        try:
            source_id = int(raw.get("source_transaction_id"))
        except (TypeError, ValueError) as exc:
            raise FundingServiceError(f"{prefix}source_transaction_id is required") from exc

        amount = money(raw.get("amount"))
        if amount <= ZERO:
            raise FundingServiceError(f"{prefix}amount must be > 0")

        entry_index = raw.get("entry_index")
        if entry_index is None or entry_index == "":
            entry_index = 0
        try:
            entry_index = int(entry_index)
        except (TypeError, ValueError) as exc:
            raise FundingServiceError(f"{prefix}entry_index must be an integer") from exc
        if entry_index < 0:
            raise FundingServiceError(f"{prefix}entry_index must be >= 0")

        return FundingAllocation(
            source_transaction_id=source_id,
            amount=amount,
            entry_index=entry_index,
        )


# ============================================================
# INTERNAL HELPERS
# ============================================================


def _as_aware_dt(value, *, end_of_day: bool) -> datetime:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime.combine(value, time.max if end_of_day else time.min)
    else:
        raise FundingServiceError(f"Invalid date value: {value!r}")

    if timezone.is_naive(dt):
        dt = timezone.make_aware(dt, timezone.get_current_timezone())
    return dt


def _scoped_transactions(scope: OwnerScope):
    return TransactionGroup.objects.filter(**scope.filter_kwargs())


def get_scoped_transaction(
    *,
    transaction_id,
    scope: OwnerScope,
    for_update: bool = False,
    label: str = "Transaction",
) -> TransactionGroup:
    qs = _scoped_transactions(scope)
    if for_update:
        qs = qs.select_for_update()

    try:
        return qs.get(pk=transaction_id)
    except (TransactionGroup.DoesNotExist, ValueError, TypeError) as exc:
        raise NotFoundOrForbidden(
            f"{label} {transaction_id} does not exist or is not accessible"
        ) from exc


def _referencing_entries(
    *,
    scope: OwnerScope,
    source_ids,
    exclude_transaction_id=None,
):
    """
    Entries of non-cancelled in-scope transactions drawing on any of source_ids.
    Self-references are never counted as usage.
    """
    qs = (
        TransactionEntry.objects.filter(
            source_transaction_id__in=list(source_ids),
            **scope.filter_kwargs("transaction__"),
        )
        .exclude(transaction__status=TransactionGroup.STATUS_CANCELLED)
        .exclude(transaction_id=F("source_transaction_id"))
    )
    if exclude_transaction_id is not None:
        qs = qs.exclude(transaction_id=exclude_transaction_id)
    return qs


_ONE_SIDED_AMOUNT = Case(
    When(debit_amount__gt=0, then=F("debit_amount")),
    default=F("credit_amount"),
    output_field=DecimalField(max_digits=14, decimal_places=2),
)

_MALFORMED_ENTRY = Q(debit_amount__gt=0, credit_amount__gt=0) | Q(
    debit_amount=0, credit_amount=0
)


# ============================================================
# USAGE TRACKER
# ============================================================


def track_funding_usage(
    *,
    source_transaction_id,
    scope: OwnerScope,
    exclude_transaction_id=None,
) -> dict:
    """
    Usage report for one funding source.

    exclude_transaction_id answers "what would remain without this transaction"
    (used by the validator so a transaction is not checked against its own draw).

    Raises:
        NotFoundOrForbidden if the source is outside the caller's scope.
        FundingIntegrityError if a referencing entry is not one-sided.
    """
    source = get_scoped_transaction(
        transaction_id=source_transaction_id,
        scope=scope,
        label="Source transaction",
    )

    entries = _referencing_entries(
        scope=scope,
        source_ids=[source.pk],
        exclude_transaction_id=exclude_transaction_id,
    ).select_related("transaction")

    used = ZERO
    usage_details: list[dict] = []

    for entry in entries:
        amount = entry_amount(entry)
        used += amount

        txn = entry.transaction
        usage_details.append(
            {
                "transaction_id": txn.pk,
                "group_number": txn.group_number,
                "description": txn.description,
                "used_amount": amount,
                "transaction_date": txn.transaction_date,
                "status": txn.status,
            }
        )

    usage_details.sort(key=lambda d: d["transaction_date"], reverse=True)

    total = money(source.total_amount)
    used = money(used)
    remaining = total - used

    logger.info(
        "Funding usage tracked",
        extra={
            "source_transaction_id": source.pk,
            "group_number": source.group_number,
            "total_amount": str(total),
            "used_amount": str(used),
            "remaining_amount": str(remaining),
        },
    )

    return {
        "source_transaction": source,
        "total_amount": total,
        "used_amount": used,
        "remaining_amount": remaining,
        "usage_details": usage_details,
    }


def usage_totals(*, scope: OwnerScope, source_ids) -> dict[int, dict]:
    """
    Used amount + referencing entry count per source, in ONE grouped query.

    Returns {source_id: {"used_amount": Decimal, "usage_count": int}} with an
    entry for every requested id (zeros when unreferenced).
    """
    ids = [int(sid) for sid in source_ids]
    out = {sid: {"used_amount": ZERO, "usage_count": 0} for sid in ids}
    if not ids:
        return out

    rows = (
        _referencing_entries(scope=scope, source_ids=ids)
        .values("source_transaction_id")
        .annotate(
            used=Coalesce(
                Sum(_ONE_SIDED_AMOUNT),
                Value(ZERO),
                output_field=DecimalField(max_digits=14, decimal_places=2),
            ),
            usage_count=Count("id"),
            malformed=Count("id", filter=_MALFORMED_ENTRY),
        )
        .order_by()
    )

    for row in rows:
        if row["malformed"]:
            raise FundingIntegrityError(
                f"{row['malformed']} entries drawing on transaction "
                f"{row['source_transaction_id']} are not one-sided debit/credit lines"
            )
        out[row["source_transaction_id"]] = {
            "used_amount": money(row["used"]),
            "usage_count": row["usage_count"],
        }

    return out


# ============================================================
# FUNDING SOURCE FINDER
# ============================================================


def get_available_funding_sources(
    *,
    scope: OwnerScope,
    account_id=None,
) -> list[dict]:
    """
    Confirmed transactions that still have money left, largest first.
    """
    qs = _scoped_transactions(scope).filter(status=TransactionGroup.STATUS_CONFIRMED)

    if account_id is not None and account_id != "":
        try:
            account_id = int(account_id)
        except (TypeError, ValueError) as exc:
            raise FundingServiceError("account_id must be an integer") from exc
        qs = qs.filter(entries__account_id=account_id).distinct()

    candidates = list(
        qs.prefetch_related(
            Prefetch(
                "entries",
                queryset=TransactionEntry.objects.select_related("account").order_by(
                    "sequence"
                ),
            )
        )
    )

    usage = usage_totals(scope=scope, source_ids=[t.pk for t in candidates])

    sources: list[dict] = []
    for txn in candidates:
        total = money(txn.total_amount)
        used = usage[txn.pk]["used_amount"]
        available = total - used
        if available <= ZERO:
            continue

        entries = list(txn.entries.all())
        primary_account = entries[0].account if entries else None

        sources.append(
            {
                "transaction_id": txn.pk,
                "group_number": txn.group_number,
                "description": txn.description,
                "transaction_date": txn.transaction_date,
                "total_amount": total,
                "used_amount": used,
                "available_amount": available,
                "account_info": {
                    "account_id": primary_account.pk if primary_account else None,
                    "account_name": primary_account.name if primary_account else "",
                    "account_code": primary_account.code if primary_account else "",
                },
            }
        )

    sources.sort(key=lambda s: s["available_amount"], reverse=True)

    logger.info(
        "Available funding sources listed",
        extra={"owner_id": scope.owner_id, "count": len(sources)},
    )
    return sources


# ============================================================
# PROVENANCE
# ============================================================


def funding_ancestry(*, source_transaction_id, max_depth: int | None = None) -> set[int]:
    """
    Every transaction id `source_transaction_id` draws on, directly or transitively.

    Follows entries' source_transaction and funding_path of non-cancelled
    transactions. Raises FundingServiceError if the chain is deeper than
    max_depth hops (FUNDING_MAX_PATH_DEPTH by default).
    """
    if max_depth is None:
        max_depth = getattr(settings, "FUNDING_MAX_PATH_DEPTH", DEFAULT_MAX_PATH_DEPTH)

    start = int(source_transaction_id)
    seen: set[int] = set()
    frontier = {start}
    depth = 0

    while frontier:
        if depth >= max_depth:
            raise FundingServiceError(
                f"Funding provenance of transaction {start} exceeds {max_depth} hops"
            )

        rows = (
            TransactionEntry.objects.filter(transaction_id__in=frontier)
            .exclude(transaction__status=TransactionGroup.STATUS_CANCELLED)
            .values_list("source_transaction_id", "funding_path")
        )

        discovered: set[int] = set()
        for source_id, path in rows:
            if source_id is not None:
                discovered.add(int(source_id))
            for hop in path or []:
                try:
                    discovered.add(int(hop))
                except (TypeError, ValueError):
                    continue

        frontier = discovered - seen - {start}
        seen |= discovered
        depth += 1

    return seen


def _assert_no_cycle(*, target: TransactionGroup, source: TransactionGroup) -> None:
    if source.pk == target.pk:
        raise CircularFunding(
            f"Transaction {target.group_number} cannot fund itself"
        )

    if target.pk in funding_ancestry(source_transaction_id=source.pk):
        raise CircularFunding(
            f"Funding {target.group_number} from {source.group_number} would create a "
            f"circular funding chain"
        )


# ============================================================
# ALLOCATION WRITER
# ============================================================


@transaction.atomic
def create_funding_allocation(
    *,
    target_transaction_id,
    allocations,
    scope: OwnerScope,
) -> dict:
    """
    Attach funding sources to entries of a draft transaction.

    Rules:
    - target and source rows are locked (select_for_update, sources in id order)
      before remaining amounts are read, so check + write are atomic
    - draws on the same source within one call are accumulated
    - the target's own draws are excluded from usage, except on entries
      this call does not overwrite
    - each allocation amount must equal the amount of the entry it tags
    """
    requested = [
        FundingAllocation.from_raw(raw, index=i) for i, raw in enumerate(allocations or [])
    ]
    if not requested:
        raise FundingServiceError("At least one allocation is required")

    target = get_scoped_transaction(
        transaction_id=target_transaction_id,
        scope=scope,
        for_update=True,
        label="Target transaction",
    )

    if target.is_confirmed:
        raise ImmutableTransaction(
            f"Transaction {target.group_number} is confirmed; funding allocation is frozen"
        )
    if target.is_cancelled:
        raise ImmutableTransaction(
            f"Transaction {target.group_number} is cancelled; funding allocation is frozen"
        )

    entries = list(target.entries.select_for_update().order_by("sequence"))
    if not entries:
        raise FundingServiceError(
            f"Transaction {target.group_number} has no entries to allocate funding to"
        )

    source_ids = sorted({a.source_transaction_id for a in requested})
    locked_sources = {
        s.pk: s
        for s in _scoped_transactions(scope)
        .select_for_update()
        .filter(pk__in=source_ids)
        .order_by("pk")
    }
    missing = [sid for sid in source_ids if sid not in locked_sources]
    if missing:
        raise NotFoundOrForbidden(
            f"Source transaction {missing[0]} does not exist or is not accessible"
        )

    claimed: set[int] = set()
    for alloc in requested:
        if alloc.entry_index >= len(entries):
            raise FundingServiceError(
                f"entry_index {alloc.entry_index} is out of range for transaction "
                f"{target.group_number} ({len(entries)} entries)"
            )
        if alloc.entry_index in claimed:
            raise FundingServiceError(
                f"entry_index {alloc.entry_index} is allocated more than once in one request"
            )
        claimed.add(alloc.entry_index)

    # Draws the target keeps on entries this call does not overwrite.
    kept_draw: dict[int, Decimal] = defaultdict(lambda: ZERO)
    for index, entry in enumerate(entries):
        sid = entry.source_transaction_id
        if index in claimed or sid is None or sid == target.pk:
            continue
        kept_draw[sid] += entry_amount(entry)

    remaining_by_source: dict[int, Decimal] = {}
    drawn: dict[int, Decimal] = defaultdict(lambda: ZERO)
    touched: dict[int, TransactionEntry] = {}
    results: list[dict] = []

    for alloc in requested:
        sid = alloc.source_transaction_id
        source = locked_sources[sid]
        entry = entries[alloc.entry_index]

        _assert_no_cycle(target=target, source=source)

        if sid not in remaining_by_source:
            usage = track_funding_usage(
                source_transaction_id=sid,
                scope=scope,
                exclude_transaction_id=target.pk,
            )
            remaining_by_source[sid] = usage["remaining_amount"] - kept_draw[sid]

        available = remaining_by_source[sid] - drawn[sid]
        if alloc.amount > available:
            raise InsufficientFunds(
                requested=alloc.amount,
                available=available,
                source=source.group_number,
            )

        # usage counts the whole entry amount
        entry_total = entry_amount(entry)
        if alloc.amount != entry_total:
            raise FundingServiceError(
                f"Allocation amount {alloc.amount} does not match entry "
                f"{alloc.entry_index} amount {entry_total} of transaction {target.group_number}"
            )

        entry.source_transaction_id = sid
        entry.funding_path = [*(entry.funding_path or []), sid]
        touched[entry.pk] = entry

        drawn[sid] += alloc.amount

        results.append(
            {
                "source_transaction_id": sid,
                "amount": alloc.amount,
                "source_description": source.description,
                "remaining_amount": available - alloc.amount,
            }
        )

    for entry in touched.values():
        entry.save(update_fields=["source_transaction", "funding_path"])

    target.save(update_fields=["updated_at"])

    logger.info(
        "Funding allocation completed",
        extra={
            "target_transaction_id": target.pk,
            "group_number": target.group_number,
            "allocation_count": len(results),
        },
    )

    return {"success": True, "allocations": results}


# ============================================================
# FLOW ANALYZER
# ============================================================


def get_funding_flow_analysis(
    *,
    scope: OwnerScope,
    date_range: DateRange | None = None,
) -> dict:
    qs = _scoped_transactions(scope).filter(status=TransactionGroup.STATUS_CONFIRMED)
    if date_range is not None:
        start, end = date_range.bounds()
        qs = qs.filter(transaction_date__gte=start, transaction_date__lte=end)

    sources = list(qs)
    usage = usage_totals(scope=scope, source_ids=[t.pk for t in sources])

    total_funding = ZERO
    total_used = ZERO
    flow_details: list[dict] = []

    for txn in sources:
        total = money(txn.total_amount)
        used = usage[txn.pk]["used_amount"]

        total_funding += total
        total_used += used

        flow_details.append(
            {
                "source_transaction_id": txn.pk,
                "source_group_number": txn.group_number,
                "source_description": txn.description,
                "total_amount": total,
                "used_amount": used,
                "available_amount": total - used,
                "usage_count": usage[txn.pk]["usage_count"],
                "utilization_rate": percentage(used, total),
            }
        )

    flow_details.sort(key=lambda d: d["utilization_rate"], reverse=True)
    utilization = percentage(total_used, total_funding)

    logger.info(
        "Funding flow analysis completed",
        extra={
            "owner_id": scope.owner_id,
            "sources": len(sources),
            "utilization_rate": utilization,
        },
    )

    return {
        "total_funding_sources": len(sources),
        "total_funding_amount": money(total_funding),
        "total_used_amount": money(total_used),
        "total_available_amount": money(total_funding - total_used),
        "utilization_rate": utilization,
        "flow_details": flow_details,
    }


def get_funding_statistics(
    *,
    scope: OwnerScope,
    date_range: DateRange | None = None,
) -> dict:
    analysis = get_funding_flow_analysis(scope=scope, date_range=date_range)
    return {
        "total_sources": analysis["total_funding_sources"],
        "total_amount": analysis["total_funding_amount"],
        "used_amount": analysis["total_used_amount"],
        "available_amount": analysis["total_available_amount"],
        "utilization_rate": analysis["utilization_rate"],
    }


# ============================================================
# ALLOCATION VALIDATOR
# ============================================================


def validate_funding_allocation(*, transaction_id, scope: OwnerScope) -> dict:
    """
    Business-rule check of a transaction's declared funding.

    Raises only NotFoundOrForbidden (the transaction itself is not accessible).
    Everything else is collected into issues / recommendations.
    """
    txn = get_scoped_transaction(transaction_id=transaction_id, scope=scope)
    entries = list(txn.entries.order_by("sequence"))

    issues: list[str] = []
    recommendations: list[str] = []

    if not entries:
        issues.append(NO_ENTRIES_ISSUE)
        return {"is_valid": False, "issues": issues, "recommendations": recommendations}

    usage_cache: dict[int, dict] = {}
    own_draw: dict[int, Decimal] = defaultdict(lambda: ZERO)

    for position, entry in enumerate(entries, start=1):
        try:
            amount = entry_amount(entry)
        except FundingIntegrityError as exc:
            issues.append(f"Entry {position}: {exc}")
            continue

        sid = entry.source_transaction_id
        if sid is None:
            if amount > ZERO:
                recommendations.append(
                    f"Assign a funding source to entry {position} (amount: {amount}) "
                    "so it can be traced"
                )
            continue

        if sid == txn.pk:
            continue

        if sid not in usage_cache:
            try:
                usage_cache[sid] = track_funding_usage(
                    source_transaction_id=sid,
                    scope=scope,
                    exclude_transaction_id=txn.pk,
                )
            except FundingServiceError as exc:
                issues.append(f"Entry {position}: funding source check failed: {exc}")
                continue

        usage = usage_cache[sid]
        source = usage["source_transaction"]
        available = usage["remaining_amount"] - own_draw[sid]
        own_draw[sid] += amount

        if amount > available:
            issues.append(
                f"Entry {position} uses {amount} which exceeds the available amount "
                f"{available} of source {source.group_number}"
            )

        if source.status != TransactionGroup.STATUS_CONFIRMED:
            issues.append(
                f"Entry {position}: funding source {source.group_number} is not confirmed"
            )

    provenance_issue = _provenance_issue(txn=txn, entries=entries)
    if provenance_issue:
        issues.append(provenance_issue)

    is_valid = not issues

    logger.info(
        "Funding allocation validated",
        extra={
            "transaction_id": txn.pk,
            "group_number": txn.group_number,
            "is_valid": is_valid,
            "issue_count": len(issues),
        },
    )

    return {"is_valid": is_valid, "issues": issues, "recommendations": recommendations}


def _provenance_issue(*, txn: TransactionGroup, entries) -> str | None:
    direct: set[int] = set()
    for entry in entries:
        if entry.source_transaction_id is not None:
            direct.add(entry.source_transaction_id)
        for hop in entry.funding_path or []:
            try:
                direct.add(int(hop))
            except (TypeError, ValueError):
                continue

    if txn.pk in direct:
        return CIRCULAR_REFERENCE_ISSUE

    for sid in direct:
        try:
            if txn.pk in funding_ancestry(source_transaction_id=sid):
                return CIRCULAR_REFERENCE_ISSUE
        except FundingServiceError:
            logger.warning(
                "Funding provenance walk aborted during validation",
                extra={"transaction_id": txn.pk, "source_transaction_id": sid},
            )
            return PROVENANCE_TOO_DEEP_ISSUE

    return None
