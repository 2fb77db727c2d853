# accounting/tests/utils.py

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.contrib.auth.models import Permission
from django.utils import timezone

from accounting.models.account import Account
from accounting.models.entry import TransactionEntry
from accounting.models.transaction import TransactionGroup
from accounting.services.scope import OwnerScope

User = get_user_model()

BASE_DATE = timezone.make_aware(datetime(2024, 3, 1, 9, 0, 0))


def make_user(username: str, *, perms: tuple[str, ...] = ()):
    user = User.objects.create_user(username=username, password="pass12345")
    for codename in perms:
        user.user_permissions.add(
            Permission.objects.get(content_type__app_label="accounting", codename=codename)
        )
    # Reload to drop the cached permission set.
    return User.objects.get(pk=user.pk)


def scope_for(user, organization_id=None) -> OwnerScope:
    return OwnerScope.for_user(user, organization_id=organization_id)


def make_accounts(user, organization_id=None):
    cash = Account.objects.create(
        created_by=user,
        organization_id=organization_id,
        code="1000",
        name="Cash",
        account_type=Account.ASSET,
    )
    grants = Account.objects.create(
        created_by=user,
        organization_id=organization_id,
        code="4000",
        name="Grant Income",
        account_type=Account.REVENUE,
    )
    return cash, grants


def make_source(
    user,
    number: str,
    amount,
    *,
    debit_account,
    credit_account,
    status=TransactionGroup.STATUS_CONFIRMED,
    days: int = 0,
    organization_id=None,
) -> TransactionGroup:
    """A balanced two-line transaction with no funding references."""
    amount = Decimal(str(amount))
    txn = TransactionGroup.objects.create(
        group_number=number,
        description=f"Funding {number}",
        transaction_date=BASE_DATE + timedelta(days=days),
        status=status,
        total_amount=amount,
        created_by=user,
        organization_id=organization_id,
    )
    TransactionEntry.objects.create(
        transaction=txn, sequence=0, account=debit_account, debit_amount=amount
    )
    TransactionEntry.objects.create(
        transaction=txn, sequence=1, account=credit_account, credit_amount=amount
    )
    return txn


def make_funded(
    user,
    number: str,
    amount,
    *,
    source: TransactionGroup | None,
    debit_account,
    credit_account,
    status=TransactionGroup.STATUS_CONFIRMED,
    days: int = 1,
    organization_id=None,
) -> TransactionGroup:
    """
    A balanced transaction whose debit line draws `amount` from `source`.
    source=None leaves the debit line unfunded (a draft waiting for allocation).
    """
    amount = Decimal(str(amount))
    txn = TransactionGroup.objects.create(
        group_number=number,
        description=f"Spend {number}",
        transaction_date=BASE_DATE + timedelta(days=days),
        status=status,
        total_amount=amount,
        created_by=user,
        organization_id=organization_id,
    )
    TransactionEntry.objects.create(
        transaction=txn,
        sequence=0,
        account=debit_account,
        debit_amount=amount,
        source_transaction=source,
        funding_path=[source.pk] if source is not None else [],
    )
    TransactionEntry.objects.create(
        transaction=txn, sequence=1, account=credit_account, credit_amount=amount
    )
    return txn
