# accounting/models/entry.py

"""
======================================================
PATH: accounting/models/entry.py
======================================================
TRANSACTION ENTRY MODEL

One debit or credit line of a TransactionGroup.

Funding traceability:
- source_transaction: the funding source this line draws from (optional)
- funding_path: ordered list of source transaction ids (provenance chain)

Guarantees:
- Amounts are never negative
- Exactly one of debit_amount / credit_amount is non-zero
- A line never funds its own transaction
"""

from __future__ import annotations

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from accounting.models.account import Account
from accounting.models.transaction import TransactionGroup


class TransactionEntry(models.Model):
    transaction = models.ForeignKey(
        TransactionGroup,
        on_delete=models.CASCADE,
        related_name="entries",
    )

    sequence = models.PositiveIntegerField(
        default=0,
        help_text="0-based position of the line inside its transaction",
    )

    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name="transaction_entries",
    )

    debit_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
    )

    credit_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0.00"))],
    )

    description = models.CharField(max_length=255, blank=True, default="")

    source_transaction = models.ForeignKey(
        TransactionGroup,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="funded_entries",
        help_text="Funding source transaction this line draws from",
    )

    funding_path = models.JSONField(
        default=list,
        blank=True,
        help_text="Ordered source transaction ids (provenance chain)",
    )

    class Meta:
        ordering = ["transaction_id", "sequence"]
        indexes = [
            models.Index(fields=["source_transaction"], name="accounting__source__5f2a7d_idx"),
            models.Index(fields=["account"], name="accounting__account_1c9e4b_idx"),
            models.Index(fields=["transaction", "sequence"], name="accounting__transac_3b7d60_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["transaction", "sequence"],
                name="uniq_transaction_entry_sequence",
            ),
        ]
        verbose_name = "Transaction Entry"
        verbose_name_plural = "Transaction Entries"

    def __str__(self):
        side = "DR" if (self.debit_amount or 0) > 0 else "CR"
        amount = self.debit_amount if side == "DR" else self.credit_amount
        return f"{side} {amount} → {self.account_id}"

    def clean(self):
        debit = self.debit_amount or Decimal("0.00")
        credit = self.credit_amount or Decimal("0.00")

        if debit < 0 or credit < 0:
            raise ValidationError("Debit or credit cannot be negative")
        if debit > 0 and credit > 0:
            raise ValidationError("An entry cannot have both debit and credit")
        if debit == 0 and credit == 0:
            raise ValidationError("An entry must have either debit or credit")

        if (
            self.source_transaction_id is not None
            and self.source_transaction_id == self.transaction_id
        ):
            raise ValidationError(
                {"source_transaction": "An entry cannot use its own transaction as funding source"}
            )

        if self.funding_path is None:
            self.funding_path = []
        if not isinstance(self.funding_path, list):
            raise ValidationError({"funding_path": "funding_path must be a list"})

    def save(self, *args, **kwargs):
        self.full_clean()
        return super().save(*args, **kwargs)
