# accounting/models/transaction.py

"""
======================================================
PATH: accounting/models/transaction.py
======================================================
TRANSACTION GROUP MODEL

A ledger event (header) owning an ordered list of TransactionEntry lines.

Lifecycle:
- draft      -> entries and funding references may change
- confirmed  -> funding references are frozen
- cancelled  -> excluded from every funding usage calculation

Guarantees:
- total_amount mirrors the sum of debit entries (see recalculate_total)
- version is bumped on every save of an existing row
- group_number is unique per owner + organization
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q, Sum
from django.utils import timezone


class TransactionGroup(models.Model):
    STATUS_DRAFT = "draft"
    STATUS_CONFIRMED = "confirmed"
    STATUS_CANCELLED = "cancelled"

    STATUS_CHOICES = [
        (STATUS_DRAFT, "Draft"),
        (STATUS_CONFIRMED, "Confirmed"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    group_number = models.CharField(
        max_length=50,
        help_text="Human-readable sequence number (e.g. TXN-20240101-001)",
    )

    description = models.TextField(help_text="Narrative description of the transaction")

    transaction_date = models.DateTimeField(
        default=timezone.now,
        help_text="Accounting effective date",
    )

    status = models.CharField(
        max_length=10,
        choices=STATUS_CHOICES,
        default=STATUS_DRAFT,
        db_index=True,
    )

    total_amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Sum of debit entries (derived)",
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="transaction_groups",
    )

    organization_id = models.CharField(
        max_length=64,
        blank=True,
        null=True,
        default=None,
        db_index=True,
    )

    confirmed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancel_reason = models.CharField(max_length=255, blank=True, default="")

    version = models.PositiveIntegerField(default=1)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-transaction_date", "-created_at"]
        indexes = [
            models.Index(fields=["created_by", "status"], name="accounting__created_a7e3c1_idx"),
            models.Index(
                fields=["created_by", "organization_id"],
                name="accounting__created_d05b2f_idx",
            ),
            models.Index(fields=["transaction_date"], name="accounting__transac_9e81b4_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["created_by", "organization_id", "group_number"],
                name="uniq_transaction_group_number_per_scope",
            ),
            models.CheckConstraint(
                condition=~Q(group_number=""),
                name="chk_transaction_group_number_not_blank",
            ),
            models.CheckConstraint(
                condition=Q(total_amount__gte=0),
                name="chk_transaction_total_non_negative",
            ),
        ]
        verbose_name = "Transaction Group"
        verbose_name_plural = "Transaction Groups"

    def __str__(self):
        return f"{self.group_number} ({self.status})"

    @property
    def is_draft(self) -> bool:
        return self.status == self.STATUS_DRAFT

    @property
    def is_confirmed(self) -> bool:
        return self.status == self.STATUS_CONFIRMED

    @property
    def is_cancelled(self) -> bool:
        return self.status == self.STATUS_CANCELLED

    def clean(self):
        self.group_number = (self.group_number or "").strip()
        if not self.group_number:
            raise ValidationError({"group_number": "group_number is required"})

        self.description = (self.description or "").strip()
        if not self.description:
            raise ValidationError({"description": "description is required"})

        if self.organization_id is not None:
            self.organization_id = str(self.organization_id).strip() or None

        if self.transaction_date and timezone.is_naive(self.transaction_date):
            self.transaction_date = timezone.make_aware(
                self.transaction_date, timezone.get_current_timezone()
            )

    def recalculate_total(self) -> Decimal:
        """
        Recompute total_amount from stored debit entries (does not save).
        """
        total = self.entries.aggregate(total=Sum("debit_amount"))["total"]
        self.total_amount = (total or Decimal("0.00")).quantize(Decimal("0.01"))
        return self.total_amount

    def save(self, *args, **kwargs):
        if self.pk and not self._state.adding:
            self.version = (self.version or 0) + 1
            update_fields = kwargs.get("update_fields")
            if update_fields is not None:
                kwargs["update_fields"] = {*update_fields, "version", "updated_at"}

        self.full_clean()
        return super().save(*args, **kwargs)
