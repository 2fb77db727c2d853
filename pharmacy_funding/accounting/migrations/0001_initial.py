"""
======================================================
PATH: accounting/migrations/0001_initial.py
======================================================
MIGRATION: INITIAL FUNDING LEDGER SCHEMA

Creates:
- Account (owner-scoped)
- TransactionGroup (ledger event header + lifecycle)
- TransactionEntry (debit/credit lines with funding references)
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
import django.core.validators
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Account",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "organization_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        default=None,
                        max_length=64,
                        null=True,
                    ),
                ),
                ("code", models.CharField(max_length=10)),
                ("name", models.CharField(max_length=150)),
                (
                    "account_type",
                    models.CharField(
                        choices=[
                            ("ASSET", "Asset"),
                            ("LIABILITY", "Liability"),
                            ("EQUITY", "Equity"),
                            ("REVENUE", "Revenue"),
                            ("EXPENSE", "Expense"),
                        ],
                        max_length=20,
                    ),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="ledger_accounts",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Account",
                "verbose_name_plural": "Accounts",
                "ordering": ["code"],
                "indexes": [
                    models.Index(
                        fields=["created_by", "code"],
                        name="accounting__created_6b1f0e_idx",
                    ),
                    models.Index(
                        fields=["is_active"],
                        name="accounting__is_acti_4c2d9a_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("created_by", "code"),
                        name="uniq_account_owner_code",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("code", ""), _negated=True),
                        name="chk_account_code_not_blank",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("name", ""), _negated=True),
                        name="chk_account_name_not_blank",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="TransactionGroup",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "group_number",
                    models.CharField(
                        help_text="Human-readable sequence number (e.g. TXN-20240101-001)",
                        max_length=50,
                    ),
                ),
                (
                    "description",
                    models.TextField(
                        help_text="Narrative description of the transaction"
                    ),
                ),
                (
                    "transaction_date",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="Accounting effective date",
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("draft", "Draft"),
                            ("confirmed", "Confirmed"),
                            ("cancelled", "Cancelled"),
                        ],
                        db_index=True,
                        default="draft",
                        max_length=10,
                    ),
                ),
                (
                    "total_amount",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="Sum of debit entries (derived)",
                        max_digits=14,
                    ),
                ),
                (
                    "organization_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        default=None,
                        max_length=64,
                        null=True,
                    ),
                ),
                ("confirmed_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                (
                    "cancel_reason",
                    models.CharField(blank=True, default="", max_length=255),
                ),
                ("version", models.PositiveIntegerField(default=1)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "created_by",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transaction_groups",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Transaction Group",
                "verbose_name_plural": "Transaction Groups",
                "ordering": ["-transaction_date", "-created_at"],
                "indexes": [
                    models.Index(
                        fields=["created_by", "status"],
                        name="accounting__created_a7e3c1_idx",
                    ),
                    models.Index(
                        fields=["created_by", "organization_id"],
                        name="accounting__created_d05b2f_idx",
                    ),
                    models.Index(
                        fields=["transaction_date"],
                        name="accounting__transac_9e81b4_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("created_by", "organization_id", "group_number"),
                        name="uniq_transaction_group_number_per_scope",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("group_number", ""), _negated=True),
                        name="chk_transaction_group_number_not_blank",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("total_amount__gte", 0)),
                        name="chk_transaction_total_non_negative",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="TransactionEntry",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "sequence",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="0-based position of the line inside its transaction",
                    ),
                ),
                (
                    "debit_amount",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        max_digits=14,
                        validators=[
                            django.core.validators.MinValueValidator(Decimal("0.00"))
                        ],
                    ),
                ),
                (
                    "credit_amount",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        max_digits=14,
                        validators=[
                            django.core.validators.MinValueValidator(Decimal("0.00"))
                        ],
                    ),
                ),
                (
                    "description",
                    models.CharField(blank=True, default="", max_length=255),
                ),
                (
                    "funding_path",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="Ordered source transaction ids (provenance chain)",
                    ),
                ),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transaction_entries",
                        to="accounting.account",
                    ),
                ),
                (
                    "source_transaction",
                    models.ForeignKey(
                        blank=True,
                        help_text="Funding source transaction this line draws from",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="funded_entries",
                        to="accounting.transactiongroup",
                    ),
                ),
                (
                    "transaction",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="entries",
                        to="accounting.transactiongroup",
                    ),
                ),
            ],
            options={
                "verbose_name": "Transaction Entry",
                "verbose_name_plural": "Transaction Entries",
                "ordering": ["transaction_id", "sequence"],
                "indexes": [
                    models.Index(
                        fields=["source_transaction"],
                        name="accounting__source__5f2a7d_idx",
                    ),
                    models.Index(
                        fields=["account"],
                        name="accounting__account_1c9e4b_idx",
                    ),
                    models.Index(
                        fields=["transaction", "sequence"],
                        name="accounting__transac_3b7d60_idx",
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("transaction", "sequence"),
                        name="uniq_transaction_entry_sequence",
                    ),
                ],
            },
        ),
    ]
