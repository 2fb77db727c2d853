# accounting/admin.py

from django.contrib import admin

from accounting.models.account import Account
from accounting.models.entry import TransactionEntry
from accounting.models.transaction import TransactionGroup

# ============================================================
# ACCOUNT
# ============================================================


@admin.register(Account)
class AccountAdmin(admin.ModelAdmin):
    list_display = (
        "code",
        "name",
        "account_type",
        "created_by",
        "organization_id",
        "is_active",
    )
    list_filter = ("account_type", "is_active")
    search_fields = ("code", "name", "organization_id")
    ordering = ("created_by", "code")
    readonly_fields = ("created_at", "updated_at")

    fieldsets = (
        (
            "Account Identity",
            {
                "fields": ("code", "name", "account_type"),
            },
        ),
        (
            "Ownership",
            {
                "fields": ("created_by", "organization_id"),
            },
        ),
        (
            "Status",
            {
                "fields": ("is_active",),
            },
        ),
        (
            "System Fields",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )


# ============================================================
# TRANSACTION ENTRIES (INLINE, FROZEN OUTSIDE DRAFTS)
# ============================================================


class TransactionEntryInline(admin.TabularInline):
    model = TransactionEntry
    fk_name = "transaction"
    extra = 0
    ordering = ("sequence",)
    fields = (
        "sequence",
        "account",
        "debit_amount",
        "credit_amount",
        "description",
        "source_transaction",
        "funding_path",
    )
    raw_id_fields = ("account", "source_transaction")

    def _is_frozen(self, obj):
        return obj is not None and not obj.is_draft

    def get_readonly_fields(self, request, obj=None):
        if self._is_frozen(obj):
            return self.fields
        return ("funding_path",)

    def has_add_permission(self, request, obj=None):
        return not self._is_frozen(obj)

    def has_delete_permission(self, request, obj=None):
        return not self._is_frozen(obj)


# ============================================================
# TRANSACTION GROUP
# ============================================================


@admin.register(TransactionGroup)
class TransactionGroupAdmin(admin.ModelAdmin):
    list_display = (
        "group_number",
        "description",
        "transaction_date",
        "status",
        "total_amount",
        "created_by",
        "organization_id",
    )
    list_filter = ("status", "transaction_date")
    search_fields = ("group_number", "description", "organization_id")
    ordering = ("-transaction_date",)
    inlines = [TransactionEntryInline]

    fieldsets = (
        (
            "Transaction",
            {
                "fields": ("group_number", "description", "transaction_date"),
            },
        ),
        (
            "Ownership",
            {
                "fields": ("created_by", "organization_id"),
            },
        ),
        (
            "Lifecycle",
            {
                "fields": (
                    "status",
                    "total_amount",
                    "confirmed_at",
                    "cancelled_at",
                    "cancel_reason",
                ),
            },
        ),
        (
            "System Fields",
            {
                "fields": ("version", "created_at", "updated_at"),
            },
        ),
    )

    def get_readonly_fields(self, request, obj=None):
        # Status transitions go through transaction_service only.
        base = (
            "status",
            "total_amount",
            "confirmed_at",
            "cancelled_at",
            "cancel_reason",
            "version",
            "created_at",
            "updated_at",
        )
        if obj is not None and not obj.is_draft:
            return base + (
                "group_number",
                "description",
                "transaction_date",
                "created_by",
                "organization_id",
            )
        return base

    def save_related(self, request, form, formsets, change):
        super().save_related(request, form, formsets, change)
        txn = form.instance
        if txn.is_draft:
            txn.recalculate_total()
            txn.save(update_fields=["total_amount"])

    def has_delete_permission(self, request, obj=None):
        return obj is None or obj.is_draft
