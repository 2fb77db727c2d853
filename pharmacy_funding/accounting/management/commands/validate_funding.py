# accounting/management/commands/validate_funding.py

from __future__ import annotations

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand, CommandError

from accounting.models.transaction import TransactionGroup
from accounting.services.funding_service import (
    get_funding_flow_analysis,
    validate_funding_allocation,
)
from accounting.services.scope import OwnerScope


class Command(BaseCommand):
    help = "Validate funding allocations (availability, confirmation, circular references) for one owner."

    def add_arguments(self, parser):
        parser.add_argument(
            "--user",
            dest="username",
            required=True,
            help="Username whose transactions are validated",
        )
        parser.add_argument(
            "--organization",
            dest="organization_id",
            help="Organization id narrowing the scope (optional)",
        )
        parser.add_argument(
            "--strict",
            action="store_true",
            help="Fail (non-zero exit) if any issue is found.",
        )

    def handle(self, *args, **options):
        User = get_user_model()
        username = options["username"]
        strict = bool(options.get("strict"))

        try:
            user = User.objects.get(**{User.USERNAME_FIELD: username})
        except User.DoesNotExist as exc:
            raise CommandError(f"User '{username}' does not exist") from exc

        scope = OwnerScope.for_user(user, organization_id=options.get("organization_id"))

        txn_ids = list(
            TransactionGroup.objects.filter(**scope.filter_kwargs())
            .exclude(status=TransactionGroup.STATUS_CANCELLED)
            .order_by("transaction_date", "pk")
            .values_list("pk", "group_number")
        )

        self.stdout.write(self.style.MIGRATE_HEADING("Funding Allocation Validation"))
        self.stdout.write(f"Owner: {username}")
        if scope.organization_id:
            self.stdout.write(f"Organization: {scope.organization_id}")
        self.stdout.write(f"Transactions checked: {len(txn_ids)}")
        self.stdout.write("")

        failures = 0
        recommendations = 0

        for pk, group_number in txn_ids:
            result = validate_funding_allocation(transaction_id=pk, scope=scope)
            recommendations += len(result["recommendations"])

            if result["is_valid"]:
                continue

            failures += 1
            self.stderr.write(self.style.ERROR(f"[FAIL] {group_number}"))
            for issue in result["issues"]:
                self.stderr.write(f"  - {issue}")

        if failures == 0:
            self.stdout.write(self.style.SUCCESS("[OK] Every funding allocation is valid"))

        if recommendations:
            self.stdout.write(
                self.style.WARNING(f"[INFO] {recommendations} entries have no funding source")
            )

        analysis = get_funding_flow_analysis(scope=scope)
        self.stdout.write("")
        self.stdout.write(
            f"Funding sources: {analysis['total_funding_sources']}  "
            f"total={analysis['total_funding_amount']}  "
            f"used={analysis['total_used_amount']}  "
            f"available={analysis['total_available_amount']}  "
            f"utilization={analysis['utilization_rate']}%"
        )

        self.stdout.write("")
        if failures == 0:
            self.stdout.write(self.style.SUCCESS("✅ FUNDING VALIDATION PASSED"))
        else:
            self.stderr.write(
                self.style.ERROR(f"❌ FUNDING VALIDATION FOUND ISSUES: {failures} transaction(s)")
            )

        return self._exit(strict and failures > 0)

    def _exit(self, fail: bool):
        if fail:
            raise SystemExit(1)
        return None
