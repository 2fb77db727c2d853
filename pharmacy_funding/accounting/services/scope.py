# accounting/services/scope.py

"""
OWNER SCOPE

Every funding / transaction operation receives the caller's scope explicitly.
Nothing here reads request or thread-local state.
"""

from __future__ import annotations

from dataclasses import dataclass

from accounting.services.exceptions import NotFoundOrForbidden


@dataclass(frozen=True)
class OwnerScope:
    """
    Caller context for a funding operation.

    - owner_id: id of the user who owns the documents
    - organization_id: optional organization key narrowing the scope further
    """

    owner_id: int
    organization_id: str | None = None

    @staticmethod
    def for_user(user, organization_id: str | None = None) -> "OwnerScope":
        if user is None or getattr(user, "pk", None) is None:
            raise NotFoundOrForbidden("A persisted user is required to build a scope")

        org = (str(organization_id).strip() or None) if organization_id is not None else None
        return OwnerScope(owner_id=user.pk, organization_id=org)

    def filter_kwargs(self, prefix: str = "") -> dict:
        """
        ORM filter kwargs restricting a queryset to this scope.

        prefix lets callers scope a related model, e.g. prefix="transaction__".
        """
        kwargs = {f"{prefix}created_by_id": self.owner_id}
        if self.organization_id:
            kwargs[f"{prefix}organization_id"] = self.organization_id
        return kwargs
