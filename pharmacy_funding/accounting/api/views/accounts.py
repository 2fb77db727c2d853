# accounting/api/views/accounts.py

"""
PATH: accounting/api/views/accounts.py

OWNER ACCOUNTS API (READ-ONLY)

GET /api/accounting/accounts/
Returns the caller's active accounts (optionally one organization's), read-only.

- Permission-gated: requires accounting.view_account
- Never lists another user's accounts
"""

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.generics import GenericAPIView
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from accounting.api.responses import forbidden
from accounting.api.serializers.accounts import AccountListSerializer
from accounting.models.account import Account


class OwnerAccountsView(GenericAPIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        tags=["accounting"],
        responses=AccountListSerializer(many=True),
    )
    def get(self, request, *args, **kwargs):
        if not request.user.has_perm("accounting.view_account"):
            return forbidden("You do not have permission to view accounts.")

        qs = Account.objects.filter(created_by=request.user, is_active=True)

        org = (request.query_params.get("organization_id") or "").strip()
        if org:
            qs = qs.filter(organization_id=org)

        return Response(
            AccountListSerializer(qs.order_by("code"), many=True).data,
            status=status.HTTP_200_OK,
        )
