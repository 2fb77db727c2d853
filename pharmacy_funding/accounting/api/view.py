# PATH: accounting/api/view.py

"""
PATH: accounting/api/view.py

TRANSACTION API VIEWSET

GET  /api/accounting/transactions/                 list (filterable, paginated)
POST /api/accounting/transactions/                 create (draft or confirmed)
GET  /api/accounting/transactions/<id>/            detail with entries
PUT  /api/accounting/transactions/<id>/entries/    replace entries of a draft
POST /api/accounting/transactions/<id>/confirm/    draft -> confirmed
POST /api/accounting/transactions/<id>/cancel/     -> cancelled (refused while funding others)
GET  /api/accounting/transactions/<id>/balance/    confirmed balance view

Security rules:
- reads require accounting.view_transactiongroup
- create requires accounting.add_transactiongroup
- lifecycle + entry edits require accounting.change_transactiongroup
- queryset is ALWAYS the caller's scope; other owners' rows answer 404

Writes never touch the ORM directly; they go through transaction_service.
"""

from django.db.models import Prefetch
from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import mixins, status
from rest_framework.decorators import action
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from accounting.api.filters import TransactionGroupFilter
from accounting.api.responses import error_response, forbidden, jsonable, request_scope
from accounting.api.serializers import (
    TransactionCancelSerializer,
    TransactionCreateSerializer,
    TransactionEntriesUpdateSerializer,
    TransactionGroupSerializer,
)
from accounting.models.entry import TransactionEntry
from accounting.models.transaction import TransactionGroup
from accounting.services import transaction_service
from accounting.services.exceptions import AccountingServiceError

VIEW_PERMISSION = "accounting.view_transactiongroup"
ADD_PERMISSION = "accounting.add_transactiongroup"
CHANGE_PERMISSION = "accounting.change_transactiongroup"


@extend_schema(
    tags=["accounting"],
    parameters=[
        OpenApiParameter(
            name="organization_id",
            type=str,
            required=False,
            description="Optional organization key narrowing the caller's scope.",
        ),
    ],
)
class TransactionGroupViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    GenericViewSet,
):
    permission_classes = [IsAuthenticated]
    serializer_class = TransactionGroupSerializer
    filter_backends = [DjangoFilterBackend]
    filterset_class = TransactionGroupFilter
    http_method_names = ["get", "post", "put", "head", "options"]

    queryset = TransactionGroup.objects.prefetch_related(
        Prefetch(
            "entries",
            queryset=TransactionEntry.objects.select_related(
                "account", "source_transaction"
            ).order_by("sequence"),
        )
    )

    def get_queryset(self):
        if not self.request.user.has_perm(VIEW_PERMISSION):
            raise PermissionDenied("You do not have permission to view transactions.")

        scope = request_scope(self.request)
        return super().get_queryset().filter(**scope.filter_kwargs())

    def get_serializer_class(self):
        if self.action == "create":
            return TransactionCreateSerializer
        if self.action == "cancel":
            return TransactionCancelSerializer
        if self.action == "entries":
            return TransactionEntriesUpdateSerializer
        return TransactionGroupSerializer

    def _reload(self, txn: TransactionGroup) -> dict:
        fresh = self.queryset.get(pk=txn.pk)
        return TransactionGroupSerializer(fresh).data

    @extend_schema(
        request=TransactionCreateSerializer,
        responses={201: TransactionGroupSerializer, 400: dict, 403: dict, 404: dict},
    )
    def create(self, request, *args, **kwargs):
        if not request.user.has_perm(ADD_PERMISSION):
            return forbidden("You do not have permission to create transactions.")

        s = TransactionCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data

        try:
            txn = transaction_service.create_transaction_group(
                scope=request_scope(request, data),
                group_number=data["group_number"],
                description=data["description"],
                transaction_date=data.get("transaction_date"),
                entries=[dict(e) for e in data["entries"]],
                status=data["status"],
            )
        except AccountingServiceError as exc:
            return error_response(exc)

        return Response(self._reload(txn), status=status.HTTP_201_CREATED)

    @extend_schema(
        request=TransactionEntriesUpdateSerializer,
        responses={200: TransactionGroupSerializer, 400: dict, 404: dict},
    )
    @action(detail=True, methods=["put"])
    def entries(self, request, pk=None):
        if not request.user.has_perm(CHANGE_PERMISSION):
            return forbidden("You do not have permission to edit transactions.")

        s = TransactionEntriesUpdateSerializer(data=request.data)
        s.is_valid(raise_exception=True)

        try:
            txn = transaction_service.update_transaction_entries(
                transaction_id=pk,
                scope=request_scope(request),
                entries=[dict(e) for e in s.validated_data["entries"]],
            )
        except AccountingServiceError as exc:
            return error_response(exc)

        return Response(self._reload(txn), status=status.HTTP_200_OK)

    @extend_schema(request=None, responses={200: TransactionGroupSerializer, 400: dict, 404: dict})
    @action(detail=True, methods=["post"])
    def confirm(self, request, pk=None):
        if not request.user.has_perm(CHANGE_PERMISSION):
            return forbidden("You do not have permission to confirm transactions.")

        try:
            txn = transaction_service.confirm_transaction_group(
                transaction_id=pk,
                scope=request_scope(request),
            )
        except AccountingServiceError as exc:
            return error_response(exc)

        return Response(self._reload(txn), status=status.HTTP_200_OK)

    @extend_schema(
        request=TransactionCancelSerializer,
        responses={200: TransactionGroupSerializer, 400: dict, 404: dict, 409: dict},
    )
    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        if not request.user.has_perm(CHANGE_PERMISSION):
            return forbidden("You do not have permission to cancel transactions.")

        s = TransactionCancelSerializer(data=request.data)
        s.is_valid(raise_exception=True)

        try:
            txn = transaction_service.cancel_transaction_group(
                transaction_id=pk,
                scope=request_scope(request),
                reason=s.validated_data.get("reason", ""),
            )
        except AccountingServiceError as exc:
            return error_response(exc)

        return Response(self._reload(txn), status=status.HTTP_200_OK)

    @extend_schema(responses={200: dict, 400: dict, 404: dict})
    @action(detail=True, methods=["get"])
    def balance(self, request, pk=None):
        if not request.user.has_perm(VIEW_PERMISSION):
            return forbidden("You do not have permission to view transactions.")

        try:
            result = transaction_service.calculate_transaction_balance(
                transaction_id=pk,
                scope=request_scope(request),
            )
        except AccountingServiceError as exc:
            return error_response(exc)

        return Response(jsonable(result), status=status.HTTP_200_OK)
