# accounting/api/views/funding.py

"""
PATH: accounting/api/views/funding.py

FUNDING API (ALLOCATION & TRACEABILITY)

GET  /api/accounting/funding/sources/?account_id=
GET  /api/accounting/funding/usage/<id>/
POST /api/accounting/funding/allocations/
GET  /api/accounting/funding/flow-analysis/?start_date=&end_date=
GET  /api/accounting/funding/statistics/?start_date=&end_date=
GET  /api/accounting/funding/validate/<id>/

Permissions:
- reads require accounting.view_transactiongroup
- allocation requires accounting.change_transactiongroup

Scope:
- always the authenticated user (+ optional organization_id)
- out-of-scope ids answer 404, never 403, so existence does not leak
"""

from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.generics import GenericAPIView
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounting.api.responses import (
    date_range_from_params,
    error_response,
    forbidden,
    jsonable,
    request_scope,
)
from accounting.api.serializers.funding import FundingAllocationCreateSerializer
from accounting.services import funding_service
from accounting.services.exceptions import AccountingServiceError

FUNDING_VIEW_PERMISSION = "accounting.view_transactiongroup"
FUNDING_ALLOCATE_PERMISSION = "accounting.change_transactiongroup"

ORGANIZATION_PARAM = OpenApiParameter(
    name="organization_id",
    type=str,
    location=OpenApiParameter.QUERY,
    required=False,
    description="Optional organization key narrowing the caller's scope.",
)

DATE_RANGE_PARAMS = [
    OpenApiParameter(
        name="start_date",
        type=str,
        location=OpenApiParameter.QUERY,
        required=False,
        description="ISO date (YYYY-MM-DD) or datetime. Requires end_date.",
    ),
    OpenApiParameter(
        name="end_date",
        type=str,
        location=OpenApiParameter.QUERY,
        required=False,
        description="ISO date (YYYY-MM-DD) or datetime, inclusive. Requires start_date.",
    ),
]


def _can_view(request) -> bool:
    return request.user.has_perm(FUNDING_VIEW_PERMISSION)


@extend_schema(
    tags=["funding"],
    parameters=[
        OpenApiParameter(
            name="account_id",
            type=int,
            location=OpenApiParameter.QUERY,
            required=False,
            description="Only sources with at least one entry on this account.",
        ),
        ORGANIZATION_PARAM,
    ],
    responses={200: dict},
)
class FundingSourcesView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        if not _can_view(request):
            return forbidden("You do not have permission to view funding sources.")

        try:
            sources = funding_service.get_available_funding_sources(
                scope=request_scope(request),
                account_id=request.query_params.get("account_id") or None,
            )
        except AccountingServiceError as exc:
            return error_response(exc)

        return Response(jsonable(sources), status=status.HTTP_200_OK)


@extend_schema(tags=["funding"], parameters=[ORGANIZATION_PARAM], responses={200: dict})
class FundingUsageView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, transaction_id: int):
        if not _can_view(request):
            return forbidden("You do not have permission to view funding usage.")

        try:
            usage = funding_service.track_funding_usage(
                source_transaction_id=transaction_id,
                scope=request_scope(request),
            )
        except AccountingServiceError as exc:
            return error_response(exc)

        source = usage.pop("source_transaction")
        usage["source_transaction"] = {
            "id": source.pk,
            "group_number": source.group_number,
            "description": source.description,
            "status": source.status,
            "transaction_date": source.transaction_date,
        }
        return Response(jsonable(usage), status=status.HTTP_200_OK)


class FundingAllocationView(GenericAPIView):
    permission_classes = [IsAuthenticated]
    serializer_class = FundingAllocationCreateSerializer

    @extend_schema(
        tags=["funding"],
        request=FundingAllocationCreateSerializer,
        responses={201: dict, 400: dict, 403: dict, 404: dict, 409: dict},
    )
    def post(self, request, *args, **kwargs):
        if not request.user.has_perm(FUNDING_ALLOCATE_PERMISSION):
            return forbidden("You do not have permission to allocate funding.")

        s = self.get_serializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data

        try:
            result = funding_service.create_funding_allocation(
                target_transaction_id=data["target_transaction_id"],
                allocations=[dict(a) for a in data["allocations"]],
                scope=request_scope(request, data),
            )
        except AccountingServiceError as exc:
            return error_response(exc)

        return Response(jsonable(result), status=status.HTTP_201_CREATED)


@extend_schema(
    tags=["funding"],
    parameters=[*DATE_RANGE_PARAMS, ORGANIZATION_PARAM],
    responses={200: dict},
)
class FundingFlowAnalysisView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        if not _can_view(request):
            return forbidden("You do not have permission to view funding analysis.")

        try:
            date_range = date_range_from_params(request.query_params)
        except ValueError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        try:
            analysis = funding_service.get_funding_flow_analysis(
                scope=request_scope(request),
                date_range=date_range,
            )
        except AccountingServiceError as exc:
            return error_response(exc)

        return Response(jsonable(analysis), status=status.HTTP_200_OK)


@extend_schema(
    tags=["funding"],
    parameters=[*DATE_RANGE_PARAMS, ORGANIZATION_PARAM],
    responses={200: dict},
)
class FundingStatisticsView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        if not _can_view(request):
            return forbidden("You do not have permission to view funding statistics.")

        try:
            date_range = date_range_from_params(request.query_params)
        except ValueError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        try:
            stats = funding_service.get_funding_statistics(
                scope=request_scope(request),
                date_range=date_range,
            )
        except AccountingServiceError as exc:
            return error_response(exc)

        return Response(jsonable(stats), status=status.HTTP_200_OK)


@extend_schema(tags=["funding"], parameters=[ORGANIZATION_PARAM], responses={200: dict})
class FundingValidationView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, transaction_id: int):
        if not _can_view(request):
            return forbidden("You do not have permission to validate funding.")

        try:
            result = funding_service.validate_funding_allocation(
                transaction_id=transaction_id,
                scope=request_scope(request),
            )
        except AccountingServiceError as exc:
            return error_response(exc)

        return Response(jsonable(result), status=status.HTTP_200_OK)
