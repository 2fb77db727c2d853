# accounting/api/responses.py

"""
PATH: accounting/api/responses.py

Shared plumbing for accounting API views:
- request -> OwnerScope
- query params -> DateRange
- service dicts -> JSON-safe payloads (money as numbers)
- service errors -> {"detail": ...} responses with the right status
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from django.db import models
from django.utils.dateparse import parse_date, parse_datetime
from rest_framework import status
from rest_framework.response import Response

from accounting.services.exceptions import (
    AccountingServiceError,
    CircularFunding,
    FundingInUse,
    ImmutableTransaction,
    InsufficientFunds,
    NotFoundOrForbidden,
)
from accounting.services.funding_service import DateRange
from accounting.services.money import to_number
from accounting.services.scope import OwnerScope

# Most specific first.
ERROR_STATUS = (
    (NotFoundOrForbidden, status.HTTP_404_NOT_FOUND),
    (ImmutableTransaction, status.HTTP_409_CONFLICT),
    (FundingInUse, status.HTTP_409_CONFLICT),
    (InsufficientFunds, status.HTTP_400_BAD_REQUEST),
    (CircularFunding, status.HTTP_400_BAD_REQUEST),
    (AccountingServiceError, status.HTTP_400_BAD_REQUEST),
)


def error_response(exc: AccountingServiceError) -> Response:
    for exc_type, http_status in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return Response({"detail": str(exc)}, status=http_status)
    return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)


def forbidden(message: str) -> Response:
    return Response({"detail": message}, status=status.HTTP_403_FORBIDDEN)


def request_scope(request, data=None) -> OwnerScope:
    """
    Caller scope: authenticated user + optional organization_id
    (body first, then query string).
    """
    org = None
    if data is not None:
        org = data.get("organization_id")
    if not org:
        org = request.query_params.get("organization_id")
    return OwnerScope.for_user(request.user, organization_id=org or None)


def _parse_bound(raw: str):
    raw = str(raw).strip()
    # Date-only values must stay dates so the end bound covers the whole day.
    return parse_date(raw) or parse_datetime(raw)


def date_range_from_params(params) -> DateRange | None:
    """
    ?start_date=&end_date= (ISO date or datetime). Both or neither.

    Raises ValueError with a user-facing message on bad input.
    """
    start_raw = params.get("start_date")
    end_raw = params.get("end_date")

    if not start_raw and not end_raw:
        return None
    if not start_raw or not end_raw:
        raise ValueError("start_date and end_date must be provided together")

    try:
        start = _parse_bound(start_raw)
        end = _parse_bound(end_raw)
    except ValueError as exc:
        raise ValueError("Invalid start_date/end_date (expected ISO date)") from exc

    if start is None or end is None:
        raise ValueError("Invalid start_date/end_date (expected ISO date)")

    return DateRange(start=start, end=end)


def jsonable(value):
    """
    Service results -> JSON-safe structures.
    Decimals become 2dp numbers, datetimes ISO strings, models their pk.
    """
    if isinstance(value, dict):
        return {k: jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    if isinstance(value, Decimal):
        return to_number(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, models.Model):
        return value.pk
    return value
