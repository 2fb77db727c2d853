# accounting/services/exceptions.py

"""
ACCOUNTING SERVICE ERRORS

Centralized domain errors for accounting + funding services.
"""

from __future__ import annotations


class AccountingServiceError(Exception):
    """Base exception for all accounting service failures."""


class TransactionServiceError(AccountingServiceError):
    """Raised when a transaction group cannot be created or transitioned."""


class FundingServiceError(AccountingServiceError):
    """Base exception for funding tracking / allocation failures."""


class NotFoundOrForbidden(FundingServiceError):
    """Referenced transaction does not exist or is outside the caller's scope."""


class ImmutableTransaction(FundingServiceError):
    """Attempted to change funding on a transaction that is no longer a draft."""


class CircularFunding(FundingServiceError):
    """Allocation would make a transaction (transitively) fund itself."""


class FundingInUse(FundingServiceError):
    """A funding source is still referenced by non-cancelled transactions."""


class FundingIntegrityError(FundingServiceError):
    """An entry violates the one-sided debit/credit rule."""


class InsufficientFunds(FundingServiceError):
    """Requested allocation exceeds what remains on the funding source."""

    def __init__(self, *, requested, available, source: str):
        self.requested = requested
        self.available = available
        self.source = source
        super().__init__(
            f"Allocation amount {requested} exceeds available amount {available} "
            f"(source: {source})"
        )
