# accounting/services/money.py

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from accounting.services.exceptions import FundingIntegrityError, FundingServiceError

TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value) -> Decimal:
    if value is None or value == "":
        return ZERO

    if isinstance(value, Decimal):
        amt = value
    else:
        try:
            amt = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError) as exc:
            raise FundingServiceError(f"Invalid money value: {value!r}") from exc

    return amt.quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def to_number(amount: Decimal) -> float:
    """JSON-safe representation of a 2dp amount."""
    return float(money(amount))


def entry_amount(entry) -> Decimal:
    """
    The single non-zero side of a double-entry line.

    Works with model instances and with dicts carrying debit_amount/credit_amount.
    Both-zero and both-non-zero lines are data-integrity errors.
    """
    if isinstance(entry, dict):
        debit = money(entry.get("debit_amount"))
        credit = money(entry.get("credit_amount"))
    else:
        debit = money(getattr(entry, "debit_amount", None))
        credit = money(getattr(entry, "credit_amount", None))

    if debit > ZERO and credit > ZERO:
        raise FundingIntegrityError(
            f"Entry carries both debit {debit} and credit {credit}"
        )
    if debit == ZERO and credit == ZERO:
        raise FundingIntegrityError("Entry carries neither a debit nor a credit amount")
    if debit < ZERO or credit < ZERO:
        raise FundingIntegrityError("Entry amounts cannot be negative")

    return debit if debit > ZERO else credit


def percentage(part: Decimal, whole: Decimal) -> float:
    """part / whole * 100 rounded to 2dp; 0 when whole is 0."""
    if not whole:
        return 0.0
    rate = (Decimal(part) / Decimal(whole)) * Decimal("100")
    return float(rate.quantize(TWOPLACES, rounding=ROUND_HALF_UP))
