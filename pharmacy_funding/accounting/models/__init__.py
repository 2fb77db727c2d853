# accounting/models/__init__.py

"""
ACCOUNTING MODELS PACKAGE EXPORTS

Note:
- Keep this file *imports-only* (no business logic).
- Do NOT import services from models anywhere (models must stay pure).
"""

from accounting.models.account import Account
from accounting.models.entry import TransactionEntry
from accounting.models.transaction import TransactionGroup

__all__ = [
    "Account",
    "TransactionGroup",
    "TransactionEntry",
]
