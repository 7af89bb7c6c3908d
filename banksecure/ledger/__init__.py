"""
Ledger components.

AccountLedger owns balances, TransactionRecorder posts to them,
BudgetTracker and BillBook manage the owner's budgets and bills.
"""

from banksecure.ledger.accounts import ACCOUNT_UPDATABLE_FIELDS, AccountLedger
from banksecure.ledger.transactions import TransactionRecorder, newest_first
from banksecure.ledger.budgets import BUDGET_UPDATABLE_FIELDS, BudgetTracker
from banksecure.ledger.bills import BILL_UPDATABLE_FIELDS, BillBook

__all__ = [
    "ACCOUNT_UPDATABLE_FIELDS",
    "AccountLedger",
    "BILL_UPDATABLE_FIELDS",
    "BUDGET_UPDATABLE_FIELDS",
    "BillBook",
    "BudgetTracker",
    "TransactionRecorder",
    "newest_first",
]
