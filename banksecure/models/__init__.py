"""
Data Models Package

This package contains all Pydantic models used by the ledger core.
All data flowing through the system must conform to these schemas.
"""

from banksecure.models.ledger import (
    CREDIT_TYPES,
    DEBIT_TYPES,
    Account,
    AccountCreate,
    AccountType,
    AccountUpdate,
    Bill,
    BillCreate,
    BillUpdate,
    Budget,
    BudgetCategory,
    BudgetCreate,
    BudgetUpdate,
    Transaction,
    TransactionDraft,
    TransactionType,
    ValidationIssue,
    mask_account_number,
    utcnow,
)
from banksecure.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from banksecure.models.reports import (
    AccountReconciliation,
    BudgetStatus,
    MonthlySummary,
)

__all__ = [
    # Ledger models
    "CREDIT_TYPES",
    "DEBIT_TYPES",
    "Account",
    "AccountCreate",
    "AccountType",
    "AccountUpdate",
    "Bill",
    "BillCreate",
    "BillUpdate",
    "Budget",
    "BudgetCategory",
    "BudgetCreate",
    "BudgetUpdate",
    "Transaction",
    "TransactionDraft",
    "TransactionType",
    "ValidationIssue",
    "mask_account_number",
    "utcnow",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Reports
    "AccountReconciliation",
    "BudgetStatus",
    "MonthlySummary",
]
