"""
Audit Models for the Ledger Core

Every significant action on the ledger is logged for audit purposes.
This provides:
1. Complete traceability of every balance movement
2. Debugging information when a posting is rejected
3. Accountability for changes to bills and budgets

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from banksecure.models.ledger import (
    Account,
    Bill,
    Budget,
    Transaction,
    UtcDatetime,
    utcnow,
)


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Accounts
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"
    BALANCE_ADJUSTED = "balance_adjusted"

    # Postings
    TRANSACTION_POSTED = "transaction_posted"
    TRANSACTION_REVERSED = "transaction_reversed"
    TRANSFER_POSTED = "transfer_posted"
    POSTING_REJECTED = "posting_rejected"
    POSTING_FAILED = "posting_failed"

    # Access control
    ACCESS_DENIED = "access_denied"

    # Budgets
    BUDGET_CREATED = "budget_created"
    BUDGET_UPDATED = "budget_updated"
    BUDGET_RECOMPUTED = "budget_recomputed"

    # Bills
    BILL_CREATED = "bill_created"
    BILL_UPDATED = "bill_updated"
    BILL_DELETED = "bill_deleted"
    BILL_PAID = "bill_paid"

    # Reporting
    RECONCILIATION_DRIFT = "reconciliation_drift"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every mutation and every rejected request creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: UtcDatetime = Field(
        default_factory=utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about, and whose is it?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'transaction', 'budget')"
    )
    entity_id: Optional[int] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    user_id: Optional[int] = Field(
        default=None,
        description="Owner on whose behalf the action was taken"
    )

    # Correlation - for tracking related events (e.g., both legs of a transfer)
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         user_id, correlation_id, description, details_json, error_code,
         error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id is not None else "",
            str(self.user_id) if self.user_id is not None else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_code or "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_posted(transaction, correlation_id)
        event = AuditEventBuilder.access_denied("account", 7, user_id=3)
    """

    @staticmethod
    def account_created(account: Account) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_CREATED,
            entity_type="account",
            entity_id=account.id,
            user_id=account.user_id,
            description=f"Account opened: {account.name} ({account.type.value})",
            details={
                "account_type": account.type.value,
                "opening_balance": str(account.opening_balance),
            },
        )

    @staticmethod
    def account_updated(account: Account, fields: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_UPDATED,
            entity_type="account",
            entity_id=account.id,
            user_id=account.user_id,
            description=f"Account updated: {', '.join(fields)}",
            details={"fields": fields},
        )

    @staticmethod
    def balance_adjusted(
        account: Account,
        delta: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_ADJUSTED,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            entity_id=account.id,
            user_id=account.user_id,
            description=f"Balance adjusted directly by {delta}",
            details={
                "delta": delta,
                "new_balance": str(account.balance),
            },
        )

    @staticmethod
    def transaction_posted(
        transaction: Transaction,
        balance: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_POSTED,
            entity_type="transaction",
            entity_id=transaction.id,
            user_id=transaction.user_id,
            correlation_id=correlation_id,
            description=(
                f"Posted {transaction.type.value} of {transaction.amount} "
                f"to account {transaction.account_id}"
            ),
            details={
                "account_id": transaction.account_id,
                "type": transaction.type.value,
                "amount": str(transaction.amount),
                "signed_amount": str(transaction.signed_amount),
                "balance_after": balance,
            },
        )

    @staticmethod
    def transaction_reversed(
        original: Transaction,
        reversal: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_REVERSED,
            entity_type="transaction",
            entity_id=original.id,
            user_id=original.user_id,
            correlation_id=correlation_id,
            description=f"Transaction {original.id} reversed by {reversal.id}",
            details={
                "reversal_id": reversal.id,
                "amount": str(original.amount),
            },
        )

    @staticmethod
    def transfer_posted(
        debit: Transaction,
        credit: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_POSTED,
            entity_type="transaction",
            entity_id=debit.id,
            user_id=debit.user_id,
            correlation_id=correlation_id,
            description=(
                f"Transferred {debit.amount} from account {debit.account_id} "
                f"to account {credit.account_id}"
            ),
            details={
                "debit_id": debit.id,
                "credit_id": credit.id,
                "amount": str(debit.amount),
            },
        )

    @staticmethod
    def posting_rejected(
        account_id: Optional[int],
        user_id: Optional[int],
        reason: str,
        issues: Optional[list[dict]] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.POSTING_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="account",
            entity_id=account_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Posting rejected: {reason}"[:500],
            details={"issues": issues or []},
        )

    @staticmethod
    def posting_failed(
        account_ids: list[int],
        user_id: int,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.POSTING_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="account",
            entity_id=account_ids[0] if account_ids else None,
            user_id=user_id,
            correlation_id=correlation_id,
            description="Posting could not be committed",
            details={"account_ids": account_ids},
            error_code="consistency_error",
            error_message=error_message,
        )

    @staticmethod
    def access_denied(
        entity_type: str,
        entity_id: int,
        user_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCESS_DENIED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Access denied to {entity_type} {entity_id}",
            error_code="access_denied",
        )

    @staticmethod
    def budget_created(budget: Budget) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_CREATED,
            entity_type="budget",
            entity_id=budget.id,
            user_id=budget.user_id,
            description=(
                f"Budget created: {budget.category.value} "
                f"{budget.month:02d}/{budget.year}"
            ),
            details={"amount": str(budget.amount)},
        )

    @staticmethod
    def budget_updated(budget: Budget, fields: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_UPDATED,
            entity_type="budget",
            entity_id=budget.id,
            user_id=budget.user_id,
            description=f"Budget updated: {', '.join(fields)}",
            details={
                "fields": fields,
                "spent": str(budget.spent),
            },
        )

    @staticmethod
    def budget_recomputed(budget: Budget, previous_spent: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_RECOMPUTED,
            entity_type="budget",
            entity_id=budget.id,
            user_id=budget.user_id,
            description="Budget spend re-derived from transactions",
            details={
                "previous_spent": previous_spent,
                "spent": str(budget.spent),
            },
        )

    @staticmethod
    def bill_created(bill: Bill) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_CREATED,
            entity_type="bill",
            entity_id=bill.id,
            user_id=bill.user_id,
            description=f"Bill created: {bill.name} - {bill.amount}",
            details={
                "amount": str(bill.amount),
                "due_date": bill.due_date.isoformat(),
            },
        )

    @staticmethod
    def bill_updated(bill: Bill, fields: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_UPDATED,
            entity_type="bill",
            entity_id=bill.id,
            user_id=bill.user_id,
            description=f"Bill updated: {', '.join(fields)}",
            details={"fields": fields},
        )

    @staticmethod
    def bill_deleted(bill_id: int, user_id: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_DELETED,
            entity_type="bill",
            entity_id=bill_id,
            user_id=user_id,
            description=f"Bill deleted: {bill_id}",
        )

    @staticmethod
    def bill_paid(bill: Bill, transaction_id: Optional[int]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_PAID,
            entity_type="bill",
            entity_id=bill.id,
            user_id=bill.user_id,
            description=f"Bill marked paid: {bill.name}",
            details={"transaction_id": transaction_id},
        )

    @staticmethod
    def reconciliation_drift(
        account_id: int,
        user_id: int,
        expected: str,
        actual: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECONCILIATION_DRIFT,
            severity=AuditSeverity.ERROR,
            entity_type="account",
            entity_id=account_id,
            user_id=user_id,
            description="Account balance does not match its transaction history",
            details={
                "expected_balance": expected,
                "actual_balance": actual,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
