"""
Audit Logger

DESIGN DECISION: Every significant action on the ledger is logged.
This provides:
1. Complete traceability of balance movements
2. Debugging capability when postings are rejected
3. Owners can see the history of their accounts

The audit logger:
- Is async to match the ledger's async operations
- Gracefully handles failures (a failed audit write never undoes a posting)
- Supports correlation IDs to trace related events
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from banksecure.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from banksecure.models.ledger import Account, Bill, Budget, Transaction
from banksecure.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The configured audit store (for persistence and owner visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("banksecure.audit")

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_account_created(self, account: Account) -> None:
        await self.log(AuditEventBuilder.account_created(account))

    async def log_account_updated(self, account: Account, fields: list[str]) -> None:
        await self.log(AuditEventBuilder.account_updated(account, fields))

    async def log_balance_adjusted(self, account: Account, delta: Decimal) -> None:
        """Log a balance change made outside a posting."""
        await self.log(AuditEventBuilder.balance_adjusted(account, str(delta)))

    async def log_transaction_posted(
        self,
        transaction: Transaction,
        balance: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a posting together with the balance it produced."""
        event = AuditEventBuilder.transaction_posted(
            transaction=transaction,
            balance=str(balance),
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transaction_reversed(
        self,
        original: Transaction,
        reversal: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transaction_reversed(
            original=original,
            reversal=reversal,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transfer_posted(
        self,
        debit: Transaction,
        credit: Transaction,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.transfer_posted(
            debit=debit,
            credit=credit,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_posting_rejected(
        self,
        account_id: Optional[int],
        user_id: Optional[int],
        reason: str,
        issues: Optional[list[dict]] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a posting refused before anything was written."""
        event = AuditEventBuilder.posting_rejected(
            account_id=account_id,
            user_id=user_id,
            reason=reason,
            issues=issues,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_posting_failed(
        self,
        account_ids: list[int],
        user_id: int,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a posting the store could not commit."""
        event = AuditEventBuilder.posting_failed(
            account_ids=account_ids,
            user_id=user_id,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_access_denied(
        self,
        entity_type: str,
        entity_id: int,
        user_id: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.access_denied(
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_budget_created(self, budget: Budget) -> None:
        await self.log(AuditEventBuilder.budget_created(budget))

    async def log_budget_updated(self, budget: Budget, fields: list[str]) -> None:
        await self.log(AuditEventBuilder.budget_updated(budget, fields))

    async def log_budget_recomputed(self, budget: Budget, previous_spent: Decimal) -> None:
        await self.log(AuditEventBuilder.budget_recomputed(budget, str(previous_spent)))

    async def log_bill_created(self, bill: Bill) -> None:
        await self.log(AuditEventBuilder.bill_created(bill))

    async def log_bill_updated(self, bill: Bill, fields: list[str]) -> None:
        await self.log(AuditEventBuilder.bill_updated(bill, fields))

    async def log_bill_deleted(self, bill_id: int, user_id: int) -> None:
        await self.log(AuditEventBuilder.bill_deleted(bill_id, user_id))

    async def log_bill_paid(self, bill: Bill, transaction_id: Optional[int]) -> None:
        await self.log(AuditEventBuilder.bill_paid(bill, transaction_id))

    async def log_reconciliation_drift(
        self,
        account_id: int,
        user_id: int,
        expected: Decimal,
        actual: Decimal,
    ) -> None:
        """Log an account whose balance disagrees with its history."""
        event = AuditEventBuilder.reconciliation_drift(
            account_id=account_id,
            user_id=user_id,
            expected=str(expected),
            actual=str(actual),
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a multi-step action (e.g., a transfer).
    Pass it through all subsequent operations.
    """
    return uuid4()
