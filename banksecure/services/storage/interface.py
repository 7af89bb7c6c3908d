"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Run the ledger in memory for tests and local development
2. Back it with a relational database in production
3. Keep Google Sheets as a zero-setup option for personal use
4. Keep ledger rules decoupled from the storage implementation

The interface is intentionally simple - we're not building a full ORM.
Stores do not check ownership and do not validate business rules; that
is the ledger's job. Stores DO guarantee that commit_postings is all or
nothing.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from banksecure.models.ledger import (
    Account,
    AccountCreate,
    Bill,
    BillCreate,
    Budget,
    BudgetCreate,
    Transaction,
    TransactionDraft,
)
from banksecure.models.audit import AuditEvent


class LedgerStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (in-memory, SQL, Google Sheets)
    must implement these methods. Ids are positive integers assigned
    by the store, monotonically increasing per entity type.
    """

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    @abstractmethod
    async def insert_account(self, data: AccountCreate) -> Account:
        """
        Persist a new account.

        Both balance and opening_balance start at data.initial_balance.
        """
        pass

    @abstractmethod
    async def get_account(self, account_id: int) -> Optional[Account]:
        """Retrieve an account by id, or None if absent."""
        pass

    @abstractmethod
    async def list_accounts(self, user_id: int) -> list[Account]:
        """List an owner's accounts in insertion order."""
        pass

    @abstractmethod
    async def update_account(
        self,
        account_id: int,
        fields: dict[str, Any],
    ) -> Optional[Account]:
        """
        Overwrite non-balance fields of an account.

        Returns:
            The updated account, or None if absent
        """
        pass

    @abstractmethod
    async def apply_balance_delta(
        self,
        account_id: int,
        delta: Decimal,
    ) -> Optional[Account]:
        """
        Replace the stored balance with balance + delta.

        Callers must hold the account's lock.

        Returns:
            The updated account, or None if absent
        """
        pass

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @abstractmethod
    async def commit_postings(
        self,
        drafts: list[TransactionDraft],
    ) -> list[Transaction]:
        """
        Append transaction records and apply their balance deltas.

        All drafts and all balance changes succeed together or none of
        them are visible. Callers must hold the locks of every account
        involved.

        Returns:
            The persisted transactions, in the order of drafts

        Raises:
            StorageError: If the unit could not be committed (nothing was
                written, or everything written was rolled back)
        """
        pass

    @abstractmethod
    async def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        """Retrieve a transaction by id, or None if absent."""
        pass

    @abstractmethod
    async def list_transactions(
        self,
        user_id: Optional[int] = None,
        account_id: Optional[int] = None,
    ) -> list[Transaction]:
        """
        List transactions in insertion (id) order.

        Args:
            user_id: Only transactions of this owner
            account_id: Only transactions posted to this account
        """
        pass

    # -------------------------------------------------------------------------
    # Bills
    # -------------------------------------------------------------------------

    @abstractmethod
    async def insert_bill(self, data: BillCreate) -> Bill:
        pass

    @abstractmethod
    async def get_bill(self, bill_id: int) -> Optional[Bill]:
        pass

    @abstractmethod
    async def list_bills(self, user_id: int) -> list[Bill]:
        """List an owner's bills in insertion order."""
        pass

    @abstractmethod
    async def update_bill(
        self,
        bill_id: int,
        fields: dict[str, Any],
    ) -> Optional[Bill]:
        pass

    @abstractmethod
    async def delete_bill(self, bill_id: int) -> bool:
        """
        Delete a bill by ID.

        Returns:
            True if a bill was deleted, False if it did not exist
        """
        pass

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    @abstractmethod
    async def insert_budget(self, data: BudgetCreate) -> Budget:
        """Persist a new budget with spent = 0."""
        pass

    @abstractmethod
    async def get_budget(self, budget_id: int) -> Optional[Budget]:
        pass

    @abstractmethod
    async def list_budgets(self, user_id: int) -> list[Budget]:
        pass

    @abstractmethod
    async def update_budget(
        self,
        budget_id: int,
        fields: dict[str, Any],
    ) -> Optional[Budget]:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., both legs of a transfer).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: int,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
