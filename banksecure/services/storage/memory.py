"""
In-Memory Storage Implementation

Keeps every entity in a dict keyed by id, with one id allocator per
entity type. Used for tests and local development; nothing survives a
restart.

Returned models are copies, so callers can never mutate stored state.
"""

import itertools
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
    utcnow,
)
from banksecure.models.audit import AuditEvent
from banksecure.services.storage.interface import (
    AuditStorageInterface,
    LedgerStorageInterface,
    StorageError,
)


class IdAllocator:
    """Hands out monotonically increasing ids starting at 1."""

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)

    def next_id(self) -> int:
        return next(self._counter)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Dict-backed ledger store."""

    def __init__(self):
        self._accounts: dict[int, Account] = {}
        self._transactions: dict[int, Transaction] = {}
        self._bills: dict[int, Bill] = {}
        self._budgets: dict[int, Budget] = {}

        self._account_ids = IdAllocator()
        self._transaction_ids = IdAllocator()
        self._bill_ids = IdAllocator()
        self._budget_ids = IdAllocator()

    # Accounts

    async def insert_account(self, data: AccountCreate) -> Account:
        account = Account(
            id=self._account_ids.next_id(),
            user_id=data.user_id,
            name=data.name,
            type=data.type,
            balance=data.initial_balance,
            opening_balance=data.initial_balance,
            account_number=data.account_number,
            is_active=data.is_active,
        )
        self._accounts[account.id] = account
        return account.model_copy()

    async def get_account(self, account_id: int) -> Optional[Account]:
        account = self._accounts.get(account_id)
        return account.model_copy() if account else None

    async def list_accounts(self, user_id: int) -> list[Account]:
        return [
            account.model_copy()
            for account in self._accounts.values()
            if account.user_id == user_id
        ]

    async def update_account(
        self,
        account_id: int,
        fields: dict[str, Any],
    ) -> Optional[Account]:
        account = self._accounts.get(account_id)
        if account is None:
            return None
        updated = account.model_copy(update=fields)
        self._accounts[account_id] = updated
        return updated.model_copy()

    async def apply_balance_delta(
        self,
        account_id: int,
        delta: Decimal,
    ) -> Optional[Account]:
        account = self._accounts.get(account_id)
        if account is None:
            return None
        updated = account.model_copy(update={"balance": account.balance + delta})
        self._accounts[account_id] = updated
        return updated.model_copy()

    # Transactions

    async def commit_postings(
        self,
        drafts: list[TransactionDraft],
    ) -> list[Transaction]:
        # Work out every new balance before touching anything
        new_balances: dict[int, Decimal] = {}
        for draft in drafts:
            account = self._accounts.get(draft.account_id)
            if account is None:
                raise StorageError(f"Account not found: {draft.account_id}")
            current = new_balances.get(draft.account_id, account.balance)
            new_balances[draft.account_id] = current + draft.signed_amount

        now = utcnow()
        posted = [
            Transaction(
                id=self._transaction_ids.next_id(),
                created_at=now,
                **draft.model_dump(),
            )
            for draft in drafts
        ]

        for transaction in posted:
            self._transactions[transaction.id] = transaction
        for account_id, balance in new_balances.items():
            self._accounts[account_id] = self._accounts[account_id].model_copy(
                update={"balance": balance}
            )
        return posted

    async def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        return self._transactions.get(transaction_id)

    async def list_transactions(
        self,
        user_id: Optional[int] = None,
        account_id: Optional[int] = None,
    ) -> list[Transaction]:
        return [
            transaction
            for transaction in self._transactions.values()
            if (user_id is None or transaction.user_id == user_id)
            and (account_id is None or transaction.account_id == account_id)
        ]

    # Bills

    async def insert_bill(self, data: BillCreate) -> Bill:
        bill = Bill(id=self._bill_ids.next_id(), **data.model_dump())
        self._bills[bill.id] = bill
        return bill.model_copy()

    async def get_bill(self, bill_id: int) -> Optional[Bill]:
        bill = self._bills.get(bill_id)
        return bill.model_copy() if bill else None

    async def list_bills(self, user_id: int) -> list[Bill]:
        return [
            bill.model_copy()
            for bill in self._bills.values()
            if bill.user_id == user_id
        ]

    async def update_bill(
        self,
        bill_id: int,
        fields: dict[str, Any],
    ) -> Optional[Bill]:
        bill = self._bills.get(bill_id)
        if bill is None:
            return None
        updated = bill.model_copy(update=fields)
        self._bills[bill_id] = updated
        return updated.model_copy()

    async def delete_bill(self, bill_id: int) -> bool:
        return self._bills.pop(bill_id, None) is not None

    # Budgets

    async def insert_budget(self, data: BudgetCreate) -> Budget:
        budget = Budget(id=self._budget_ids.next_id(), **data.model_dump())
        self._budgets[budget.id] = budget
        return budget.model_copy()

    async def get_budget(self, budget_id: int) -> Optional[Budget]:
        budget = self._budgets.get(budget_id)
        return budget.model_copy() if budget else None

    async def list_budgets(self, user_id: int) -> list[Budget]:
        return [
            budget.model_copy()
            for budget in self._budgets.values()
            if budget.user_id == user_id
        ]

    async def update_budget(
        self,
        budget_id: int,
        fields: dict[str, Any],
    ) -> Optional[Budget]:
        budget = self._budgets.get(budget_id)
        if budget is None:
            return None
        updated = budget.model_copy(update=fields)
        self._budgets[budget_id] = updated
        return updated.model_copy()


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed audit log."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: int,
    ) -> list[AuditEvent]:
        events = [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]
        return sorted(events, key=lambda e: e.timestamp)

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]
