"""
Ledger Service

This module ties the ledger components together behind one owner-scoped
boundary. Every method takes the acting owner's id first, and every
lookup is checked against it, so a caller can never reach another
owner's accounts, transactions, budgets or bills.

DESIGN DECISION: The service enforces the boundaries:
- Balances only move through postings (or audited adjustments)
- Validation and ownership checks happen before any mutation
- Every step is audited

The store is built once and passed in explicitly; there is no global
ledger instance.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Union

from banksecure.audit import AuditLogger
from banksecure.config import LedgerSettings, Settings, get_settings
from banksecure.ledger import AccountLedger, BillBook, BudgetTracker, TransactionRecorder
from banksecure.locks import KeyedLock
from banksecure.models.ledger import (
    ZERO,
    Account,
    AccountType,
    Bill,
    Budget,
    BudgetCategory,
    Transaction,
    TransactionType,
)
from banksecure.models.reports import AccountReconciliation, BudgetStatus, MonthlySummary
from banksecure.queries import LedgerQueryExecutor
from banksecure.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    SqlAuditStorage,
    SqlLedgerStorage,
    create_ledger_engine,
)
from banksecure.validation import LedgerValidator


class LedgerService:
    """
    Owner-scoped facade over the ledger.

    Account:     open, get, list, update, adjust balance
    Transaction: post, list, list by account, reverse, transfer
    Budget:      create, list, update, recompute spent
    Bill:        create, list, update, delete, mark paid
    Reports:     reconcile account, monthly summary, budget report
    """

    def __init__(
        self,
        store: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        settings = settings or get_settings().ledger
        self._store = store
        self._audit_logger = audit_logger or AuditLogger()

        validator = LedgerValidator(settings)
        account_locks = KeyedLock(settings.lock_timeout_seconds)

        self._accounts = AccountLedger(
            store,
            locks=account_locks,
            validator=validator,
            audit_logger=self._audit_logger,
        )
        self._transactions = TransactionRecorder(
            store,
            self._accounts,
            validator=validator,
            audit_logger=self._audit_logger,
        )
        self._queries = LedgerQueryExecutor(
            store,
            locks=account_locks,
            audit_logger=self._audit_logger,
        )
        self._budgets = BudgetTracker(
            store,
            queries=self._queries,
            validator=validator,
            audit_logger=self._audit_logger,
        )
        self._bills = BillBook(
            store,
            self._transactions,
            validator=validator,
            audit_logger=self._audit_logger,
            locks=KeyedLock(settings.lock_timeout_seconds),
        )

    @property
    def store(self) -> LedgerStorageInterface:
        return self._store

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit_logger

    @property
    def accounts(self) -> AccountLedger:
        return self._accounts

    @property
    def transactions(self) -> TransactionRecorder:
        return self._transactions

    @property
    def budgets(self) -> BudgetTracker:
        return self._budgets

    @property
    def bills(self) -> BillBook:
        return self._bills

    @property
    def queries(self) -> LedgerQueryExecutor:
        return self._queries

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    async def open_account(
        self,
        owner_id: int,
        name: str,
        type: Union[AccountType, str],
        initial_balance: Union[Decimal, str] = ZERO,
        account_number: str = "",
        is_active: bool = True,
    ) -> Account:
        return await self._accounts.create(
            owner_id,
            name,
            type,
            initial_balance=initial_balance,
            account_number=account_number,
            is_active=is_active,
        )

    async def get_account(self, owner_id: int, account_id: int) -> Account:
        return await self._accounts.get(account_id, owner_id)

    async def list_accounts(self, owner_id: int) -> list[Account]:
        return await self._accounts.list_for_owner(owner_id)

    async def update_account(
        self,
        owner_id: int,
        account_id: int,
        fields: dict[str, Any],
    ) -> Account:
        return await self._accounts.update(account_id, fields, owner_id)

    async def adjust_balance(
        self,
        owner_id: int,
        account_id: int,
        signed_amount: Union[Decimal, str],
    ) -> Account:
        return await self._accounts.apply_balance_delta(account_id, signed_amount, owner_id)

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def post_transaction(
        self,
        owner_id: int,
        account_id: int,
        amount: Union[Decimal, str],
        description: str,
        type: Union[TransactionType, str],
        date: Optional[datetime] = None,
        category: Optional[Union[BudgetCategory, str]] = None,
    ) -> Transaction:
        return await self._transactions.post(
            owner_id,
            account_id,
            amount,
            description,
            type,
            date=date,
            category=category,
        )

    async def list_transactions(self, owner_id: int) -> list[Transaction]:
        return await self._transactions.list_for_owner(owner_id)

    async def list_account_transactions(
        self,
        owner_id: int,
        account_id: int,
    ) -> list[Transaction]:
        return await self._transactions.list_for_account(account_id, owner_id)

    async def reverse_transaction(
        self,
        owner_id: int,
        transaction_id: int,
        description: Optional[str] = None,
        date: Optional[datetime] = None,
    ) -> Transaction:
        return await self._transactions.reverse(
            owner_id, transaction_id, description=description, date=date
        )

    async def transfer(
        self,
        owner_id: int,
        from_account_id: int,
        to_account_id: int,
        amount: Union[Decimal, str],
        description: str,
        date: Optional[datetime] = None,
    ) -> tuple[Transaction, Transaction]:
        return await self._transactions.transfer(
            owner_id,
            from_account_id,
            to_account_id,
            amount,
            description,
            date=date,
        )

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    async def create_budget(
        self,
        owner_id: int,
        category: Union[BudgetCategory, str],
        amount: Union[Decimal, str],
        month: int,
        year: int,
    ) -> Budget:
        return await self._budgets.create(owner_id, category, amount, month, year)

    async def list_budgets(self, owner_id: int) -> list[Budget]:
        return await self._budgets.list_for_owner(owner_id)

    async def update_budget(
        self,
        owner_id: int,
        budget_id: int,
        fields: dict[str, Any],
    ) -> Budget:
        return await self._budgets.apply_partial_update(budget_id, fields, owner_id)

    async def recompute_budget(self, owner_id: int, budget_id: int) -> Budget:
        return await self._budgets.recompute_spent(budget_id, owner_id)

    # -------------------------------------------------------------------------
    # Bills
    # -------------------------------------------------------------------------

    async def create_bill(
        self,
        owner_id: int,
        name: str,
        amount: Union[Decimal, str],
        due_date: datetime,
        is_paid: bool = False,
        is_recurring: bool = False,
    ) -> Bill:
        return await self._bills.create(
            owner_id,
            name,
            amount,
            due_date,
            is_paid=is_paid,
            is_recurring=is_recurring,
        )

    async def list_bills(self, owner_id: int) -> list[Bill]:
        return await self._bills.list_for_owner(owner_id)

    async def update_bill(
        self,
        owner_id: int,
        bill_id: int,
        fields: dict[str, Any],
    ) -> Bill:
        return await self._bills.update(bill_id, fields, owner_id)

    async def delete_bill(self, owner_id: int, bill_id: int) -> None:
        await self._bills.delete(bill_id, owner_id)

    async def mark_bill_paid(
        self,
        owner_id: int,
        bill_id: int,
        account_id: Optional[int] = None,
    ) -> Bill:
        return await self._bills.mark_paid(bill_id, owner_id, account_id=account_id)

    # -------------------------------------------------------------------------
    # Reports
    # -------------------------------------------------------------------------

    async def reconcile_account(
        self,
        owner_id: int,
        account_id: int,
    ) -> AccountReconciliation:
        return await self._queries.reconcile_account(account_id, owner_id)

    async def monthly_summary(
        self,
        owner_id: int,
        month: int,
        year: int,
    ) -> MonthlySummary:
        return await self._queries.monthly_summary(owner_id, month, year)

    async def budget_report(
        self,
        owner_id: int,
        month: int,
        year: int,
    ) -> list[BudgetStatus]:
        return await self._queries.budget_report(owner_id, month, year)


def create_ledger_service(
    settings: Optional[Settings] = None,
    storage: Optional[LedgerStorageInterface] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
) -> LedgerService:
    """
    Factory function to build a LedgerService from configuration.

    Args:
        settings: Application settings. Defaults to get_settings().
        storage: Use this store instead of the configured backend.
        audit_storage: Use this audit store instead of the backend's own.

    The configured backend (LEDGER_STORAGE_BACKEND) picks both the ledger
    store and, unless given, the audit store:
    - memory: dict-backed, for tests and local development
    - sql: SQLAlchemy engine from DATABASE_URL
    - google_sheets: the spreadsheet from GOOGLE_SHEETS_SPREADSHEET_ID
    """
    settings = settings or get_settings()
    logging.basicConfig(level=settings.app.log_level, format="%(message)s")
    ledger_settings = settings.ledger

    if storage is None:
        backend = ledger_settings.storage_backend
        if backend == "sql":
            engine = create_ledger_engine(settings.database.url, echo=settings.database.echo)
            storage = SqlLedgerStorage(engine)
            audit_storage = audit_storage or SqlAuditStorage(engine)
        elif backend == "google_sheets":
            sheets_client = GoogleSheetsClient(settings.google_sheets)
            storage = GoogleSheetsLedgerStorage(sheets_client)
            audit_storage = audit_storage or GoogleSheetsAuditStorage(sheets_client)
        else:
            storage = InMemoryLedgerStorage()
            audit_storage = audit_storage or InMemoryAuditStorage()

    return LedgerService(
        storage,
        audit_logger=AuditLogger(audit_storage),
        settings=ledger_settings,
    )
