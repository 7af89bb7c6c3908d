"""
SQL Storage Implementation

Backs the ledger with a relational database through SQLAlchemy.
commit_postings runs in a single database transaction, so the record
append and the balance change commit or roll back together.

Calls are synchronous under the hood; the ledger's per-account locks
already serialize the writes that matter, and the database transaction
makes each commit atomic.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import create_engine, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker

from banksecure.config import DatabaseSettings, get_settings
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
    ConnectionError,
    LedgerStorageInterface,
    StorageError,
)
from banksecure.services.storage.sql_models import (
    AccountRow,
    AuditEventRow,
    Base,
    BillRow,
    BudgetRow,
    TransactionRow,
)


def create_ledger_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the ledger database.

    In-memory SQLite shares one connection so that every session sees
    the same database.
    """
    try:
        if url in ("sqlite://", "sqlite:///:memory:"):
            return create_engine(
                url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(url, echo=echo)
    except SQLAlchemyError as e:
        raise ConnectionError(f"Failed to create database engine: {e}")


def _column_values(fields: dict[str, Any]) -> dict[str, Any]:
    """Enums are stored by value."""
    return {
        key: value.value if isinstance(value, Enum) else value
        for key, value in fields.items()
    }


class SqlLedgerStorage(LedgerStorageInterface):
    """SQLAlchemy implementation of ledger storage."""

    def __init__(self, engine: Engine, create_schema: bool = True):
        self._engine = engine
        self._session_factory = sessionmaker(
            bind=engine,
            autoflush=False,
            expire_on_commit=False,
        )
        if create_schema:
            Base.metadata.create_all(bind=engine)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[DatabaseSettings] = None,
    ) -> "SqlLedgerStorage":
        settings = settings or get_settings().database
        return cls(create_ledger_engine(settings.url, echo=settings.echo))

    @property
    def engine(self) -> Engine:
        return self._engine

    # Accounts

    async def insert_account(self, data: AccountCreate) -> Account:
        try:
            with self._session_factory.begin() as session:
                row = AccountRow(
                    user_id=data.user_id,
                    name=data.name,
                    type=data.type.value,
                    balance=data.initial_balance,
                    opening_balance=data.initial_balance,
                    account_number=data.account_number,
                    is_active=data.is_active,
                    created_at=utcnow(),
                )
                session.add(row)
                session.flush()
                return Account.model_validate(row, from_attributes=True)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to save account: {e}")

    async def get_account(self, account_id: int) -> Optional[Account]:
        try:
            with self._session_factory() as session:
                row = session.get(AccountRow, account_id)
                return Account.model_validate(row, from_attributes=True) if row else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get account: {e}")

    async def list_accounts(self, user_id: int) -> list[Account]:
        try:
            with self._session_factory() as session:
                rows = session.scalars(
                    select(AccountRow)
                    .where(AccountRow.user_id == user_id)
                    .order_by(AccountRow.id)
                )
                return [Account.model_validate(row, from_attributes=True) for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list accounts: {e}")

    async def update_account(
        self,
        account_id: int,
        fields: dict[str, Any],
    ) -> Optional[Account]:
        return self._update_row(AccountRow, Account, account_id, fields)

    async def apply_balance_delta(
        self,
        account_id: int,
        delta: Decimal,
    ) -> Optional[Account]:
        try:
            with self._session_factory.begin() as session:
                row = session.get(AccountRow, account_id, with_for_update=True)
                if row is None:
                    return None
                row.balance = row.balance + delta
                session.flush()
                return Account.model_validate(row, from_attributes=True)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update balance: {e}")

    # Transactions

    async def commit_postings(
        self,
        drafts: list[TransactionDraft],
    ) -> list[Transaction]:
        try:
            with self._session_factory.begin() as session:
                now = utcnow()
                rows = []
                for draft in drafts:
                    account = session.get(
                        AccountRow, draft.account_id, with_for_update=True
                    )
                    if account is None:
                        raise StorageError(f"Account not found: {draft.account_id}")
                    account.balance = account.balance + draft.signed_amount

                    row = TransactionRow(
                        created_at=now,
                        **_column_values(draft.model_dump()),
                    )
                    session.add(row)
                    rows.append(row)

                session.flush()
                return [
                    Transaction.model_validate(row, from_attributes=True)
                    for row in rows
                ]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to commit postings: {e}")

    async def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        try:
            with self._session_factory() as session:
                row = session.get(TransactionRow, transaction_id)
                return Transaction.model_validate(row, from_attributes=True) if row else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get transaction: {e}")

    async def list_transactions(
        self,
        user_id: Optional[int] = None,
        account_id: Optional[int] = None,
    ) -> list[Transaction]:
        query = select(TransactionRow).order_by(TransactionRow.id)
        if user_id is not None:
            query = query.where(TransactionRow.user_id == user_id)
        if account_id is not None:
            query = query.where(TransactionRow.account_id == account_id)
        try:
            with self._session_factory() as session:
                return [
                    Transaction.model_validate(row, from_attributes=True)
                    for row in session.scalars(query)
                ]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list transactions: {e}")

    # Bills

    async def insert_bill(self, data: BillCreate) -> Bill:
        return self._insert_row(BillRow, Bill, data.model_dump())

    async def get_bill(self, bill_id: int) -> Optional[Bill]:
        return self._get_row(BillRow, Bill, bill_id)

    async def list_bills(self, user_id: int) -> list[Bill]:
        return self._list_rows(BillRow, Bill, user_id)

    async def update_bill(
        self,
        bill_id: int,
        fields: dict[str, Any],
    ) -> Optional[Bill]:
        return self._update_row(BillRow, Bill, bill_id, fields)

    async def delete_bill(self, bill_id: int) -> bool:
        try:
            with self._session_factory.begin() as session:
                row = session.get(BillRow, bill_id)
                if row is None:
                    return False
                session.delete(row)
                return True
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to delete bill: {e}")

    # Budgets

    async def insert_budget(self, data: BudgetCreate) -> Budget:
        return self._insert_row(BudgetRow, Budget, data.model_dump())

    async def get_budget(self, budget_id: int) -> Optional[Budget]:
        return self._get_row(BudgetRow, Budget, budget_id)

    async def list_budgets(self, user_id: int) -> list[Budget]:
        return self._list_rows(BudgetRow, Budget, user_id)

    async def update_budget(
        self,
        budget_id: int,
        fields: dict[str, Any],
    ) -> Optional[Budget]:
        return self._update_row(BudgetRow, Budget, budget_id, fields)

    # Shared row helpers

    def _insert_row(self, row_cls, model_cls, values: dict[str, Any]):
        try:
            with self._session_factory.begin() as session:
                row = row_cls(created_at=utcnow(), **_column_values(values))
                session.add(row)
                session.flush()
                return model_cls.model_validate(row, from_attributes=True)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to save {row_cls.__tablename__}: {e}")

    def _get_row(self, row_cls, model_cls, row_id: int):
        try:
            with self._session_factory() as session:
                row = session.get(row_cls, row_id)
                return model_cls.model_validate(row, from_attributes=True) if row else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get {row_cls.__tablename__}: {e}")

    def _list_rows(self, row_cls, model_cls, user_id: int):
        try:
            with self._session_factory() as session:
                rows = session.scalars(
                    select(row_cls)
                    .where(row_cls.user_id == user_id)
                    .order_by(row_cls.id)
                )
                return [model_cls.model_validate(row, from_attributes=True) for row in rows]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list {row_cls.__tablename__}: {e}")

    def _update_row(self, row_cls, model_cls, row_id: int, fields: dict[str, Any]):
        try:
            with self._session_factory.begin() as session:
                row = session.get(row_cls, row_id)
                if row is None:
                    return None
                for key, value in _column_values(fields).items():
                    setattr(row, key, value)
                session.flush()
                return model_cls.model_validate(row, from_attributes=True)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to update {row_cls.__tablename__}: {e}")


class SqlAuditStorage(AuditStorageInterface):
    """SQLAlchemy implementation of audit log storage."""

    def __init__(self, engine: Engine, create_schema: bool = True):
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        if create_schema:
            Base.metadata.create_all(bind=engine)

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            with self._session_factory.begin() as session:
                session.add(AuditEventRow(
                    event_id=str(event.event_id),
                    timestamp=event.timestamp,
                    event_type=event.event_type.value,
                    severity=event.severity.value,
                    entity_type=event.entity_type,
                    entity_id=event.entity_id,
                    user_id=event.user_id,
                    correlation_id=str(event.correlation_id) if event.correlation_id else None,
                    description=event.description,
                    details=event.details,
                    error_code=event.error_code,
                    error_message=event.error_message,
                ))
            return True
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to write audit event: {e}")

    def _select(self, query) -> list[AuditEvent]:
        try:
            with self._session_factory() as session:
                return [
                    AuditEvent.model_validate(row, from_attributes=True)
                    for row in session.scalars(query)
                ]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return self._select(
            select(AuditEventRow)
            .where(AuditEventRow.correlation_id == str(correlation_id))
            .order_by(AuditEventRow.timestamp)
        )

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: int,
    ) -> list[AuditEvent]:
        return self._select(
            select(AuditEventRow)
            .where(
                AuditEventRow.entity_type == entity_type,
                AuditEventRow.entity_id == entity_id,
            )
            .order_by(AuditEventRow.timestamp)
        )

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return self._select(
            select(AuditEventRow)
            .order_by(AuditEventRow.timestamp.desc())
            .limit(limit)
        )
