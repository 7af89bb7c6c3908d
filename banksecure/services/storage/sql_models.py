"""
Relational schema for the ledger.

Money columns are exact decimals on every backend. SQLite has no exact
decimal type, so there they are stored as text.
"""

from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

Base = declarative_base()


class MoneyType(TypeDecorator):
    """Decimal(14, 2) that round-trips exactly, including on SQLite."""

    impl = Numeric
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(32))
        return dialect.type_descriptor(Numeric(14, 2, asdecimal=True))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "sqlite":
            return str(value)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(str(value))


class AccountRow(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    type = Column(String(20), nullable=False)
    balance = Column(MoneyType(), nullable=False, default=Decimal("0.00"))
    opening_balance = Column(MoneyType(), nullable=False, default=Decimal("0.00"))
    account_number = Column(String(34), nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class TransactionRow(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    amount = Column(MoneyType(), nullable=False)
    description = Column(String(500), nullable=False)
    type = Column(String(20), nullable=False)
    category = Column(String(20), nullable=True)
    reversal_of = Column(Integer, ForeignKey("transactions.id"), nullable=True)
    date = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class BillRow(Base):
    __tablename__ = "bills"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    amount = Column(MoneyType(), nullable=False)
    due_date = Column(DateTime(timezone=True), nullable=False)
    is_paid = Column(Boolean, nullable=False, default=False)
    is_recurring = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class BudgetRow(Base):
    __tablename__ = "budgets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    category = Column(String(20), nullable=False)
    amount = Column(MoneyType(), nullable=False)
    spent = Column(MoneyType(), nullable=False, default=Decimal("0.00"))
    month = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class AuditEventRow(Base):
    __tablename__ = "audit_events"

    event_id = Column(String(36), primary_key=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)
    event_type = Column(String(40), nullable=False)
    severity = Column(String(10), nullable=False)
    entity_type = Column(String(20), nullable=True)
    entity_id = Column(Integer, nullable=True)
    user_id = Column(Integer, nullable=True)
    correlation_id = Column(String(36), nullable=True, index=True)
    description = Column(String(500), nullable=False)
    details = Column(JSON, nullable=False, default=dict)
    error_code = Column(String(50), nullable=True)
    error_message = Column(String, nullable=True)
