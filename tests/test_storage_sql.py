"""Tests for the SQL store, against SQLite in memory."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from banksecure.audit import AuditLogger
from banksecure.models.audit import AuditEventBuilder
from banksecure.models.ledger import AccountCreate, BillCreate, BudgetCreate, TransactionDraft
from banksecure.orchestrator import LedgerService
from banksecure.services.storage import (
    SqlAuditStorage,
    SqlLedgerStorage,
    StorageError,
    create_ledger_engine,
)

from tests.conftest import OWNER


@pytest.fixture
def engine():
    engine = create_ledger_engine("sqlite://")
    yield engine
    engine.dispose()


@pytest.fixture
def sql_store(engine):
    return SqlLedgerStorage(engine)


@pytest.fixture
def sql_audit(engine):
    return SqlAuditStorage(engine)


def draft(account_id: int, amount: str, type: str = "deposit", **extra) -> TransactionDraft:
    return TransactionDraft(
        account_id=account_id,
        user_id=OWNER,
        amount=amount,
        description=f"{type} {amount}",
        type=type,
        **extra,
    )


class TestSqlAccounts:
    """Tests for account rows."""

    @pytest.mark.asyncio
    async def test_insert_and_get(self, sql_store):
        account = await sql_store.insert_account(
            AccountCreate(user_id=OWNER, name="Main", type="checking", initial_balance="10.10")
        )
        fetched = await sql_store.get_account(account.id)

        assert fetched.balance == Decimal("10.10")
        assert fetched.opening_balance == Decimal("10.10")
        assert fetched.created_at.tzinfo is not None
        assert await sql_store.get_account(999) is None

    @pytest.mark.asyncio
    async def test_update_and_delta(self, sql_store):
        account = await sql_store.insert_account(
            AccountCreate(user_id=OWNER, name="Main", type="checking")
        )
        await sql_store.update_account(account.id, {"name": "Renamed", "is_active": False})
        updated = await sql_store.apply_balance_delta(account.id, Decimal("-0.01"))

        assert updated.name == "Renamed"
        assert not updated.is_active
        assert updated.balance == Decimal("-0.01")


class TestSqlPostings:
    """Tests for commit_postings."""

    @pytest.mark.asyncio
    async def test_commit_is_exact(self, sql_store):
        account = await sql_store.insert_account(
            AccountCreate(user_id=OWNER, name="Main", type="checking", initial_balance="0.10")
        )
        posted = await sql_store.commit_postings([
            draft(account.id, "0.20"),
            draft(account.id, "0.05", "fee", category="other"),
        ])

        assert [t.id for t in posted] == sorted(t.id for t in posted)
        assert posted[1].category.value == "other"
        assert (await sql_store.get_account(account.id)).balance == Decimal("0.25")

        listed = await sql_store.list_transactions(account_id=account.id)
        assert [t.amount for t in listed] == [Decimal("0.20"), Decimal("0.05")]

    @pytest.mark.asyncio
    async def test_commit_is_all_or_nothing(self, sql_store):
        account = await sql_store.insert_account(
            AccountCreate(user_id=OWNER, name="Main", type="checking", initial_balance="5.00")
        )
        with pytest.raises(StorageError):
            await sql_store.commit_postings([draft(account.id, "1.00"), draft(404, "1.00")])

        assert (await sql_store.get_account(account.id)).balance == Decimal("5.00")
        assert await sql_store.list_transactions() == []

    @pytest.mark.asyncio
    async def test_reversal_reference_round_trips(self, sql_store):
        account = await sql_store.insert_account(
            AccountCreate(user_id=OWNER, name="Main", type="checking")
        )
        [original] = await sql_store.commit_postings([draft(account.id, "3.00", "fee")])
        [reversal] = await sql_store.commit_postings([
            draft(account.id, "3.00", "deposit", reversal_of=original.id)
        ])

        fetched = await sql_store.get_transaction(reversal.id)
        assert fetched.reversal_of == original.id
        assert fetched.is_reversal


class TestSqlBillsAndBudgets:
    """Tests for bill and budget rows."""

    @pytest.mark.asyncio
    async def test_bill_lifecycle(self, sql_store):
        bill = await sql_store.insert_bill(BillCreate(
            user_id=OWNER,
            name="Internet",
            amount="39.99",
            due_date=datetime(2024, 2, 1, tzinfo=timezone.utc),
        ))
        paid = await sql_store.update_bill(bill.id, {"is_paid": True})
        assert paid.is_paid
        assert [b.id for b in await sql_store.list_bills(OWNER)] == [bill.id]

        assert await sql_store.delete_bill(bill.id)
        assert not await sql_store.delete_bill(bill.id)

    @pytest.mark.asyncio
    async def test_budget_update(self, sql_store):
        budget = await sql_store.insert_budget(
            BudgetCreate(user_id=OWNER, category="food", amount="250.00", month=2, year=2024)
        )
        updated = await sql_store.update_budget(budget.id, {"spent": Decimal("12.30")})

        assert updated.spent == Decimal("12.30")
        assert (await sql_store.get_budget(budget.id)).category.value == "food"


class TestSqlAudit:
    """Tests for the SQL audit log."""

    @pytest.mark.asyncio
    async def test_append_and_query(self, sql_audit):
        event = AuditEventBuilder.access_denied("account", 4, user_id=OWNER)
        assert await sql_audit.append_event(event)

        [stored] = await sql_audit.get_events_by_entity("account", 4)
        assert stored.event_id == event.event_id
        assert stored.event_type == event.event_type
        assert await sql_audit.get_recent_events(limit=1) == [stored]


class TestServiceOverSql:
    """The full ledger runs unchanged over the SQL store."""

    @pytest.mark.asyncio
    async def test_deposit_then_withdrawal(self, sql_store, sql_audit, ledger_settings):
        service = LedgerService(sql_store, AuditLogger(sql_audit), settings=ledger_settings)
        account = await service.open_account(OWNER, "Main", "checking", initial_balance="100.00")

        await service.post_transaction(OWNER, account.id, "50.00", "in", "deposit")
        await service.post_transaction(OWNER, account.id, "30.00", "out", "withdrawal")

        assert (await service.get_account(OWNER, account.id)).balance == Decimal("120.00")
        assert (await service.reconcile_account(OWNER, account.id)).is_consistent
