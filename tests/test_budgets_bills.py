"""Tests for budgets and bills."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from banksecure.errors import AccessDeniedError, NotFoundError, ValidationError
from banksecure.models.audit import AuditEventType
from banksecure.models.ledger import BudgetCategory, TransactionType

from tests.conftest import OTHER_OWNER, OWNER


MARCH_3 = datetime(2024, 3, 3, tzinfo=timezone.utc)
MARCH_20 = datetime(2024, 3, 20, tzinfo=timezone.utc)
APRIL_2 = datetime(2024, 4, 2, tzinfo=timezone.utc)


class TestBudgets:
    """Tests for the budget tracker."""

    @pytest.mark.asyncio
    async def test_create_starts_with_nothing_spent(self, service):
        budget = await service.create_budget(OWNER, "food", "400.00", 3, 2024)
        assert budget.category == BudgetCategory.FOOD
        assert budget.spent == Decimal("0.00")
        assert budget.remaining == Decimal("400.00")

    @pytest.mark.asyncio
    async def test_create_rejects_unknown_category(self, service):
        with pytest.raises(ValidationError):
            await service.create_budget(OWNER, "gadgets", "10.00", 3, 2024)

    @pytest.mark.asyncio
    async def test_create_rejects_bad_month(self, service):
        with pytest.raises(ValidationError) as exc_info:
            await service.create_budget(OWNER, "food", "10.00", 0, 2024)
        assert exc_info.value.issues[0].field == "month"

    @pytest.mark.asyncio
    async def test_partial_update(self, service):
        budget = await service.create_budget(OWNER, "food", "400.00", 3, 2024)
        updated = await service.update_budget(OWNER, budget.id, {"spent": "120.50"})

        assert updated.spent == Decimal("120.50")
        assert updated.amount == Decimal("400.00")
        assert [b.spent for b in await service.list_budgets(OWNER)] == [Decimal("120.50")]

    @pytest.mark.asyncio
    async def test_spent_is_not_derived_automatically(self, service, checking):
        budget = await service.create_budget(OWNER, "food", "400.00", 3, 2024)
        await service.post_transaction(
            OWNER, checking.id, "20.00", "Groceries", "payment", date=MARCH_3, category="food"
        )
        assert (await service.list_budgets(OWNER))[0].spent == Decimal("0.00")
        assert budget.spent == Decimal("0.00")

    @pytest.mark.asyncio
    async def test_update_missing_budget(self, service):
        with pytest.raises(NotFoundError):
            await service.update_budget(OWNER, 99, {"amount": "1.00"})

    @pytest.mark.asyncio
    async def test_update_foreign_budget(self, service):
        theirs = await service.create_budget(OTHER_OWNER, "food", "50.00", 3, 2024)
        with pytest.raises(AccessDeniedError):
            await service.update_budget(OWNER, theirs.id, {"amount": "1.00"})

    @pytest.mark.asyncio
    async def test_update_rejects_owner_change(self, service):
        budget = await service.create_budget(OWNER, "food", "50.00", 3, 2024)
        with pytest.raises(ValidationError) as exc_info:
            await service.update_budget(OWNER, budget.id, {"user_id": OTHER_OWNER})
        assert exc_info.value.issues[0].issue_type == "immutable_field"

    @pytest.mark.asyncio
    async def test_update_rejects_negative_spent(self, service):
        budget = await service.create_budget(OWNER, "food", "50.00", 3, 2024)
        with pytest.raises(ValidationError):
            await service.update_budget(OWNER, budget.id, {"spent": "-1.00"})

    @pytest.mark.asyncio
    async def test_recompute_spent_from_transactions(self, service, checking, savings, audit_storage):
        budget = await service.create_budget(OWNER, "food", "300.00", 3, 2024)

        await service.post_transaction(
            OWNER, checking.id, "45.10", "Groceries", "payment", date=MARCH_3, category="food"
        )
        await service.post_transaction(
            OWNER, savings.id, "19.90", "Takeaway", "withdrawal", date=MARCH_20, category="food"
        )
        refunded = await service.post_transaction(
            OWNER, checking.id, "30.00", "Returned", "payment", date=MARCH_20, category="food"
        )
        await service.reverse_transaction(OWNER, refunded.id, date=MARCH_20)
        # Not counted: other month, other category, uncategorized, incoming
        await service.post_transaction(
            OWNER, checking.id, "99.00", "April food", "payment", date=APRIL_2, category="food"
        )
        await service.post_transaction(
            OWNER, checking.id, "60.00", "Cinema", "payment", date=MARCH_3, category="entertainment"
        )
        await service.post_transaction(OWNER, checking.id, "5.00", "Misc", "fee", date=MARCH_3)
        await service.post_transaction(
            OWNER, checking.id, "500.00", "Salary", "deposit", date=MARCH_3, category="food"
        )

        updated = await service.recompute_budget(OWNER, budget.id)
        assert updated.spent == Decimal("65.00")

        events = await audit_storage.get_events_by_entity("budget", budget.id)
        assert events[-1].event_type == AuditEventType.BUDGET_RECOMPUTED
        assert events[-1].details["previous_spent"] == "0.00"

    @pytest.mark.asyncio
    async def test_recompute_ignores_other_owners(self, service, foreign_account):
        budget = await service.create_budget(OWNER, "food", "300.00", 3, 2024)
        await service.post_transaction(
            OTHER_OWNER, foreign_account.id, "10.00", "x", "payment", date=MARCH_3, category="food"
        )
        updated = await service.recompute_budget(OWNER, budget.id)
        assert updated.spent == Decimal("0.00")


class TestBills:
    """Tests for the bill book."""

    @pytest.mark.asyncio
    async def test_list_by_due_date(self, service):
        later = await service.create_bill(OWNER, "Rent", "900.00", APRIL_2)
        sooner = await service.create_bill(OWNER, "Power", "60.00", MARCH_20, is_recurring=True)
        await service.create_bill(OTHER_OWNER, "Theirs", "1.00", MARCH_3)

        bills = await service.list_bills(OWNER)
        assert [b.id for b in bills] == [sooner.id, later.id]
        assert bills[0].is_recurring
        assert not bills[0].is_paid

    @pytest.mark.asyncio
    async def test_update_bill(self, service):
        bill = await service.create_bill(OWNER, "Power", "60.00", MARCH_20)
        updated = await service.update_bill(OWNER, bill.id, {"amount": "64.20", "name": "Electric"})
        assert updated.amount == Decimal("64.20")
        assert updated.name == "Electric"

    @pytest.mark.asyncio
    async def test_update_foreign_bill(self, service):
        theirs = await service.create_bill(OTHER_OWNER, "Theirs", "1.00", MARCH_3)
        with pytest.raises(AccessDeniedError):
            await service.update_bill(OWNER, theirs.id, {"amount": "0.00"})

    @pytest.mark.asyncio
    async def test_delete_bill(self, service, audit_storage):
        bill = await service.create_bill(OWNER, "Gym", "30.00", MARCH_20)
        await service.delete_bill(OWNER, bill.id)

        assert await service.list_bills(OWNER) == []
        with pytest.raises(NotFoundError):
            await service.delete_bill(OWNER, bill.id)

        events = await audit_storage.get_events_by_entity("bill", bill.id)
        assert events[-1].event_type == AuditEventType.BILL_DELETED

    @pytest.mark.asyncio
    async def test_mark_paid_without_account_posts_nothing(self, service, store, checking):
        bill = await service.create_bill(OWNER, "Water", "25.00", MARCH_20)
        paid = await service.mark_bill_paid(OWNER, bill.id)

        assert paid.is_paid
        assert await store.list_transactions() == []
        assert (await service.get_account(OWNER, checking.id)).balance == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_mark_paid_from_account_posts_payment(self, service, checking):
        bill = await service.create_bill(OWNER, "Water", "25.00", MARCH_20)
        paid = await service.mark_bill_paid(OWNER, bill.id, account_id=checking.id)

        assert paid.is_paid
        [payment] = await service.list_account_transactions(OWNER, checking.id)
        assert payment.type == TransactionType.PAYMENT
        assert payment.amount == Decimal("25.00")
        assert (await service.get_account(OWNER, checking.id)).balance == Decimal("75.00")

    @pytest.mark.asyncio
    async def test_mark_free_bill_paid_from_account(self, service, store, checking):
        bill = await service.create_bill(OWNER, "Trial", "0.00", MARCH_20)
        paid = await service.mark_bill_paid(OWNER, bill.id, account_id=checking.id)

        assert paid.is_paid
        assert await store.list_transactions() == []
        assert (await service.get_account(OWNER, checking.id)).balance == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_mark_free_bill_paid_from_foreign_account(self, service, store, foreign_account):
        bill = await service.create_bill(OWNER, "Trial", "0.00", MARCH_20)
        with pytest.raises(AccessDeniedError):
            await service.mark_bill_paid(OWNER, bill.id, account_id=foreign_account.id)

        assert not (await store.get_bill(bill.id)).is_paid

    @pytest.mark.asyncio
    async def test_mark_paid_twice(self, service, checking):
        bill = await service.create_bill(OWNER, "Water", "25.00", MARCH_20)
        await service.mark_bill_paid(OWNER, bill.id, account_id=checking.id)

        with pytest.raises(ValidationError):
            await service.mark_bill_paid(OWNER, bill.id, account_id=checking.id)
        assert (await service.get_account(OWNER, checking.id)).balance == Decimal("75.00")

    @pytest.mark.asyncio
    async def test_mark_paid_from_foreign_account(self, service, store, foreign_account):
        bill = await service.create_bill(OWNER, "Water", "25.00", MARCH_20)
        with pytest.raises(AccessDeniedError):
            await service.mark_bill_paid(OWNER, bill.id, account_id=foreign_account.id)

        assert not (await store.get_bill(bill.id)).is_paid
        assert await store.list_transactions() == []
