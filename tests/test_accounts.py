"""Tests for the account ledger."""

from decimal import Decimal

import pytest

from banksecure.errors import AccessDeniedError, NotFoundError, ValidationError
from banksecure.models.audit import AuditEventType
from banksecure.models.ledger import AccountType

from tests.conftest import OTHER_OWNER, OWNER


class TestAccountCreation:
    """Tests for opening accounts."""

    @pytest.mark.asyncio
    async def test_opening_balance_matches_initial_balance(self, service):
        account = await service.open_account(OWNER, "Main", "checking", initial_balance="250.10")
        assert account.id >= 1
        assert account.balance == Decimal("250.10")
        assert account.opening_balance == Decimal("250.10")
        assert account.type == AccountType.CHECKING
        assert account.is_active

    @pytest.mark.asyncio
    async def test_unknown_type_is_validation_error(self, service, store):
        with pytest.raises(ValidationError) as exc_info:
            await service.open_account(OWNER, "Main", "brokerage")
        assert exc_info.value.issues[0].field == "type"
        assert await store.list_accounts(OWNER) == []

    @pytest.mark.asyncio
    async def test_extra_precision_is_rejected(self, service):
        with pytest.raises(ValidationError):
            await service.open_account(OWNER, "Main", "savings", initial_balance="1.001")

    @pytest.mark.asyncio
    async def test_account_number_is_masked(self, service):
        account = await service.open_account(
            OWNER, "Main", "checking", account_number="12345678"
        )
        assert account.account_number == "****5678"

    @pytest.mark.asyncio
    async def test_ids_are_unique_and_increasing(self, service):
        first = await service.open_account(OWNER, "A", "checking")
        second = await service.open_account(OWNER, "B", "savings")
        assert second.id > first.id


class TestAccountLookup:
    """Tests for owner-scoped lookups."""

    @pytest.mark.asyncio
    async def test_get_own_account(self, service, checking):
        fetched = await service.get_account(OWNER, checking.id)
        assert fetched == checking

    @pytest.mark.asyncio
    async def test_get_missing_account(self, service):
        with pytest.raises(NotFoundError):
            await service.get_account(OWNER, 999)

    @pytest.mark.asyncio
    async def test_get_foreign_account_is_denied_and_audited(
        self, service, foreign_account, audit_storage
    ):
        with pytest.raises(AccessDeniedError):
            await service.get_account(OWNER, foreign_account.id)

        events = await audit_storage.get_events_by_entity("account", foreign_account.id)
        assert events[-1].event_type == AuditEventType.ACCESS_DENIED
        assert events[-1].user_id == OWNER

    @pytest.mark.asyncio
    async def test_list_for_owner_in_insertion_order(self, service, checking, savings, foreign_account):
        accounts = await service.list_accounts(OWNER)
        assert [a.id for a in accounts] == [checking.id, savings.id]
        assert [a.id for a in await service.list_accounts(OTHER_OWNER)] == [foreign_account.id]


class TestAccountUpdate:
    """Tests for updates of non-balance fields."""

    @pytest.mark.asyncio
    async def test_update_name_and_active_flag(self, service, checking):
        updated = await service.update_account(
            OWNER, checking.id, {"name": "Bills", "is_active": False}
        )
        assert updated.name == "Bills"
        assert not updated.is_active
        assert updated.balance == checking.balance

    @pytest.mark.parametrize("field", ["balance", "opening_balance", "id", "user_id", "created_at"])
    @pytest.mark.asyncio
    async def test_immutable_fields_rejected(self, service, checking, field):
        with pytest.raises(ValidationError) as exc_info:
            await service.update_account(OWNER, checking.id, {field: "1"})
        assert exc_info.value.issues[0].issue_type == "immutable_field"

        fetched = await service.get_account(OWNER, checking.id)
        assert fetched.balance == Decimal("100.00")

    @pytest.mark.asyncio
    async def test_unknown_field_rejected(self, service, checking):
        with pytest.raises(ValidationError) as exc_info:
            await service.update_account(OWNER, checking.id, {"nickname": "x"})
        assert exc_info.value.issues[0].issue_type == "unknown_field"

    @pytest.mark.asyncio
    async def test_update_foreign_account_denied(self, service, foreign_account):
        with pytest.raises(AccessDeniedError):
            await service.update_account(OWNER, foreign_account.id, {"name": "Mine now"})

    @pytest.mark.asyncio
    async def test_update_type_must_be_known(self, service, checking):
        with pytest.raises(ValidationError):
            await service.update_account(OWNER, checking.id, {"type": "piggybank"})


class TestBalanceAdjustment:
    """Tests for direct balance adjustments."""

    @pytest.mark.asyncio
    async def test_apply_balance_delta(self, service, checking, audit_storage):
        account = await service.adjust_balance(OWNER, checking.id, "-12.34")
        assert account.balance == Decimal("87.66")

        events = await audit_storage.get_events_by_entity("account", checking.id)
        assert events[-1].event_type == AuditEventType.BALANCE_ADJUSTED

    @pytest.mark.asyncio
    async def test_apply_balance_delta_missing_account(self, service):
        with pytest.raises(NotFoundError):
            await service.adjust_balance(OWNER, 42, "1.00")

    @pytest.mark.asyncio
    async def test_apply_balance_delta_rejects_extra_precision(self, service, checking):
        with pytest.raises(ValidationError):
            await service.adjust_balance(OWNER, checking.id, "0.001")
