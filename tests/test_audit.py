"""Tests for the audit logger."""

import pytest

from banksecure.audit import AuditLogger, create_correlation_id
from banksecure.errors import AccessDeniedError, ValidationError
from banksecure.models.audit import AuditEventBuilder, AuditEventType
from banksecure.orchestrator import LedgerService
from banksecure.services.storage import InMemoryAuditStorage, StorageError

from tests.conftest import OTHER_OWNER, OWNER


class BrokenAuditStorage(InMemoryAuditStorage):
    async def append_event(self, event):
        raise StorageError("sheet is read-only")


class TestAuditLogger:
    """Tests for AuditLogger."""

    @pytest.mark.asyncio
    async def test_log_persists_event(self, audit_storage):
        logger = AuditLogger(audit_storage)
        event = AuditEventBuilder.bill_deleted(3, OWNER)

        assert await logger.log(event)
        assert await audit_storage.get_recent_events() == [event]

    @pytest.mark.asyncio
    async def test_log_without_storage(self):
        assert await AuditLogger().log(AuditEventBuilder.bill_deleted(3, OWNER))

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_raise(self):
        logger = AuditLogger(BrokenAuditStorage())
        assert not await logger.log(AuditEventBuilder.system_error("boom", "it broke"))

    @pytest.mark.asyncio
    async def test_broken_audit_store_does_not_block_postings(self, store, ledger_settings):
        service = LedgerService(store, AuditLogger(BrokenAuditStorage()), settings=ledger_settings)
        account = await service.open_account(OWNER, "Main", "checking")
        transaction = await service.post_transaction(OWNER, account.id, "1.00", "x", "deposit")

        assert await store.get_transaction(transaction.id) == transaction

    def test_correlation_ids_are_unique(self):
        assert create_correlation_id() != create_correlation_id()


class TestLedgerAuditTrail:
    """Every mutation and rejection leaves an audit event."""

    @pytest.mark.asyncio
    async def test_posting_is_audited_with_balance(self, service, checking, audit_storage):
        transaction = await service.post_transaction(OWNER, checking.id, "25.00", "x", "deposit")

        [event] = await audit_storage.get_events_by_entity("transaction", transaction.id)
        assert event.event_type == AuditEventType.TRANSACTION_POSTED
        assert event.user_id == OWNER
        assert event.details["balance_after"] == "125.00"
        assert event.correlation_id is not None

    @pytest.mark.asyncio
    async def test_transfer_events_share_correlation_id(self, service, checking, savings, audit_storage):
        debit, _ = await service.transfer(OWNER, checking.id, savings.id, "10.00", "move")

        [event] = await audit_storage.get_events_by_entity("transaction", debit.id)
        related = await audit_storage.get_events_by_correlation_id(event.correlation_id)
        assert {e.event_type for e in related} == {AuditEventType.TRANSFER_POSTED}

    @pytest.mark.asyncio
    async def test_rejected_posting_is_audited(self, service, checking, audit_storage):
        with pytest.raises(ValidationError):
            await service.post_transaction(OWNER, checking.id, "-5", "x", "deposit")

        events = await audit_storage.get_recent_events()
        rejected = [e for e in events if e.event_type == AuditEventType.POSTING_REJECTED]
        assert rejected[0].entity_id == checking.id
        assert rejected[0].details["issues"][0]["field"] == "amount"

    @pytest.mark.asyncio
    async def test_cross_owner_access_is_audited(self, service, foreign_account, audit_storage):
        with pytest.raises(AccessDeniedError):
            await service.post_transaction(OWNER, foreign_account.id, "5.00", "x", "withdrawal")

        events = await audit_storage.get_events_by_entity("account", foreign_account.id)
        denied = [e for e in events if e.event_type == AuditEventType.ACCESS_DENIED]
        assert denied[0].user_id == OWNER
        assert all(e.user_id in (OWNER, OTHER_OWNER) for e in events)
