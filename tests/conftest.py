"""
Shared fixtures.

Every test gets a fresh in-memory ledger; nothing touches the network
or a real spreadsheet.
"""

from decimal import Decimal

import pytest
import pytest_asyncio

from banksecure.audit import AuditLogger
from banksecure.config import LedgerSettings
from banksecure.orchestrator import LedgerService
from banksecure.services.storage import InMemoryAuditStorage, InMemoryLedgerStorage


OWNER = 1
OTHER_OWNER = 2


@pytest.fixture
def ledger_settings():
    return LedgerSettings(
        storage_backend="memory",
        lock_timeout_seconds=0.5,
        max_transaction_amount=Decimal("1000000.00"),
        future_date_tolerance_days=7,
    )


@pytest.fixture
def store():
    return InMemoryLedgerStorage()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def service(store, audit_storage, ledger_settings):
    return LedgerService(
        store,
        audit_logger=AuditLogger(audit_storage),
        settings=ledger_settings,
    )


@pytest_asyncio.fixture
async def checking(service):
    """OWNER's checking account, opened with 100.00."""
    return await service.open_account(OWNER, "Everyday", "checking", initial_balance="100.00")


@pytest_asyncio.fixture
async def savings(service):
    """OWNER's savings account, opened with 500.00."""
    return await service.open_account(OWNER, "Rainy Day", "savings", initial_balance="500.00")


@pytest_asyncio.fixture
async def foreign_account(service):
    """An account belonging to OTHER_OWNER."""
    return await service.open_account(OTHER_OWNER, "Not Yours", "checking", initial_balance="75.00")
