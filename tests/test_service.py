"""Tests for configuration and the service factory."""

from decimal import Decimal

import pytest

from banksecure.config import Settings, get_settings, validate_all_settings
from banksecure.errors import ValidationError
from banksecure.orchestrator import LedgerService, create_ledger_service
from banksecure.services.storage import (
    InMemoryLedgerStorage,
    SqlAuditStorage,
    SqlLedgerStorage,
)
from banksecure.validation import LedgerValidator

from tests.conftest import OWNER


@pytest.fixture
def clean_env(monkeypatch):
    for name in (
        "LEDGER_STORAGE_BACKEND",
        "LEDGER_LOCK_TIMEOUT_SECONDS",
        "DATABASE_URL",
    ):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


class TestSettings:
    """Tests for pydantic-settings configuration."""

    def test_defaults(self, clean_env):
        ledger = Settings().ledger
        assert ledger.storage_backend == "memory"
        assert ledger.lock_timeout_seconds == 5.0
        assert ledger.currency == "USD"

    def test_environment_overrides(self, clean_env):
        clean_env.setenv("LEDGER_LOCK_TIMEOUT_SECONDS", "2.5")
        clean_env.setenv("DATABASE_URL", "sqlite://")

        settings = Settings()
        assert settings.ledger.lock_timeout_seconds == 2.5
        assert settings.database.url == "sqlite://"

    def test_invalid_backend_is_reported(self, clean_env):
        clean_env.setenv("LEDGER_STORAGE_BACKEND", "excel")
        results = validate_all_settings()
        assert results["ledger"] is False
        assert "ledger_error" in results
        assert results["database"] is True


class TestValidator:
    """Tests for LedgerValidator on its own."""

    def test_parse_money(self, ledger_settings):
        validator = LedgerValidator(ledger_settings)
        assert validator.parse_money("-3.10") == Decimal("-3.10")

    def test_update_reports_every_bad_field(self, ledger_settings):
        validator = LedgerValidator(ledger_settings)
        with pytest.raises(ValidationError) as exc_info:
            validator.check_update_fields({"balance": 1, "colour": "red"}, {"name"}, "account")
        assert [i.issue_type for i in exc_info.value.issues] == ["immutable_field", "unknown_field"]


class TestCreateLedgerService:
    """Tests for create_ledger_service."""

    @pytest.mark.asyncio
    async def test_memory_backend(self, clean_env):
        service = create_ledger_service(Settings())
        assert isinstance(service, LedgerService)
        assert isinstance(service.store, InMemoryLedgerStorage)

        account = await service.open_account(OWNER, "Main", "savings", initial_balance="1.00")
        assert (await service.list_accounts(OWNER)) == [account]

    @pytest.mark.asyncio
    async def test_sql_backend(self, clean_env):
        clean_env.setenv("LEDGER_STORAGE_BACKEND", "sql")
        clean_env.setenv("DATABASE_URL", "sqlite://")

        service = create_ledger_service(Settings())
        assert isinstance(service.store, SqlLedgerStorage)
        assert isinstance(service.audit_logger.storage, SqlAuditStorage)

        account = await service.open_account(OWNER, "Main", "checking", initial_balance="10.00")
        await service.post_transaction(OWNER, account.id, "2.50", "x", "fee")
        assert (await service.get_account(OWNER, account.id)).balance == Decimal("7.50")

    @pytest.mark.asyncio
    async def test_explicit_store_wins(self, clean_env, store):
        clean_env.setenv("LEDGER_STORAGE_BACKEND", "sql")
        service = create_ledger_service(Settings(), storage=store)
        assert service.store is store
