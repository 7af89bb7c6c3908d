"""
Account Ledger

Holds each account's current balance and is the single source of truth
for it. Balance changes are serialized per account through the shared
KeyedLock; no other path writes a balance.
"""

from decimal import Decimal
from typing import Any, Optional, Union

from banksecure.audit import AuditLogger
from banksecure.config import get_settings
from banksecure.errors import AccessDeniedError, NotFoundError, require_owned
from banksecure.locks import KeyedLock
from banksecure.models.ledger import (
    ZERO,
    Account,
    AccountCreate,
    AccountType,
    AccountUpdate,
)
from banksecure.services.storage import LedgerStorageInterface
from banksecure.validation import LedgerValidator


ACCOUNT_UPDATABLE_FIELDS = frozenset({"name", "type", "account_number", "is_active"})


class AccountLedger:
    """
    Account lifecycle and balance custody.

    Accounts are never deleted; close one by setting is_active to False.
    """

    def __init__(
        self,
        store: LedgerStorageInterface,
        locks: Optional[KeyedLock] = None,
        validator: Optional[LedgerValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._locks = locks or KeyedLock(get_settings().ledger.lock_timeout_seconds)
        self._validator = validator or LedgerValidator()
        self._audit = audit_logger or AuditLogger()

    @property
    def locks(self) -> KeyedLock:
        return self._locks

    async def create(
        self,
        owner_id: int,
        name: str,
        type: Union[AccountType, str],
        initial_balance: Union[Decimal, str] = ZERO,
        account_number: str = "",
        is_active: bool = True,
    ) -> Account:
        """
        Open an account. balance and opening_balance both start at
        initial_balance.

        Raises:
            ValidationError: Unknown account type or malformed fields
        """
        data = self._validator.parse(AccountCreate, {
            "user_id": owner_id,
            "name": name,
            "type": type,
            "initial_balance": initial_balance,
            "account_number": account_number,
            "is_active": is_active,
        })
        account = await self._store.insert_account(data)
        await self._audit.log_account_created(account)
        return account

    async def get(self, account_id: int, owner_id: Optional[int] = None) -> Account:
        """
        Fetch an account.

        Raises:
            NotFoundError: No such account
            AccessDeniedError: owner_id given and the account is someone else's
        """
        account = await self._store.get_account(account_id)
        try:
            return require_owned(account, "account", account_id, owner_id)
        except AccessDeniedError:
            await self._audit.log_access_denied("account", account_id, owner_id)
            raise

    async def list_for_owner(self, owner_id: int) -> list[Account]:
        return await self._store.list_accounts(owner_id)

    async def apply_balance_delta(
        self,
        account_id: int,
        signed_amount: Union[Decimal, str],
        owner_id: Optional[int] = None,
    ) -> Account:
        """
        Replace the balance with balance + signed_amount, under the
        account's lock.

        Postings go through TransactionRecorder instead; this is for
        administrative adjustments, is audited as such, and shows up as
        drift when the account is reconciled.
        """
        delta = self._validator.parse_money(signed_amount, field="signed_amount")
        await self.get(account_id, owner_id)

        async with self._locks.hold(account_id):
            account = await self._store.apply_balance_delta(account_id, delta)
        if account is None:
            raise NotFoundError("account", account_id)

        await self._audit.log_balance_adjusted(account, delta)
        return account

    async def update(
        self,
        account_id: int,
        fields: dict[str, Any],
        owner_id: Optional[int] = None,
    ) -> Account:
        """
        Update non-balance fields.

        Raises:
            ValidationError: A field outside name, type, account_number,
                is_active was given, or a value is malformed
        """
        self._validator.check_update_fields(fields, ACCOUNT_UPDATABLE_FIELDS, "account")
        update = self._validator.parse(AccountUpdate, fields)
        changes = update.model_dump(exclude_unset=True, exclude_none=True)
        account = await self.get(account_id, owner_id)
        if not changes:
            return account

        async with self._locks.hold(account_id):
            updated = await self._store.update_account(account_id, changes)
        if updated is None:
            raise NotFoundError("account", account_id)

        await self._audit.log_account_updated(updated, sorted(changes))
        return updated
