"""
Transaction Recorder

Appends immutable transaction records. Its only side effect is the
balance change of the account each record is posted to, and the store
commits record and balance change as one unit.

Transactions are never edited or deleted. A mistake is corrected by a
reversal: a new transaction of the opposite direction that points back
at the one it cancels.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Union
from uuid import UUID

import structlog

from banksecure.audit import AuditLogger, create_correlation_id
from banksecure.errors import (
    AccessDeniedError,
    ConsistencyError,
    NotFoundError,
    ValidationError,
    require_owned,
)
from banksecure.ledger.accounts import AccountLedger
from banksecure.models.ledger import (
    BudgetCategory,
    Transaction,
    TransactionDraft,
    TransactionType,
    utcnow,
)
from banksecure.services.storage import LedgerStorageInterface, StorageError
from banksecure.validation import LedgerValidator


logger = structlog.get_logger("banksecure.transactions")


def _as_id(value: Any) -> Optional[int]:
    return value if isinstance(value, int) else None


def newest_first(transactions: list[Transaction]) -> list[Transaction]:
    """
    Order by date descending. The sort is stable, so transactions with
    equal dates keep the store's insertion order.
    """
    return sorted(transactions, key=lambda t: t.date, reverse=True)


class TransactionRecorder:
    """Posts, lists, reverses and transfers."""

    def __init__(
        self,
        store: LedgerStorageInterface,
        accounts: AccountLedger,
        validator: Optional[LedgerValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._accounts = accounts
        self._locks = accounts.locks
        self._validator = validator or LedgerValidator()
        self._audit = audit_logger or AuditLogger()

    @property
    def accounts(self) -> AccountLedger:
        return self._accounts

    async def post(
        self,
        owner_id: int,
        account_id: int,
        amount: Union[Decimal, str],
        description: str,
        type: Union[TransactionType, str],
        date: Optional[datetime] = None,
        category: Optional[Union[BudgetCategory, str]] = None,
    ) -> Transaction:
        """
        Record a transaction and apply its signed delta to the account.

        Raises:
            ValidationError: Malformed amount, type or description
            NotFoundError: The account does not exist
            AccessDeniedError: The account belongs to another owner
            ConsistencyError: The store could not commit; nothing changed
        """
        correlation_id = create_correlation_id()
        draft = await self._draft(
            correlation_id,
            account_id=account_id,
            user_id=owner_id,
            amount=amount,
            description=description,
            type=type,
            date=date or utcnow(),
            category=category,
        )
        await self._owned_account(account_id, owner_id, correlation_id)

        async with self._locks.hold(account_id):
            [transaction], balances = await self._commit([draft], owner_id, correlation_id)

        await self._audit.log_transaction_posted(
            transaction, balances[account_id], correlation_id
        )
        return transaction

    async def get(self, transaction_id: int, owner_id: Optional[int] = None) -> Transaction:
        transaction = await self._store.get_transaction(transaction_id)
        try:
            return require_owned(transaction, "transaction", transaction_id, owner_id)
        except AccessDeniedError:
            await self._audit.log_access_denied("transaction", transaction_id, owner_id)
            raise

    async def list_for_owner(self, owner_id: int) -> list[Transaction]:
        return newest_first(await self._store.list_transactions(user_id=owner_id))

    async def list_for_account(
        self,
        account_id: int,
        owner_id: Optional[int] = None,
    ) -> list[Transaction]:
        await self._accounts.get(account_id, owner_id)
        return newest_first(await self._store.list_transactions(account_id=account_id))

    async def reverse(
        self,
        owner_id: int,
        transaction_id: int,
        description: Optional[str] = None,
        date: Optional[datetime] = None,
    ) -> Transaction:
        """
        Cancel a transaction with an offsetting one.

        Credits are reversed by a withdrawal and debits by a deposit, of
        the same amount and category.

        Raises:
            ValidationError: Already reversed, or itself a reversal
            NotFoundError / AccessDeniedError: As for post
        """
        correlation_id = create_correlation_id()
        original = await self.get(transaction_id, owner_id)
        if original.is_reversal:
            raise ValidationError.for_field(
                "transaction_id",
                f"Transaction {transaction_id} is a reversal and cannot be reversed",
                issue_type="not_reversible",
                suggested_fix="Post a new transaction instead",
            )

        draft = await self._draft(
            correlation_id,
            account_id=original.account_id,
            user_id=owner_id,
            amount=original.amount,
            description=description or f"Reversal of transaction {original.id}",
            type=(
                TransactionType.WITHDRAWAL
                if original.type.is_credit
                else TransactionType.DEPOSIT
            ),
            date=date or utcnow(),
            category=original.category,
            reversal_of=original.id,
        )

        async with self._locks.hold(original.account_id):
            # Checked under the lock so two concurrent reversals cannot both pass
            siblings = await self._store.list_transactions(account_id=original.account_id)
            if any(t.reversal_of == original.id for t in siblings):
                raise ValidationError.for_field(
                    "transaction_id",
                    f"Transaction {transaction_id} has already been reversed",
                    issue_type="already_reversed",
                )
            [reversal], _ = await self._commit([draft], owner_id, correlation_id)

        await self._audit.log_transaction_reversed(original, reversal, correlation_id)
        return reversal

    async def transfer(
        self,
        owner_id: int,
        from_account_id: int,
        to_account_id: int,
        amount: Union[Decimal, str],
        description: str,
        date: Optional[datetime] = None,
    ) -> tuple[Transaction, Transaction]:
        """
        Move money between two of the owner's accounts.

        Posts a transfer debit on the source and a deposit credit on the
        destination in a single store commit.

        Returns:
            (debit, credit)
        """
        correlation_id = create_correlation_id()
        if from_account_id == to_account_id:
            await self._audit.log_posting_rejected(
                from_account_id,
                owner_id,
                "source and destination are the same account",
                correlation_id=correlation_id,
            )
            raise ValidationError.for_field(
                "to_account_id",
                "Cannot transfer to the same account",
                issue_type="invalid_value",
            )

        when = date or utcnow()
        debit = await self._draft(
            correlation_id,
            account_id=from_account_id,
            user_id=owner_id,
            amount=amount,
            description=description,
            type=TransactionType.TRANSFER,
            date=when,
        )
        credit = await self._draft(
            correlation_id,
            account_id=to_account_id,
            user_id=owner_id,
            amount=amount,
            description=description,
            type=TransactionType.DEPOSIT,
            date=when,
        )
        await self._owned_account(from_account_id, owner_id, correlation_id)
        await self._owned_account(to_account_id, owner_id, correlation_id)

        async with self._locks.hold(from_account_id, to_account_id):
            posted, _ = await self._commit([debit, credit], owner_id, correlation_id)

        debit_tx, credit_tx = posted
        await self._audit.log_transfer_posted(debit_tx, credit_tx, correlation_id)
        return debit_tx, credit_tx

    async def _draft(self, correlation_id: UUID, **data: Any) -> TransactionDraft:
        """Validate a posting request; audit and re-raise on rejection."""
        try:
            draft = self._validator.parse(TransactionDraft, data)
            warnings = self._validator.check_posting(draft)
        except ValidationError as e:
            await self._audit.log_posting_rejected(
                _as_id(data.get("account_id")),
                _as_id(data.get("user_id")),
                str(e),
                issues=[issue.model_dump() for issue in e.issues],
                correlation_id=correlation_id,
            )
            raise

        for warning in warnings:
            logger.warning(
                "posting_warning",
                account_id=draft.account_id,
                field=warning.field,
                issue_type=warning.issue_type,
                message=warning.message,
                correlation_id=str(correlation_id),
            )
        return draft

    async def _owned_account(
        self,
        account_id: int,
        owner_id: int,
        correlation_id: UUID,
    ) -> None:
        try:
            await self._accounts.get(account_id, owner_id)
        except NotFoundError as e:
            await self._audit.log_posting_rejected(
                account_id, owner_id, str(e), correlation_id=correlation_id
            )
            raise

    async def _commit(
        self,
        drafts: list[TransactionDraft],
        owner_id: int,
        correlation_id: UUID,
    ) -> tuple[list[Transaction], dict[int, Decimal]]:
        """
        Commit drafts as one unit. Callers hold the account locks.

        Returns:
            The posted transactions and each touched account's new balance
        """
        account_ids = sorted({draft.account_id for draft in drafts})
        try:
            posted = await self._store.commit_postings(drafts)
        except StorageError as e:
            await self._audit.log_posting_failed(
                account_ids, owner_id, str(e), correlation_id
            )
            raise ConsistencyError(f"Posting could not be committed: {e}") from e

        balances = {}
        for account_id in account_ids:
            account = await self._store.get_account(account_id)
            balances[account_id] = account.balance
        return posted, balances
