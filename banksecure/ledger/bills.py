"""
Bill Book

Upcoming and settled bills. A bill never touches a balance on its own;
only mark_paid with an account posts a payment.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, Union

from banksecure.audit import AuditLogger
from banksecure.config import get_settings
from banksecure.errors import AccessDeniedError, NotFoundError, ValidationError, require_owned
from banksecure.ledger.transactions import TransactionRecorder
from banksecure.locks import KeyedLock
from banksecure.models.ledger import ZERO, Bill, BillCreate, BillUpdate, TransactionType
from banksecure.services.storage import LedgerStorageInterface
from banksecure.validation import LedgerValidator


BILL_UPDATABLE_FIELDS = frozenset({"name", "amount", "due_date", "is_paid", "is_recurring"})


class BillBook:
    """Owner-scoped bills."""

    def __init__(
        self,
        store: LedgerStorageInterface,
        recorder: TransactionRecorder,
        validator: Optional[LedgerValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        locks: Optional[KeyedLock] = None,
    ):
        self._store = store
        self._recorder = recorder
        self._validator = validator or LedgerValidator()
        self._audit = audit_logger or AuditLogger()
        # Separate from the account locks: keys here are bill ids
        self._locks = locks or KeyedLock(get_settings().ledger.lock_timeout_seconds)

    async def create(
        self,
        owner_id: int,
        name: str,
        amount: Union[Decimal, str],
        due_date: datetime,
        is_paid: bool = False,
        is_recurring: bool = False,
    ) -> Bill:
        data = self._validator.parse(BillCreate, {
            "user_id": owner_id,
            "name": name,
            "amount": amount,
            "due_date": due_date,
            "is_paid": is_paid,
            "is_recurring": is_recurring,
        })
        bill = await self._store.insert_bill(data)
        await self._audit.log_bill_created(bill)
        return bill

    async def get(self, bill_id: int, owner_id: Optional[int] = None) -> Bill:
        bill = await self._store.get_bill(bill_id)
        try:
            return require_owned(bill, "bill", bill_id, owner_id)
        except AccessDeniedError:
            await self._audit.log_access_denied("bill", bill_id, owner_id)
            raise

    async def list_for_owner(self, owner_id: int) -> list[Bill]:
        """Bills by due date, soonest first."""
        bills = await self._store.list_bills(owner_id)
        return sorted(bills, key=lambda b: b.due_date)

    async def update(
        self,
        bill_id: int,
        fields: dict[str, Any],
        owner_id: Optional[int] = None,
    ) -> Bill:
        self._validator.check_update_fields(fields, BILL_UPDATABLE_FIELDS, "bill")
        update = self._validator.parse(BillUpdate, fields)
        changes = update.model_dump(exclude_unset=True, exclude_none=True)
        bill = await self.get(bill_id, owner_id)
        if not changes:
            return bill

        async with self._locks.hold(bill_id):
            updated = await self._store.update_bill(bill_id, changes)
        if updated is None:
            raise NotFoundError("bill", bill_id)

        await self._audit.log_bill_updated(updated, sorted(changes))
        return updated

    async def delete(self, bill_id: int, owner_id: Optional[int] = None) -> None:
        bill = await self.get(bill_id, owner_id)
        async with self._locks.hold(bill_id):
            deleted = await self._store.delete_bill(bill_id)
        if not deleted:
            raise NotFoundError("bill", bill_id)
        await self._audit.log_bill_deleted(bill_id, bill.user_id)

    async def mark_paid(
        self,
        bill_id: int,
        owner_id: int,
        account_id: Optional[int] = None,
    ) -> Bill:
        """
        Mark a bill paid.

        With account_id, a payment for the bill amount is posted against
        that account first. Without it, or for a bill of 0.00, no
        transaction is created.

        Raises:
            ValidationError: The bill is already paid
        """
        await self.get(bill_id, owner_id)

        async with self._locks.hold(bill_id):
            # Re-read under the lock so a bill is never paid twice
            bill = await self.get(bill_id, owner_id)
            if bill.is_paid:
                raise ValidationError.for_field(
                    "is_paid",
                    f"Bill {bill_id} is already paid",
                    issue_type="already_paid",
                )

            transaction_id = None
            if account_id is not None and bill.amount == ZERO:
                # Nothing to move; the account must still be the owner's
                await self._recorder.accounts.get(account_id, owner_id)
            elif account_id is not None:
                payment = await self._recorder.post(
                    owner_id=owner_id,
                    account_id=account_id,
                    amount=bill.amount,
                    description=f"Bill payment: {bill.name}",
                    type=TransactionType.PAYMENT,
                )
                transaction_id = payment.id

            updated = await self._store.update_bill(bill_id, {"is_paid": True})

        await self._audit.log_bill_paid(updated, transaction_id)
        return updated
