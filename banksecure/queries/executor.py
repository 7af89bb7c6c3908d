"""
Ledger Query Execution

DESIGN DECISION: Reports are DERIVED, never stored.
Every figure returned here is computed from the accounts and the
transaction log at the time of the call, so a report can always be
re-run and checked.

At no point does a report estimate or fill in missing data.
"""

from collections import defaultdict
from decimal import Decimal
from typing import Optional

from banksecure.audit import AuditLogger
from banksecure.errors import AccessDeniedError, ValidationError, require_owned
from banksecure.locks import KeyedLock
from banksecure.models.ledger import ZERO, Budget, Transaction, TransactionType
from banksecure.models.reports import AccountReconciliation, BudgetStatus, MonthlySummary
from banksecure.services.storage import LedgerStorageInterface


def in_month(transaction: Transaction, month: int, year: int) -> bool:
    return transaction.date.month == month and transaction.date.year == year


def derive_budget_spend(budget: Budget, transactions: list[Transaction]) -> Decimal:
    """
    Spend against a budget, from the owner's transactions.

    Counts outgoing transactions of the budget's category dated in its
    month, less the reversals of those transactions.
    """
    counted = {
        t.id: t
        for t in transactions
        if t.user_id == budget.user_id
        and not t.type.is_credit
        and not t.is_reversal
        and t.category == budget.category
        and in_month(t, budget.month, budget.year)
    }
    spent = sum((t.amount for t in counted.values()), ZERO)
    refunded = sum(
        (t.amount for t in transactions if t.reversal_of in counted),
        ZERO,
    )
    return spent - refunded


class LedgerQueryExecutor:
    """
    Read-side reports over a ledger store.

    GUARANTEES:
    - Only returns figures computed from stored data
    - Reconciliation reads an account and its history under the account's
      lock, so a concurrent posting cannot show up as drift
    """

    def __init__(
        self,
        store: LedgerStorageInterface,
        locks: Optional[KeyedLock] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._locks = locks
        self._audit = audit_logger or AuditLogger()

    async def reconcile_account(
        self,
        account_id: int,
        owner_id: Optional[int] = None,
    ) -> AccountReconciliation:
        """
        Check balance == opening_balance + sum of signed deltas.

        Drift is reported, never corrected, and is audited as an error.
        """
        if self._locks is not None:
            async with self._locks.hold(account_id):
                report = await self._reconcile(account_id, owner_id)
        else:
            report = await self._reconcile(account_id, owner_id)

        if not report.is_consistent:
            account = await self._store.get_account(account_id)
            await self._audit.log_reconciliation_drift(
                account_id,
                account.user_id,
                report.expected_balance,
                report.actual_balance,
            )
        return report

    async def _reconcile(
        self,
        account_id: int,
        owner_id: Optional[int],
    ) -> AccountReconciliation:
        account = await self._store.get_account(account_id)
        try:
            account = require_owned(account, "account", account_id, owner_id)
        except AccessDeniedError:
            await self._audit.log_access_denied("account", account_id, owner_id)
            raise

        transactions = await self._store.list_transactions(account_id=account_id)
        total = sum((t.signed_amount for t in transactions), ZERO)
        return AccountReconciliation(
            account_id=account_id,
            opening_balance=account.opening_balance,
            transaction_total=total,
            expected_balance=account.opening_balance + total,
            actual_balance=account.balance,
            transaction_count=len(transactions),
        )

    async def monthly_summary(
        self,
        owner_id: int,
        month: int,
        year: int,
    ) -> MonthlySummary:
        """Money in, money out and per-type totals for one month."""
        self._check_period(month, year)
        transactions = [
            t for t in await self._store.list_transactions(user_id=owner_id)
            if in_month(t, month, year)
        ]

        totals: dict[TransactionType, Decimal] = defaultdict(lambda: ZERO)
        money_in = ZERO
        money_out = ZERO
        for t in transactions:
            totals[t.type] += t.amount
            if t.type.is_credit:
                money_in += t.amount
            else:
                money_out += t.amount

        return MonthlySummary(
            user_id=owner_id,
            month=month,
            year=year,
            money_in=money_in,
            money_out=money_out,
            transaction_count=len(transactions),
            totals_by_type=dict(totals),
        )

    async def budget_spend(self, budget: Budget) -> Decimal:
        """Spend derived from the transaction log for one budget."""
        transactions = await self._store.list_transactions(user_id=budget.user_id)
        return derive_budget_spend(budget, transactions)

    async def budget_report(
        self,
        owner_id: int,
        month: int,
        year: int,
    ) -> list[BudgetStatus]:
        """Every budget of the month with recorded and derived spend."""
        self._check_period(month, year)
        budgets = [
            b for b in await self._store.list_budgets(owner_id)
            if b.month == month and b.year == year
        ]
        if not budgets:
            return []

        transactions = await self._store.list_transactions(user_id=owner_id)
        return [
            BudgetStatus(
                budget=budget,
                derived_spent=derive_budget_spend(budget, transactions),
            )
            for budget in budgets
        ]

    @staticmethod
    def _check_period(month: int, year: int) -> None:
        if not 1 <= month <= 12:
            raise ValidationError.for_field(
                "month",
                f"Month must be between 1 and 12, got {month}",
                issue_type="out_of_range",
            )
        if not 1900 <= year <= 9999:
            raise ValidationError.for_field(
                "year",
                f"Year must be between 1900 and 9999, got {year}",
                issue_type="out_of_range",
            )
