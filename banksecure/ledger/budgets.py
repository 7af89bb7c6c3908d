"""
Budget Tracker

Budgets hold a spending allowance per category and month.

DESIGN DECISION: spent is maintained by explicit partial updates and is
NOT kept in step with postings automatically. recompute_spent derives it
from the transaction log when asked to, and budget_report shows both
figures side by side.
"""

from decimal import Decimal
from typing import Any, Optional, Union

from banksecure.audit import AuditLogger
from banksecure.errors import AccessDeniedError, require_owned
from banksecure.models.ledger import Budget, BudgetCategory, BudgetCreate, BudgetUpdate
from banksecure.queries import LedgerQueryExecutor
from banksecure.services.storage import LedgerStorageInterface
from banksecure.validation import LedgerValidator


BUDGET_UPDATABLE_FIELDS = frozenset({"category", "amount", "spent", "month", "year"})


class BudgetTracker:
    """Owner-scoped budgets."""

    def __init__(
        self,
        store: LedgerStorageInterface,
        queries: Optional[LedgerQueryExecutor] = None,
        validator: Optional[LedgerValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._audit = audit_logger or AuditLogger()
        self._queries = queries or LedgerQueryExecutor(store, audit_logger=self._audit)
        self._validator = validator or LedgerValidator()

    async def create(
        self,
        owner_id: int,
        category: Union[BudgetCategory, str],
        amount: Union[Decimal, str],
        month: int,
        year: int,
    ) -> Budget:
        """Create a budget with spent = 0."""
        data = self._validator.parse(BudgetCreate, {
            "user_id": owner_id,
            "category": category,
            "amount": amount,
            "month": month,
            "year": year,
        })
        budget = await self._store.insert_budget(data)
        await self._audit.log_budget_created(budget)
        return budget

    async def get(self, budget_id: int, owner_id: Optional[int] = None) -> Budget:
        budget = await self._store.get_budget(budget_id)
        try:
            return require_owned(budget, "budget", budget_id, owner_id)
        except AccessDeniedError:
            await self._audit.log_access_denied("budget", budget_id, owner_id)
            raise

    async def list_for_owner(self, owner_id: int) -> list[Budget]:
        return await self._store.list_budgets(owner_id)

    async def apply_partial_update(
        self,
        budget_id: int,
        fields: dict[str, Any],
        owner_id: Optional[int] = None,
    ) -> Budget:
        """
        Overwrite the given fields of a budget.

        Raises:
            ValidationError: Unknown or immutable field, or malformed value
            NotFoundError / AccessDeniedError: Missing or foreign budget
        """
        self._validator.check_update_fields(fields, BUDGET_UPDATABLE_FIELDS, "budget")
        update = self._validator.parse(BudgetUpdate, fields)
        changes = update.model_dump(exclude_unset=True, exclude_none=True)
        budget = await self.get(budget_id, owner_id)
        if not changes:
            return budget

        updated = await self._store.update_budget(budget_id, changes)
        await self._audit.log_budget_updated(updated, sorted(changes))
        return updated

    async def recompute_spent(
        self,
        budget_id: int,
        owner_id: Optional[int] = None,
    ) -> Budget:
        """Replace spent with the figure derived from the transaction log."""
        budget = await self.get(budget_id, owner_id)
        spent = await self._queries.budget_spend(budget)

        updated = await self._store.update_budget(budget_id, {"spent": spent})
        await self._audit.log_budget_recomputed(updated, budget.spent)
        return updated
