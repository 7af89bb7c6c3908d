"""Query execution package."""

from banksecure.queries.executor import (
    LedgerQueryExecutor,
    derive_budget_spend,
)

__all__ = ["LedgerQueryExecutor", "derive_budget_spend"]
