"""
Report Models

Read-side views computed from the transaction log. Nothing here is
persisted; every report can be recomputed at any time.
"""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from banksecure.models.ledger import (
    Budget,
    TransactionType,
    UtcDatetime,
    utcnow,
)


class AccountReconciliation(BaseModel):
    """
    Comparison of an account's stored balance against its history.

    expected_balance = opening_balance + sum of signed transaction deltas.
    """

    account_id: int
    opening_balance: Decimal
    transaction_total: Decimal = Field(
        ...,
        description="Sum of signed deltas of all postings"
    )
    expected_balance: Decimal
    actual_balance: Decimal
    transaction_count: int = Field(ge=0)
    checked_at: UtcDatetime = Field(default_factory=utcnow)

    @property
    def drift(self) -> Decimal:
        return self.actual_balance - self.expected_balance

    @property
    def is_consistent(self) -> bool:
        return self.drift == 0


class MonthlySummary(BaseModel):
    """Cash flow of one owner for one calendar month."""

    user_id: int
    month: int = Field(ge=1, le=12)
    year: int
    money_in: Decimal
    money_out: Decimal
    transaction_count: int = Field(ge=0)
    totals_by_type: dict[TransactionType, Decimal] = Field(default_factory=dict)

    @property
    def net(self) -> Decimal:
        return self.money_in - self.money_out


class BudgetStatus(BaseModel):
    """A budget alongside the spend derived from transactions."""

    budget: Budget
    derived_spent: Decimal
    generated_at: datetime = Field(default_factory=utcnow)

    @property
    def recorded_spent(self) -> Decimal:
        return self.budget.spent

    @property
    def remaining(self) -> Decimal:
        return self.budget.amount - self.derived_spent

    @property
    def is_over_budget(self) -> bool:
        return self.derived_spent > self.budget.amount

    @property
    def is_in_sync(self) -> bool:
        return self.derived_spent == self.budget.spent
