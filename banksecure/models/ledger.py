"""
Core Data Models for the Ledger

These models define the strict schemas for every record the ledger keeps.
They are designed to:
1. Enforce type safety and closed enumerations at runtime
2. Provide clear validation error messages
3. Be serializable for storage and logging

DESIGN DECISION: Money is Decimal with at most two decimal places.
Amounts with more precision are REJECTED, never rounded, so that
balance arithmetic is exact.

All timestamps are timezone-aware UTC. Naive datetimes are taken to be UTC.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Optional

from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalize a datetime to aware UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]

Money = Annotated[Decimal, Field(max_digits=14, decimal_places=2)]

ZERO = Decimal("0.00")


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    """Supported account types."""
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT = "credit"
    INVESTMENT = "investment"


class TransactionType(str, Enum):
    """
    Transaction types.

    The type alone decides the direction of the balance effect.
    Amounts are always stored as magnitudes.
    """
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TRANSFER = "transfer"
    PAYMENT = "payment"
    FEE = "fee"
    INTEREST = "interest"

    @property
    def is_credit(self) -> bool:
        """True if this type increases the balance."""
        return self in CREDIT_TYPES

    def signed(self, amount: Decimal) -> Decimal:
        """Signed balance delta for a magnitude of this type."""
        return amount if self.is_credit else -amount


CREDIT_TYPES = frozenset({TransactionType.DEPOSIT, TransactionType.INTEREST})
DEBIT_TYPES = frozenset({
    TransactionType.WITHDRAWAL,
    TransactionType.TRANSFER,
    TransactionType.PAYMENT,
    TransactionType.FEE,
})


class BudgetCategory(str, Enum):
    """
    Budget categories.

    DESIGN DECISION: Using a fixed set rather than free text keeps budgets
    and categorized spending comparable.
    """
    HOUSING = "housing"
    TRANSPORTATION = "transportation"
    FOOD = "food"
    UTILITIES = "utilities"
    HEALTHCARE = "healthcare"
    ENTERTAINMENT = "entertainment"
    SHOPPING = "shopping"
    PERSONAL = "personal"
    DEBT = "debt"
    SAVINGS = "savings"
    OTHER = "other"


def mask_account_number(value: str) -> str:
    """Keep only the last four characters of an account number visible."""
    value = value.strip()
    if len(value) <= 4 or value.startswith("*"):
        return value
    return "****" + value[-4:]


# =============================================================================
# ACCOUNTS
# =============================================================================

class Account(BaseModel):
    """
    A user's account and its current balance.

    INVARIANT: balance == opening_balance + sum of the signed deltas of
    every transaction posted against this account.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int = Field(..., ge=1)
    user_id: int
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    balance: Money = ZERO
    opening_balance: Money = ZERO
    account_number: str = Field(default="", max_length=34)
    is_active: bool = True
    created_at: UtcDatetime = Field(default_factory=utcnow)


class AccountCreate(BaseModel):
    """Input for opening an account."""
    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: int
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    initial_balance: Money = ZERO
    account_number: str = Field(default="", max_length=34)
    is_active: bool = True

    @field_validator("account_number")
    @classmethod
    def mask_number(cls, v: str) -> str:
        return mask_account_number(v)


class AccountUpdate(BaseModel):
    """
    Partial update of an account.

    Balance is deliberately absent: it only moves through postings.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[AccountType] = None
    account_number: Optional[str] = Field(default=None, max_length=34)
    is_active: Optional[bool] = None

    @field_validator("account_number")
    @classmethod
    def mask_number(cls, v: Optional[str]) -> Optional[str]:
        return mask_account_number(v) if v is not None else v


# =============================================================================
# TRANSACTIONS
# =============================================================================

class TransactionDraft(BaseModel):
    """
    A transaction that has been requested but not yet posted.

    The store assigns id and created_at when it commits the draft.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: int
    user_id: int
    amount: Annotated[Decimal, Field(gt=0, max_digits=14, decimal_places=2)]
    description: str = Field(..., min_length=1, max_length=500)
    type: TransactionType
    date: UtcDatetime = Field(default_factory=utcnow)
    category: Optional[BudgetCategory] = None
    reversal_of: Optional[int] = None

    @property
    def signed_amount(self) -> Decimal:
        return self.type.signed(self.amount)


class Transaction(BaseModel):
    """
    A posted transaction. Immutable once created.

    amount is a non-negative magnitude; direction comes from type.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: int = Field(..., ge=1)
    account_id: int
    user_id: int
    amount: Annotated[Decimal, Field(ge=0, max_digits=14, decimal_places=2)]
    description: str
    type: TransactionType
    date: UtcDatetime
    category: Optional[BudgetCategory] = None
    reversal_of: Optional[int] = None
    created_at: UtcDatetime = Field(default_factory=utcnow)

    @property
    def signed_amount(self) -> Decimal:
        return self.type.signed(self.amount)

    @property
    def is_reversal(self) -> bool:
        return self.reversal_of is not None


# =============================================================================
# BILLS
# =============================================================================

class Bill(BaseModel):
    """An upcoming or settled bill. Independent of account balances."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int = Field(..., ge=1)
    user_id: int
    name: str = Field(..., min_length=1, max_length=200)
    amount: Annotated[Decimal, Field(ge=0, max_digits=14, decimal_places=2)]
    due_date: UtcDatetime
    is_paid: bool = False
    is_recurring: bool = False
    created_at: UtcDatetime = Field(default_factory=utcnow)


class BillCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: int
    name: str = Field(..., min_length=1, max_length=200)
    amount: Annotated[Decimal, Field(ge=0, max_digits=14, decimal_places=2)]
    due_date: UtcDatetime
    is_paid: bool = False
    is_recurring: bool = False


class BillUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount: Optional[Annotated[Decimal, Field(ge=0, max_digits=14, decimal_places=2)]] = None
    due_date: Optional[UtcDatetime] = None
    is_paid: Optional[bool] = None
    is_recurring: Optional[bool] = None


# =============================================================================
# BUDGETS
# =============================================================================

class Budget(BaseModel):
    """
    A monthly spending allowance for one category.

    NOTE: spent is maintained by explicit updates. It can be re-derived
    from the transaction log on request, but is not kept in sync
    automatically.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: int = Field(..., ge=1)
    user_id: int
    category: BudgetCategory
    amount: Annotated[Decimal, Field(ge=0, max_digits=14, decimal_places=2)]
    spent: Annotated[Decimal, Field(ge=0, max_digits=14, decimal_places=2)] = ZERO
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1900, le=9999)
    created_at: UtcDatetime = Field(default_factory=utcnow)

    @property
    def remaining(self) -> Decimal:
        return self.amount - self.spent

    @property
    def is_over_budget(self) -> bool:
        return self.spent > self.amount


class BudgetCreate(BaseModel):
    user_id: int
    category: BudgetCategory
    amount: Annotated[Decimal, Field(ge=0, max_digits=14, decimal_places=2)]
    month: int = Field(..., ge=1, le=12)
    year: int = Field(..., ge=1900, le=9999)


class BudgetUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    category: Optional[BudgetCategory] = None
    amount: Optional[Annotated[Decimal, Field(ge=0, max_digits=14, decimal_places=2)]] = None
    spent: Optional[Annotated[Decimal, Field(ge=0, max_digits=14, decimal_places=2)]] = None
    month: Optional[int] = Field(default=None, ge=1, le=12)
    year: Optional[int] = Field(default=None, ge=1900, le=9999)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'out_of_range', 'immutable_field')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )
