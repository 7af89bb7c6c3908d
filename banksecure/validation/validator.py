"""
Two-Stage Input Validation

DESIGN DECISION: Every request is validated in two distinct stages
before anything is written:

STAGE 1 - SCHEMA VALIDATION:
- Type checking and closed enumerations
- Required field presence
- Money precision (at most two decimal places, never rounded)
- This catches malformed requests

STAGE 2 - SEMANTIC VALIDATION:
- Configured ceiling on a single posting
- Far-future transaction dates
- Fields that may never be edited (balance, ownership, ids)
- This catches requests that are well-formed but not acceptable

IMPORTANT: Validation NEVER silently fixes issues.
It raises with every problem found, or reports warnings for logging.
"""

from datetime import timedelta
from decimal import Decimal
from typing import Any, Iterable, Optional, TypeVar

from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from banksecure.config import LedgerSettings, get_settings
from banksecure.errors import ValidationError
from banksecure.models.ledger import Money, TransactionDraft, ValidationIssue, utcnow


M = TypeVar("M", bound=BaseModel)

# Fields no update may touch, whatever the entity
IMMUTABLE_FIELDS = frozenset({"id", "user_id", "balance", "opening_balance", "created_at"})

_money = TypeAdapter(Money)


def issues_from_pydantic(error: PydanticValidationError) -> list[ValidationIssue]:
    """Translate pydantic's error list into ValidationIssues."""
    issues = []
    for err in error.errors():
        field = ".".join(str(part) for part in err["loc"]) or "input"
        issues.append(ValidationIssue(
            field=field,
            issue_type=err["type"],
            message=err["msg"],
            severity="error",
        ))
    return issues


class LedgerValidator:
    """
    Validates ledger input.

    Stage 1 (parse, parse_money) turns raw input into models.
    Stage 2 (check_posting, check_update_fields) applies ledger rules.
    """

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().ledger

    def parse(self, model_cls: type[M], data: dict[str, Any]) -> M:
        """
        Stage 1: build a model from raw input.

        Raises:
            ValidationError: With one issue per offending field
        """
        try:
            return model_cls.model_validate(data)
        except PydanticValidationError as e:
            issues = issues_from_pydantic(e)
            fields = ", ".join(issue.field for issue in issues)
            raise ValidationError(
                f"Invalid {model_cls.__name__}: {fields}",
                issues=issues,
            ) from e

    def parse_money(self, value: Any, field: str = "amount") -> Decimal:
        """Stage 1 for a bare signed amount."""
        try:
            return _money.validate_python(value)
        except PydanticValidationError as e:
            raise ValidationError.for_field(
                field,
                f"Invalid {field}: {e.errors()[0]['msg']}",
                suggested_fix="Use a number with at most two decimal places",
            ) from e

    def check_posting(self, draft: TransactionDraft) -> list[ValidationIssue]:
        """
        Stage 2: ledger rules for a posting.

        Returns:
            Warnings worth logging (the posting may proceed)

        Raises:
            ValidationError: If the posting must be refused
        """
        issues = []

        if draft.amount > self._settings.max_transaction_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="out_of_range",
                message=(
                    f"Amount {draft.amount} exceeds the limit of "
                    f"{self._settings.max_transaction_amount}"
                ),
                severity="error",
                suggested_fix="Split the posting or raise the configured limit",
            ))

        # Future date check (with tolerance)
        latest = utcnow() + timedelta(days=self._settings.future_date_tolerance_days)
        if draft.date > latest:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Transaction date ({draft.date.date()}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        errors = [issue for issue in issues if issue.severity == "error"]
        if errors:
            raise ValidationError(errors[0].message, issues=issues)

        return issues

    def check_update_fields(
        self,
        fields: dict[str, Any],
        allowed: Iterable[str],
        entity_type: str,
    ) -> None:
        """
        Stage 2: only whitelisted fields may be updated.

        Raises:
            ValidationError: Naming every field that may not be set
        """
        allowed = set(allowed)
        issues = []
        for name in fields:
            if name in allowed:
                continue
            if name in IMMUTABLE_FIELDS:
                issues.append(ValidationIssue(
                    field=name,
                    issue_type="immutable_field",
                    message=f"{entity_type.capitalize()} field '{name}' cannot be updated",
                    severity="error",
                    suggested_fix=(
                        "Post a transaction to change the balance"
                        if name == "balance" else None
                    ),
                ))
            else:
                issues.append(ValidationIssue(
                    field=name,
                    issue_type="unknown_field",
                    message=f"{entity_type.capitalize()} has no updatable field '{name}'",
                    severity="error",
                    suggested_fix=f"Updatable fields: {', '.join(sorted(allowed))}",
                ))

        if issues:
            raise ValidationError(issues[0].message, issues=issues)
