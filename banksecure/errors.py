"""
Domain Errors for the Ledger Core

Every failure a caller can act on maps to exactly one of these:

- ValidationError: malformed or out-of-enum input
- NotFoundError: the referenced entity does not exist
- AccessDeniedError: the entity exists but belongs to another owner
- ConsistencyError: a unit of work could not be applied as a whole

Validation and access checks always run before any mutation, so a
ValidationError, NotFoundError or AccessDeniedError guarantees that
nothing was written.
"""

from typing import Optional, TypeVar

from banksecure.models.ledger import ValidationIssue


T = TypeVar("T")


class LedgerError(Exception):
    """Base exception for the ledger core."""
    pass


class ValidationError(LedgerError):
    """
    Input rejected before any mutation.

    Carries the individual issues so the boundary layer can show
    field-level messages.
    """

    def __init__(self, message: str, issues: Optional[list[ValidationIssue]] = None):
        super().__init__(message)
        self.issues = issues or []

    @classmethod
    def for_field(
        cls,
        field: str,
        message: str,
        issue_type: str = "invalid_value",
        suggested_fix: Optional[str] = None,
    ) -> "ValidationError":
        """Build an error for a single offending field."""
        return cls(
            message,
            issues=[
                ValidationIssue(
                    field=field,
                    issue_type=issue_type,
                    message=message,
                    severity="error",
                    suggested_fix=suggested_fix,
                )
            ],
        )


class NotFoundError(LedgerError):
    """Referenced entity is absent."""

    def __init__(self, entity_type: str, entity_id: int):
        super().__init__(f"{entity_type.capitalize()} not found: {entity_id}")
        self.entity_type = entity_type
        self.entity_id = entity_id


class AccessDeniedError(LedgerError):
    """Entity exists but is owned by a different user."""

    def __init__(self, entity_type: str, entity_id: int, owner_id: int):
        super().__init__(
            f"User {owner_id} may not access {entity_type} {entity_id}"
        )
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.owner_id = owner_id


class ConsistencyError(LedgerError):
    """
    A balance update could not be applied atomically.

    When this is raised, neither the transaction record nor the balance
    change is visible. The caller may retry.
    """
    pass


class LockTimeoutError(ConsistencyError):
    """An account lock could not be acquired in time."""
    pass


def require_owned(
    entity: Optional[T],
    entity_type: str,
    entity_id: int,
    owner_id: Optional[int],
) -> T:
    """
    Return the entity if it exists and belongs to owner_id.

    owner_id=None skips the ownership check (internal callers).
    """
    if entity is None:
        raise NotFoundError(entity_type, entity_id)
    if owner_id is not None and entity.user_id != owner_id:
        raise AccessDeniedError(entity_type, entity_id, owner_id)
    return entity
