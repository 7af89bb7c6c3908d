"""Validation package."""

from banksecure.validation.validator import (
    IMMUTABLE_FIELDS,
    LedgerValidator,
    issues_from_pydantic,
)

__all__ = ["IMMUTABLE_FIELDS", "LedgerValidator", "issues_from_pydantic"]
