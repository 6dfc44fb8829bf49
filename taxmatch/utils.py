"""Shared utilities for taxmatch."""

from typing import Any

from pydantic import ValidationError

from taxmatch.schemas.criteria import MatchingCriteria


class TaxMatchError(Exception):
    """Base class for matching engine errors."""

    pass


class InvalidCriteriaError(TaxMatchError):
    """Raised when matching criteria or run parameters are structurally invalid."""

    pass


class DiagnosisNotFoundError(TaxMatchError):
    """Raised when no diagnosis exists for the requested source id."""

    def __init__(self, source_id: str):
        super().__init__(f"Diagnosis result not found: {source_id}")
        self.source_id = source_id


class MatchStoreError(TaxMatchError):
    """Raised when a match snapshot could not be written."""

    pass


def parse_criteria(raw: MatchingCriteria | dict[str, Any] | None) -> MatchingCriteria:
    """Build MatchingCriteria from a model, a dict, or None.

    Args:
        raw: Criteria as received from the diagnosis flow or a caller.

    Returns:
        Validated MatchingCriteria (empty when raw is None).

    Raises:
        InvalidCriteriaError: If raw cannot be deserialized into criteria.
    """
    if raw is None:
        return MatchingCriteria()
    if isinstance(raw, MatchingCriteria):
        return raw
    if not isinstance(raw, dict):
        raise InvalidCriteriaError(
            f"Criteria must be an object, got {type(raw).__name__}"
        )
    try:
        return MatchingCriteria.model_validate(raw)
    except ValidationError as e:
        raise InvalidCriteriaError(f"Invalid matching criteria: {e}") from e


def format_price(amount: int) -> str:
    """Format a monthly price for reason descriptions (e.g., '月額30,000円～')."""
    return f"月額{amount:,}円～"
