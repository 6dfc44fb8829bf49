"""Diagnosis completion and the follow-up match generation."""

import logging
from typing import Any

from taxmatch.config import DEFAULT_MATCH_LIMIT
from taxmatch.schemas.criteria import MatchingCriteria
from taxmatch.schemas.diagnosis import Diagnosis
from taxmatch.schemas.match import MatchDecision
from taxmatch.services.match_service import MatchService
from taxmatch.utils import TaxMatchError, parse_criteria

logger = logging.getLogger(__name__)


def generate_matches_best_effort(
    service: MatchService,
    diagnosis: Diagnosis,
    limit: int = DEFAULT_MATCH_LIMIT,
) -> list[MatchDecision] | None:
    """Generate matches for a diagnosis without letting failures propagate.

    Matching can always be retried later through regenerate, so a failure
    here is logged and reported as None instead of failing the caller.

    Args:
        service: Match service to run the pipeline.
        diagnosis: Newly saved diagnosis.
        limit: Maximum number of decisions.

    Returns:
        Stored decisions, or None if generation failed.
    """
    try:
        return service.generate_if_absent(diagnosis.id, limit=limit)
    except TaxMatchError as e:
        logger.error(f"Failed to generate matches for diagnosis {diagnosis.id}: {e}")
    except Exception:
        logger.exception(f"Unexpected error generating matches for diagnosis {diagnosis.id}")
    return None


def complete_diagnosis(
    service: MatchService,
    user_id: str,
    answers: dict[str, Any],
    criteria: MatchingCriteria | dict[str, Any] | None = None,
    limit: int = DEFAULT_MATCH_LIMIT,
) -> tuple[Diagnosis, list[MatchDecision] | None]:
    """Save a completed diagnosis and generate its first matches.

    Matches are generated only for newly created diagnoses that carry
    preferences. A diagnosis that updated a recent one keeps its stored
    snapshot until it is explicitly regenerated.

    Args:
        service: Match service whose diagnosis repository stores the result.
        user_id: Client who answered the diagnosis.
        answers: Raw answers keyed by question id.
        criteria: Matching preferences derived from the answers.
        limit: Maximum number of decisions.

    Returns:
        Tuple of (Diagnosis, decisions) where decisions is None when no
        generation ran or it failed.

    Raises:
        InvalidCriteriaError: If criteria cannot be parsed.
    """
    parsed = parse_criteria(criteria) if criteria is not None else None
    diagnosis, created = service.diagnoses.save(user_id, answers, parsed)
    logger.info(
        f"Diagnosis {diagnosis.id} {'created' if created else 'updated'} for user {user_id}"
    )

    if not created or diagnosis.criteria is None:
        return diagnosis, None

    return diagnosis, generate_matches_best_effort(service, diagnosis, limit=limit)
