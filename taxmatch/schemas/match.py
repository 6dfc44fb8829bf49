from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class FactorType(str, Enum):
    """The five compatibility factors, in evaluation order."""

    SPECIALTY = "specialty"
    BUDGET = "budget"
    LOCATION = "location"
    EXPERIENCE = "experience"
    RATING = "rating"


class FactorResult(BaseModel):
    """Score and justification for one factor of one candidate."""

    model_config = ConfigDict(frozen=True)

    type: FactorType = Field(description="Which factor produced this result")
    score: float = Field(ge=0, le=100, description="Factor score (0-100)")
    description: str = Field(description="Human-readable justification")
    neutral: bool = Field(
        default=False,
        description="True when the score reflects missing information, not a match",
    )


class ScoredCandidate(BaseModel):
    """Aggregated score for a candidate, before ranking."""

    model_config = ConfigDict(frozen=True)

    candidate_id: str
    composite_score: float = Field(ge=0, le=100)
    reasons: tuple[FactorResult, ...] = ()


class MatchDecision(BaseModel):
    """A ranked match between a source request and a candidate."""

    model_config = ConfigDict(frozen=True)

    candidate_id: str = Field(description="Matched provider id")
    composite_score: float = Field(ge=0, le=100, description="Weighted score (0-100)")
    reasons: tuple[FactorResult, ...] = Field(
        default=(),
        description="Contributing factors, highest score first",
    )
    rank: int = Field(ge=1, description="1-based dense rank")


class MatchSnapshot(BaseModel):
    """The full set of ranked decisions produced by one matching run."""

    model_config = ConfigDict(frozen=True)

    source_id: str = Field(description="Diagnosis id the ranking was computed for")
    run_id: str = Field(description="Identifier of the run that produced the snapshot")
    decisions: tuple[MatchDecision, ...] = Field(default=(), description="Rank order")
    created_at: datetime
