from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from taxmatch.schemas.criteria import MatchingCriteria


class Diagnosis(BaseModel):
    """A completed client diagnosis, the source of a match snapshot."""

    id: str = Field(description="Diagnosis identifier (snapshot source id)")
    user_id: str = Field(description="Client who answered the diagnosis")
    answers: dict[str, Any] = Field(
        default_factory=dict,
        description="Raw answers keyed by question id",
    )
    criteria: MatchingCriteria | None = Field(
        default=None,
        description="Matching preferences derived from the answers",
    )
    created_at: datetime
    completed_at: datetime | None = None
