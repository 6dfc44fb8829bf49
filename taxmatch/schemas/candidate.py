from pydantic import BaseModel, ConfigDict, Field


class CandidateSpecialty(BaseModel):
    """A specialty field a provider practices in."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1, description="Specialty name (e.g., 'IT・EC業界', '相続')")
    years_of_experience: int = Field(
        default=0,
        ge=0,
        description="Years of experience in this specialty",
    )


class PricingTier(BaseModel):
    """An active pricing plan offered by a provider."""

    model_config = ConfigDict(frozen=True)

    base_price: int = Field(ge=0, description="Monthly base price")
    name: str | None = Field(default=None, description="Plan name")


class Candidate(BaseModel):
    """Snapshot of an eligible provider used during one matching run.

    Built by a candidate repository and never mutated by scorers.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Provider identifier")
    display_name: str | None = Field(default=None, description="Name shown to clients")
    specialties: tuple[CandidateSpecialty, ...] = Field(
        default=(),
        description="Specialties in display order",
    )
    pricing_tiers: tuple[PricingTier, ...] = Field(
        default=(),
        description="Active pricing tiers only",
    )
    prefecture: str | None = Field(default=None, description="Prefecture of the office")
    city: str | None = Field(default=None, description="City of the office")
    years_of_experience: int = Field(default=0, ge=0, description="Total years in practice")
    average_rating: float | None = Field(
        default=None,
        ge=0,
        le=5,
        description="Average review rating on a 5-star scale",
    )
    total_reviews: int = Field(default=0, ge=0, description="Number of visible reviews")
