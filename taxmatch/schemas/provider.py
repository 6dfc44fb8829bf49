from pydantic import BaseModel, Field

from taxmatch.schemas.candidate import CandidateSpecialty, PricingTier


class PricingPlan(PricingTier):
    """A pricing plan as stored, including inactive ones."""

    is_active: bool = Field(default=True, description="Whether the plan is offered")


class Provider(BaseModel):
    """A tax accountant as registered in the provider directory."""

    id: str = Field(description="Provider identifier")
    display_name: str | None = Field(default=None, description="Name shown to clients")
    prefecture: str | None = Field(default=None, description="Prefecture of the office")
    city: str | None = Field(default=None, description="City of the office")
    years_of_experience: int = Field(default=0, ge=0, description="Total years in practice")
    average_rating: float | None = Field(default=None, ge=0, le=5, description="5-star average")
    total_reviews: int = Field(default=0, ge=0, description="Number of visible reviews")
    is_active: bool = Field(default=True, description="Whether the account is active")
    is_accepting_clients: bool = Field(default=True, description="Whether new clients are accepted")
    specialties: list[CandidateSpecialty] = Field(default=[], description="Specialties in display order")
    pricing_plans: list[PricingPlan] = Field(default=[], description="Plans in display order")
