from pydantic import BaseModel, ConfigDict, Field, field_validator


class MatchingCriteria(BaseModel):
    """A client's stated matching preferences for one run.

    Every field is optional. A missing field means "no preference" and the
    corresponding scorer falls back to its neutral score.
    Accepts both snake_case names and the camelCase wire names
    (e.g., ``businessType``) produced by the diagnosis flow.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    business_type: str | None = Field(
        default=None,
        alias="businessType",
        description="Client's business type (e.g., 'EC・小売', '飲食')",
    )
    budget: int | None = Field(
        default=None,
        ge=0,
        description="Monthly budget in a currency-agnostic unit",
    )
    needs: frozenset[str] | None = Field(
        default=None,
        description="Service-need tags (e.g., '確定申告', '記帳代行')",
    )
    frequency: str | None = Field(
        default=None,
        description="Desired service frequency (e.g., 'monthly')",
    )
    location: str | None = Field(
        default=None,
        description="Prefecture or region name",
    )
    revenue: int | None = Field(
        default=None,
        ge=0,
        description="Annual revenue of the client's business",
    )
    employee_count: int | None = Field(
        default=None,
        alias="employeeCount",
        ge=0,
        description="Number of employees",
    )

    @field_validator("business_type", "frequency", "location", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        """Treat blank strings as 'no preference'."""
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("needs", mode="before")
    @classmethod
    def _clean_needs(cls, value):
        if value is None:
            return None
        if not isinstance(value, (list, tuple, set, frozenset)):
            raise ValueError("needs must be a list of strings")
        if not all(isinstance(need, str) for need in value):
            raise ValueError("needs must contain only strings")
        cleaned = [need.strip() for need in value if need.strip()]
        return frozenset(cleaned) or None
