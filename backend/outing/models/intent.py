"""Intent models - plan form input and normalized constraints."""

from datetime import date, time
from enum import Enum

from pydantic import BaseModel, Field, ValidationInfo, field_validator

from backend.outing.models.common import EventCategory


class Occasion(str, Enum):
    """Occasion chosen on the plan form."""

    date_night = "date_night"
    celebration = "celebration"
    friends_day_out = "friends_day_out"
    family_outing = "family_outing"
    solo_adventure = "solo_adventure"
    chill_hangout = "chill_hangout"


class BudgetRange(str, Enum):
    """Per-person budget bucket."""

    free = "free"
    under_30 = "under_30"
    from_30_to_60 = "30_to_60"
    from_60_to_100 = "60_to_100"
    over_100 = "100_plus"


class TimeOfDay(str, Enum):
    """Preferred part of the day."""

    morning = "morning"
    afternoon = "afternoon"
    evening = "evening"
    night = "night"
    flexible = "flexible"


class Duration(str, Enum):
    """Requested outing length."""

    two_to_three_hours = "2_3_hours"
    half_day = "half_day"
    full_day = "full_day"


class IntentType(str, Enum):
    """Kind of request the run is serving."""

    plan_date = "plan_date"
    plan_trip = "plan_trip"
    find_events = "find_events"
    book_specific = "book_specific"
    modify_plan = "modify_plan"


class PlanFormData(BaseModel):
    """Structured request submitted by the plan wizard."""

    occasion: Occasion
    budget_range: BudgetRange = BudgetRange.from_30_to_60
    party_size: int = Field(1, ge=1, le=20)
    date: date
    time_of_day: TimeOfDay = TimeOfDay.flexible
    duration: Duration = Duration.half_day
    areas: list[str] = Field(default_factory=list)
    additional_notes: str = ""
    prefer_free_events: bool = False


class TimeWindow(BaseModel):
    """Local time window the plan must fit in. May wrap past midnight."""

    label: str
    start: time
    end: time

    @property
    def range_label(self) -> str:
        """Render as HH:MM–HH:MM."""
        return f"{self.start.strftime('%H:%M')}–{self.end.strftime('%H:%M')}"


class UserConstraints(BaseModel):
    """Normalized constraints consumed by discovery, ranking and planning."""

    date: date
    party_size: int = Field(1, ge=1)
    budget_min: float | None = Field(None, ge=0)
    budget_max: float | None = Field(None, ge=0)
    preferred_categories: list[EventCategory] = Field(default_factory=list)
    excluded_categories: list[EventCategory] = Field(default_factory=list)
    areas: list[str] = Field(default_factory=list)
    time_window: TimeWindow
    max_hours: float = Field(4, gt=0)
    allow_sold_out: bool = False
    prefer_free_events: bool = False
    is_outdoor_friendly: bool | None = None
    weather_sensitive: bool = False

    @field_validator("budget_max")
    @classmethod
    def validate_budget_max(cls, v: float | None, info: ValidationInfo) -> float | None:
        """Ensure budget_max >= budget_min when both are set."""
        budget_min = info.data.get("budget_min")
        if v is not None and budget_min is not None and v < budget_min:
            raise ValueError("budget_max must be >= budget_min")
        return v


class IntentEnrichment(BaseModel):
    """Optional reasoner output layered over the deterministic mapping."""

    preferred_categories: list[EventCategory] | None = None
    excluded_categories: list[EventCategory] | None = None
    weather_sensitive: bool | None = None
    reasoning: str | None = None
    confidence: float | None = None


class IntentResult(BaseModel):
    """Normalized intent for one run."""

    intent_type: IntentType
    constraints: UserConstraints
    summary: str
    enrichment: IntentEnrichment | None = None
