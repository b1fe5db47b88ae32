"""Itinerary models - draft plan schema and the scheduled itinerary."""

from datetime import date, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from backend.outing.models.common import EventCategory, TimeSlot, TravelMode
from backend.outing.models.event import Event

PriceCategory = Literal["free", "budget", "moderate", "premium", "luxury"]
DraftTravelMode = Literal["walk", "mrt", "taxi", "bus", "none"]
BudgetStatus = Literal["within_budget", "slightly_over", "over_budget"]


class _DraftModel(BaseModel):
    """Base for generated plan payloads (accepts camelCase keys)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DraftLocation(_DraftModel):
    """Location as proposed by the draft plan."""

    name: str
    address: str
    area: str | None = None


class DraftTravel(_DraftModel):
    """Travel leg from the previous draft item."""

    duration_minutes: float = Field(0, ge=0)
    mode: DraftTravelMode = "walk"
    description: str = ""


class DraftPlanItem(_DraftModel):
    """One proposed activity. Untrusted: times and names may be wrong."""

    name: str
    description: str
    category: EventCategory = EventCategory.other
    is_main_event: bool = False
    start_time: str = Field(..., description="HH:MM 24h local time")
    end_time: str = Field(..., description="HH:MM 24h local time")
    duration_minutes: float = Field(..., ge=0)
    location: DraftLocation
    estimated_cost_per_person: float = Field(0, ge=0)
    price_category: PriceCategory = "moderate"
    travel_from_previous: DraftTravel | None = None
    vibe_notes: str | None = None
    booking_required: bool = False
    source_url: str | None = None

    @field_validator("category", mode="before")
    @classmethod
    def coerce_category(cls, v: Any) -> Any:
        """Unknown categories fall back to other."""
        if isinstance(v, EventCategory):
            return v
        try:
            return EventCategory(str(v).lower())
        except ValueError:
            return EventCategory.other

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_hhmm(cls, v: str) -> str:
        """Ensure HH:MM with a valid hour and minute; 24:00 is the only hour-24 value."""
        parts = v.strip().split(":")
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            raise ValueError(f"expected HH:MM, got {v!r}")
        hours, minutes = int(parts[0]), int(parts[1])
        if hours > 24 or minutes > 59 or (hours == 24 and minutes != 0):
            raise ValueError(f"time out of range: {v!r}")
        return f"{hours:02d}:{minutes:02d}"


class DraftPlan(_DraftModel):
    """Generated draft plan validated before scheduling."""

    itinerary_name: str
    items: list[DraftPlanItem] = Field(..., min_length=1)
    total_estimated_cost_per_person: float = Field(..., ge=0)
    budget_status: BudgetStatus = "within_budget"
    budget_notes: str | None = None
    overall_vibe: str | None = None
    practical_tips: list[str] | None = None
    weather_consideration: str | None = None


class ItineraryStatus(str, Enum):
    """Itinerary lifecycle status."""

    draft = "draft"
    approved = "approved"
    rejected = "rejected"


class ItineraryItem(BaseModel):
    """Scheduled item wrapping a real or generated Event snapshot."""

    id: str
    event: Event
    scheduled_time: TimeSlot
    travel_time_from_previous: float | None = None
    travel_mode: TravelMode | None = None
    status: Literal["planned", "booked", "skipped"] = "planned"
    notes: str | None = None


class Itinerary(BaseModel):
    """Time-ordered itinerary produced by the scheduler."""

    id: str
    name: str
    date: date
    items: list[ItineraryItem]
    total_cost: float = Field(..., ge=0)
    total_duration: float = Field(..., ge=0, description="Minutes")
    status: ItineraryStatus = ItineraryStatus.draft
    created_at: datetime
    updated_at: datetime


class PlanMetadata(BaseModel):
    """Aggregate facts about a scheduled plan."""

    itinerary_name: str
    overall_vibe: str | None = None
    practical_tips: list[str] | None = None
    weather_consideration: str | None = None
    budget_status: str = "within_budget"
    budget_notes: str | None = None
    total_estimated_cost_per_person: float = 0
    item_count: int = 0
    main_event_count: int = 0
    generated_activity_count: int = 0
