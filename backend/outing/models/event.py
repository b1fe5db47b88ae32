"""Event models - discovered candidates and their ranked wrappers."""

from pydantic import BaseModel, ConfigDict, Field

from backend.outing.models.common import Availability, EventCategory, Location, PriceRange, TimeSlot


class Event(BaseModel):
    """A candidate event produced by discovery.

    Immutable once produced; later stages wrap it (RankedEvent, ItineraryItem)
    and never mutate it.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    category: EventCategory = EventCategory.other
    location: Location
    time_slot: TimeSlot
    price: PriceRange | None = None
    rating: float | None = Field(None, ge=0, le=5)
    review_count: int | None = Field(None, ge=0)
    image_url: str | None = None
    availability: Availability = Availability.unknown
    source: str
    source_url: str | None = None
    booking_required: bool = False


class RankedEvent(BaseModel):
    """Event with its ranking score and rationale."""

    model_config = ConfigDict(frozen=True)

    event: Event
    score: float = Field(..., ge=0, le=1)
    reasoning: str = ""
    components: dict[str, float] = Field(default_factory=dict)
