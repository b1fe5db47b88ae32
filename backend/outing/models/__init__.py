"""Models package - re-exports for convenience."""

from backend.outing.models.booking import (
    ActionType,
    BookingResult,
    BookingStatus,
    ExecutionSummary,
    UserProfile,
)
from backend.outing.models.common import (
    Availability,
    EventCategory,
    Geo,
    Location,
    PriceRange,
    Provenance,
    TimeSlot,
    TravelMode,
)
from backend.outing.models.event import Event, RankedEvent
from backend.outing.models.intent import (
    BudgetRange,
    Duration,
    IntentEnrichment,
    IntentResult,
    IntentType,
    Occasion,
    PlanFormData,
    TimeOfDay,
    TimeWindow,
    UserConstraints,
)
from backend.outing.models.itinerary import (
    DraftLocation,
    DraftPlan,
    DraftPlanItem,
    DraftTravel,
    Itinerary,
    ItineraryItem,
    ItineraryStatus,
    PlanMetadata,
)
from backend.outing.models.trace import SSETraceEvent, TraceEvent
from backend.outing.models.weather import WeatherDay

__all__ = [
    # Common
    "EventCategory",
    "Availability",
    "TravelMode",
    "Geo",
    "Location",
    "TimeSlot",
    "PriceRange",
    "Provenance",
    # Events
    "Event",
    "RankedEvent",
    # Intent
    "Occasion",
    "BudgetRange",
    "TimeOfDay",
    "Duration",
    "IntentType",
    "PlanFormData",
    "TimeWindow",
    "UserConstraints",
    "IntentEnrichment",
    "IntentResult",
    # Itinerary
    "DraftLocation",
    "DraftTravel",
    "DraftPlanItem",
    "DraftPlan",
    "ItineraryStatus",
    "ItineraryItem",
    "Itinerary",
    "PlanMetadata",
    # Booking
    "ActionType",
    "BookingStatus",
    "UserProfile",
    "BookingResult",
    "ExecutionSummary",
    # Trace
    "TraceEvent",
    "SSETraceEvent",
    # Weather
    "WeatherDay",
]
