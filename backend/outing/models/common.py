"""Common types and enums shared across all models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class EventCategory(str, Enum):
    """Closed set of event categories."""

    concert = "concert"
    theatre = "theatre"
    sports = "sports"
    dining = "dining"
    nightlife = "nightlife"
    outdoor = "outdoor"
    cultural = "cultural"
    workshop = "workshop"
    exhibition = "exhibition"
    festival = "festival"
    other = "other"


class Availability(str, Enum):
    """Ticket availability as reported by a source."""

    available = "available"
    limited = "limited"
    sold_out = "sold_out"
    unknown = "unknown"


class TravelMode(str, Enum):
    """Travel mode between itinerary items."""

    walk = "walk"
    public_transport = "public_transport"
    taxi = "taxi"
    drive = "drive"


class Geo(BaseModel):
    """Geographic coordinates (WGS84)."""

    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


class Location(BaseModel):
    """Venue location."""

    model_config = ConfigDict(frozen=True)

    name: str
    address: str
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class TimeSlot(BaseModel):
    """Absolute start/end timestamps (timezone-aware)."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def validate_order(self) -> "TimeSlot":
        """Ensure end is not before start."""
        if self.end < self.start:
            raise ValueError("end must not be before start")
        return self


class PriceRange(BaseModel):
    """Per-person price range."""

    model_config = ConfigDict(frozen=True)

    min: float = Field(..., ge=0)
    max: float = Field(..., ge=0)
    currency: str = "SGD"


class Provenance(BaseModel):
    """Provenance metadata for adapter results."""

    source: str  # Adapter identifier (e.g., "discovery.eventfinda", "weather.open_meteo")
    ref_id: str | None = None
    source_url: str | None = None
    fetched_at: datetime
    mode: str | None = None  # "live" or "demo" for discovery sources
