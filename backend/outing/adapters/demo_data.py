"""Fixed demo datasets used when a discovery source runs in demo mode."""

import json
from datetime import date, timedelta
from pathlib import Path
from typing import Any

from backend.outing.models.common import Availability, EventCategory, Location, PriceRange, TimeSlot
from backend.outing.models.event import Event
from backend.outing.utils.timeutil import combine_local, local_timezone

FIXTURES_DIR = Path(__file__).parent.parent / "fixtures"


def _load_fixture(source: str) -> list[dict[str, Any]]:
    fixtures_path = FIXTURES_DIR / "demo_events.json"
    with open(fixtures_path) as f:
        data = json.load(f)
    return data.get(source, [])


def load_demo_events(
    source: str,
    anchor: date,
    offset_hours: float = 8.0,
    currency: str = "SGD",
) -> list[Event]:
    """Build demo events for a source, anchored on the requested date.

    Args:
        source: "eventbrite" or "eventfinda"
        anchor: Outing date; each fixture's day_offset is relative to it
        offset_hours: Local UTC offset used for fixture times
        currency: Currency for fixture prices

    Returns:
        Events in fixture order
    """
    tz = local_timezone(offset_hours)
    events = []
    for item in _load_fixture(source):
        day = anchor + timedelta(days=item["day_offset"])
        start = combine_local(day, item["start"], tz)
        end = combine_local(day, item["end"], tz)
        if end <= start:
            end += timedelta(days=1)

        price = None
        if item["price_min"] is not None:
            price = PriceRange(min=item["price_min"], max=item["price_max"], currency=currency)

        events.append(
            Event(
                id=item["id"],
                name=item["name"],
                description=item["description"],
                category=EventCategory(item["category"]),
                location=Location(
                    name=item["venue"],
                    address=item["address"],
                    lat=item["lat"],
                    lng=item["lng"],
                ),
                time_slot=TimeSlot(start=start, end=end),
                price=price,
                rating=item["rating"],
                review_count=item["review_count"],
                image_url=item["image_url"],
                availability=Availability(item["availability"]),
                source=source,
                source_url=item["source_url"],
                booking_required=item["booking_required"],
            )
        )
    return events
