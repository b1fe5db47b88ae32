"""Tests for the Eventfinda and Eventbrite discovery sources."""

import json
from datetime import timedelta, timezone

import httpx
import pytest

from backend.outing.adapters.categories import infer_category
from backend.outing.adapters.demo_data import load_demo_events
from backend.outing.adapters.eventbrite import (
    EventbriteSource,
    extract_server_data,
    filter_date_range,
    generate_event_id,
    map_eventbrite_event,
)
from backend.outing.adapters.eventfinda import EventfindaSource, map_eventfinda_event
from backend.outing.config import Settings
from backend.outing.models.common import Availability, EventCategory

SGT = timezone(timedelta(hours=8))

EVENTBRITE_EVENT_URL = "https://www.eventbrite.sg/e/rooftop-jazz-social-111"

LISTING_HTML = """
<html><head>
<script type="application/ld+json">
{"@type": "ItemList", "itemListElement": [
  {"item": {"@type": "Event", "name": "Rooftop Jazz Social",
            "url": "https://www.eventbrite.sg/e/rooftop-jazz-social-111", "startDate": "2026-11-14"}},
  {"item": {"@type": "Event", "name": "New Year Countdown",
            "url": "https://www.eventbrite.sg/e/countdown-222", "startDate": "2026-12-31"}}
]}
</script>
</head><body></body></html>
"""

EVENT_PAGE_HTML = """
<html><head>
<script type="application/ld+json">
{"@type": "MusicEvent", "name": "Rooftop Jazz Social",
 "startDate": "2026-11-14T19:00:00+08:00", "endDate": "2026-11-14T21:00:00+08:00",
 "offers": [{"lowPrice": "18", "highPrice": "30", "priceCurrency": "SGD",
             "availability": "https://schema.org/LimitedAvailability"}],
 "location": {"name": "Level 33",
              "address": {"streetAddress": "8 Marina Blvd", "addressLocality": "Singapore"},
              "geo": {"latitude": 1.2801, "longitude": 103.8545}}}
</script>
</head><body></body></html>
"""


def eventfinda_payload() -> dict:
    return {
        "@attributes": {"count": 3},
        "events": [
            {
                "id": 555,
                "name": "Orchestra in the Park",
                "url": "https://www.eventfinda.sg/2026/orchestra-in-the-park/singapore",
                "datetime_start": "2026-11-14 18:00:00",
                "datetime_end": "2026-11-14 19:30:00",
                "is_free": False,
                "ticket_types": {"ticket_types": [{"price": "25.00"}, {"price": "40"}, {"price": "0"}]},
                "point": {"lat": 1.2945, "lng": 103.8465},
                "location": {"name": "Fort Canning Green"},
                "category": {"url_slug": "concerts-gig-guide"},
            },
            {
                "id": 556,
                "name": "Community Choir Evening",
                "url": "https://www.eventfinda.sg/2026/choir/singapore",
                "datetime_start": "2026-11-14 17:00:00",
                "is_free": True,
                "category": {"url_slug": "concerts-gig-guide"},
            },
            {
                "id": 557,
                "name": "Cancelled Gig",
                "url": "https://www.eventfinda.sg/2026/cancelled/singapore",
                "is_cancelled": True,
            },
        ],
    }


class TestEventfindaSource:
    """Test EventfindaSource."""

    @pytest.mark.asyncio
    async def test_demo_mode_without_credentials(self, settings, make_constraints) -> None:
        source = EventfindaSource(settings)

        result = await source.search(make_constraints())

        assert source.has_credentials is False
        assert result.mode == "demo"
        assert result.error is None
        # Over-budget wine tasting is filtered out
        assert "ef_demo_wine" not in [e.id for e in result.events]
        assert all(e.source == "eventfinda" for e in result.events)
        assert result.provenance is not None and result.provenance.mode == "demo"

    @pytest.mark.asyncio
    async def test_live_search_maps_events(self, make_constraints, sleep_recorder) -> None:
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(200, json=eventfinda_payload())

        settings = Settings(_env_file=None, eventfinda_username="user", eventfinda_password="secret")
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        source = EventfindaSource(settings, client=client, sleep_fn=sleep_recorder)

        result = await source.search(make_constraints(preferred_categories=[EventCategory.concert]))

        assert result.mode == "live"
        assert [e.id for e in result.events] == ["ef_555", "ef_556"]
        paid, free = result.events
        assert (paid.price.min, paid.price.max) == (25, 40)
        assert paid.booking_required is True
        assert paid.time_slot.start.utcoffset() == timedelta(hours=8)
        assert free.price.max == 0
        assert free.booking_required is False

        request = captured[0]
        assert request.url.path.endswith("/events.json")
        assert request.headers["Authorization"].startswith("Basic ")
        assert request.url.params["start_date"] == "2026-11-14"
        assert request.url.params["end_date"] == "2026-11-17"
        assert request.url.params["price_max"] == "60"
        assert request.url.params["category_slug"] == "concerts-gig-guide"

    @pytest.mark.asyncio
    async def test_live_failure_degrades_to_demo(self, make_constraints, sleep_recorder) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503)

        settings = Settings(
            _env_file=None, eventfinda_username="user", eventfinda_password="secret", http_max_retries=1
        )
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        source = EventfindaSource(settings, client=client, sleep_fn=sleep_recorder)

        result = await source.search(make_constraints())

        assert result.mode == "demo"
        assert result.error is not None
        assert result.events
        assert len(sleep_recorder.delays) == 1

    def test_map_free_event_price(self) -> None:
        event = map_eventfinda_event(eventfinda_payload()["events"][1], tz=SGT)

        assert event is not None
        assert event.price is not None and event.price.max == 0
        # Missing end time defaults to two hours
        assert event.time_slot.end - event.time_slot.start == timedelta(hours=2)


class TestEventbriteSource:
    """Test EventbriteSource."""

    @pytest.mark.asyncio
    async def test_demo_mode_drops_sold_out(self, settings, make_constraints) -> None:
        result = await EventbriteSource(settings).search(make_constraints(budget_max=100))

        assert result.mode == "demo"
        assert "eb_demo_rooftop" not in [e.id for e in result.events]
        assert all(e.availability != Availability.sold_out for e in result.events)

    @pytest.mark.asyncio
    async def test_live_search_enriches_from_event_page(self, make_constraints, sleep_recorder) -> None:
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            target = json.loads(request.content)["url"]
            requested.append(target)
            assert request.headers["Authorization"] == "Bearer scraper-key"
            html = EVENT_PAGE_HTML if target == EVENTBRITE_EVENT_URL else LISTING_HTML
            return httpx.Response(200, text=html)

        settings = Settings(_env_file=None, scraper_api_key="scraper-key")
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        source = EventbriteSource(settings, client=client, sleep_fn=sleep_recorder)

        result = await source.search(make_constraints(preferred_categories=[EventCategory.concert]))

        assert result.mode == "live"
        assert requested[0].endswith("/music--events/")
        # The December event is outside the date range and never fetched
        assert requested[1:] == [EVENTBRITE_EVENT_URL]
        event = result.events[0]
        assert event.name == "Rooftop Jazz Social"
        assert event.id == generate_event_id(EVENTBRITE_EVENT_URL)
        assert (event.price.min, event.price.max) == (18, 30)
        assert event.availability == Availability.limited
        assert event.category == EventCategory.concert
        assert event.location.name == "Level 33"
        assert event.location.address == "8 Marina Blvd, Singapore"

    @pytest.mark.asyncio
    async def test_live_failure_degrades_to_demo(self, make_constraints, sleep_recorder) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, text="forbidden")

        settings = Settings(_env_file=None, scraper_api_key="scraper-key")
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        result = await EventbriteSource(settings, client=client, sleep_fn=sleep_recorder).search(make_constraints())

        assert result.mode == "demo"
        assert "403" in (result.error or "")
        assert all(e.id.startswith("eb_demo_") for e in result.events)


class TestEventbriteParsing:
    """Test listing and event page parsing helpers."""

    def test_extract_server_data_blob(self) -> None:
        html = (
            '<script>window.__SERVER_DATA__ = {"jsonld": [{"@type": "ItemList", "itemListElement": '
            '[{"item": {"name": "A", "url": "https://x/e/1"}}]}]};</script>'
        )

        assert extract_server_data(html) == [{"name": "A", "url": "https://x/e/1"}]

    def test_extract_jsonld_list(self) -> None:
        events = extract_server_data(LISTING_HTML)

        assert [e["name"] for e in events] == ["Rooftop Jazz Social", "New Year Countdown"]

    def test_filter_date_range_keeps_undated(self, anchor_date) -> None:
        raw = [{"name": "undated"}, {"startDate": "2026-11-15T10:00:00"}, {"startDate": "2026-12-01"}]

        kept = filter_date_range(raw, anchor_date, anchor_date + timedelta(days=3))

        assert kept == raw[:2]

    @pytest.mark.parametrize(
        ("availability", "expected"),
        [
            ("https://schema.org/InStock", Availability.available),
            ("https://schema.org/LimitedAvailability", Availability.limited),
            ("https://schema.org/SoldOut", Availability.sold_out),
            (None, Availability.unknown),
        ],
    )
    def test_offer_availability(self, availability, expected) -> None:
        raw = {"name": "Gig", "url": "https://x/e/1", "offers": {"price": "10", "availability": availability}}

        event = map_eventbrite_event(raw, tz=SGT)

        assert event is not None
        assert event.availability == expected

    def test_event_without_url_is_skipped(self) -> None:
        assert map_eventbrite_event({"name": "No link"}, tz=SGT) is None

    def test_event_id_is_stable(self) -> None:
        assert generate_event_id("https://x/e/1") == generate_event_id("https://x/e/1")
        assert generate_event_id("https://x/e/1") != generate_event_id("https://x/e/2")


class TestCategoriesAndDemoData:
    """Test category inference and the demo dataset."""

    def test_infer_category_uses_word_boundaries(self) -> None:
        # "brunch" must not count as "run"; dining wins the tie with "club"
        assert infer_category("Sunday Brunch Club") == EventCategory.dining
        assert infer_category("Pottery Wheel Workshop", "hands-on class") == EventCategory.workshop
        assert infer_category("Something Else") == EventCategory.other

    def test_demo_events_anchor_on_date(self, anchor_date) -> None:
        events = load_demo_events("eventbrite", anchor_date)

        jazz = next(e for e in events if e.id == "eb_demo_jazz")
        assert jazz.time_slot.start.date() == anchor_date
        assert jazz.time_slot.start.utcoffset() == timedelta(hours=8)
        assert load_demo_events("unknown", anchor_date) == []
