"""Eventbrite discovery source (listing page through a scraping proxy).

The listing page embeds events as JSON-LD, either inside the
`window.__SERVER_DATA__` blob or in `<script type="application/ld+json">` blocks.
Listing entries only carry a date and no pricing, so each in-range event page
is fetched for full times, offers and location.
"""

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable
from datetime import date, datetime, timedelta, timezone
from typing import Any

import httpx
from bs4 import BeautifulSoup

from backend.outing.adapters.categories import eventbrite_keyword_for, infer_category
from backend.outing.adapters.demo_data import load_demo_events
from backend.outing.adapters.http import HTTPAttemptLogger, fetch_with_retry
from backend.outing.adapters.provenance import provenance_for_demo, provenance_for_http
from backend.outing.adapters.sources import SearchResult, build_search_result
from backend.outing.config import Settings, get_settings
from backend.outing.models.common import Availability, EventCategory, Location, PriceRange, TimeSlot
from backend.outing.models.event import Event
from backend.outing.models.intent import UserConstraints
from backend.outing.orchestration.similarity import normalize_url
from backend.outing.utils.metrics import PipelineMetrics
from backend.outing.utils.timeutil import ensure_aware, local_timezone, resolve_end_date, utcnow

logger = logging.getLogger(__name__)

SOURCE_NAME = "eventbrite"
SERVER_DATA_MARKER = "window.__SERVER_DATA__ ="
ENRICH_CONCURRENCY = 5

# Schema.org Event subtypes used on event pages
SCHEMA_ORG_EVENT_TYPES = frozenset(
    {
        "Event", "SocialEvent", "EducationEvent", "BusinessEvent",
        "MusicEvent", "DanceEvent", "TheaterEvent", "VisualArtsEvent",
        "LiteraryEvent", "Festival", "FoodEvent", "SportsEvent",
        "ScreeningEvent", "ComedyEvent", "SaleEvent", "ExhibitionEvent",
        "SocialInteraction", "Hackathon", "CourseInstance",
    }
)


def _jsonld_blocks(html: str) -> list[Any]:
    soup = BeautifulSoup(html, "html.parser")
    blocks = []
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        try:
            blocks.append(json.loads(script.string or ""))
        except json.JSONDecodeError:
            continue
    return blocks


def _server_data_items(html: str) -> list[dict[str, Any]] | None:
    marker_idx = html.find(SERVER_DATA_MARKER)
    if marker_idx == -1:
        return None
    json_start = html.find("{", marker_idx + len(SERVER_DATA_MARKER))
    if json_start == -1:
        return None
    try:
        server_data, _ = json.JSONDecoder().raw_decode(html, json_start)
    except json.JSONDecodeError:
        return None

    for entry in server_data.get("jsonld") or []:
        if isinstance(entry, dict) and entry.get("@type") == "ItemList":
            items = entry.get("itemListElement")
            if isinstance(items, list):
                return [item["item"] for item in items if isinstance(item, dict) and item.get("item")]
    return None


def extract_server_data(html: str) -> list[dict[str, Any]]:
    """Extract raw JSON-LD events from a listing page.

    Args:
        html: Listing page HTML

    Returns:
        Raw Schema.org event dicts (date only, no pricing)
    """
    items = _server_data_items(html)
    if items is not None:
        return items

    events: list[dict[str, Any]] = []
    for data in _jsonld_blocks(html):
        if not isinstance(data, dict):
            continue
        if data.get("@type") in ("Event", "SocialEvent"):
            events.append(data)
        elif data.get("@type") == "ItemList" and isinstance(data.get("itemListElement"), list):
            for item in data["itemListElement"]:
                inner = item.get("item") if isinstance(item, dict) else None
                if isinstance(inner, dict) and inner.get("@type") == "Event":
                    events.append(inner)
    return events


def extract_event_page_details(html: str) -> dict[str, Any] | None:
    """Extract the full JSON-LD event (time, offers, location) from an event page."""
    for data in _jsonld_blocks(html):
        if isinstance(data, dict) and data.get("@type") in SCHEMA_ORG_EVENT_TYPES and data.get("startDate"):
            return data
    return None


def generate_event_id(url: str) -> str:
    """Stable id from the event URL (32-bit rolling hash, base 36)."""
    h = 0
    for char in url:
        h = ((h << 5) - h + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    h = abs(h)

    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    encoded = ""
    while True:
        h, remainder = divmod(h, 36)
        encoded = digits[remainder] + encoded
        if h == 0:
            break
    return f"eb_{encoded}"


def _parse_price(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _map_availability(offer: dict[str, Any] | None) -> Availability:
    raw = str((offer or {}).get("availability") or "").lower()
    if not raw:
        return Availability.unknown
    # LimitedAvailability also contains "available"
    if "limited" in raw:
        return Availability.limited
    if "instock" in raw or "available" in raw:
        return Availability.available
    if "soldout" in raw or "sold_out" in raw:
        return Availability.sold_out
    return Availability.unknown


def _parse_datetime(value: str | None, tz: timezone) -> datetime | None:
    if not value:
        return None
    try:
        return ensure_aware(datetime.fromisoformat(value), tz)
    except ValueError:
        return None


def map_eventbrite_event(
    raw: dict[str, Any],
    *,
    tz: timezone,
    default_lat: float = 1.3521,
    default_lng: float = 103.8198,
    currency: str = "SGD",
) -> Event | None:
    """Map one Schema.org event dict to an Event (None without name/url)."""
    name = raw.get("name")
    url = raw.get("url")
    if not name or not url:
        return None

    start = _parse_datetime(raw.get("startDate"), tz) or utcnow()
    end = _parse_datetime(raw.get("endDate"), tz) or start + timedelta(hours=2)
    if end < start:
        end = start + timedelta(hours=2)

    offers = raw.get("offers")
    offer = offers[0] if isinstance(offers, list) and offers else offers
    if not isinstance(offer, dict):
        offer = None

    price = None
    if offer:
        low = _parse_price(offer.get("lowPrice", offer.get("price")))
        high = _parse_price(offer.get("highPrice", offer.get("price")))
        if low is not None or high is not None:
            price_min = low if low is not None else 0.0
            price_max = high if high is not None else price_min
            price = PriceRange(
                min=price_min,
                max=max(price_max, price_min),
                currency=offer.get("priceCurrency") or currency,
            )

    location = raw.get("location")
    if not isinstance(location, dict):
        location = {}
    address = location.get("address")
    if isinstance(address, dict):
        parts = [address.get(k) for k in ("streetAddress", "addressLocality", "postalCode")]
        address_text = ", ".join(str(p) for p in parts if p) or "Singapore"
    else:
        address_text = address or "Singapore"
    geo = location.get("geo") or {}

    image = raw.get("image")
    description = raw.get("description") or ""

    return Event(
        id=generate_event_id(url),
        name=name,
        description=description[:500],
        category=infer_category(name, description),
        location=Location(
            name=location.get("name") or "Singapore",
            address=address_text,
            lat=float(geo.get("latitude", default_lat)),
            lng=float(geo.get("longitude", default_lng)),
        ),
        time_slot=TimeSlot(start=start, end=end),
        price=price,
        image_url=image if isinstance(image, str) else None,
        availability=_map_availability(offer),
        source=SOURCE_NAME,
        source_url=url,
        booking_required=True,
    )


def build_listing_url(base_url: str, categories: list[EventCategory]) -> str:
    """Listing URL for the first category with an Eventbrite keyword."""
    keyword = eventbrite_keyword_for(categories)
    path = f"{keyword}--events" if keyword else "events"
    return f"{base_url.rstrip('/')}/{path}/"


def filter_date_range(raw_events: list[dict[str, Any]], start: date, end: date) -> list[dict[str, Any]]:
    """Keep events whose start date falls in [start, end]; undated events are kept."""
    kept = []
    for raw in raw_events:
        start_date = raw.get("startDate")
        if not start_date:
            kept.append(raw)
            continue
        day = str(start_date).split("T")[0]
        if start.isoformat() <= day <= end.isoformat():
            kept.append(raw)
    return kept


class EventbriteSource:
    """Eventbrite discovery source scraping the public listing page."""

    name = SOURCE_NAME

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
        metrics: PipelineMetrics | None = None,
        step_logger: HTTPAttemptLogger | None = None,
    ) -> None:
        """Initialize source.

        Args:
            settings: Settings (defaults to cached settings)
            client: Optional httpx client (for testing with mocks)
            sleep_fn: Injectable sleep for retry backoff
            metrics: Metrics recorder (optional, defaults to no-op)
            step_logger: Structured attempt logger (optional)
        """
        self._settings = settings or get_settings()
        self._client = client
        self._sleep = sleep_fn
        self._metrics = metrics or PipelineMetrics()
        self._step_logger = step_logger

    @property
    def has_credentials(self) -> bool:
        key = self._settings.scraper_api_key
        return bool(key and key.get_secret_value())

    def _demo_events(self, constraints: UserConstraints) -> list[Event]:
        return load_demo_events(
            SOURCE_NAME,
            constraints.date,
            offset_hours=self._settings.local_utc_offset_hours,
            currency=self._settings.default_currency,
        )

    async def _fetch_page(self, client: httpx.AsyncClient, target_url: str) -> str:
        """Fetch a page through the scraping proxy."""
        api_key = self._settings.scraper_api_key
        body: dict[str, str] = {"url": target_url, "format": "raw"}
        if self._settings.scraper_zone:
            body["zone"] = self._settings.scraper_zone

        response = await fetch_with_retry(
            client,
            "POST",
            self._settings.scraper_base_url,
            source=SOURCE_NAME,
            retries=self._settings.http_max_retries,
            base_delay_ms=self._settings.http_base_delay_ms,
            sleep_fn=self._sleep,
            metrics=self._metrics,
            step_logger=self._step_logger,
            json=body,
            headers={"Authorization": f"Bearer {api_key.get_secret_value() if api_key else ''}"},
        )
        return response.text

    async def _enrich(
        self, client: httpx.AsyncClient, raw_events: list[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Merge event-page details into listing entries, in batches."""
        unique: list[dict[str, Any]] = []
        seen: set[str] = set()
        for raw in raw_events:
            url = raw.get("url")
            if url:
                key = normalize_url(url)
                if key in seen:
                    continue
                seen.add(key)
            unique.append(raw)

        enriched = list(unique)
        indexed = [(i, raw["url"]) for i, raw in enumerate(unique) if raw.get("url")]
        for batch_start in range(0, len(indexed), ENRICH_CONCURRENCY):
            batch = indexed[batch_start : batch_start + ENRICH_CONCURRENCY]
            pages = await asyncio.gather(
                *(self._fetch_page(client, url) for _, url in batch),
                return_exceptions=True,
            )
            for (index, url), page in zip(batch, pages, strict=True):
                if isinstance(page, BaseException):
                    logger.debug(f"Eventbrite detail fetch failed for {url}: {page}")
                    continue
                details = extract_event_page_details(page)
                if details is None:
                    continue
                merged = dict(enriched[index])
                for key in ("startDate", "endDate", "offers", "location", "description"):
                    if details.get(key) is not None:
                        merged[key] = details[key]
                enriched[index] = merged
        return enriched

    async def search(self, constraints: UserConstraints) -> SearchResult:
        """Search Eventbrite, degrading to demo data on any failure."""
        started_at = time.monotonic()
        max_results = self._settings.discovery_max_results

        if not self.has_credentials:
            logger.info("Scraper API key not configured, using Eventbrite demo data")
            return build_search_result(
                self._demo_events(constraints),
                SOURCE_NAME,
                started_at,
                "demo",
                budget_max=constraints.budget_max,
                remove_sold_out=True,
                max_results=max_results,
                provenance=provenance_for_demo(SOURCE_NAME, constraints.date.isoformat()),
            )

        target_url = build_listing_url(
            self._settings.eventbrite_listing_url, constraints.preferred_categories
        )
        close_client = False
        client = self._client
        if client is None:
            client = httpx.AsyncClient(timeout=self._settings.discovery_timeout_s)
            close_client = True

        try:
            html = await self._fetch_page(client, target_url)
            raw_events = extract_server_data(html)

            range_end = resolve_end_date(constraints.date, self._settings.discovery_date_range_days)
            in_range = filter_date_range(raw_events, constraints.date, range_end)
            logger.info(
                f"Eventbrite parsed {len(raw_events)} raw events, {len(in_range)} in range "
                f"{constraints.date}..{range_end}"
            )
            enriched = await self._enrich(client, in_range[:max_results])

            tz = local_timezone(self._settings.local_utc_offset_hours)
            events = []
            for raw in enriched:
                event = map_eventbrite_event(
                    raw,
                    tz=tz,
                    default_lat=self._settings.default_lat,
                    default_lng=self._settings.default_lng,
                    currency=self._settings.default_currency,
                )
                if event is not None:
                    events.append(event)

            return build_search_result(
                events,
                SOURCE_NAME,
                started_at,
                "live",
                budget_max=constraints.budget_max,
                remove_sold_out=True,
                max_results=max_results,
                provenance=provenance_for_http(f"discovery.{SOURCE_NAME}", target_url),
            )
        except Exception as e:
            logger.warning(f"Eventbrite search failed, using demo data: {e}")
            return build_search_result(
                self._demo_events(constraints),
                SOURCE_NAME,
                started_at,
                "demo",
                max_results=max_results,
                error=str(e),
                provenance=provenance_for_demo(SOURCE_NAME, constraints.date.isoformat()),
            )
        finally:
            if close_client:
                await client.aclose()
