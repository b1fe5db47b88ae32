"""Eventfinda discovery source (REST API, HTTP Basic auth).

API: GET {base_url}/events.json, 1 request/second, max 20 rows per request.
Falls back to the demo dataset when credentials are missing or the live call fails.
"""

import logging
import time
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from backend.outing.adapters.categories import eventfinda_slugs_for, infer_category_from_eventfinda
from backend.outing.adapters.demo_data import load_demo_events
from backend.outing.adapters.http import HTTPAttemptLogger, fetch_with_retry
from backend.outing.adapters.provenance import provenance_for_demo, provenance_for_http
from backend.outing.adapters.sources import SearchResult, build_search_result
from backend.outing.config import Settings, get_settings
from backend.outing.models.common import Availability, Location, PriceRange, TimeSlot
from backend.outing.models.event import Event
from backend.outing.models.intent import UserConstraints
from backend.outing.utils.metrics import PipelineMetrics
from backend.outing.utils.timeutil import ensure_aware, local_timezone, resolve_end_date, utcnow

logger = logging.getLogger(__name__)

SOURCE_NAME = "eventfinda"

EVENTFINDA_FIELDS = (
    "event:(id,name,url,url_slug,description,address,location_summary,datetime_start,"
    "datetime_end,datetime_summary,is_free,is_cancelled,is_featured,restrictions,point,"
    "category,location,images,sessions,ticket_types),category:(id,name,url_slug),"
    "location:(id,name),session:(datetime_start,datetime_end,is_cancelled),"
    "image:(id,transforms),ticket_type:(name,price,is_free)"
)


def _parse_datetime(value: str | None, tz: timezone) -> datetime | None:
    if not value:
        return None
    try:
        return ensure_aware(datetime.fromisoformat(value), tz)
    except ValueError:
        return None


def _ticket_prices(raw: dict[str, Any]) -> list[float]:
    ticket_types = (raw.get("ticket_types") or {}).get("ticket_types") or []
    prices = []
    for ticket in ticket_types:
        try:
            price = float(ticket.get("price") or "")
        except (TypeError, ValueError):
            continue
        if price > 0:
            prices.append(price)
    return prices


def _first_image_url(raw: dict[str, Any]) -> str | None:
    images = (raw.get("images") or {}).get("images") or []
    if not images:
        return None
    transforms = (images[0].get("transforms") or {}).get("transforms") or []
    return transforms[0].get("url") if transforms else None


def map_eventfinda_event(
    raw: dict[str, Any],
    *,
    tz: timezone,
    default_lat: float = 1.3521,
    default_lng: float = 103.8198,
    currency: str = "SGD",
) -> Event | None:
    """Map one Eventfinda API event to an Event.

    Returns:
        Event, or None when name/url is missing or the event is cancelled
    """
    name = raw.get("name")
    url = raw.get("url")
    if not name or not url or raw.get("is_cancelled"):
        return None

    start = _parse_datetime(raw.get("datetime_start"), tz) or utcnow()
    end = _parse_datetime(raw.get("datetime_end"), tz) or start + timedelta(hours=2)
    if end < start:
        end = start + timedelta(hours=2)

    is_free = bool(raw.get("is_free"))
    price = None
    if is_free:
        price = PriceRange(min=0, max=0, currency=currency)
    else:
        prices = _ticket_prices(raw)
        if prices:
            price = PriceRange(min=min(prices), max=max(prices), currency=currency)

    point = raw.get("point") or {}
    location = raw.get("location") or {}
    summary = raw.get("location_summary")
    description = raw.get("description") or ""

    return Event(
        id=f"ef_{raw.get('id') or uuid.uuid4().hex[:10]}",
        name=name,
        description=description[:500],
        category=infer_category_from_eventfinda(
            name, description, (raw.get("category") or {}).get("url_slug")
        ),
        location=Location(
            name=location.get("name") or summary or "Singapore",
            address=raw.get("address") or summary or "Singapore",
            lat=point.get("lat", default_lat),
            lng=point.get("lng", default_lng),
        ),
        time_slot=TimeSlot(start=start, end=end),
        price=price,
        image_url=_first_image_url(raw),
        availability=Availability.unknown,
        source=SOURCE_NAME,
        source_url=url,
        booking_required=not is_free,
    )


class EventfindaSource:
    """Eventfinda REST discovery source."""

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
        password = self._settings.eventfinda_password
        return bool(self._settings.eventfinda_username and password and password.get_secret_value())

    def _demo_events(self, constraints: UserConstraints) -> list[Event]:
        return load_demo_events(
            SOURCE_NAME,
            constraints.date,
            offset_hours=self._settings.local_utc_offset_hours,
            currency=self._settings.default_currency,
        )

    def _build_params(self, constraints: UserConstraints) -> dict[str, str]:
        start_date = constraints.date
        end_date = resolve_end_date(start_date, self._settings.discovery_date_range_days)
        params = {
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
            "rows": str(self._settings.discovery_max_results),
            "order": "popularity",
            "fields": EVENTFINDA_FIELDS,
        }
        slugs = eventfinda_slugs_for(constraints.preferred_categories)
        if slugs:
            params["category_slug"] = ",".join(slugs)
        if constraints.budget_max == 0:
            params["free"] = "1"
        elif constraints.budget_max is not None:
            params["price_max"] = f"{constraints.budget_max:g}"
        return params

    async def _fetch(self, constraints: UserConstraints) -> tuple[list[dict[str, Any]], str]:
        url = f"{self._settings.eventfinda_base_url}/events.json"
        password = self._settings.eventfinda_password
        auth = httpx.BasicAuth(
            self._settings.eventfinda_username or "",
            password.get_secret_value() if password else "",
        )

        close_client = False
        client = self._client
        if client is None:
            client = httpx.AsyncClient(timeout=self._settings.discovery_timeout_s)
            close_client = True

        try:
            response = await fetch_with_retry(
                client,
                "GET",
                url,
                source=SOURCE_NAME,
                retries=self._settings.http_max_retries,
                base_delay_ms=self._settings.http_base_delay_ms,
                sleep_fn=self._sleep,
                metrics=self._metrics,
                step_logger=self._step_logger,
                params=self._build_params(constraints),
                headers={"Accept": "application/json"},
                auth=auth,
            )
            data = response.json()
        finally:
            if close_client:
                await client.aclose()

        total = (data.get("@attributes") or {}).get("count", 0)
        raw_events = data.get("events") or []
        logger.info(f"Eventfinda returned {len(raw_events)} events ({total} total)")
        return raw_events, str(response.url)

    async def search(self, constraints: UserConstraints) -> SearchResult:
        """Search Eventfinda, degrading to demo data on any failure."""
        started_at = time.monotonic()
        max_results = self._settings.discovery_max_results

        if not self.has_credentials:
            logger.info("Eventfinda credentials not configured, using demo data")
            return build_search_result(
                self._demo_events(constraints),
                SOURCE_NAME,
                started_at,
                "demo",
                budget_max=constraints.budget_max,
                categories=constraints.preferred_categories,
                max_results=max_results,
                provenance=provenance_for_demo(SOURCE_NAME, constraints.date.isoformat()),
            )

        try:
            raw_events, request_url = await self._fetch(constraints)
            tz = local_timezone(self._settings.local_utc_offset_hours)
            events = []
            for raw in raw_events:
                event = map_eventfinda_event(
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
                categories=constraints.preferred_categories,
                max_results=max_results,
                provenance=provenance_for_http(f"discovery.{SOURCE_NAME}", request_url),
            )
        except Exception as e:
            logger.warning(f"Eventfinda search failed, using demo data: {e}")
            return build_search_result(
                self._demo_events(constraints),
                SOURCE_NAME,
                started_at,
                "demo",
                max_results=max_results,
                error=str(e),
                provenance=provenance_for_demo(SOURCE_NAME, constraints.date.isoformat()),
            )
