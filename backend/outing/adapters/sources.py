"""Discovery source protocol and shared result filtering."""

import time
from typing import Literal, Protocol

from pydantic import BaseModel, Field

from backend.outing.models.common import Availability, EventCategory, Provenance
from backend.outing.models.event import Event
from backend.outing.models.intent import UserConstraints

SearchMode = Literal["live", "demo"]


class SearchResult(BaseModel):
    """Events returned by one discovery source."""

    source: str
    events: list[Event] = Field(default_factory=list)
    mode: SearchMode
    duration_ms: float = Field(0, ge=0)
    error: str | None = None
    provenance: Provenance | None = None


class DiscoverySource(Protocol):
    """Protocol for discovery source implementations.

    Implementations never raise: missing credentials or live failures
    degrade to demo mode.
    """

    name: str

    async def search(self, constraints: UserConstraints) -> SearchResult:
        """Search for candidate events matching constraints."""
        ...


def apply_event_filters(
    events: list[Event],
    *,
    budget_max: float | None = None,
    categories: list[EventCategory] | None = None,
    remove_sold_out: bool = False,
) -> list[Event]:
    """Post-fetch filtering shared by all sources.

    Args:
        events: Mapped events
        budget_max: Drop events whose minimum price exceeds this
        categories: Keep only these categories (None or empty keeps all)
        remove_sold_out: Drop sold-out events

    Returns:
        Filtered events in input order
    """
    filtered = events

    if remove_sold_out:
        filtered = [e for e in filtered if e.availability != Availability.sold_out]

    if budget_max is not None:
        filtered = [e for e in filtered if e.price is None or e.price.min <= budget_max]

    if categories:
        filtered = [e for e in filtered if e.category in categories]

    return filtered


def build_search_result(
    events: list[Event],
    source: str,
    started_at: float,
    mode: SearchMode,
    *,
    budget_max: float | None = None,
    categories: list[EventCategory] | None = None,
    remove_sold_out: bool = False,
    max_results: int = 20,
    error: str | None = None,
    provenance: Provenance | None = None,
) -> SearchResult:
    """Filter, truncate and wrap events as a SearchResult.

    Args:
        events: Mapped events
        source: Source identifier
        started_at: time.monotonic() when the search began
        mode: "live" or "demo"
        budget_max: Budget filter
        categories: Category filter
        remove_sold_out: Sold-out filter
        max_results: Truncation limit
        error: Live failure message when degraded to demo
        provenance: Where the events came from

    Returns:
        SearchResult with duration measured from started_at
    """
    filtered = apply_event_filters(
        events,
        budget_max=budget_max,
        categories=categories,
        remove_sold_out=remove_sold_out,
    )
    return SearchResult(
        source=source,
        events=filtered[:max_results],
        mode=mode,
        duration_ms=round((time.monotonic() - started_at) * 1000, 2),
        error=error,
        provenance=provenance,
    )
