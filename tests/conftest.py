"""Shared pytest fixtures for all test suites.

Everything here is offline: scripted automation, scripted reasoners and
in-memory discovery sources.
"""

from collections.abc import Callable
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

import pytest

from backend.outing.adapters.sources import SearchResult
from backend.outing.automation.commands import Command, CommandResult
from backend.outing.config import Settings
from backend.outing.models.booking import UserProfile
from backend.outing.models.common import Availability, EventCategory, Location, PriceRange, TimeSlot
from backend.outing.models.event import Event, RankedEvent
from backend.outing.models.intent import (
    BudgetRange,
    Occasion,
    PlanFormData,
    TimeOfDay,
    TimeWindow,
    UserConstraints,
)
from backend.outing.utils.timeutil import combine_local

ANCHOR_DATE = date(2026, 11, 14)
SGT = timezone(timedelta(hours=8))


def local_dt(hhmm: str, day: date = ANCHOR_DATE) -> datetime:
    """Aware datetime for a local HH:MM on the anchor date."""
    return combine_local(day, hhmm, SGT)


class SleepRecorder:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeAutomationBackend:
    """Scripted AutomationBackend recording every command it receives.

    Scripted results are consumed in order per op; the last one repeats.
    Ops without a script get a neutral default (page commands succeed, element
    lookups find nothing).
    """

    DEFAULTS: dict[str, CommandResult] = {
        "open": CommandResult.success("https://example.com/event"),
        "snapshot": CommandResult.success('button "Book now"'),
        "get_text": CommandResult.success(""),
        "wait_for_load": CommandResult.success(),
        "screenshot": CommandResult.success("saved"),
        "close": CommandResult.success("closed"),
    }

    def __init__(self) -> None:
        self.commands: list[Command] = []
        self._scripts: dict[str, list[CommandResult]] = {}

    def script(self, op: str, *results: CommandResult) -> "FakeAutomationBackend":
        self._scripts[op] = list(results)
        return self

    @property
    def ops(self) -> list[str]:
        return [command.op for command in self.commands]

    async def execute(self, command: Command) -> CommandResult:
        self.commands.append(command)
        scripted = self._scripts.get(command.op)
        if scripted:
            return scripted.pop(0) if len(scripted) > 1 else scripted[0]
        return self.DEFAULTS.get(command.op, CommandResult.failure(f"{command.op}: no match"))


class FakeReasoner:
    """NarrativeReasoner returning canned responses in order (last repeats)."""

    def __init__(self, *responses: str | Exception):
        self._responses = list(responses)
        self.calls: list[tuple[str, str | None]] = []

    async def generate(self, prompt: str, *, system: str | None = None) -> str:
        self.calls.append((prompt, system))
        response = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(response, Exception):
            raise response
        return response


class FakeSource:
    """In-memory discovery source."""

    def __init__(
        self,
        name: str,
        events: list[Event] | None = None,
        mode: str = "live",
        raises: Exception | None = None,
        error: str | None = None,
    ):
        self.name = name
        self.events = events or []
        self.mode = mode
        self.raises = raises
        self.error = error
        self.calls: list[UserConstraints] = []

    async def search(self, constraints: UserConstraints) -> SearchResult:
        self.calls.append(constraints)
        if self.raises is not None:
            raise self.raises
        return SearchResult(source=self.name, events=list(self.events), mode=self.mode, error=self.error)


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from .env, with fast retries."""
    return Settings(_env_file=None, http_base_delay_ms=1, approval_timeout_s=None)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    """Create a no-op sleep that records delays."""
    return SleepRecorder()


@pytest.fixture
def fake_backend() -> FakeAutomationBackend:
    """Create a scripted automation backend."""
    return FakeAutomationBackend()


@pytest.fixture
def make_event() -> Callable[..., Event]:
    """Factory for events on the anchor date; times are local HH:MM."""

    def _make(
        id: str = "evt-1",
        name: str = "Jazz Night at the Esplanade",
        start: str = "19:00",
        end: str = "21:00",
        price: tuple[float, float] | None = (20.0, 40.0),
        category: EventCategory = EventCategory.concert,
        availability: Availability = Availability.available,
        source: str = "eventbrite",
        source_url: str | None = "https://www.eventbrite.sg/e/jazz-night-1",
        booking_required: bool = True,
        day: date = ANCHOR_DATE,
        **overrides: Any,
    ) -> Event:
        start_dt = local_dt(start, day)
        end_dt = local_dt(end, day)
        if end_dt < start_dt:
            end_dt += timedelta(days=1)
        fields: dict[str, Any] = {
            "id": id,
            "name": name,
            "category": category,
            "location": Location(name="Esplanade", address="1 Esplanade Dr", lat=1.2897, lng=103.8555),
            "time_slot": TimeSlot(start=start_dt, end=end_dt),
            "price": PriceRange(min=price[0], max=price[1]) if price is not None else None,
            "availability": availability,
            "source": source,
            "source_url": source_url,
            "booking_required": booking_required,
        }
        fields.update(overrides)
        return Event(**fields)

    return _make


@pytest.fixture
def make_ranked() -> Callable[..., RankedEvent]:
    """Factory wrapping an event with a score."""

    def _make(event: Event, score: float = 0.8, reasoning: str = "Fits budget comfortably") -> RankedEvent:
        return RankedEvent(event=event, score=score, reasoning=reasoning)

    return _make


@pytest.fixture
def make_constraints() -> Callable[..., UserConstraints]:
    """Factory for constraints on the anchor date (evening, $30-60)."""

    def _make(**overrides: Any) -> UserConstraints:
        fields: dict[str, Any] = {
            "date": ANCHOR_DATE,
            "party_size": 2,
            "budget_min": 30,
            "budget_max": 60,
            "time_window": TimeWindow(label="Evening", start=time(17, 0), end=time(23, 0)),
            "max_hours": 4,
        }
        fields.update(overrides)
        return UserConstraints(**fields)

    return _make


@pytest.fixture
def profile() -> UserProfile:
    """Create attendee profile."""
    return UserProfile(name="Alex Tan", email="alex@example.com", phone="+6591234567")


@pytest.fixture
def form() -> PlanFormData:
    """Create a date-night plan form for two."""
    return PlanFormData(
        occasion=Occasion.date_night,
        budget_range=BudgetRange.from_30_to_60,
        party_size=2,
        date=ANCHOR_DATE,
        time_of_day=TimeOfDay.evening,
    )


@pytest.fixture
def anchor_date() -> date:
    """Outing date used by the factories."""
    return ANCHOR_DATE


@pytest.fixture
def at() -> Callable[..., datetime]:
    """Local HH:MM on the anchor date as an aware datetime."""
    return local_dt


@pytest.fixture
def make_reasoner() -> type[FakeReasoner]:
    """Scripted reasoner class: make_reasoner('{"narrative": "..."}')."""
    return FakeReasoner


@pytest.fixture
def make_source() -> type[FakeSource]:
    """In-memory discovery source class: make_source("eventbrite", events)."""
    return FakeSource
