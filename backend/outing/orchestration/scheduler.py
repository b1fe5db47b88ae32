"""Itinerary scheduler: validates a draft plan and turns it into an Itinerary.

Never raises on bad drafts: schema failures produce a fallback itinerary
holding only the top ranked event.
"""

import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, timedelta, timezone
from typing import Any
from urllib.parse import quote

from pydantic import BaseModel, ValidationError

from backend.outing.models.common import Availability, Location, PriceRange, TimeSlot, TravelMode
from backend.outing.models.event import Event, RankedEvent
from backend.outing.models.itinerary import (
    DraftPlan,
    DraftPlanItem,
    Itinerary,
    ItineraryItem,
    ItineraryStatus,
    PlanMetadata,
)
from backend.outing.orchestration.similarity import normalize_text
from backend.outing.utils.timeutil import combine_local, local_timezone, to_local_hhmm, utcnow
from backend.outing.verification.verifiers import verify_budget, verify_cutoff, verify_gap, verify_span

logger = logging.getLogger(__name__)

TRAVEL_MODES: dict[str, TravelMode | None] = {
    "walk": TravelMode.walk,
    "mrt": TravelMode.public_transport,
    "bus": TravelMode.public_transport,
    "taxi": TravelMode.taxi,
    "none": None,
}

SEARCH_URL = "https://www.google.com/search?q="


@dataclass
class SchedulerConfig:
    """Tunable scheduling limits."""

    max_items: int = 4
    cutoff_hour: int = 23
    max_gap_minutes: int = 45
    max_span_hours: float = 8.0
    word_overlap_threshold: float = 0.6
    offset_hours: float = 8.0
    currency: str = "SGD"
    city: str = "Singapore"
    default_lat: float = 1.3521
    default_lng: float = 103.8198


class ScheduleResult(BaseModel):
    """Scheduler output."""

    itinerary: Itinerary
    metadata: PlanMetadata
    warnings: list[str]
    fallback: bool = False


@dataclass
class _Converted:
    item: ItineraryItem
    draft: DraftPlanItem
    matched: RankedEvent | None = None


def _significant_words(value: str) -> set[str]:
    return {w for w in normalize_text(value).split(" ") if len(w) > 2}


def fuzzy_match(
    name: str,
    events_by_name: dict[str, RankedEvent],
    overlap_threshold: float = 0.6,
) -> RankedEvent | None:
    """Match a draft item name to a ranked event.

    Strategies in order: exact (lowercased key), normalized exact, substring
    either way, then word overlap (words longer than 2 chars, best overlap
    wins). The first strategy that succeeds wins.
    """
    exact = events_by_name.get(name.lower().strip())
    if exact is not None:
        return exact

    target = normalize_text(name)
    for key, ranked in events_by_name.items():
        if normalize_text(key) == target:
            return ranked

    if target:
        for key, ranked in events_by_name.items():
            key_norm = normalize_text(key)
            if key_norm and (key_norm in target or target in key_norm):
                return ranked

    target_words = _significant_words(name)
    best: RankedEvent | None = None
    best_overlap = 0
    for key, ranked in events_by_name.items():
        key_words = _significant_words(key)
        overlap = len(target_words & key_words)
        ratio = overlap / max(len(target_words), len(key_words), 1)
        if ratio >= overlap_threshold and overlap > best_overlap:
            best_overlap = overlap
            best = ranked
    return best


def apply_item_cap(
    items: list[DraftPlanItem],
    max_items: int,
    is_matched: Callable[[DraftPlanItem], bool] | None = None,
) -> tuple[list[DraftPlanItem], list[str]]:
    """Trim a draft to max_items.

    Priority: matched main items, unmatched main items, then complementary
    items, each group in draft order. Kept items are re-sorted by start time.
    """
    if len(items) <= max_items:
        return items, []

    is_matched = is_matched or (lambda item: True)
    mains = [item for item in items if item.is_main_event]
    others = [item for item in items if not item.is_main_event]
    by_priority = (
        [item for item in mains if is_matched(item)]
        + [item for item in mains if not is_matched(item)]
        + others
    )
    kept = by_priority[:max_items]
    kept.sort(key=lambda item: item.start_time)
    logger.info(f"Trimming {len(items)} draft items to max {max_items}")

    if len(mains) > max_items:
        detail = f"Keeping {max_items} of {len(mains)} main events and dropping all complementary activities."
    else:
        detail = "Keeping main events and trimming complementary activities."
    return kept, [f"Item cap: draft plan has {len(items)} items but max is {max_items}. {detail}"]


def _draft_slot(day: date, item: DraftPlanItem, tz: timezone) -> TimeSlot:
    start = combine_local(day, item.start_time, tz)
    end = combine_local(day, item.end_time, tz)
    if end < start:
        end += timedelta(days=1)
    return TimeSlot(start=start, end=end)


def _generated_event(
    item: DraftPlanItem, index: int, slot: TimeSlot, config: SchedulerConfig
) -> Event:
    return Event(
        id=f"generated-{index}-{uuid.uuid4().hex[:8]}",
        name=item.name,
        description=item.description,
        category=item.category,
        location=Location(
            name=item.location.name,
            address=item.location.address,
            lat=config.default_lat,
            lng=config.default_lng,
        ),
        time_slot=slot,
        price=PriceRange(
            min=item.estimated_cost_per_person,
            max=item.estimated_cost_per_person,
            currency=config.currency,
        ),
        availability=Availability.unknown,
        source="discovered" if item.is_main_event else "planned",
        source_url=item.source_url or SEARCH_URL + quote(f"{item.name} {config.city}", safe=""),
        booking_required=item.booking_required,
    )


def _notes(item: DraftPlanItem, matched: RankedEvent | None, ranked: list[RankedEvent]) -> str | None:
    parts: list[str] = []
    if item.vibe_notes:
        parts.append(item.vibe_notes)
    if item.travel_from_previous and item.travel_from_previous.description:
        parts.append(f"Getting there: {item.travel_from_previous.description}")
    parts.append(f"Price tier: {item.price_category}")
    if matched is not None:
        parts.append(f"Ranked #{ranked.index(matched) + 1} (score: {matched.score})")
    return " | ".join(parts) if parts else None


def build_fallback(
    ranked: list[RankedEvent],
    day: date,
    reason: str | None = None,
) -> ScheduleResult:
    """Simplified itinerary holding only the top ranked event."""
    now = utcnow()
    items = [
        ItineraryItem(
            id=f"item-fallback-{i}-{uuid.uuid4().hex[:8]}",
            event=r.event,
            scheduled_time=r.event.time_slot,
            notes=f"Ranked #{i + 1} — {r.reasoning}",
        )
        for i, r in enumerate(ranked[:1])
    ]
    total_cost = sum(r.event.price.max if r.event.price else 0.0 for r in ranked[:1])
    if reason:
        logger.warning(f"Using fallback itinerary: {reason}")

    return ScheduleResult(
        itinerary=Itinerary(
            id=f"itinerary-{uuid.uuid4().hex[:12]}",
            name="Your Plan (simplified)",
            date=day,
            items=items,
            total_cost=total_cost,
            total_duration=0,
            status=ItineraryStatus.draft,
            created_at=now,
            updated_at=now,
        ),
        metadata=PlanMetadata(
            itinerary_name="Simplified Plan",
            budget_status="within_budget",
            budget_notes="Plan validation failed — showing ranked events only",
            total_estimated_cost_per_person=0,
            item_count=len(items),
            main_event_count=len(items),
            generated_activity_count=0,
        ),
        warnings=["Draft plan validation failed — showing top ranked events as fallback"],
        fallback=True,
    )


def schedule(
    draft_plan: dict[str, Any] | DraftPlan,
    ranked_events: list[RankedEvent],
    day: date,
    budget_max: float | None,
    party_size: int = 1,
    config: SchedulerConfig | None = None,
) -> ScheduleResult:
    """Turn a draft plan into a validated, time-ordered itinerary.

    Args:
        draft_plan: Raw draft payload (validated here) or a DraftPlan
        ranked_events: Events forwarded to planning, best first
        day: Outing date (local)
        budget_max: Per-person budget cap (None = unlimited)
        party_size: Number of attendees, multiplies per-person cost
        config: Scheduling limits

    Returns:
        ScheduleResult; a fallback result when the draft fails validation
    """
    config = config or SchedulerConfig()
    tz = local_timezone(config.offset_hours)

    try:
        plan = draft_plan if isinstance(draft_plan, DraftPlan) else DraftPlan.model_validate(draft_plan)
    except ValidationError as e:
        return build_fallback(ranked_events, day, reason=f"{e.error_count()} validation error(s)")
    logger.info(f'Validated draft plan "{plan.itinerary_name}" with {len(plan.items)} items')

    events_by_name = {r.event.name.lower().strip(): r for r in ranked_events}
    warnings: list[str] = []

    draft_items, cap_warnings = apply_item_cap(
        list(plan.items),
        config.max_items,
        lambda item: fuzzy_match(item.name, events_by_name, config.word_overlap_threshold) is not None,
    )
    warnings.extend(cap_warnings)

    kept: list[_Converted] = []
    used_event_ids: set[str] = set()
    total_per_person = 0.0
    total_minutes = 0.0

    for index, item in enumerate(draft_items):
        matched = (
            fuzzy_match(item.name, events_by_name, config.word_overlap_threshold)
            if item.is_main_event
            else None
        )
        if matched is not None and matched.event.id in used_event_ids:
            warnings.append(
                f'Duplicate main event: "{item.name}" matches "{matched.event.name}", '
                "which is already scheduled. Dropped."
            )
            continue
        if item.is_main_event and matched is None:
            warnings.append(
                f'Unmatched main event: "{item.name}" could not be matched to discovered '
                "events. Times may be inaccurate."
            )

        if matched is not None:
            real = matched.event.time_slot
            real_start = to_local_hhmm(real.start, tz)
            real_end = to_local_hhmm(real.end, tz)
            if item.start_time != real_start or item.end_time != real_end:
                warnings.append(
                    f'Time correction: draft scheduled "{item.name}" at '
                    f"{item.start_time}–{item.end_time} but the real event runs "
                    f"{real_start}–{real_end}. Using real event times."
                )
            slot = real
            event = matched.event
        else:
            slot = _draft_slot(day, item, tz)
            event = _generated_event(item, index, slot, config)

        travel_minutes = item.travel_from_previous.duration_minutes if item.travel_from_previous else 0
        if kept:
            previous = kept[-1]
            warnings.extend(
                verify_gap(
                    previous.draft.name,
                    previous.item.scheduled_time.end,
                    item.name,
                    slot.start,
                    travel_minutes,
                    config.max_gap_minutes,
                    tz,
                )
            )

        cutoff_warnings = verify_cutoff(
            item.name, slot.start, slot.end, item.is_main_event, config.cutoff_hour, tz
        )
        warnings.extend(cutoff_warnings)
        if cutoff_warnings and not item.is_main_event:
            continue

        if matched is not None:
            used_event_ids.add(matched.event.id)
        travel_mode = TRAVEL_MODES.get(item.travel_from_previous.mode) if item.travel_from_previous else None
        kept.append(
            _Converted(
                item=ItineraryItem(
                    id=f"item-{index}-{uuid.uuid4().hex[:8]}",
                    event=event,
                    scheduled_time=slot,
                    travel_time_from_previous=travel_minutes if travel_minutes > 0 else None,
                    travel_mode=travel_mode,
                    notes=_notes(item, matched, ranked_events),
                ),
                draft=item,
                matched=matched,
            )
        )
        total_per_person += item.estimated_cost_per_person
        total_minutes += item.duration_minutes + travel_minutes

    items = sorted((c.item for c in kept), key=lambda i: i.scheduled_time.start)
    warnings.extend(verify_span(items, config.max_span_hours))
    warnings.extend(verify_budget(total_per_person, budget_max))

    main_count = sum(1 for i in items if i.event.source != "planned")
    now = utcnow()
    itinerary = Itinerary(
        id=f"itinerary-{uuid.uuid4().hex[:12]}",
        name=plan.itinerary_name,
        date=day,
        items=items,
        total_cost=total_per_person * party_size,
        total_duration=total_minutes,
        status=ItineraryStatus.draft,
        created_at=now,
        updated_at=now,
    )
    metadata = PlanMetadata(
        itinerary_name=plan.itinerary_name,
        overall_vibe=plan.overall_vibe,
        practical_tips=plan.practical_tips,
        weather_consideration=plan.weather_consideration,
        budget_status=plan.budget_status,
        budget_notes=plan.budget_notes,
        total_estimated_cost_per_person=total_per_person,
        item_count=len(items),
        main_event_count=main_count,
        generated_activity_count=len(items) - main_count,
    )

    logger.info(
        f'Itinerary built: "{itinerary.name}" with {len(items)} items '
        f"({main_count} main, {len(items) - main_count} complementary), "
        f"${itinerary.total_cost:g} total",
        extra={"structured": {"itinerary_id": itinerary.id, "warnings": len(warnings)}},
    )
    return ScheduleResult(itinerary=itinerary, metadata=metadata, warnings=warnings)
