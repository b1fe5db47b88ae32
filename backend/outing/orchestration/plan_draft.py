"""Draft plan generation: reasoner-authored when available, deterministic otherwise.

The draft is untrusted input to the scheduler, which validates it against the
DraftPlan schema and corrects main-event times.
"""

import logging
from dataclasses import dataclass
from typing import Any

from backend.outing.llm.client import NarrativeReasoner, parse_json_object
from backend.outing.models.common import EventCategory
from backend.outing.models.event import RankedEvent
from backend.outing.models.intent import Occasion, UserConstraints
from backend.outing.models.itinerary import DraftLocation, DraftPlan, DraftPlanItem, DraftTravel
from backend.outing.utils.timeutil import format_hhmm, local_timezone, parse_hhmm, to_local_hhmm
from backend.outing.verification.verifiers import budget_status

logger = logging.getLogger(__name__)

PRE_ACTIVITY_MINUTES = 60
PRE_ACTIVITY_BUFFER_MINUTES = 15
EARLIEST_START_MINUTES = 7 * 60
DEFAULT_MEAL_COST = 25.0

PLANNING_SYSTEM_PROMPT = (
    "You plan outings in Singapore. Reply with a single JSON object with keys "
    "itineraryName, items (each: name, description, category, isMainEvent, startTime, "
    "endTime, durationMinutes, location {name, address, area}, estimatedCostPerPerson, "
    "priceCategory, travelFromPrevious {durationMinutes, mode, description}, vibeNotes, "
    "bookingRequired, sourceUrl), totalEstimatedCostPerPerson, budgetStatus, budgetNotes, "
    "overallVibe, practicalTips, weatherConsideration. No prose outside the JSON."
)


@dataclass
class DraftOutcome:
    """Raw draft payload plus where it came from."""

    payload: dict[str, Any]
    generated: bool


def price_category(cost: float) -> str:
    """Bucket a per-person cost into a draft price tier."""
    if cost <= 0:
        return "free"
    if cost <= 30:
        return "budget"
    if cost <= 60:
        return "moderate"
    if cost <= 100:
        return "premium"
    return "luxury"


def _meal_label(start_minutes: int) -> str:
    if start_minutes < 11 * 60:
        return "Breakfast"
    if start_minutes < 15 * 60:
        return "Lunch"
    if start_minutes < 17 * 60 + 30:
        return "Coffee"
    return "Dinner"


def build_planning_prompt(
    ranked: list[RankedEvent],
    constraints: UserConstraints,
    occasion: Occasion,
    notes: str = "",
    narrative: str | None = None,
    offset_hours: float = 8.0,
    max_gap_minutes: int = 45,
    cutoff_hour: int = 23,
) -> str:
    """Build the planning prompt anchored on the top ranked events.

    Each event is listed with its exact local HH:MM slot so the draft can copy
    it verbatim for the main item.
    """
    tz = local_timezone(offset_hours)
    occasion_text = occasion.value.replace("_", " ")
    party = constraints.party_size
    people = "person" if party == 1 else "people"
    budget = "unlimited" if constraints.budget_max is None else f"{constraints.budget_max:g}"
    group_budget = (
        "unlimited" if constraints.budget_max is None else f"{constraints.budget_max * party:g}"
    )
    window = constraints.time_window

    event_blocks = []
    for i, r in enumerate(ranked, start=1):
        e = r.event
        start = to_local_hhmm(e.time_slot.start, tz)
        end = to_local_hhmm(e.time_slot.end, tz)
        price = f"${e.price.min:g}-{e.price.max:g} {e.price.currency}" if e.price else "free/unknown"
        rating = f"{e.rating:g}" if e.rating is not None else "unrated"
        event_blocks.append(
            f'{i}. EXACT EVENT NAME: "{e.name}"\n'
            f"   Category: {e.category.value}\n"
            f"   Location: {e.location.name}, {e.location.address}\n"
            f'   EXACT TIME SLOT: startTime="{start}" endTime="{end}"\n'
            f"   Price: {price}/person\n"
            f"   Rating: {rating}/5\n"
            f"   Score: {r.score}/1.00\n"
            f"   Why: {r.reasoning or 'Top pick'}\n"
            f"   URL: {e.source_url or 'none'}"
        )

    lines = [
        f"Plan a complete {occasion_text} itinerary for {constraints.date.isoformat()}.",
        "",
        f"TIME WINDOW: {window.label} ({window.range_label}). All activities must start "
        "and end within this window.",
        f"TOTAL PLAN DURATION: first start to last end must not exceed "
        f"{constraints.max_hours:g} hours.",
        f"SCHEDULING RULE: at most {max_gap_minutes} minutes idle between consecutive "
        "activities, including travel. Aim for 15-30 minute gaps.",
        "",
        f"PARTY: {party} {people}",
        f"BUDGET: ${budget} per person (total group budget: ${group_budget})",
        f"PREFERRED AREAS: {', '.join(constraints.areas) or 'anywhere'}",
    ]
    if notes:
        lines.append(f"NOTES: {notes}")
    if narrative:
        lines.append(f"RECOMMENDATION CONTEXT: {narrative}")
    lines += [
        "",
        "TOP RANKED EVENT (anchor the plan around it):",
        "\n\n".join(event_blocks),
        "",
        'For the main event item set "name" to the exact event name, "startTime" and '
        '"endTime" to the exact slot above, and "isMainEvent" to true.',
        f"Generate 3-4 items in total. All activities must end by {cutoff_hour:02d}:00.",
    ]
    return "\n".join(lines)


def parse_draft_text(text: str) -> dict[str, Any] | None:
    """Extract the draft payload from generated text (JSON, else first {...} block)."""
    return parse_json_object(text)


def default_draft_plan(top: RankedEvent, constraints: UserConstraints, offset_hours: float = 8.0) -> DraftPlan:
    """Deterministic draft around the top event.

    The main event keeps its exact slot. A meal before it is added when it
    fits inside the time window and starts after 07:00.
    """
    tz = local_timezone(offset_hours)
    event = top.event
    main_start = to_local_hhmm(event.time_slot.start, tz)
    main_end = to_local_hhmm(event.time_slot.end, tz)
    main_minutes = int((event.time_slot.end - event.time_slot.start).total_seconds() // 60)
    main_cost = event.price.min if event.price else 0.0

    items: list[DraftPlanItem] = []
    pre_end = parse_hhmm(main_start) - PRE_ACTIVITY_BUFFER_MINUTES
    pre_start = pre_end - PRE_ACTIVITY_MINUTES
    window_start = constraints.time_window.start.hour * 60 + constraints.time_window.start.minute
    include_pre = pre_start >= max(window_start, EARLIEST_START_MINUTES)

    pre_cost = 0.0
    if include_pre:
        remaining = None if constraints.budget_max is None else constraints.budget_max - main_cost
        pre_cost = DEFAULT_MEAL_COST if remaining is None else max(0.0, min(DEFAULT_MEAL_COST, remaining))
        meal = _meal_label(pre_start)
        items.append(
            DraftPlanItem(
                name=f"{meal} near {event.location.name}",
                description=f"{meal} close to the venue before {event.name}.",
                category=EventCategory.dining,
                is_main_event=False,
                start_time=format_hhmm(pre_start),
                end_time=format_hhmm(pre_end),
                duration_minutes=PRE_ACTIVITY_MINUTES,
                location=DraftLocation(
                    name=f"Near {event.location.name}",
                    address=event.location.address,
                    area=constraints.areas[0] if constraints.areas else None,
                ),
                estimated_cost_per_person=pre_cost,
                price_category=price_category(pre_cost),
                travel_from_previous=DraftTravel(duration_minutes=0, mode="none"),
                vibe_notes="Unhurried start before the main event",
            )
        )

    items.append(
        DraftPlanItem(
            name=event.name,
            description=event.description or event.name,
            category=event.category,
            is_main_event=True,
            start_time=main_start,
            end_time=main_end,
            duration_minutes=max(main_minutes, 0),
            location=DraftLocation(name=event.location.name, address=event.location.address),
            estimated_cost_per_person=main_cost,
            price_category=price_category(main_cost),
            travel_from_previous=(
                DraftTravel(duration_minutes=10, mode="walk", description="Short walk to the venue")
                if include_pre
                else None
            ),
            booking_required=event.booking_required,
            source_url=event.source_url,
        )
    )

    total = main_cost + pre_cost
    return DraftPlan(
        itinerary_name=f"{event.name} outing",
        items=items,
        total_estimated_cost_per_person=total,
        budget_status=budget_status(total, constraints.budget_max),  # type: ignore[arg-type]
        overall_vibe=f"Built around {event.name}",
    )


async def generate_draft_plan(
    ranked: list[RankedEvent],
    constraints: UserConstraints,
    occasion: Occasion,
    reasoner: NarrativeReasoner | None = None,
    notes: str = "",
    narrative: str | None = None,
    offset_hours: float = 8.0,
    max_gap_minutes: int = 45,
    cutoff_hour: int = 23,
) -> DraftOutcome:
    """Produce a raw draft payload for the scheduler.

    Args:
        ranked: Events forwarded to planning (best first, at least one)
        constraints: Normalized constraints
        occasion: Occasion from the plan form
        reasoner: Optional reasoner; absent or failing falls back to the default draft
        notes: Free-text notes from the form
        narrative: Recommendation narrative to include as context

    Returns:
        DraftOutcome; payload is unvalidated when generated
    """
    if reasoner is not None:
        prompt = build_planning_prompt(
            ranked,
            constraints,
            occasion,
            notes=notes,
            narrative=narrative,
            offset_hours=offset_hours,
            max_gap_minutes=max_gap_minutes,
            cutoff_hour=cutoff_hour,
        )
        try:
            text = await reasoner.generate(prompt, system=PLANNING_SYSTEM_PROMPT)
        except Exception as e:
            logger.warning(f"Planning reasoner failed, using default draft: {e}")
        else:
            payload = parse_draft_text(text)
            if payload is not None:
                logger.info(
                    f'Draft plan generated: "{payload.get("itineraryName", "unnamed")}" '
                    f"({len(text)} chars)"
                )
                return DraftOutcome(payload=payload, generated=True)
            logger.warning("Could not extract JSON from planning response, using default draft")

    draft = default_draft_plan(ranked[0], constraints, offset_hours=offset_hours)
    return DraftOutcome(payload=draft.model_dump(by_alias=True, mode="json"), generated=False)
