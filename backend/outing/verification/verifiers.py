"""Verification functions for itinerary budget and timing constraints.

Each verifier returns a list of human-readable warnings (empty when satisfied).
Warnings are advisory: the scheduler decides what to drop.
"""

from collections.abc import Sequence
from datetime import datetime, timezone

from backend.outing.models.itinerary import ItineraryItem
from backend.outing.utils.timeutil import to_local_hhmm

# Over this multiple of the budget, an overrun is reported instead of "slightly over"
BUDGET_OVERRUN_RATIO = 1.2

# Gaps shorter than this are tight when travel is needed
TIGHT_TRANSITION_MINUTES = 5


def _money(value: float) -> str:
    return f"{round(value, 2):g}"


def budget_status(total_per_person: float, budget_max: float | None) -> str:
    """Classify per-person cost against the budget cap."""
    if budget_max is None or total_per_person <= budget_max:
        return "within_budget"
    if total_per_person > budget_max * BUDGET_OVERRUN_RATIO:
        return "over_budget"
    return "slightly_over"


def verify_budget(total_per_person: float, budget_max: float | None) -> list[str]:
    """Verify per-person cost fits the budget.

    Args:
        total_per_person: Summed estimated cost per person
        budget_max: Per-person budget cap (None = unlimited)

    Returns:
        One warning when over budget, else empty
    """
    status = budget_status(total_per_person, budget_max)
    if status == "over_budget":
        return [
            f"Budget overrun: estimated ${_money(total_per_person)}/person exceeds "
            f"${_money(budget_max or 0)} budget by ${_money(total_per_person - (budget_max or 0))}"
        ]
    if status == "slightly_over":
        return [
            f"Slightly over budget: estimated ${_money(total_per_person)}/person vs "
            f"${_money(budget_max or 0)} budget"
        ]
    return []


def verify_gap(
    prev_name: str,
    prev_end: datetime,
    name: str,
    start: datetime,
    travel_minutes: float,
    max_gap: int,
    tz: timezone,
) -> list[str]:
    """Verify the transition between two consecutive items.

    Checks overlap (negative gap), tight transitions when travel is needed,
    and idle gaps longer than max_gap minutes.
    """
    gap = int((start - prev_end).total_seconds() // 60)
    prev_end_hhmm = to_local_hhmm(prev_end, tz)
    start_hhmm = to_local_hhmm(start, tz)

    if gap < 0:
        return [f'Time overlap: "{prev_name}" ends at {prev_end_hhmm} but "{name}" starts at {start_hhmm}']
    if gap < TIGHT_TRANSITION_MINUTES and travel_minutes > 0:
        return [
            f'Tight transition: only {gap}min between "{prev_name}" and "{name}" '
            f"({travel_minutes:g}min travel needed)"
        ]
    if gap > max_gap:
        return [
            f'Excessive gap: {gap}min idle time between "{prev_name}" (ends {prev_end_hhmm}) '
            f'and "{name}" (starts {start_hhmm}). Max recommended: {max_gap}min'
        ]
    return []


def verify_span(items: Sequence[ItineraryItem], max_span_hours: float) -> list[str]:
    """Verify first-start to last-end span. Items must be sorted by start."""
    if len(items) < 2:
        return []
    span = items[-1].scheduled_time.end - items[0].scheduled_time.start
    span_hours = span.total_seconds() / 3600
    if span_hours > max_span_hours:
        return [
            f"Plan span too long: {span_hours:.1f} hours from first activity to last "
            f"(max recommended: {max_span_hours:g}h)"
        ]
    return []


def verify_cutoff(
    name: str,
    start: datetime,
    end: datetime,
    is_main: bool,
    cutoff_hour: int,
    tz: timezone,
) -> list[str]:
    """Verify an item ends by the hard cutoff on the day it starts.

    Non-main items past the cutoff are reported as dropped; main items are
    kept and only flagged.
    """
    local_start = start.astimezone(tz)
    cutoff = local_start.replace(hour=cutoff_hour, minute=0, second=0, microsecond=0)
    if end <= cutoff:
        return []

    end_hhmm = to_local_hhmm(end, tz)
    cutoff_hhmm = f"{cutoff_hour:02d}:00"
    if is_main:
        return [
            f'Main event "{name}" ends at {end_hhmm} which is past {cutoff_hhmm} '
            f"— included because it's the main event"
        ]
    return [f'Dropped "{name}" — ends at {end_hhmm} which is past the {cutoff_hhmm} cutoff']
