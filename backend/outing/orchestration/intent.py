"""Intent normalization: plan form -> constraints, with optional reasoner enrichment."""

import logging
from datetime import time

from backend.outing.llm.client import NarrativeReasoner, parse_json_object
from backend.outing.models.common import EventCategory
from backend.outing.models.intent import (
    BudgetRange,
    Duration,
    IntentEnrichment,
    IntentResult,
    IntentType,
    Occasion,
    PlanFormData,
    TimeOfDay,
    TimeWindow,
    UserConstraints,
)

logger = logging.getLogger(__name__)

TIME_OF_DAY_WINDOWS: dict[TimeOfDay, TimeWindow] = {
    TimeOfDay.morning: TimeWindow(label="Morning", start=time(8, 0), end=time(12, 0)),
    TimeOfDay.afternoon: TimeWindow(label="Afternoon", start=time(12, 0), end=time(17, 0)),
    TimeOfDay.evening: TimeWindow(label="Evening", start=time(17, 0), end=time(23, 0)),
    TimeOfDay.night: TimeWindow(label="Night", start=time(20, 0), end=time(2, 0)),
}

OCCASION_DEFAULT_WINDOWS: dict[Occasion, TimeWindow] = {
    Occasion.date_night: TimeWindow(label="Evening to Night", start=time(17, 0), end=time(23, 0)),
    Occasion.celebration: TimeWindow(label="Evening to Night", start=time(17, 0), end=time(23, 0)),
    Occasion.friends_day_out: TimeWindow(
        label="Afternoon to Evening", start=time(12, 0), end=time(22, 0)
    ),
    Occasion.family_outing: TimeWindow(
        label="Morning to Afternoon", start=time(9, 0), end=time(17, 0)
    ),
    Occasion.solo_adventure: TimeWindow(
        label="Morning to Evening", start=time(9, 0), end=time(21, 0)
    ),
    Occasion.chill_hangout: TimeWindow(
        label="Afternoon to Evening", start=time(12, 0), end=time(21, 0)
    ),
}

FLEXIBLE_FALLBACK = TimeWindow(label="Daytime", start=time(10, 0), end=time(21, 0))

DURATION_HOURS: dict[Duration, float] = {
    Duration.two_to_three_hours: 3,
    Duration.half_day: 4,
    Duration.full_day: 8,
}

BUDGET_RANGES: dict[BudgetRange, tuple[float, float | None]] = {
    BudgetRange.free: (0, 0),
    BudgetRange.under_30: (0, 30),
    BudgetRange.from_30_to_60: (30, 60),
    BudgetRange.from_60_to_100: (60, 100),
    BudgetRange.over_100: (100, None),
}

OCCASION_CATEGORIES: dict[Occasion, list[EventCategory]] = {
    Occasion.date_night: [
        EventCategory.dining,
        EventCategory.concert,
        EventCategory.theatre,
        EventCategory.nightlife,
    ],
    Occasion.celebration: [
        EventCategory.dining,
        EventCategory.nightlife,
        EventCategory.concert,
        EventCategory.festival,
    ],
    Occasion.friends_day_out: [
        EventCategory.festival,
        EventCategory.outdoor,
        EventCategory.sports,
        EventCategory.nightlife,
    ],
    Occasion.family_outing: [
        EventCategory.outdoor,
        EventCategory.cultural,
        EventCategory.exhibition,
        EventCategory.festival,
    ],
    Occasion.solo_adventure: [
        EventCategory.cultural,
        EventCategory.exhibition,
        EventCategory.workshop,
        EventCategory.outdoor,
    ],
    Occasion.chill_hangout: [
        EventCategory.dining,
        EventCategory.cultural,
        EventCategory.exhibition,
    ],
}

INTENT_SYSTEM_PROMPT = (
    "You refine outing requests. Reply with a single JSON object with keys "
    '"preferredCategories" and "excludedCategories" (lists drawn from: '
    + ", ".join(c.value for c in EventCategory)
    + '), "weatherSensitive" (boolean), "reasoning" (one sentence) and '
    '"confidence" (0 to 1). No prose outside the JSON.'
)


def resolve_time_window(time_of_day: TimeOfDay, occasion: Occasion) -> TimeWindow:
    """Concrete window for the requested part of day (flexible uses the occasion default)."""
    if time_of_day == TimeOfDay.flexible:
        return OCCASION_DEFAULT_WINDOWS.get(occasion, FLEXIBLE_FALLBACK)
    return TIME_OF_DAY_WINDOWS[time_of_day]


def _budget_label(budget_min: float | None, budget_max: float | None) -> str:
    if budget_max == 0:
        return "free events only"
    if budget_max is None:
        return f"${budget_min:.0f}+ per person"
    if not budget_min:
        return f"under ${budget_max:.0f} per person"
    return f"${budget_min:.0f}–${budget_max:.0f} per person"


def _summarize(form: PlanFormData, constraints: UserConstraints) -> str:
    occasion = form.occasion.value.replace("_", " ")
    window = constraints.time_window
    people = "person" if form.party_size == 1 else "people"
    parts = [
        f"{occasion.capitalize()} for {form.party_size} {people} on "
        f"{form.date.strftime('%A %d %B %Y')}",
        f"{window.label.lower()} ({window.range_label})",
        f"about {constraints.max_hours:g} hours",
        _budget_label(constraints.budget_min, constraints.budget_max),
    ]
    if form.areas:
        parts.append(f"around {', '.join(form.areas)}")
    summary = ", ".join(parts) + "."
    if form.additional_notes:
        summary += f" Notes: {form.additional_notes}"
    return summary


def map_form_to_constraints(form: PlanFormData) -> IntentResult:
    """Deterministic form mapping (no reasoner involved)."""
    budget_min, budget_max = BUDGET_RANGES[form.budget_range]
    intent_type = IntentType.plan_date if form.occasion == Occasion.date_night else IntentType.find_events

    constraints = UserConstraints(
        date=form.date,
        party_size=form.party_size,
        budget_min=budget_min,
        budget_max=budget_max,
        preferred_categories=list(OCCASION_CATEGORIES.get(form.occasion, [])),
        areas=list(form.areas),
        time_window=resolve_time_window(form.time_of_day, form.occasion),
        max_hours=DURATION_HOURS[form.duration],
        prefer_free_events=form.prefer_free_events or form.budget_range == BudgetRange.free,
    )
    return IntentResult(
        intent_type=intent_type,
        constraints=constraints,
        summary=_summarize(form, constraints),
    )


def build_intent_prompt(form: PlanFormData, summary: str) -> str:
    """Prompt asking the reasoner to refine category preferences."""
    lines = [
        f"User request: {summary}",
        "",
        f"Occasion: {form.occasion.value}",
        f"Budget: {form.budget_range.value}",
        f"Party size: {form.party_size}",
        f"Time: {form.time_of_day.value}",
        f"Duration: {form.duration.value}",
        f"Areas: {', '.join(form.areas)}",
    ]
    if form.additional_notes:
        lines.append(f"Notes: {form.additional_notes}")
    return "\n".join(lines)


def _parse_categories(value: object) -> list[EventCategory] | None:
    if not isinstance(value, list):
        return None
    categories: list[EventCategory] = []
    for item in value:
        try:
            category = EventCategory(str(item).lower())
        except ValueError:
            logger.debug(f"Ignoring unknown category from reasoner: {item!r}")
            continue
        if category not in categories:
            categories.append(category)
    return categories


def parse_enrichment(text: str) -> IntentEnrichment | None:
    """Parse reasoner output into an enrichment, or None if unusable."""
    payload = parse_json_object(text)
    if payload is None:
        return None

    weather_sensitive = payload.get("weatherSensitive")
    reasoning = payload.get("reasoning")
    confidence = payload.get("confidence")
    if isinstance(confidence, bool) or not isinstance(confidence, int | float):
        confidence = None

    return IntentEnrichment(
        preferred_categories=_parse_categories(payload.get("preferredCategories")),
        excluded_categories=_parse_categories(payload.get("excludedCategories")),
        weather_sensitive=weather_sensitive if isinstance(weather_sensitive, bool) else None,
        reasoning=reasoning if isinstance(reasoning, str) else None,
        confidence=max(0.0, min(1.0, float(confidence))) if confidence is not None else None,
    )


def apply_enrichment(constraints: UserConstraints, enrichment: IntentEnrichment) -> UserConstraints:
    """Layer enrichment over deterministic constraints."""
    updates: dict[str, object] = {}
    if enrichment.preferred_categories:
        updates["preferred_categories"] = enrichment.preferred_categories
    if enrichment.excluded_categories:
        updates["excluded_categories"] = enrichment.excluded_categories
        if "preferred_categories" not in updates:
            updates["preferred_categories"] = [
                c for c in constraints.preferred_categories if c not in enrichment.excluded_categories
            ]
    if enrichment.weather_sensitive is not None:
        updates["weather_sensitive"] = enrichment.weather_sensitive
    return constraints.model_copy(update=updates)


async def normalize_intent(
    form: PlanFormData,
    reasoner: NarrativeReasoner | None = None,
) -> IntentResult:
    """Normalize a plan form into constraints.

    Args:
        form: Validated plan form
        reasoner: Optional reasoner used to refine category preferences

    Returns:
        IntentResult; enrichment is None when the reasoner is absent, fails
        or returns unparsable output
    """
    result = map_form_to_constraints(form)
    logger.info(f"Intent mapped: {result.intent_type.value} | {result.summary}")

    if reasoner is None:
        return result

    try:
        text = await reasoner.generate(
            build_intent_prompt(form, result.summary), system=INTENT_SYSTEM_PROMPT
        )
    except Exception as e:
        logger.warning(f"Intent enrichment failed, using deterministic mapping only: {e}")
        return result

    enrichment = parse_enrichment(text)
    if enrichment is None:
        logger.warning("Failed to parse intent enrichment, using deterministic mapping only")
        return result

    logger.info(
        "Intent enriched",
        extra={
            "structured": {
                "preferred": [c.value for c in enrichment.preferred_categories or []],
                "excluded": [c.value for c in enrichment.excluded_categories or []],
                "confidence": enrichment.confidence,
            }
        },
    )
    return result.model_copy(
        update={
            "constraints": apply_enrichment(result.constraints, enrichment),
            "enrichment": enrichment,
        }
    )
