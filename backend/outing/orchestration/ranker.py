"""Deterministic multi-factor event ranking.

Hard filters first, then a weighted score per survivor:
budget fit 30%, category match 25%, rating 20%, availability 15%, weather 10%.
"""

import logging
from typing import Any

from pydantic import BaseModel

from backend.outing.llm.client import NarrativeReasoner, parse_json_object
from backend.outing.models.common import Availability, EventCategory
from backend.outing.models.event import Event, RankedEvent
from backend.outing.models.intent import UserConstraints

logger = logging.getLogger(__name__)

WEIGHTS: dict[str, float] = {
    "budget": 0.30,
    "category": 0.25,
    "rating": 0.20,
    "availability": 0.15,
    "weather": 0.10,
}

AVAILABILITY_SCORES: dict[Availability, float] = {
    Availability.available: 1.0,
    Availability.limited: 0.7,
    Availability.unknown: 0.5,
    Availability.sold_out: 0.0,
}

OUTDOOR_CATEGORIES = frozenset({EventCategory.outdoor, EventCategory.festival})

# Factor score at or above which a factor is called out in the reasoning
STRONG_FACTOR = 0.8


class FilterStats(BaseModel):
    """Counts through the ranking funnel."""

    total_input: int
    passed_filters: int
    final_count: int


class RankResult(BaseModel):
    """Ranked events (best first) plus funnel counts."""

    ranked: list[RankedEvent]
    filter_stats: FilterStats


def passes_hard_filters(event: Event, constraints: UserConstraints) -> bool:
    """Sold out, excluded category and over-budget events never rank."""
    if event.availability == Availability.sold_out and not constraints.allow_sold_out:
        return False
    if event.category in constraints.excluded_categories:
        return False
    if (
        constraints.budget_max is not None
        and event.price is not None
        and event.price.min > constraints.budget_max
    ):
        return False
    return True


def budget_fit_score(event: Event, constraints: UserConstraints) -> float:
    """How comfortably the cheapest ticket fits the budget."""
    if event.price is None:
        return 0.7
    if event.price.max == 0:
        return 1.0 if constraints.prefer_free_events else 0.9
    if constraints.budget_max is None or constraints.budget_max == 0:
        return 0.7
    # Cheaper than budget_min is not penalized
    ratio = min(event.price.min / constraints.budget_max, 1.0)
    return round(0.4 + 0.6 * (1.0 - ratio), 4)


def category_score(event: Event, constraints: UserConstraints) -> float:
    if not constraints.preferred_categories:
        return 0.5
    return 1.0 if event.category in constraints.preferred_categories else 0.2


def rating_score(event: Event) -> float:
    if event.rating is None:
        return 0.5
    return max(0.0, min(event.rating / 5.0, 1.0))


def availability_score(event: Event) -> float:
    return AVAILABILITY_SCORES.get(event.availability, 0.5)


def weather_score(event: Event, constraints: UserConstraints) -> float:
    """Outdoor events depend on the forecast; indoor ones gain a little in bad weather."""
    if constraints.is_outdoor_friendly is None:
        return 0.7
    if event.category in OUTDOOR_CATEGORIES:
        return 1.0 if constraints.is_outdoor_friendly else 0.2
    return 0.7 if constraints.is_outdoor_friendly else 0.8


def score_components(event: Event, constraints: UserConstraints) -> dict[str, float]:
    """Per-factor scores in [0, 1]."""
    return {
        "budget": budget_fit_score(event, constraints),
        "category": category_score(event, constraints),
        "rating": rating_score(event),
        "availability": availability_score(event),
        "weather": weather_score(event, constraints),
    }


def _reasoning(event: Event, components: dict[str, float], constraints: UserConstraints) -> str:
    reasons: list[str] = []
    if components["budget"] >= STRONG_FACTOR:
        if event.price is not None and event.price.max == 0:
            reasons.append("free entry")
        else:
            reasons.append("fits budget comfortably")
    if components["category"] >= STRONG_FACTOR:
        reasons.append(f"matches preferred category ({event.category.value})")
    if components["rating"] >= STRONG_FACTOR and event.rating is not None:
        reasons.append(f"highly rated ({event.rating:.1f}/5)")
    if components["availability"] >= STRONG_FACTOR:
        reasons.append("tickets available")
    if components["weather"] >= STRONG_FACTOR and constraints.is_outdoor_friendly is not None:
        reasons.append("suits the forecast")

    if not reasons:
        weakest = min(components, key=lambda k: components[k])
        return f"Reasonable overall match (weakest factor: {weakest})"
    return "; ".join(reasons).capitalize()


def rank(events: list[Event], constraints: UserConstraints) -> RankResult:
    """Filter and score events.

    Args:
        events: Deduplicated candidates, in discovery order
        constraints: Normalized user constraints

    Returns:
        RankResult with events sorted by descending score; equal scores keep
        input order
    """
    survivors = [event for event in events if passes_hard_filters(event, constraints)]

    scored: list[RankedEvent] = []
    for event in survivors:
        components = score_components(event, constraints)
        score = round(sum(WEIGHTS[k] * v for k, v in components.items()), 4)
        logger.debug(
            f"Scored {event.name}: {score}",
            extra={"structured": {"event_id": event.id, "components": components}},
        )
        scored.append(
            RankedEvent(
                event=event,
                score=score,
                reasoning=_reasoning(event, components, constraints),
                components=components,
            )
        )

    # sorted() is stable
    ranked = sorted(scored, key=lambda r: r.score, reverse=True)
    stats = FilterStats(
        total_input=len(events), passed_filters=len(survivors), final_count=len(ranked)
    )
    logger.info(
        f"Ranking: {stats.total_input} -> {stats.passed_filters} passed filters "
        f"-> {stats.final_count} ranked"
    )
    return RankResult(ranked=ranked, filter_stats=stats)


def default_narrative(filter_stats: FilterStats, top_count: int) -> str:
    """Deterministic ranking summary used when no reasoner is available."""
    return (
        f"Scored {filter_stats.total_input} events: {filter_stats.passed_filters} passed "
        f"hard filters. Top {top_count} picks selected by budget fit (30%), category "
        f"match (25%), rating (20%), availability (15%), weather (10%)."
    )


def _budget_text(constraints: UserConstraints) -> str:
    upper = "∞" if constraints.budget_max is None else f"{constraints.budget_max:g}"
    return f"${(constraints.budget_min or 0):g}-{upper}"


def _price_text(event: Event) -> str:
    if event.price is None or event.price.max == 0:
        return "free"
    return f"${event.price.min:g}-{event.price.max:g}"


def build_recommendation_prompt(
    ranked: list[RankedEvent],
    filter_stats: FilterStats,
    constraints: UserConstraints,
    summary: str,
) -> str:
    """Prompt for the narrative explaining the top picks."""
    preferred = ", ".join(c.value for c in constraints.preferred_categories) or "all"
    excluded = ", ".join(c.value for c in constraints.excluded_categories) or "none"
    picks = "\n".join(
        f"{i}. {r.event.name} ({r.event.category.value}, {_price_text(r.event)}) "
        f"— score {r.score} — {r.reasoning}"
        for i, r in enumerate(ranked, start=1)
    )
    return (
        f"User request: {summary or 'Plan an outing'}\n"
        f"Budget: {_budget_text(constraints)}\n"
        f"Preferred categories: {preferred}\n"
        f"Excluded categories: {excluded}\n\n"
        f"Filter stats: {filter_stats.total_input} total → {filter_stats.passed_filters} "
        f"passed hard filters → {filter_stats.final_count} scored and ranked.\n\n"
        f"Top ranked events:\n{picks}"
    )


async def narrate_ranking(
    ranked: list[RankedEvent],
    filter_stats: FilterStats,
    constraints: UserConstraints,
    reasoner: NarrativeReasoner | None = None,
    summary: str = "",
    top_count: int = 3,
) -> dict[str, Any]:
    """Explain the top picks.

    Returns:
        Dict with at least "narrative". Reasoner JSON is returned as-is (with a
        narrative key guaranteed), non-JSON text becomes the narrative, and any
        failure yields the deterministic summary.
    """
    top = ranked[:top_count]
    fallback = {"narrative": default_narrative(filter_stats, len(top))}
    if reasoner is None or not top:
        return fallback

    try:
        text = (
            await reasoner.generate(
                build_recommendation_prompt(top, filter_stats, constraints, summary)
            )
        ).strip()
    except Exception as e:
        logger.warning(f"Recommendation narrative failed, using deterministic summary: {e}")
        return fallback

    payload = parse_json_object(text)
    if payload is None:
        logger.warning("Recommendation narrative was not JSON, using raw text")
        return {"narrative": text} if text else fallback
    if not isinstance(payload.get("narrative"), str):
        payload["narrative"] = fallback["narrative"]
    return payload
