"""Tests for deterministic ranking and the recommendation narrative."""

import json

import pytest

from backend.outing.models.common import Availability, EventCategory
from backend.outing.orchestration.ranker import (
    budget_fit_score,
    default_narrative,
    narrate_ranking,
    passes_hard_filters,
    rank,
    weather_score,
)


class TestHardFilters:
    """Test filters applied before scoring."""

    def test_budget_filter_keeps_only_affordable(self, make_event, make_constraints) -> None:
        """With a 50 budget, a 20 event survives and a 60 event does not."""
        cheap = make_event(id="cheap", price=(20, 20))
        pricey = make_event(id="pricey", price=(60, 60))

        result = rank([cheap, pricey], make_constraints(budget_min=0, budget_max=50))

        assert [r.event.id for r in result.ranked] == ["cheap"]
        assert result.filter_stats.model_dump() == {"total_input": 2, "passed_filters": 1, "final_count": 1}

    def test_sold_out_excluded_unless_allowed(self, make_event, make_constraints) -> None:
        event = make_event(availability=Availability.sold_out)

        assert not passes_hard_filters(event, make_constraints())
        assert passes_hard_filters(event, make_constraints(allow_sold_out=True))

    def test_excluded_category(self, make_event, make_constraints) -> None:
        event = make_event(category=EventCategory.nightlife)

        assert not passes_hard_filters(event, make_constraints(excluded_categories=[EventCategory.nightlife]))

    def test_unpriced_event_passes_budget(self, make_event, make_constraints) -> None:
        assert passes_hard_filters(make_event(price=None), make_constraints(budget_max=0, budget_min=0))


class TestScoring:
    """Test per-factor scores."""

    def test_budget_fit(self, make_event, make_constraints) -> None:
        constraints = make_constraints(budget_min=0, budget_max=100)

        assert budget_fit_score(make_event(price=None), constraints) == 0.7
        assert budget_fit_score(make_event(price=(0, 0)), constraints) == 0.9
        assert budget_fit_score(make_event(price=(0, 0)), make_constraints(prefer_free_events=True)) == 1.0
        assert budget_fit_score(make_event(price=(50, 80)), constraints) == 0.7
        assert budget_fit_score(make_event(price=(100, 120)), constraints) == 0.4

    def test_weather_score_depends_on_forecast(self, make_event, make_constraints) -> None:
        outdoor = make_event(category=EventCategory.outdoor)
        indoor = make_event(category=EventCategory.theatre)

        assert weather_score(outdoor, make_constraints()) == 0.7
        assert weather_score(outdoor, make_constraints(is_outdoor_friendly=True)) == 1.0
        assert weather_score(outdoor, make_constraints(is_outdoor_friendly=False)) == 0.2
        assert weather_score(indoor, make_constraints(is_outdoor_friendly=False)) == 0.8


class TestRank:
    """Test rank()."""

    def test_deterministic(self, make_event, make_constraints) -> None:
        events = [
            make_event(id="a", price=(10, 10), rating=4.0),
            make_event(id="b", price=(40, 50), category=EventCategory.theatre),
            make_event(id="c", price=None, availability=Availability.limited),
        ]
        constraints = make_constraints(preferred_categories=[EventCategory.concert])

        first = rank(events, constraints)
        second = rank(events, constraints)

        assert [r.model_dump() for r in first.ranked] == [r.model_dump() for r in second.ranked]

    def test_sorted_best_first_with_stable_ties(self, make_event, make_constraints) -> None:
        twin_a = make_event(id="twin-a", source_url="https://x.com/a")
        twin_b = make_event(id="twin-b", source_url="https://x.com/b")
        best = make_event(id="best", price=(0, 0), rating=5.0)

        result = rank([twin_a, twin_b, best], make_constraints(preferred_categories=[EventCategory.concert]))

        assert [r.event.id for r in result.ranked] == ["best", "twin-a", "twin-b"]
        scores = [r.score for r in result.ranked]
        assert scores == sorted(scores, reverse=True)
        assert all(0.0 <= s <= 1.0 for s in scores)

    def test_reasoning_names_strong_factors(self, make_event, make_constraints) -> None:
        event = make_event(price=(0, 0), rating=4.8)

        result = rank([event], make_constraints(preferred_categories=[EventCategory.concert]))

        reasoning = result.ranked[0].reasoning
        assert "Free entry" in reasoning
        assert "matches preferred category (concert)" in reasoning
        assert "highly rated (4.8/5)" in reasoning
        assert set(result.ranked[0].components) == {"budget", "category", "rating", "availability", "weather"}

    def test_empty_input(self, make_constraints) -> None:
        result = rank([], make_constraints())

        assert result.ranked == []
        assert result.filter_stats.total_input == 0


class TestNarrateRanking:
    """Test narrate_ranking() fallbacks."""

    @pytest.fixture
    def ranked_result(self, make_event, make_constraints):
        """Rank two events."""
        return rank([make_event(id="a"), make_event(id="b", source_url="https://x.com/b")], make_constraints())

    @pytest.mark.asyncio
    async def test_no_reasoner_uses_default_narrative(self, ranked_result, make_constraints) -> None:
        narration = await narrate_ranking(ranked_result.ranked, ranked_result.filter_stats, make_constraints())

        assert narration == {"narrative": default_narrative(ranked_result.filter_stats, 2)}

    @pytest.mark.asyncio
    async def test_json_response_passed_through(self, ranked_result, make_constraints, make_reasoner) -> None:
        reasoner = make_reasoner(json.dumps({"narrative": "Great picks", "topPick": "a"}))

        narration = await narrate_ranking(
            ranked_result.ranked, ranked_result.filter_stats, make_constraints(), reasoner
        )

        assert narration == {"narrative": "Great picks", "topPick": "a"}

    @pytest.mark.asyncio
    async def test_plain_text_becomes_narrative(self, ranked_result, make_constraints, make_reasoner) -> None:
        narration = await narrate_ranking(
            ranked_result.ranked, ranked_result.filter_stats, make_constraints(), make_reasoner("Just go.")
        )

        assert narration == {"narrative": "Just go."}

    @pytest.mark.asyncio
    async def test_reasoner_failure_falls_back(self, ranked_result, make_constraints, make_reasoner) -> None:
        reasoner = make_reasoner(RuntimeError("quota"))

        narration = await narrate_ranking(
            ranked_result.ranked, ranked_result.filter_stats, make_constraints(), reasoner
        )

        assert narration["narrative"].startswith("Scored 2 events")
