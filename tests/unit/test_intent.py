"""Tests for intent normalization."""

import json
from datetime import time

import pytest

from backend.outing.models.common import EventCategory
from backend.outing.models.intent import (
    BudgetRange,
    Duration,
    IntentEnrichment,
    IntentType,
    Occasion,
    PlanFormData,
    TimeOfDay,
)
from backend.outing.orchestration.intent import (
    apply_enrichment,
    map_form_to_constraints,
    normalize_intent,
    parse_enrichment,
    resolve_time_window,
)


class TestMapFormToConstraints:
    """Test the deterministic form mapping."""

    def test_date_night_mapping(self, form: PlanFormData) -> None:
        result = map_form_to_constraints(form)
        constraints = result.constraints

        assert result.intent_type == IntentType.plan_date
        assert constraints.budget_min == 30
        assert constraints.budget_max == 60
        assert constraints.party_size == 2
        assert constraints.max_hours == 4
        assert constraints.time_window.start == time(17, 0)
        assert EventCategory.dining in constraints.preferred_categories
        assert "Date night for 2 people" in result.summary
        assert result.enrichment is None

    @pytest.mark.parametrize(
        ("budget_range", "expected"),
        [
            (BudgetRange.free, (0, 0)),
            (BudgetRange.under_30, (0, 30)),
            (BudgetRange.from_60_to_100, (60, 100)),
            (BudgetRange.over_100, (100, None)),
        ],
    )
    def test_budget_ranges(self, form: PlanFormData, budget_range: BudgetRange, expected: tuple) -> None:
        constraints = map_form_to_constraints(form.model_copy(update={"budget_range": budget_range})).constraints

        assert (constraints.budget_min, constraints.budget_max) == expected

    def test_free_budget_prefers_free_events(self, form: PlanFormData) -> None:
        constraints = map_form_to_constraints(form.model_copy(update={"budget_range": BudgetRange.free})).constraints

        assert constraints.prefer_free_events is True

    def test_full_day_duration(self, form: PlanFormData) -> None:
        constraints = map_form_to_constraints(form.model_copy(update={"duration": Duration.full_day})).constraints

        assert constraints.max_hours == 8

    def test_flexible_window_uses_occasion_default(self) -> None:
        window = resolve_time_window(TimeOfDay.flexible, Occasion.family_outing)

        assert (window.start, window.end) == (time(9, 0), time(17, 0))

    def test_non_date_occasion_is_find_events(self, form: PlanFormData) -> None:
        result = map_form_to_constraints(form.model_copy(update={"occasion": Occasion.friends_day_out}))

        assert result.intent_type == IntentType.find_events


class TestNormalizeIntent:
    """Test reasoner enrichment."""

    @pytest.mark.asyncio
    async def test_enrichment_applied(self, form: PlanFormData, make_reasoner) -> None:
        reasoner = make_reasoner(
            json.dumps(
                {
                    "preferredCategories": ["Theatre", "concert", "bogus"],
                    "excludedCategories": ["nightlife"],
                    "weatherSensitive": True,
                    "reasoning": "Quiet evening",
                    "confidence": 1.7,
                }
            )
        )

        result = await normalize_intent(form, reasoner)

        assert result.constraints.preferred_categories == [EventCategory.theatre, EventCategory.concert]
        assert result.constraints.excluded_categories == [EventCategory.nightlife]
        assert result.constraints.weather_sensitive is True
        assert result.enrichment is not None
        assert result.enrichment.confidence == 1.0
        # Deterministic fields are untouched
        assert result.constraints.budget_max == 60

    @pytest.mark.asyncio
    async def test_reasoner_failure_keeps_mapping(self, form: PlanFormData, make_reasoner) -> None:
        result = await normalize_intent(form, make_reasoner(RuntimeError("timeout")))

        assert result == map_form_to_constraints(form)

    @pytest.mark.asyncio
    async def test_unparsable_output_keeps_mapping(self, form: PlanFormData, make_reasoner) -> None:
        result = await normalize_intent(form, make_reasoner("I think theatre would be nice"))

        assert result.enrichment is None

    def test_parse_enrichment_strips_code_fence(self) -> None:
        enrichment = parse_enrichment('```json\n{"excludedCategories": ["dining"]}\n```')

        assert enrichment is not None
        assert enrichment.excluded_categories == [EventCategory.dining]
        assert enrichment.preferred_categories is None

    def test_exclusions_prune_default_preferences(self, form: PlanFormData) -> None:
        constraints = map_form_to_constraints(form).constraints
        enrichment = IntentEnrichment(excluded_categories=[EventCategory.dining])

        updated = apply_enrichment(constraints, enrichment)

        assert EventCategory.dining not in updated.preferred_categories
        assert EventCategory.concert in updated.preferred_categories
