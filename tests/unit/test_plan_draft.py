"""Tests for draft plan generation."""

import json

import pytest

from backend.outing.models.intent import Occasion
from backend.outing.models.itinerary import DraftPlan
from backend.outing.orchestration.plan_draft import (
    build_planning_prompt,
    default_draft_plan,
    generate_draft_plan,
    price_category,
)
from backend.outing.orchestration.scheduler import schedule


@pytest.fixture
def jazz(make_event, make_ranked):
    """Ranked jazz concert, 19:00-21:00 local, from $20."""
    return make_ranked(make_event(id="jazz", name="Jazz Night at the Esplanade", price=(20, 40)))


class TestDefaultDraftPlan:
    """Test the deterministic draft."""

    def test_adds_meal_before_evening_event(self, jazz, make_constraints) -> None:
        plan = default_draft_plan(jazz, make_constraints())

        assert [i.name for i in plan.items] == ["Dinner near Esplanade", "Jazz Night at the Esplanade"]
        dinner, main = plan.items
        assert (dinner.start_time, dinner.end_time) == ("17:45", "18:45")
        assert dinner.estimated_cost_per_person == 25
        assert (main.start_time, main.end_time) == ("19:00", "21:00")
        assert main.is_main_event and main.booking_required
        assert plan.total_estimated_cost_per_person == 45
        assert plan.budget_status == "within_budget"

    def test_meal_cost_capped_by_remaining_budget(self, jazz, make_constraints) -> None:
        plan = default_draft_plan(jazz, make_constraints(budget_min=0, budget_max=30))

        assert plan.items[0].estimated_cost_per_person == 10

    def test_no_meal_when_it_would_start_before_window(self, make_event, make_ranked, make_constraints) -> None:
        early = make_ranked(make_event(name="Morning Yoga", start="08:00", end="09:00"))

        plan = default_draft_plan(early, make_constraints())

        assert [i.name for i in plan.items] == ["Morning Yoga"]
        assert plan.items[0].travel_from_previous is None

    def test_schedules_without_warnings(self, jazz, make_constraints, anchor_date) -> None:
        plan = default_draft_plan(jazz, make_constraints())

        result = schedule(plan.model_dump(by_alias=True, mode="json"), [jazz], anchor_date, budget_max=60)

        assert result.fallback is False
        assert result.warnings == []
        assert result.itinerary.items[1].scheduled_time == jazz.event.time_slot

    @pytest.mark.parametrize(
        ("cost", "tier"),
        [(0, "free"), (30, "budget"), (45, "moderate"), (100, "premium"), (150, "luxury")],
    )
    def test_price_category(self, cost: float, tier: str) -> None:
        assert price_category(cost) == tier


class TestGenerateDraftPlan:
    """Test reasoner-backed generation and its fallbacks."""

    @pytest.mark.asyncio
    async def test_generated_payload_returned_unvalidated(self, jazz, make_constraints, make_reasoner) -> None:
        payload = {"itineraryName": "Jazz Date", "items": []}
        reasoner = make_reasoner(f"Here you go:\n{json.dumps(payload)}")

        outcome = await generate_draft_plan([jazz], make_constraints(), Occasion.date_night, reasoner)

        assert outcome.generated is True
        assert outcome.payload == payload
        prompt, system = reasoner.calls[0]
        assert 'EXACT EVENT NAME: "Jazz Night at the Esplanade"' in prompt
        assert 'startTime="19:00" endTime="21:00"' in prompt
        assert system is not None

    @pytest.mark.asyncio
    async def test_reasoner_failure_uses_default(self, jazz, make_constraints, make_reasoner) -> None:
        outcome = await generate_draft_plan(
            [jazz], make_constraints(), Occasion.date_night, make_reasoner(RuntimeError("rate limited"))
        )

        assert outcome.generated is False
        plan = DraftPlan.model_validate(outcome.payload)
        assert plan.items[-1].name == "Jazz Night at the Esplanade"

    @pytest.mark.asyncio
    async def test_non_json_uses_default(self, jazz, make_constraints, make_reasoner) -> None:
        outcome = await generate_draft_plan(
            [jazz], make_constraints(), Occasion.date_night, make_reasoner("Sorry, I can't help.")
        )

        assert outcome.generated is False
        assert "itineraryName" in outcome.payload

    @pytest.mark.asyncio
    async def test_no_reasoner_uses_default(self, jazz, make_constraints) -> None:
        outcome = await generate_draft_plan([jazz], make_constraints(), Occasion.date_night)

        assert outcome.generated is False

    def test_prompt_includes_budget_and_notes(self, jazz, make_constraints) -> None:
        prompt = build_planning_prompt(
            [jazz], make_constraints(), Occasion.date_night, notes="No spicy food", narrative="Top jazz pick"
        )

        assert "BUDGET: $60 per person (total group budget: $120)" in prompt
        assert "NOTES: No spicy food" in prompt
        assert "RECOMMENDATION CONTEXT: Top jazz pick" in prompt
        assert "All activities must end by 23:00" in prompt
