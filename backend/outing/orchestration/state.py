"""Run state model for the outing pipeline."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal

from backend.outing.models.booking import BookingResult, UserProfile
from backend.outing.models.event import Event, RankedEvent
from backend.outing.models.intent import IntentResult, PlanFormData, UserConstraints
from backend.outing.models.itinerary import Itinerary, PlanMetadata
from backend.outing.utils.timeutil import utcnow

RunStatus = Literal["pending", "running", "awaiting_approval", "succeeded", "failed"]

AgentStatus = Literal["idle", "running", "completed", "failed", "skipped"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"succeeded", "failed"})


class Phase(str, Enum):
    """Pipeline phase a run is in."""

    intent_parsing = "intent_parsing"
    event_discovery = "event_discovery"
    recommendation = "recommendation"
    itinerary_planning = "itinerary_planning"
    plan_approval = "plan_approval"
    booking_execution = "booking_execution"
    completed = "completed"


@dataclass
class RunState:
    """State for one pipeline run.

    Written only by the coordinator that owns the run.
    """

    run_id: str
    form: PlanFormData
    profile: UserProfile
    status: RunStatus = "pending"
    phase: Phase = Phase.intent_parsing
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    completed_at: datetime | None = None

    # Stage outputs
    intent: IntentResult | None = None
    constraints: UserConstraints | None = None
    search_results: list[dict[str, Any]] = field(default_factory=list)
    discovered_events: list[Event] = field(default_factory=list)
    dedup_stats: dict[str, int] | None = None
    ranked_events: list[RankedEvent] = field(default_factory=list)
    filter_stats: dict[str, int] | None = None
    recommendation_narrative: str | None = None
    itinerary: Itinerary | None = None
    plan_metadata: PlanMetadata | None = None
    approval_status: str | None = None
    booking_results: list[BookingResult] = field(default_factory=list)

    # Diagnostics
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    agent_status: dict[str, AgentStatus] = field(default_factory=dict)

    sequence_counter: int = 0

    def next_sequence(self) -> int:
        """Get next sequence number for trace events."""
        seq = self.sequence_counter
        self.sequence_counter += 1
        return seq

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def touch(self) -> None:
        self.updated_at = utcnow()

    def set_phase(self, phase: Phase) -> None:
        self.phase = phase
        self.touch()

    def set_agent_status(self, agent: str, status: AgentStatus) -> None:
        self.agent_status[agent] = status
        self.touch()

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        self.touch()

    def finish(self, status: RunStatus) -> None:
        """Move to a terminal status."""
        self.status = status
        self.phase = Phase.completed
        self.completed_at = utcnow()
        self.touch()

    def snapshot(self) -> dict[str, Any]:
        """JSON-ready view for API responses."""
        return {
            "run_id": self.run_id,
            "status": self.status,
            "phase": self.phase.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "summary": self.intent.summary if self.intent else None,
            "search_results": self.search_results,
            "dedup_stats": self.dedup_stats,
            "filter_stats": self.filter_stats,
            "ranked_events": [r.model_dump(mode="json") for r in self.ranked_events],
            "recommendation_narrative": self.recommendation_narrative,
            "itinerary": self.itinerary.model_dump(mode="json") if self.itinerary else None,
            "plan_metadata": self.plan_metadata.model_dump(mode="json") if self.plan_metadata else None,
            "approval_status": self.approval_status,
            "booking_results": [r.model_dump(mode="json") for r in self.booking_results],
            "warnings": list(self.warnings),
            "errors": list(self.errors),
            "agent_status": dict(self.agent_status),
        }
