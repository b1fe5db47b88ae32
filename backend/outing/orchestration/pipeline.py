"""Pipeline coordinator - runs the stages for one outing request.

Stage order:
1. intent          form → constraints (reasoner enrichment optional)
2. discovery       all sources concurrently, merge, deduplicate
3. recommendation  optional weather lookup, rank, narrate
4. planning        draft plan (reasoner or default) → scheduler
5. approval        wait for a human decision on the itinerary
6. execution       book approved items sequentially

Each stage emits started/completed trace events. Stage failures are appended
to the run error log; only total discovery failure fails the run.
"""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from backend.outing.adapters.sources import DiscoverySource, SearchResult
from backend.outing.config import Settings, get_settings
from backend.outing.execution.engine import ExecutionEngine
from backend.outing.llm.client import NarrativeReasoner
from backend.outing.models.booking import BookingResult, BookingStatus, ExecutionSummary, UserProfile
from backend.outing.models.intent import PlanFormData
from backend.outing.models.itinerary import Itinerary, ItineraryStatus
from backend.outing.models.trace import PipelineStep, TraceEvent, TraceStatus, TraceType
from backend.outing.orchestration.approval import ApprovalDecision, ApprovalGate
from backend.outing.orchestration.dedup import dedupe
from backend.outing.orchestration.intent import normalize_intent
from backend.outing.orchestration.plan_draft import generate_draft_plan
from backend.outing.orchestration.ranker import narrate_ranking, rank
from backend.outing.orchestration.registry import RunRegistry
from backend.outing.orchestration.scheduler import SchedulerConfig, schedule
from backend.outing.orchestration.state import Phase, RunState, RunStatus
from backend.outing.orchestration.trace import TraceSink
from backend.outing.utils.metrics import PipelineMetrics
from backend.outing.utils.timeutil import utcnow

logger = logging.getLogger(__name__)

WeatherFetcher = Callable[[date], Awaitable[bool | None]]

NO_EVENTS_WARNING = "No events matched your preferences"
REJECTED_WARNING = "Plan rejected by user"
EXPIRED_WARNING = "Plan approval expired"


class DiscoveryFailedError(Exception):
    """Every discovery source failed."""

    pass


@dataclass(frozen=True)
class RunContext:
    """Per-run handles passed explicitly to every stage."""

    run_id: str
    trace_sink: TraceSink


class PipelineCoordinator:
    """Owns run state and drives stages in order."""

    def __init__(
        self,
        sources: list[DiscoverySource],
        registry: RunRegistry,
        approval_gate: ApprovalGate,
        engine: ExecutionEngine,
        trace_sink: TraceSink,
        reasoner: NarrativeReasoner | None = None,
        weather_fetcher: WeatherFetcher | None = None,
        settings: Settings | None = None,
        metrics: PipelineMetrics | None = None,
    ):
        self.sources = sources
        self.registry = registry
        self.approval_gate = approval_gate
        self.engine = engine
        self.trace_sink = trace_sink
        self.reasoner = reasoner
        self.weather_fetcher = weather_fetcher
        self.settings = settings or get_settings()
        self.metrics = metrics or PipelineMetrics()
        self._tasks: set[asyncio.Task[RunState]] = set()

    async def start_run(self, form: PlanFormData, profile: UserProfile) -> RunState:
        """Register a run and execute it in the background."""
        await self.evict_expired()
        run_id = str(uuid.uuid4())
        state = await self.registry.create(run_id, form, profile)
        ctx = RunContext(run_id=run_id, trace_sink=self.trace_sink)

        task = asyncio.create_task(self.run(state, ctx))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.info(f"Run {run_id} started")
        return state

    def decide(self, run_id: str, approved: bool) -> ApprovalDecision:
        """Resolve a run's approval gate.

        Raises:
            RunNotFoundError: Unknown run
            ApprovalNotFoundError: Run has no pending gate
            ApprovalConflictError: Gate already resolved
        """
        self.registry.require(run_id)
        return self.approval_gate.resolve(run_id, approved)

    async def evict_expired(self) -> list[str]:
        """Evict finished runs and drop their gates and trace history."""
        evicted = await self.registry.evict_expired()
        for run_id in evicted:
            self.approval_gate.discard(run_id)
            forget = getattr(self.trace_sink, "forget", None)
            if forget is not None:
                forget(run_id)
        return evicted

    async def run(self, state: RunState, ctx: RunContext) -> RunState:
        """Execute every stage for one run.

        Returns:
            The final run state (succeeded or failed)
        """
        started_at = utcnow()
        state.status = "running"
        state.touch()
        self._emit(state, ctx, "run", "pipeline", "Pipeline started", "started", started_at)

        outcome: RunStatus = "succeeded"
        try:
            await self._intent_stage(state, ctx)
            await self._discovery_stage(state, ctx)
            await self._recommendation_stage(state, ctx)
            await self._planning_stage(state, ctx)
            await self._approval_stage(state, ctx)
            await self._execution_stage(state, ctx)
        except DiscoveryFailedError as e:
            logger.error(f"Run {ctx.run_id} failed: {e}")
            state.add_error(str(e))
            outcome = "failed"
        except Exception as e:
            logger.exception(f"Run {ctx.run_id} failed unexpectedly")
            state.add_error(f"Pipeline error: {e}")
            outcome = "failed"

        state.finish(outcome)
        self.metrics.inc_pipeline_run(outcome)
        self._emit(
            state,
            ctx,
            "run",
            "pipeline",
            f"Pipeline {outcome}",
            "completed" if outcome == "succeeded" else "failed",
            started_at,
            metadata={"warnings": len(state.warnings), "errors": len(state.errors)},
        )
        await self.registry.mark_terminal(ctx.run_id, outcome)
        return state

    # Stages

    async def _intent_stage(self, state: RunState, ctx: RunContext) -> None:
        state.set_phase(Phase.intent_parsing)
        with self._stage(state, ctx, "intent", "Parsing intent") as stage:
            intent = await normalize_intent(state.form, self.reasoner)
            state.intent = intent
            state.constraints = intent.constraints
            stage.done(intent.summary, {"intent_type": intent.intent_type.value})

    async def _discovery_stage(self, state: RunState, ctx: RunContext) -> None:
        state.set_phase(Phase.event_discovery)
        constraints = state.constraints
        with self._stage(state, ctx, "discovery", "Searching event sources") as stage:
            outcomes = await asyncio.gather(
                *(source.search(constraints) for source in self.sources), return_exceptions=True
            )

            results: list[SearchResult] = []
            for source, outcome in zip(self.sources, outcomes):
                name = getattr(source, "name", type(source).__name__)
                if isinstance(outcome, BaseException):
                    logger.warning(f"Discovery source {name} failed: {outcome}")
                    state.add_error(f"{name} search failed: {outcome}")
                    continue
                results.append(outcome)
                self.metrics.inc_discovery_events(outcome.source, outcome.mode, len(outcome.events))
                if outcome.error:
                    state.warnings.append(f"{outcome.source} fell back to {outcome.mode} data: {outcome.error}")

            if not results:
                raise DiscoveryFailedError("All discovery sources failed")

            state.search_results = [
                {
                    "source": r.source,
                    "mode": r.mode,
                    "count": len(r.events),
                    "duration_ms": round(r.duration_ms, 1),
                    "error": r.error,
                }
                for r in results
            ]
            merged = [event for r in results for event in r.events]
            deduped = dedupe(merged, self.settings.dedup_similarity_threshold)
            state.discovered_events = deduped.events
            state.dedup_stats = deduped.stats.model_dump()
            stage.done(
                f"Found {len(deduped.events)} unique events from {len(results)} source(s)",
                {"search_results": state.search_results, "dedup": state.dedup_stats},
            )

    async def _recommendation_stage(self, state: RunState, ctx: RunContext) -> None:
        state.set_phase(Phase.recommendation)
        with self._stage(state, ctx, "recommendation", "Ranking events") as stage:
            constraints = state.constraints
            if self.weather_fetcher is not None:
                suitable = await self.weather_fetcher(constraints.date)
                if suitable is not None:
                    constraints = constraints.model_copy(update={"is_outdoor_friendly": suitable})
                    state.constraints = constraints

            result = rank(state.discovered_events, constraints)
            state.ranked_events = result.ranked
            state.filter_stats = result.filter_stats.model_dump()

            narration = await narrate_ranking(
                result.ranked,
                result.filter_stats,
                constraints,
                self.reasoner,
                summary=state.intent.summary if state.intent else "",
            )
            state.recommendation_narrative = narration["narrative"]
            if not result.ranked:
                state.warnings.append(NO_EVENTS_WARNING)
            stage.done(
                f"Ranked {len(result.ranked)} of {result.filter_stats.total_input} events",
                {"filter_stats": state.filter_stats},
            )

    async def _planning_stage(self, state: RunState, ctx: RunContext) -> None:
        state.set_phase(Phase.itinerary_planning)
        if not state.ranked_events:
            self._skip(state, ctx, "planning", "No ranked events to plan")
            return

        with self._stage(state, ctx, "planning", "Building itinerary") as stage:
            constraints = state.constraints
            forwarded = state.ranked_events[: max(self.settings.planning_top_k, 1)]
            draft = await generate_draft_plan(
                forwarded,
                constraints,
                state.form.occasion,
                self.reasoner,
                notes=state.form.additional_notes,
                narrative=state.recommendation_narrative,
                offset_hours=self.settings.local_utc_offset_hours,
                max_gap_minutes=self.settings.plan_max_gap_minutes,
                cutoff_hour=self.settings.plan_cutoff_hour,
            )
            result = schedule(
                draft.payload,
                forwarded,
                constraints.date,
                constraints.budget_max,
                party_size=state.form.party_size,
                config=self._scheduler_config(),
            )
            state.itinerary = result.itinerary
            state.plan_metadata = result.metadata
            state.warnings.extend(result.warnings)
            stage.done(
                f'Planned "{result.itinerary.name}" with {len(result.itinerary.items)} item(s)',
                {
                    "generated": draft.generated,
                    "fallback": result.fallback,
                    "warnings": result.warnings,
                },
            )

    async def _approval_stage(self, state: RunState, ctx: RunContext) -> None:
        state.set_phase(Phase.plan_approval)
        if state.itinerary is None:
            self._skip(state, ctx, "approval", "No itinerary to approve")
            return

        started_at = utcnow()
        self.approval_gate.register(ctx.run_id)
        state.status = "awaiting_approval"
        state.approval_status = ApprovalDecision.awaiting_approval.value
        state.set_agent_status("approval", "running")
        self._emit(
            state,
            ctx,
            "plan_approval",
            "approval",
            "Awaiting plan approval",
            "awaiting_approval",
            started_at,
            metadata={"itinerary": state.itinerary.model_dump(mode="json")},
        )

        decision = await self.approval_gate.wait(ctx.run_id)
        state.status = "running"
        state.approval_status = decision.value

        if decision == ApprovalDecision.approved:
            state.itinerary = state.itinerary.model_copy(
                update={"status": ItineraryStatus.approved, "updated_at": utcnow()}
            )
        else:
            state.itinerary = None
            state.warnings.append(REJECTED_WARNING if decision == ApprovalDecision.rejected else EXPIRED_WARNING)

        state.set_agent_status("approval", "completed")
        self.metrics.record_stage_latency("approval", _elapsed_ms(started_at))
        self._emit(
            state, ctx, "plan_approval", "approval", f"Plan {decision.value}", "completed", started_at
        )

    async def _execution_stage(self, state: RunState, ctx: RunContext) -> None:
        state.set_phase(Phase.booking_execution)
        if state.itinerary is None or state.approval_status != ApprovalDecision.approved.value:
            self._skip(state, ctx, "execution", "Booking skipped, plan not approved")
            return

        with self._stage(state, ctx, "execution", "Booking approved items") as stage:
            results = await self.engine.execute_all(
                state.itinerary, state.profile, state.form.party_size, run_id=ctx.run_id
            )
            state.booking_results = results
            state.itinerary = _mark_booked(state.itinerary, results)
            for result in results:
                self._emit(
                    state,
                    ctx,
                    "booking",
                    "execution",
                    f"{result.event_name}: {result.status.value}",
                    "completed" if result.status == BookingStatus.success else "failed",
                    result.timestamp,
                    metadata=result.model_dump(mode="json"),
                )
            summary = ExecutionSummary.from_results(results)
            stage.done(
                f"Bookings: {summary.success} succeeded, {summary.failed} failed, {summary.skipped} skipped",
                summary.model_dump(),
            )

    # Helpers

    def _scheduler_config(self) -> SchedulerConfig:
        s = self.settings
        return SchedulerConfig(
            max_items=s.plan_max_items,
            cutoff_hour=s.plan_cutoff_hour,
            max_gap_minutes=s.plan_max_gap_minutes,
            max_span_hours=s.plan_max_span_hours,
            word_overlap_threshold=s.plan_word_overlap_threshold,
            offset_hours=s.local_utc_offset_hours,
            currency=s.default_currency,
            city=s.default_city,
            default_lat=s.default_lat,
            default_lng=s.default_lng,
        )

    def _stage(self, state: RunState, ctx: RunContext, step: PipelineStep, name: str) -> "_StageScope":
        return _StageScope(self, state, ctx, step, name)

    def _skip(self, state: RunState, ctx: RunContext, step: PipelineStep, reason: str) -> None:
        state.set_agent_status(step, "skipped")
        self._emit(state, ctx, "workflow_step", step, reason, "skipped", utcnow())

    def _emit(
        self,
        state: RunState,
        ctx: RunContext,
        type_: TraceType,
        step: PipelineStep,
        name: str,
        status: TraceStatus,
        started_at: datetime,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        completed_at = None if status in ("started", "awaiting_approval") else utcnow()
        event = TraceEvent(
            id=f"trace-{uuid.uuid4().hex[:12]}",
            run_id=ctx.run_id,
            sequence=state.next_sequence(),
            type=type_,
            step=step,
            name=name,
            status=status,
            started_at=started_at,
            completed_at=completed_at,
            duration_ms=(completed_at - started_at).total_seconds() * 1000 if completed_at else None,
            metadata=metadata or {},
        )
        try:
            ctx.trace_sink.emit(event)
        except Exception as e:
            logger.warning(f"Trace emit failed for run {ctx.run_id}: {e}")


class _StageScope:
    """Context manager emitting started/completed/failed traces for one stage.

    Errors other than DiscoveryFailedError are recorded on the run and
    suppressed so later stages can proceed with what exists.
    """

    def __init__(
        self,
        coordinator: PipelineCoordinator,
        state: RunState,
        ctx: RunContext,
        step: PipelineStep,
        name: str,
    ):
        self.coordinator = coordinator
        self.state = state
        self.ctx = ctx
        self.step = step
        self.name = name
        self.started_at = utcnow()
        self._summary: str | None = None
        self._metadata: dict[str, Any] = {}

    def done(self, summary: str, metadata: dict[str, Any] | None = None) -> None:
        self._summary = summary
        self._metadata = metadata or {}

    def __enter__(self) -> "_StageScope":
        self.state.set_agent_status(self.step, "running")
        self.coordinator._emit(
            self.state, self.ctx, "workflow_step", self.step, self.name, "started", self.started_at
        )
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: Any) -> bool:
        self.coordinator.metrics.record_stage_latency(self.step, _elapsed_ms(self.started_at))
        if exc is None:
            self.state.set_agent_status(self.step, "completed")
            self.coordinator._emit(
                self.state,
                self.ctx,
                "workflow_step",
                self.step,
                self._summary or self.name,
                "completed",
                self.started_at,
                self._metadata,
            )
            return False

        self.state.set_agent_status(self.step, "failed")
        self.coordinator._emit(
            self.state,
            self.ctx,
            "workflow_step",
            self.step,
            f"{self.name} failed: {exc}",
            "failed",
            self.started_at,
        )
        if isinstance(exc, DiscoveryFailedError) or not isinstance(exc, Exception):
            return False
        # Intent and discovery outputs are prerequisites for everything after them
        if self.step in ("intent", "discovery"):
            return False
        logger.exception(f"Stage {self.step} failed for run {self.ctx.run_id}", exc_info=exc)
        self.state.add_error(f"{self.step} failed: {exc}")
        return True


def _elapsed_ms(started_at: datetime) -> float:
    return (utcnow() - started_at).total_seconds() * 1000


def _mark_booked(itinerary: Itinerary, results: list[BookingResult]) -> Itinerary:
    """Flag items whose booking succeeded."""
    booked = {r.event_id for r in results if r.status == BookingStatus.success}
    if not booked:
        return itinerary
    items = [
        item.model_copy(update={"status": "booked"}) if item.event.id in booked else item
        for item in itinerary.items
    ]
    return itinerary.model_copy(update={"items": items, "updated_at": utcnow()})
