"""Trace event models - what happened during a pipeline run."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

TraceType = Literal["workflow_step", "plan_approval", "booking", "run"]

TraceStatus = Literal["started", "completed", "failed", "awaiting_approval", "skipped"]

PipelineStep = Literal[
    "intent",
    "discovery",
    "recommendation",
    "planning",
    "approval",
    "execution",
    "pipeline",
]


class TraceEvent(BaseModel):
    """One-way progress event emitted by the pipeline.

    Sinks receive these; the pipeline never reads them back.
    """

    id: str
    run_id: str
    sequence: int = Field(..., ge=0, description="Monotonic per run")
    type: TraceType
    step: PipelineStep
    name: str = Field(..., description="Human-readable summary")
    status: TraceStatus
    started_at: datetime
    completed_at: datetime | None = None
    duration_ms: float | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SSETraceEvent(BaseModel):
    """Lightweight SSE event for streaming.

    Derived from TraceEvent but omits metadata for transmission.
    """

    run_id: str
    timestamp: str  # ISO8601
    sequence: int
    step: PipelineStep
    status: TraceStatus
    name: str

    @classmethod
    def from_trace_event(cls, event: TraceEvent) -> "SSETraceEvent":
        """Convert TraceEvent to SSE format."""
        return cls(
            run_id=event.run_id,
            timestamp=(event.completed_at or event.started_at).isoformat(),
            sequence=event.sequence,
            step=event.step,
            status=event.status,
            name=event.name,
        )
