"""Run endpoints - create, inspect, approve and stream outing runs."""

import asyncio
from collections.abc import AsyncGenerator
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from backend.outing.api.deps import Services, get_services
from backend.outing.models.booking import UserProfile
from backend.outing.models.intent import PlanFormData
from backend.outing.models.trace import SSETraceEvent
from backend.outing.orchestration.approval import ApprovalConflictError, ApprovalNotFoundError
from backend.outing.orchestration.registry import RunNotFoundError
from backend.outing.utils.timeutil import utcnow

router = APIRouter(prefix="/runs", tags=["runs"])

HEARTBEAT_INTERVAL_S = 15.0


class CreateRunRequest(BaseModel):
    """Request body for POST /runs."""

    form: PlanFormData
    profile: UserProfile


class CreateRunResponse(BaseModel):
    """Response for POST /runs."""

    run_id: str
    status: str


class ApprovalRequest(BaseModel):
    """Request body for POST /runs/{run_id}/approval."""

    approved: bool


class ApprovalResponse(BaseModel):
    run_id: str
    decision: str


@router.post("", response_model=CreateRunResponse, status_code=status.HTTP_202_ACCEPTED)
async def create_run(
    request: CreateRunRequest,
    services: Annotated[Services, Depends(get_services)],
) -> CreateRunResponse:
    """Create a run and start the pipeline in the background.

    Args:
        request: Plan form and attendee profile
        services: Application services

    Returns:
        Run ID and status
    """
    state = await services.coordinator.start_run(request.form, request.profile)
    return CreateRunResponse(run_id=state.run_id, status="accepted")


@router.get("/{run_id}")
async def get_run(
    run_id: str,
    services: Annotated[Services, Depends(get_services)],
) -> dict[str, Any]:
    """Current snapshot of a run."""
    state = services.registry.get(run_id)
    if state is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Run not found")
    return state.snapshot()


@router.post("/{run_id}/approval", response_model=ApprovalResponse)
async def decide_approval(
    run_id: str,
    request: ApprovalRequest,
    services: Annotated[Services, Depends(get_services)],
) -> ApprovalResponse:
    """Approve or reject a run's itinerary.

    Raises:
        HTTPException: 404 if the run or its pending approval is unknown,
            409 if a decision was already recorded
    """
    try:
        decision = services.coordinator.decide(run_id, request.approved)
    except (RunNotFoundError, ApprovalNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except ApprovalConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e

    return ApprovalResponse(run_id=run_id, decision=decision.value)


@router.get("/{run_id}/events/stream")
async def stream_run_events(
    run_id: str,
    services: Annotated[Services, Depends(get_services)],
) -> StreamingResponse:
    """Stream trace events via SSE until the run is terminal.

    Replays history first, then forwards live events. Emits a heartbeat when
    nothing happens for a while.
    """
    if services.registry.get(run_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Run not found")

    store = services.trace_store

    async def event_generator() -> AsyncGenerator[str, None]:
        """Generate SSE events."""
        queue = store.subscribe(run_id)
        last_sequence = -1
        try:
            for event in store.history(run_id):
                yield "event: run_event\n"
                yield f"data: {SSETraceEvent.from_trace_event(event).model_dump_json()}\n\n"
                last_sequence = event.sequence

            while True:
                state = services.registry.get(run_id)
                if (state is None or state.is_terminal) and queue.empty():
                    final_status = state.status if state is not None else "evicted"
                    yield "event: done\n"
                    yield f'data: {{"status": "{final_status}"}}\n\n'
                    break

                try:
                    event = await asyncio.wait_for(queue.get(), timeout=HEARTBEAT_INTERVAL_S)
                except asyncio.TimeoutError:
                    yield "event: heartbeat\n"
                    yield f'data: {{"ts": "{utcnow().isoformat()}"}}\n\n'
                    continue

                if event.sequence <= last_sequence:
                    continue
                yield "event: run_event\n"
                yield f"data: {SSETraceEvent.from_trace_event(event).model_dump_json()}\n\n"
                last_sequence = event.sequence
        finally:
            store.unsubscribe(run_id, queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
