"""Tests for /runs API endpoints."""

import asyncio
import json
import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from backend.outing.api.deps import Services, get_services
from backend.outing.automation.playwright_backend import PlaywrightBackend
from backend.outing.execution.engine import ExecutionEngine
from backend.outing.main import app
from backend.outing.orchestration.approval import ApprovalGate
from backend.outing.orchestration.pipeline import PipelineCoordinator
from backend.outing.orchestration.registry import RunRegistry
from backend.outing.orchestration.trace import InMemoryTraceSink

RUN_REQUEST = {
    "form": {
        "occasion": "date_night",
        "budget_range": "30_to_60",
        "party_size": 2,
        "date": "2026-11-14",
        "time_of_day": "evening",
    },
    "profile": {"name": "Alex Tan", "email": "alex@example.com", "phone": "+6591234567"},
}


@pytest.fixture
def services(settings, fake_backend, sleep_recorder, make_source, make_event) -> Services:
    """Create services over a fake source and scripted browser."""
    registry = RunRegistry(eviction_seconds=settings.run_eviction_seconds)
    trace_store = InMemoryTraceSink()
    sources = [make_source("eventbrite", [make_event()])]
    coordinator = PipelineCoordinator(
        sources=sources,
        registry=registry,
        approval_gate=ApprovalGate(),
        engine=ExecutionEngine(fake_backend, settings=settings, sleep_fn=sleep_recorder),
        trace_sink=trace_store,
        settings=settings,
    )
    return Services(
        coordinator=coordinator,
        registry=registry,
        trace_store=trace_store,
        sources=sources,
        automation=PlaywrightBackend(),
    )


@pytest_asyncio.fixture
async def client(services):
    """Create async test client with overridden services."""
    app.dependency_overrides[get_services] = lambda: services
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


async def wait_for_status(client: AsyncClient, run_id: str, expected: str, timeout: float = 2.0) -> dict:
    """Poll GET /runs/{run_id} until the run reaches a status."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        body = (await client.get(f"/runs/{run_id}")).json()
        if body["status"] == expected:
            return body
        if loop.time() > deadline:
            pytest.fail(f"Run stayed {body['status']}, expected {expected}")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_create_run_returns_202(client: AsyncClient) -> None:
    """Test POST /runs accepts the form and returns a run id."""
    response = await client.post("/runs", json=RUN_REQUEST)

    assert response.status_code == 202
    data = response.json()
    assert data["status"] == "accepted"
    uuid.UUID(data["run_id"])


@pytest.mark.asyncio
async def test_create_run_validates_form(client: AsyncClient) -> None:
    """Test POST /runs rejects an invalid party size."""
    request = {**RUN_REQUEST, "form": {**RUN_REQUEST["form"], "party_size": 0}}

    response = await client.post("/runs", json=request)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_get_unknown_run_returns_404(client: AsyncClient) -> None:
    """Test GET /runs/{run_id} for a run that does not exist."""
    response = await client.get(f"/runs/{uuid.uuid4()}")

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_run_reaches_approval_with_itinerary(client: AsyncClient) -> None:
    """Test that the snapshot exposes the itinerary while awaiting approval."""
    run_id = (await client.post("/runs", json=RUN_REQUEST)).json()["run_id"]

    body = await wait_for_status(client, run_id, "awaiting_approval")

    assert body["approval_status"] == "awaiting_approval"
    assert body["itinerary"]["items"]


@pytest.mark.asyncio
async def test_second_decision_conflicts(client: AsyncClient) -> None:
    """Test that only the first approval decision counts."""
    run_id = (await client.post("/runs", json=RUN_REQUEST)).json()["run_id"]
    await wait_for_status(client, run_id, "awaiting_approval")

    first = await client.post(f"/runs/{run_id}/approval", json={"approved": False})
    second = await client.post(f"/runs/{run_id}/approval", json={"approved": True})

    assert first.status_code == 200
    assert first.json() == {"run_id": run_id, "decision": "rejected"}
    assert second.status_code == 409

    body = await wait_for_status(client, run_id, "succeeded")
    assert body["itinerary"] is None
    assert "Plan rejected by user" in body["warnings"]


@pytest.mark.asyncio
async def test_approval_for_unknown_run_returns_404(client: AsyncClient) -> None:
    """Test POST /runs/{run_id}/approval for a run that does not exist."""
    response = await client.post(f"/runs/{uuid.uuid4()}/approval", json={"approved": True})

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_stream_replays_history_and_finishes(client: AsyncClient) -> None:
    """Test SSE stream for a finished run ends with a done event."""
    run_id = (await client.post("/runs", json=RUN_REQUEST)).json()["run_id"]
    await wait_for_status(client, run_id, "awaiting_approval")
    await client.post(f"/runs/{run_id}/approval", json={"approved": False})
    await wait_for_status(client, run_id, "succeeded")

    response = await client.get(f"/runs/{run_id}/events/stream")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    blocks = [block for block in response.text.split("\n\n") if block.strip()]
    events = [block.split("\n", 1) for block in blocks]
    assert events[-1] == ["event: done", 'data: {"status": "succeeded"}']

    run_events = [json.loads(data.removeprefix("data: ")) for name, data in events if name == "event: run_event"]
    assert run_events[0]["name"] == "Pipeline started"
    assert [e["sequence"] for e in run_events] == sorted(e["sequence"] for e in run_events)
    assert all(e["run_id"] == run_id for e in run_events)


@pytest.mark.asyncio
async def test_stream_unknown_run_returns_404(client: AsyncClient) -> None:
    """Test SSE stream for a run that does not exist."""
    response = await client.get(f"/runs/{uuid.uuid4()}/events/stream")

    assert response.status_code == 404
