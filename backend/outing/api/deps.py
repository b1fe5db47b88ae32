"""Application service wiring for the API."""

from dataclasses import dataclass
from functools import lru_cache

from backend.outing.adapters.eventbrite import EventbriteSource
from backend.outing.adapters.eventfinda import EventfindaSource
from backend.outing.adapters.sources import DiscoverySource
from backend.outing.adapters.weather import OpenMeteoSuitability
from backend.outing.automation.playwright_backend import PlaywrightBackend
from backend.outing.config import get_settings
from backend.outing.execution.engine import ExecutionEngine
from backend.outing.execution.knowledge_base import HttpKnowledgeBase
from backend.outing.llm.client import get_reasoner
from backend.outing.orchestration.approval import ApprovalGate
from backend.outing.orchestration.pipeline import PipelineCoordinator
from backend.outing.orchestration.registry import RunRegistry
from backend.outing.orchestration.trace import FanoutTraceSink, InMemoryTraceSink, LoggingTraceSink
from backend.outing.utils.logging import StructuredStepLogger
from backend.outing.utils.metrics import PrometheusPipelineMetrics


@dataclass
class Services:
    """Long-lived objects shared by all requests."""

    coordinator: PipelineCoordinator
    registry: RunRegistry
    trace_store: InMemoryTraceSink
    sources: list[DiscoverySource]
    automation: PlaywrightBackend


@lru_cache
def get_services() -> Services:
    """Build the service graph once per process."""
    settings = get_settings()
    metrics = PrometheusPipelineMetrics()
    step_logger = StructuredStepLogger()

    sources: list[DiscoverySource] = [
        EventfindaSource(settings, metrics=metrics, step_logger=step_logger),
        EventbriteSource(settings, metrics=metrics, step_logger=step_logger),
    ]
    registry = RunRegistry(eviction_seconds=settings.run_eviction_seconds)
    trace_store = InMemoryTraceSink()
    automation = PlaywrightBackend(headless=settings.browser_headless, timeout_ms=settings.browser_timeout_ms)
    engine = ExecutionEngine(
        automation,
        knowledge_base=HttpKnowledgeBase(settings=settings, metrics=metrics, step_logger=step_logger),
        settings=settings,
        metrics=metrics,
        step_logger=step_logger,
    )

    coordinator = PipelineCoordinator(
        sources=sources,
        registry=registry,
        approval_gate=ApprovalGate(timeout_s=settings.approval_timeout_s),
        engine=engine,
        trace_sink=FanoutTraceSink(trace_store, LoggingTraceSink()),
        reasoner=get_reasoner(settings),
        weather_fetcher=OpenMeteoSuitability(settings) if settings.weather_enabled else None,
        settings=settings,
        metrics=metrics,
    )
    return Services(
        coordinator=coordinator,
        registry=registry,
        trace_store=trace_store,
        sources=sources,
        automation=automation,
    )
