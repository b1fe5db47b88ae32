"""Trace sinks - one-way delivery of pipeline progress events."""

import asyncio
import logging
from collections import defaultdict
from typing import Protocol

from backend.outing.models.trace import TraceEvent

logger = logging.getLogger(__name__)


class TraceSink(Protocol):
    """Receives trace events. Must not raise into the pipeline."""

    def emit(self, event: TraceEvent) -> None: ...


class InMemoryTraceSink:
    """Keeps per-run history and fans events out to streaming subscribers."""

    def __init__(self) -> None:
        self._history: dict[str, list[TraceEvent]] = defaultdict(list)
        self._subscribers: dict[str, list[asyncio.Queue[TraceEvent]]] = defaultdict(list)

    def emit(self, event: TraceEvent) -> None:
        self._history[event.run_id].append(event)
        for queue in self._subscribers.get(event.run_id, []):
            queue.put_nowait(event)

    def history(self, run_id: str) -> list[TraceEvent]:
        return list(self._history.get(run_id, []))

    def subscribe(self, run_id: str) -> asyncio.Queue[TraceEvent]:
        """Queue receiving events emitted after this call."""
        queue: asyncio.Queue[TraceEvent] = asyncio.Queue()
        self._subscribers[run_id].append(queue)
        return queue

    def unsubscribe(self, run_id: str, queue: asyncio.Queue[TraceEvent]) -> None:
        queues = self._subscribers.get(run_id)
        if queues and queue in queues:
            queues.remove(queue)
            if not queues:
                del self._subscribers[run_id]

    def forget(self, run_id: str) -> None:
        """Drop history for an evicted run."""
        self._history.pop(run_id, None)


class LoggingTraceSink:
    """Writes trace events to the application log."""

    def emit(self, event: TraceEvent) -> None:
        logger.info(
            f"[{event.step}] {event.name} ({event.status})",
            extra={
                "structured": {
                    "run_id": event.run_id,
                    "sequence": event.sequence,
                    "type": event.type,
                    "duration_ms": event.duration_ms,
                }
            },
        )


class FanoutTraceSink:
    """Delivers each event to several sinks; a failing sink never affects the others."""

    def __init__(self, *sinks: TraceSink):
        self._sinks = list(sinks)

    def emit(self, event: TraceEvent) -> None:
        for sink in self._sinks:
            try:
                sink.emit(event)
            except Exception as e:
                logger.warning(f"Trace sink {type(sink).__name__} failed: {e}")
