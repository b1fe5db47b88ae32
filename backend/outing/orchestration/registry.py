"""In-memory run registry with eviction after terminal states."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from backend.outing.models.booking import UserProfile
from backend.outing.models.intent import PlanFormData
from backend.outing.orchestration.state import RunState, RunStatus
from backend.outing.utils.timeutil import utcnow

logger = logging.getLogger(__name__)


class RunNotFoundError(Exception):
    """Run id unknown or already evicted."""

    pass


class RunRegistry:
    """Runs isolated by id.

    Single event loop; compound operations hold an asyncio.Lock.
    """

    def __init__(
        self,
        eviction_seconds: int = 300,
        clock: Callable[[], datetime] | None = None,
    ):
        self._eviction = timedelta(seconds=eviction_seconds)
        self._clock = clock or utcnow
        self._runs: dict[str, RunState] = {}
        self._terminal_at: dict[str, datetime] = {}
        self._lock = asyncio.Lock()

    async def create(self, run_id: str, form: PlanFormData, profile: UserProfile) -> RunState:
        """Register a new run.

        Raises:
            ValueError: If the run id is already registered
        """
        async with self._lock:
            self._evict_expired_locked(self._clock())
            if run_id in self._runs:
                raise ValueError(f"Run {run_id} already exists")
            state = RunState(run_id=run_id, form=form, profile=profile)
            self._runs[run_id] = state
            return state

    def get(self, run_id: str) -> RunState | None:
        return self._runs.get(run_id)

    def require(self, run_id: str) -> RunState:
        """Get a run or raise RunNotFoundError."""
        state = self._runs.get(run_id)
        if state is None:
            raise RunNotFoundError(f"Run {run_id} not found")
        return state

    async def mark_terminal(self, run_id: str, status: RunStatus) -> None:
        """Finish a run and start its eviction clock."""
        async with self._lock:
            state = self.require(run_id)
            if not state.is_terminal:
                state.finish(status)
            self._terminal_at[run_id] = self._clock()

    async def evict_expired(self, now: datetime | None = None) -> list[str]:
        """Drop runs whose terminal time is older than the eviction interval."""
        async with self._lock:
            return self._evict_expired_locked(now or self._clock())

    def _evict_expired_locked(self, now: datetime) -> list[str]:
        expired = [
            run_id for run_id, finished_at in self._terminal_at.items() if now - finished_at >= self._eviction
        ]
        for run_id in expired:
            self._runs.pop(run_id, None)
            self._terminal_at.pop(run_id, None)
        if expired:
            logger.info(f"Evicted {len(expired)} finished run(s)")
        return expired

    def __len__(self) -> int:
        return len(self._runs)

    def __contains__(self, run_id: object) -> bool:
        return run_id in self._runs
