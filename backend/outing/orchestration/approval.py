"""Approval gate - suspends a run until a human approves or rejects its plan.

The pipeline awaits an asyncio.Future per run id, so no worker is held while
waiting. Each gate resolves exactly once.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from backend.outing.utils.timeutil import utcnow

logger = logging.getLogger(__name__)


class ApprovalDecision(str, Enum):
    """Gate state."""

    awaiting_approval = "awaiting_approval"
    approved = "approved"
    rejected = "rejected"
    expired = "expired"


class ApprovalNotFoundError(Exception):
    """No pending approval registered for the run."""

    pass


class ApprovalConflictError(Exception):
    """Approval already resolved for the run."""

    pass


@dataclass
class _Gate:
    future: asyncio.Future[ApprovalDecision]
    decision: ApprovalDecision = ApprovalDecision.awaiting_approval
    created_at: datetime = field(default_factory=utcnow)
    decided_at: datetime | None = None


class ApprovalGate:
    """Registry of pending approval decisions keyed by run id."""

    def __init__(self, timeout_s: float | None = None):
        """Initialize the gate.

        Args:
            timeout_s: Optional wait bound; on expiry the gate resolves to expired
        """
        self._timeout_s = timeout_s
        self._gates: dict[str, _Gate] = {}

    def register(self, run_id: str) -> None:
        """Open a pending decision for a run (must be called inside the event loop)."""
        if run_id in self._gates:
            raise ApprovalConflictError(f"Approval already registered for run {run_id}")
        future: asyncio.Future[ApprovalDecision] = asyncio.get_running_loop().create_future()
        self._gates[run_id] = _Gate(future=future)
        logger.info(f"Awaiting approval for run {run_id}")

    async def wait(self, run_id: str) -> ApprovalDecision:
        """Wait for the decision on a registered run.

        Returns:
            approved, rejected or expired

        Raises:
            ApprovalNotFoundError: If nothing is registered for the run
        """
        gate = self._gates.get(run_id)
        if gate is None:
            raise ApprovalNotFoundError(f"No pending approval for run {run_id}")

        if self._timeout_s is None:
            return await gate.future

        try:
            return await asyncio.wait_for(asyncio.shield(gate.future), timeout=self._timeout_s)
        except TimeoutError:
            if not gate.future.done():
                self._settle(run_id, gate, ApprovalDecision.expired)
            return gate.future.result()

    def resolve(self, run_id: str, approved: bool) -> ApprovalDecision:
        """Record a human decision.

        Raises:
            ApprovalNotFoundError: If nothing is registered for the run
            ApprovalConflictError: If the gate was already resolved; the stored
                decision is left unchanged
        """
        gate = self._gates.get(run_id)
        if gate is None:
            raise ApprovalNotFoundError(f"No pending approval for run {run_id}")
        if gate.future.done():
            raise ApprovalConflictError(
                f"Approval for run {run_id} already resolved: {gate.decision.value}"
            )

        decision = ApprovalDecision.approved if approved else ApprovalDecision.rejected
        self._settle(run_id, gate, decision)
        return decision

    def decision(self, run_id: str) -> ApprovalDecision | None:
        """Current gate state, or None if no gate exists."""
        gate = self._gates.get(run_id)
        return gate.decision if gate else None

    def discard(self, run_id: str) -> None:
        """Forget a run's gate (called on eviction)."""
        gate = self._gates.pop(run_id, None)
        if gate is not None and not gate.future.done():
            gate.future.cancel()

    def _settle(self, run_id: str, gate: _Gate, decision: ApprovalDecision) -> None:
        gate.decision = decision
        gate.decided_at = utcnow()
        gate.future.set_result(decision)
        logger.info(
            f"Approval for run {run_id}: {decision.value}",
            extra={"structured": {"run_id": run_id, "decision": decision.value}},
        )

    def __contains__(self, run_id: object) -> bool:
        return run_id in self._gates
