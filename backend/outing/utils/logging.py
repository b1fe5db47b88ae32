"""Structured logging for HTTP attempts and booking outcomes."""

import logging
from typing import Any

from backend.outing.adapters.http import HTTPContext
from backend.outing.models.booking import BookingResult, BookingStatus

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Install a basic formatter on the root logger."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


class StructuredStepLogger:
    """Structured logger for HTTP attempts and booking results."""

    def log_attempt(
        self,
        ctx: HTTPContext,
        attempt: int,
        outcome: str,
        latency_ms: float,
        error_reason: str | None = None,
    ) -> None:
        """Log one HTTP attempt with structured data."""
        log_data: dict[str, Any] = {
            "run_id": ctx.run_id,
            "source": ctx.source,
            "method": ctx.method,
            "url": ctx.url,
            "attempt": attempt,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
        }

        if error_reason:
            log_data["error_reason"] = error_reason

        log_msg = f"HTTP request: {ctx.source} - {outcome}"

        if outcome == "success":
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})

    def log_booking(self, run_id: str | None, result: BookingResult) -> None:
        """Log one booking result with structured data."""
        log_data: dict[str, Any] = {
            "run_id": run_id,
            "event_id": result.event_id,
            "action_type": result.action_type.value,
            "status": result.status.value,
            "confirmation_number": result.confirmation_number,
        }

        if result.error:
            log_data["error"] = result.error

        log_msg = f"Booking: {result.event_name} - {result.status.value}"

        if result.status == BookingStatus.success:
            logger.info(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})
