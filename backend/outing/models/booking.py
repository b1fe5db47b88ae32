"""Booking models - execution input profile and per-item results."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ActionType(str, Enum):
    """What the engine attempted for an item."""

    check_availability = "check_availability"
    reserve = "reserve"
    book = "book"
    register = "register"
    info_only = "info_only"


class BookingStatus(str, Enum):
    """Outcome classification for one booking attempt."""

    success = "success"
    failed = "failed"
    skipped = "skipped"
    sold_out = "sold_out"
    waitlist = "waitlist"
    login_required = "login_required"
    captcha_blocked = "captcha_blocked"
    payment_required = "payment_required"
    page_error = "page_error"
    timeout = "timeout"
    no_action_manual = "no_action_manual"
    no_source_url = "no_source_url"


# Statuses that count as "skipped" in execution summaries
SKIPPED_STATUSES = frozenset(
    {
        BookingStatus.skipped,
        BookingStatus.no_source_url,
        BookingStatus.no_action_manual,
    }
)


class UserProfile(BaseModel):
    """Attendee details used to fill checkout forms."""

    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    phone: str | None = None
    dietary_preferences: list[str] = Field(default_factory=list)
    special_requests: str | None = None

    @property
    def first_name(self) -> str:
        """First token of the full name."""
        parts = self.name.split()
        return parts[0] if parts else self.name

    @property
    def last_name(self) -> str:
        """Remaining tokens, or empty for single-word names."""
        parts = self.name.split()
        return " ".join(parts[1:]) if len(parts) > 1 else ""


class BookingResult(BaseModel):
    """Immutable record of one booking attempt."""

    model_config = ConfigDict(frozen=True)

    event_id: str
    event_name: str
    action_type: ActionType
    status: BookingStatus
    confirmation_number: str | None = None
    screenshot_path: str | None = None
    error: str | None = None
    timestamp: datetime


class ExecutionSummary(BaseModel):
    """Counts over a list of booking results."""

    success: int = 0
    failed: int = 0
    skipped: int = 0

    @classmethod
    def from_results(cls, results: list[BookingResult]) -> "ExecutionSummary":
        """Tally results. info_only actions count as skipped."""
        summary = cls()
        for result in results:
            if result.status == BookingStatus.success:
                summary.success += 1
            elif result.status in SKIPPED_STATUSES or result.action_type == ActionType.info_only:
                summary.skipped += 1
            else:
                summary.failed += 1
        return summary
