"""Booking execution engine.

Drives one automation session per itinerary item, strictly sequentially:

1. Best-effort knowledge-base lookup for the booking site
2. Open the booking URL and let the page settle
3. Snapshot the page; blocking conditions (sold out, waitlist, captcha,
   login) end the item immediately
4. Click a booking button by text, then raise the ticket quantity
5. Bounded checkout loop: fill known fields, fill fields by label, click a
   proceed button; stop on confirmation, stuck pages or no progress
6. Screenshot, extract a confirmation, close the session

An item is `success` only when a confirmation signal was found.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from backend.outing.automation.backend import AutomationBackend
from backend.outing.automation.commands import (
    ClickByText,
    ClickFirst,
    Close,
    Command,
    CommandResult,
    FillByLabel,
    FillFirst,
    GetText,
    Open,
    Screenshot,
    Snapshot,
    WaitForLoad,
)
from backend.outing.config import Settings, get_settings
from backend.outing.execution.knowledge_base import (
    KnowledgeBase,
    area_id_for,
    build_search_query,
    extract_domain,
    is_missing_manual,
)
from backend.outing.execution.page_signals import (
    blocking_message,
    detect_blocking,
    extract_confirmation,
    has_success_phrase,
)
from backend.outing.models.booking import ActionType, BookingResult, BookingStatus, UserProfile
from backend.outing.models.event import Event
from backend.outing.models.itinerary import Itinerary, ItineraryItem
from backend.outing.utils.logging import StructuredStepLogger
from backend.outing.utils.metrics import PipelineMetrics
from backend.outing.utils.timeutil import utcnow

logger = logging.getLogger(__name__)

BOOKING_BUTTON_PATTERNS = [
    "reserve a spot",
    "get tickets",
    "register",
    "book now",
    "book",
    "rsvp",
    "reserve",
    "sign up",
    "join",
    "attend",
]

QUANTITY_INCREMENT_SELECTORS = [
    'button[aria-label*="Increase"]',
    'button[aria-label*="increase"]',
    'button[aria-label*="Add"]',
    '[data-testid*="increase"]',
    '[data-testid*="increment"]',
    '[data-testid*="plus"]',
]

PROCEED_SELECTORS = [
    'button[type="submit"]',
    'input[type="submit"]',
    'button[data-testid="submit-button"]',
    'button[data-testid="register-button"]',
]

PROCEED_PATTERNS = [
    "complete order",
    "place order",
    "complete registration",
    "register",
    "checkout",
    "confirm",
    "submit",
    "complete",
]

STUCK_TEXT_CHARS = 4000
STUCK_LIMIT = 2


def is_bookable(item: ItineraryItem) -> bool:
    """Discovered items with a booking URL."""
    url = item.event.source_url
    return item.event.source != "planned" and bool(url and url.strip())


def selector_fields(profile: UserProfile) -> list[tuple[list[str], str]]:
    """Known checkout inputs by selector, paired with the profile value."""
    first = profile.first_name
    last = profile.last_name or first
    return [
        (['input[name="buyer.N-first_name"]', 'input[id="buyer.N-first_name"]', 'input[name$="N-first_name"]'], first),
        (['input[name="buyer.N-last_name"]', 'input[id="buyer.N-last_name"]', 'input[name$="N-last_name"]'], last),
        (['input[name="buyer.N-email"]', 'input[id="buyer.N-email"]', 'input[name$="N-email"]'], profile.email),
        (
            [
                'input[name="buyer.confirmEmailAddress"]',
                'input[id="buyer.confirmEmailAddress"]',
                'input[name$="confirmEmailAddress"]',
            ],
            profile.email,
        ),
        (['input[name="name"]', 'input[name="full_name"]', 'input[name="first_name"]', "#name"], profile.name),
        (['input[name="email"]', 'input[type="email"]:not([name*="confirm"])'], profile.email),
        (['input[name="phone"]', 'input[type="tel"]', "#phone"], profile.phone or ""),
    ]


def label_fields(profile: UserProfile, default_phone: str) -> list[tuple[str, str]]:
    """Organizer-specific inputs matched by label text."""
    phone = profile.phone or default_phone
    first = profile.first_name
    return [
        ("phone", phone),
        ("tel", phone),
        ("telephone", phone),
        ("mobile", phone),
        ("contact number", phone),
        ("first name", first),
        ("last name", profile.last_name or first),
        ("email", profile.email),
        ("name", profile.name),
    ]


class ExecutionEngine:
    """Books approved itinerary items through an automation backend."""

    def __init__(
        self,
        backend: AutomationBackend,
        knowledge_base: KnowledgeBase | None = None,
        settings: Settings | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
        metrics: PipelineMetrics | None = None,
        step_logger: StructuredStepLogger | None = None,
    ):
        self.backend = backend
        self.knowledge_base = knowledge_base
        self.settings = settings or get_settings()
        self.sleep = sleep_fn or asyncio.sleep
        self.metrics = metrics or PipelineMetrics()
        self.step_logger = step_logger or StructuredStepLogger()
        self._session_lock = asyncio.Lock()

    async def execute_all(
        self,
        itinerary: Itinerary,
        profile: UserProfile,
        party_size: int = 1,
        run_id: str | None = None,
    ) -> list[BookingResult]:
        """Attempt every bookable item in order.

        Args:
            itinerary: Approved itinerary
            profile: Attendee details for checkout forms
            party_size: Ticket quantity to select
            run_id: Run the bookings belong to, for logs

        Returns:
            One BookingResult per bookable item, in itinerary order. A failure
            on one item never stops the others.
        """
        bookable = [item for item in itinerary.items if is_bookable(item)]
        logger.info(f"Executing {len(bookable)} of {len(itinerary.items)} itinerary items")

        results: list[BookingResult] = []
        async with self._session_lock:
            for item in bookable:
                try:
                    result = await asyncio.wait_for(
                        self.execute_item(item.event, profile, party_size),
                        timeout=self.settings.booking_item_timeout_s,
                    )
                except asyncio.TimeoutError:
                    await self._close()
                    result = self._result(
                        item.event,
                        ActionType.book,
                        BookingStatus.timeout,
                        error=f"Booking timed out after {self.settings.booking_item_timeout_s:g}s",
                    )
                except Exception as e:
                    logger.exception(f"Booking failed for {item.event.name}")
                    await self._close()
                    result = self._result(item.event, ActionType.book, BookingStatus.failed, error=str(e))

                self.step_logger.log_booking(run_id, result)
                self.metrics.inc_booking_result(result.status.value)
                results.append(result)
        return results

    async def execute_item(self, event: Event, profile: UserProfile, party_size: int = 1) -> BookingResult:
        """Run the full booking flow for one event."""
        url = (event.source_url or "").strip()
        if not url:
            return self._result(
                event,
                ActionType.info_only,
                BookingStatus.no_source_url,
                error="No booking URL available — this is a generated/suggested activity",
            )
        if not event.booking_required:
            logger.info(f"Booking not required for {event.name}, skipping")
            return self._result(event, ActionType.info_only, BookingStatus.skipped)

        has_manual = await self._lookup_manual(event, url)

        opened = await self._run(Open(url=url))
        if not opened.ok:
            await self._close()
            return self._result(
                event, ActionType.book, BookingStatus.page_error, error=f"Failed to open browser: {opened.error}"
            )
        await self._settle(self.settings.settle_after_open_ms)

        snapshot = await self._run(Snapshot())
        blocked = detect_blocking(snapshot.output if snapshot.ok else "")
        if blocked is not None:
            logger.info(f"Blocking condition on {event.name}: {blocked.value}")
            await self._close()
            return self._result(event, ActionType.book, blocked, error=blocking_message(blocked))

        clicked = await self._run(ClickByText(patterns=BOOKING_BUTTON_PATTERNS))
        if clicked.ok:
            logger.info(f'Clicked booking button "{clicked.output}" for {event.name}')
            await self._settle(self.settings.settle_after_booking_click_ms)
            await self._adjust_quantity(party_size)
        elif not has_manual:
            await self._close()
            return self._result(
                event,
                ActionType.info_only,
                BookingStatus.no_action_manual,
                error="No booking button found and no action manual available",
            )

        await self._checkout(profile)

        await self._settle(self.settings.settle_final_ms)
        screenshot_path = f"{self.settings.screenshot_dir}/booking-{event.id}-{int(time.time() * 1000)}.png"
        shot = await self._run(Screenshot(path=screenshot_path))
        final_text = await self._run(GetText())
        confirmation = extract_confirmation(final_text.output) if final_text.ok else None
        await self._close()

        if confirmation is None:
            logger.info(f"No confirmation detected for {event.name}")
        return self._result(
            event,
            ActionType.book,
            BookingStatus.success if confirmation else BookingStatus.failed,
            confirmation_number=confirmation,
            screenshot_path=screenshot_path if shot.ok else None,
        )

    async def _checkout(self, profile: UserProfile) -> bool:
        """Step through checkout pages. True if a confirmation appeared mid-loop."""
        previous_text = ""
        stuck = 0
        for step in range(self.settings.checkout_max_steps):
            await self._settle(
                self.settings.settle_first_step_ms if step == 0 else self.settings.settle_next_step_ms
            )

            page = await self._run(GetText())
            text = page.output if page.ok else ""
            if has_success_phrase(text):
                logger.info(f"Confirmation detected at checkout step {step + 1}")
                return True

            current = text[:STUCK_TEXT_CHARS]
            if previous_text and current == previous_text:
                stuck += 1
                if stuck >= STUCK_LIMIT:
                    logger.info(f"Checkout page unchanged for {stuck} steps, stopping")
                    break
            else:
                stuck = 0
            previous_text = current

            filled = await self._fill_forms(profile)
            if filled:
                await self._settle(self.settings.settle_after_fill_ms)

            proceeded = await self._click_proceed()
            if not filled and not proceeded:
                logger.info(f"Checkout step {step + 1}: nothing to fill or click, stopping")
                break
        return False

    async def _fill_forms(self, profile: UserProfile) -> bool:
        filled = False
        for selectors, value in selector_fields(profile):
            if not value:
                continue
            result = await self._run(FillFirst(selectors=selectors, value=value))
            filled = filled or result.ok

        by_label = await self._run(FillByLabel(pairs=label_fields(profile, self.settings.default_phone)))
        return filled or by_label.ok

    async def _click_proceed(self) -> bool:
        result = await self._run(ClickFirst(selectors=PROCEED_SELECTORS))
        if result.ok:
            return True
        result = await self._run(ClickByText(patterns=PROCEED_PATTERNS))
        return result.ok

    async def _adjust_quantity(self, party_size: int) -> None:
        """Click the ticket stepper up from the default of one."""
        if party_size <= 1:
            return
        for attempt in range(party_size - 1):
            result = await self._run(ClickFirst(selectors=QUANTITY_INCREMENT_SELECTORS))
            if not result.ok:
                result = await self._run(ClickByText(patterns=["^[+＋]$"], element_selector="button"))
            if not result.ok:
                logger.info(f"Quantity stepper not found on attempt {attempt + 1}")
                break
            await self.sleep(self.settings.quantity_click_delay_ms / 1000)
        await self.sleep(self.settings.quantity_settle_ms / 1000)

    async def _lookup_manual(self, event: Event, url: str) -> bool:
        """True when the knowledge base has a manual for the site."""
        if self.knowledge_base is None:
            return False
        domain = extract_domain(url)
        try:
            text = await self.knowledge_base.search_actions(
                build_search_query(event.source, "book"),
                domain=domain,
                background=f"Booking event: {event.name}. URL: {url}",
            )
            if is_missing_manual(text):
                return False
            if domain:
                await self.knowledge_base.get_details(area_id_for(domain))
            return True
        except Exception as e:
            logger.warning(f"Knowledge base lookup failed for {event.name}: {e}")
            return False

    async def _settle(self, ms: int) -> None:
        """Wait for the page to go idle, or sleep when it never does."""
        if ms <= 0:
            return
        result = await self._run(WaitForLoad(timeout_ms=ms))
        if not result.ok:
            await self.sleep(ms / 1000)

    async def _run(self, command: Command) -> CommandResult:
        result = await self.backend.execute(command)
        if not result.ok:
            logger.debug(f"Automation {command.op} not ok: {result.error}")
        return result

    async def _close(self) -> None:
        try:
            await self.backend.execute(Close())
        except Exception as e:
            logger.warning(f"Closing automation session failed: {e}")

    def _result(
        self,
        event: Event,
        action_type: ActionType,
        status: BookingStatus,
        confirmation_number: str | None = None,
        screenshot_path: str | None = None,
        error: str | None = None,
    ) -> BookingResult:
        return BookingResult(
            event_id=event.id,
            event_name=event.name,
            action_type=action_type,
            status=status,
            confirmation_number=confirmation_number,
            screenshot_path=screenshot_path,
            error=error,
            timestamp=utcnow(),
        )
