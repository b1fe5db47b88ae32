"""Playwright-backed automation session.

One headless chromium page per session. The browser is launched lazily by the
first Open command and torn down by Close.
"""

import logging
import re
from dataclasses import dataclass

from playwright.async_api import Browser, Frame, Locator, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from backend.outing.automation.backend import AutomationError
from backend.outing.automation.commands import (
    Click,
    ClickByText,
    ClickFirst,
    Close,
    Command,
    CommandResult,
    Evaluate,
    Fill,
    FillByLabel,
    FillFirst,
    GetText,
    Open,
    Press,
    Screenshot,
    Select,
    Snapshot,
    Wait,
    WaitForLoad,
)

logger = logging.getLogger(__name__)

MAX_CLICKABLE_TEXT = 50
MAX_CANDIDATES_PER_FRAME = 50


@dataclass
class _Candidate:
    locator: Locator
    text: str
    in_frame: bool


class PlaywrightBackend:
    """AutomationBackend over playwright's async API."""

    def __init__(self, headless: bool = True, timeout_ms: int = 30000):
        self.headless = headless
        self.timeout_ms = timeout_ms
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._page: Page | None = None

    @property
    def is_open(self) -> bool:
        return self._page is not None

    async def execute(self, command: Command) -> CommandResult:
        """Run one command against the current page.

        Args:
            command: Typed automation command

        Returns:
            CommandResult. Playwright errors become ok=False results; timeouts
            are flagged with data["timeout"].

        Raises:
            AutomationError: If a page command arrives before Open
        """
        if isinstance(command, Close):
            await self.close()
            return CommandResult.success("closed")

        try:
            if isinstance(command, Open):
                return await self._open(command)
            return await self._dispatch(self._require_page(), command)
        except PlaywrightTimeoutError as e:
            logger.warning(f"Automation {command.op} timed out: {e}")
            return CommandResult.failure(str(e), timeout=True)
        except PlaywrightError as e:
            logger.warning(f"Automation {command.op} failed: {e}")
            return CommandResult.failure(str(e))

    async def close(self) -> None:
        """Stop the browser. No-op without a session."""
        if self._browser is not None:
            try:
                await self._browser.close()
            except PlaywrightError as e:
                logger.warning(f"Browser close failed: {e}")
        if self._playwright is not None:
            await self._playwright.stop()
        self._playwright = None
        self._browser = None
        self._page = None

    def _require_page(self) -> Page:
        if self._page is None:
            raise AutomationError("No browser session; send Open first")
        return self._page

    async def _open(self, command: Open) -> CommandResult:
        if self._page is None:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(headless=self.headless)
            self._page = await self._browser.new_page()
            self._page.set_default_timeout(self.timeout_ms)
        response = await self._page.goto(command.url, wait_until="domcontentloaded")
        status = response.status if response is not None else None
        return CommandResult.success(self._page.url, status=status)

    async def _dispatch(self, page: Page, command: Command) -> CommandResult:
        if isinstance(command, Click):
            await page.locator(command.selector).first.click()
            return CommandResult.success(command.selector)
        if isinstance(command, Fill):
            await page.locator(command.selector).first.fill(command.value)
            return CommandResult.success(command.selector)
        if isinstance(command, Select):
            selected = await page.locator(command.selector).first.select_option(command.value)
            return CommandResult.success(",".join(selected))
        if isinstance(command, Press):
            await page.keyboard.press(command.key)
            return CommandResult.success(command.key)
        if isinstance(command, Wait):
            await page.wait_for_selector(command.selector, timeout=command.timeout_ms)
            return CommandResult.success(command.selector)
        if isinstance(command, WaitForLoad):
            await page.wait_for_load_state("networkidle", timeout=command.timeout_ms)
            return CommandResult.success("loaded")
        if isinstance(command, Screenshot):
            await page.screenshot(path=command.path, full_page=command.full_page)
            return CommandResult.success(command.path)
        if isinstance(command, Snapshot):
            return CommandResult.success(await page.locator("body").aria_snapshot())
        if isinstance(command, GetText):
            return CommandResult.success(await self._all_text(page))
        if isinstance(command, Evaluate):
            value = await page.evaluate(command.expression)
            return CommandResult.success("" if value is None else str(value))
        if isinstance(command, ClickFirst):
            return await self._click_first(page, command)
        if isinstance(command, FillFirst):
            return await self._fill_first(page, command)
        if isinstance(command, ClickByText):
            return await self._click_by_text(page, command)
        if isinstance(command, FillByLabel):
            return await self._fill_by_label(page, command)
        return CommandResult.failure(f"Unsupported command: {command.op}")

    async def _all_text(self, page: Page) -> str:
        """Body text of the main document followed by each child frame."""
        parts = [await page.inner_text("body")]
        for frame in page.frames:
            if frame is page.main_frame:
                continue
            try:
                parts.append(await frame.inner_text("body", timeout=2000))
            except PlaywrightError:
                continue
        return "\n".join(p for p in parts if p)

    def _frames(self, page: Page, include_frames: bool = True) -> list[tuple[Frame, bool]]:
        frames = [(page.main_frame, False)]
        if include_frames:
            frames.extend((f, True) for f in page.frames if f is not page.main_frame)
        return frames

    async def _click_first(self, page: Page, command: ClickFirst) -> CommandResult:
        for selector in command.selectors:
            for frame, _ in self._frames(page):
                locator = frame.locator(selector)
                count = min(await locator.count(), MAX_CANDIDATES_PER_FRAME)
                for i in range(count):
                    element = locator.nth(i)
                    if await element.is_visible():
                        await element.click()
                        return CommandResult.success(selector)
        return CommandResult.failure("No visible element matched")

    async def _fill_first(self, page: Page, command: FillFirst) -> CommandResult:
        for selector in command.selectors:
            for frame, _ in self._frames(page):
                locator = frame.locator(selector)
                count = min(await locator.count(), MAX_CANDIDATES_PER_FRAME)
                for i in range(count):
                    element = locator.nth(i)
                    if await element.is_visible() and not await element.input_value():
                        await element.fill(command.value)
                        return CommandResult.success(selector)
        return CommandResult.failure("No empty visible field matched")

    async def _click_by_text(self, page: Page, command: ClickByText) -> CommandResult:
        for pattern in command.patterns:
            regex = re.compile(pattern, re.IGNORECASE)
            candidates: list[_Candidate] = []
            for frame, in_frame in self._frames(page, command.include_frames):
                locator = frame.locator(command.element_selector).filter(has_text=regex)
                count = min(await locator.count(), MAX_CANDIDATES_PER_FRAME)
                for i in range(count):
                    element = locator.nth(i)
                    if not await element.is_visible():
                        continue
                    text = (await element.inner_text()).strip()
                    if len(text) < MAX_CLICKABLE_TEXT:
                        candidates.append(_Candidate(element, text, in_frame))
            if candidates:
                best = min(candidates, key=lambda c: (not c.in_frame, len(c.text)))
                await best.locator.click()
                return CommandResult.success(best.text, pattern=pattern, in_frame=best.in_frame)
        return CommandResult.failure("No element matched any text pattern")

    async def _fill_by_label(self, page: Page, command: FillByLabel) -> CommandResult:
        filled: list[str] = []
        for pattern, value in command.pairs:
            regex = re.compile(pattern, re.IGNORECASE)
            if await self._fill_labelled(page, regex, value):
                filled.append(pattern)
        if not filled:
            return CommandResult.failure("No labelled field filled")
        return CommandResult.success(", ".join(filled), filled=len(filled))

    async def _fill_labelled(self, page: Page, regex: re.Pattern[str], value: str) -> bool:
        for frame, _ in self._frames(page):
            labels = frame.locator("label").filter(has_text=regex)
            count = min(await labels.count(), MAX_CANDIDATES_PER_FRAME)
            for i in range(count):
                target_id = await labels.nth(i).get_attribute("for")
                if not target_id:
                    continue
                target = frame.locator(
                    f'input[id="{target_id}"], textarea[id="{target_id}"], select[id="{target_id}"]'
                ).first
                if not await target.count() or not await target.is_visible():
                    continue
                if await target.input_value():
                    continue
                tag = await target.evaluate("el => el.tagName.toLowerCase()")
                if tag == "select":
                    await target.select_option(value)
                else:
                    await target.fill(value)
                return True
        return False
