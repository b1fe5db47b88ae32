"""Typed browser automation commands.

Every command is a pydantic model discriminated by `op`; backends map them to
concrete browser calls and answer with a CommandResult.
"""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

DEFAULT_CLICKABLE = 'button, a, [role="button"]'


class Open(BaseModel):
    op: Literal["open"] = "open"
    url: str


class Click(BaseModel):
    op: Literal["click"] = "click"
    selector: str


class Fill(BaseModel):
    op: Literal["fill"] = "fill"
    selector: str
    value: str


class Select(BaseModel):
    op: Literal["select"] = "select"
    selector: str
    value: str


class Press(BaseModel):
    op: Literal["press"] = "press"
    key: str


class Wait(BaseModel):
    """Wait for a selector to appear."""

    op: Literal["wait"] = "wait"
    selector: str
    timeout_ms: int = 10000


class WaitForLoad(BaseModel):
    """Wait for the page to go network-idle, bounded by timeout_ms."""

    op: Literal["wait_for_load"] = "wait_for_load"
    timeout_ms: int = 2000


class Screenshot(BaseModel):
    op: Literal["screenshot"] = "screenshot"
    path: str
    full_page: bool = False


class Snapshot(BaseModel):
    """Structured text view of the page (accessibility tree)."""

    op: Literal["snapshot"] = "snapshot"


class GetText(BaseModel):
    """Visible text of the main document and all frames."""

    op: Literal["get_text"] = "get_text"


class Evaluate(BaseModel):
    op: Literal["evaluate"] = "evaluate"
    expression: str


class Close(BaseModel):
    op: Literal["close"] = "close"


class ClickFirst(BaseModel):
    """Click the first visible element matching any selector, across frames."""

    op: Literal["click_first"] = "click_first"
    selectors: list[str] = Field(..., min_length=1)


class FillFirst(BaseModel):
    """Fill the first visible, empty input matching any selector, across frames."""

    op: Literal["fill_first"] = "fill_first"
    selectors: list[str] = Field(..., min_length=1)
    value: str


class ClickByText(BaseModel):
    """Click an element whose text matches one of the patterns.

    Patterns are case-insensitive regexes tried in order. Among matches for a
    pattern, elements inside frames win, then the shortest text. Only visible
    elements with text shorter than 50 characters are considered.
    """

    op: Literal["click_by_text"] = "click_by_text"
    patterns: list[str] = Field(..., min_length=1)
    element_selector: str = DEFAULT_CLICKABLE
    include_frames: bool = True


class FillByLabel(BaseModel):
    """Fill empty visible inputs whose label text matches a pattern."""

    op: Literal["fill_by_label"] = "fill_by_label"
    pairs: list[tuple[str, str]] = Field(..., min_length=1)


Command = Annotated[
    Open
    | Click
    | Fill
    | Select
    | Press
    | Wait
    | WaitForLoad
    | Screenshot
    | Snapshot
    | GetText
    | Evaluate
    | Close
    | ClickFirst
    | FillFirst
    | ClickByText
    | FillByLabel,
    Field(discriminator="op"),
]


class CommandResult(BaseModel):
    """Outcome of one command."""

    ok: bool
    output: str = ""
    error: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def success(cls, output: str = "", **data: Any) -> "CommandResult":
        return cls(ok=True, output=output, data=data)

    @classmethod
    def failure(cls, error: str, **data: Any) -> "CommandResult":
        return cls(ok=False, error=error, data=data)
