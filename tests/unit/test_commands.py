"""Tests for typed automation commands."""

import pytest
from pydantic import TypeAdapter, ValidationError

from backend.outing.automation.commands import (
    DEFAULT_CLICKABLE,
    ClickByText,
    ClickFirst,
    Command,
    CommandResult,
    FillByLabel,
    Open,
)

command_adapter = TypeAdapter(Command)


class TestCommand:
    """Test the discriminated command union."""

    def test_dispatch_on_op(self) -> None:
        command = command_adapter.validate_python({"op": "click_by_text", "patterns": ["get tickets"]})

        assert isinstance(command, ClickByText)
        assert command.element_selector == DEFAULT_CLICKABLE
        assert command.include_frames is True

    def test_json_round_trip_keeps_type(self) -> None:
        original = FillByLabel(pairs=[("email", "alex@example.com")])

        parsed = command_adapter.validate_json(original.model_dump_json())

        assert parsed == original

    def test_unknown_op_rejected(self) -> None:
        with pytest.raises(ValidationError):
            command_adapter.validate_python({"op": "teleport", "url": "https://example.com"})

    def test_empty_selector_list_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ClickFirst(selectors=[])

    def test_open_requires_url(self) -> None:
        with pytest.raises(ValidationError):
            Open()  # type: ignore[call-arg]


class TestCommandResult:
    """Test CommandResult constructors."""

    def test_success_carries_data(self) -> None:
        result = CommandResult.success("Get tickets", pattern="get tickets", in_frame=True)

        assert result.ok is True
        assert result.output == "Get tickets"
        assert result.data == {"pattern": "get tickets", "in_frame": True}

    def test_failure(self) -> None:
        result = CommandResult.failure("Timeout 30000ms exceeded", timeout=True)

        assert result.ok is False
        assert result.output == ""
        assert result.error == "Timeout 30000ms exceeded"
        assert result.data["timeout"] is True
