"""Automation backend interface."""

from typing import Protocol

from backend.outing.automation.commands import Command, CommandResult


class AutomationError(Exception):
    """Automation session unusable (not started, or browser gone)."""

    pass


class AutomationBackend(Protocol):
    """Executes typed commands against one browser session."""

    async def execute(self, command: Command) -> CommandResult:
        """Run a command.

        Returns:
            CommandResult; ordinary page failures are reported with ok=False

        Raises:
            AutomationError: When no session is available for the command
        """
        ...
