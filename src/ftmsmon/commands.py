"""
Command definitions and auto-completion for REPL.

Defines all available commands with metadata and provides a completer
for prompt_toolkit auto-completion.
"""

from dataclasses import dataclass
from typing import Any, Iterable, List

from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document


@dataclass
class Command:
    """Command definition with metadata."""

    name: str
    aliases: List[str]
    description: str
    usage: str
    handler: str


# Define all available commands
COMMANDS = [
    Command(
        name="monitor",
        aliases=["m", "start"],
        description="Start monitoring a bike (configured address by default)",
        usage="monitor [address]",
        handler="cmd_monitor",
    ),
    Command(
        name="stop",
        aliases=["x"],
        description="Stop monitoring and disconnect",
        usage="stop",
        handler="cmd_stop",
    ),
    Command(
        name="status",
        aliases=["st"],
        description="Show monitor state and last reading",
        usage="status",
        handler="cmd_status",
    ),
    Command(
        name="live",
        aliases=["l"],
        description="Toggle live display mode",
        usage="live",
        handler="cmd_live",
    ),
    Command(
        name="config",
        aliases=["cfg"],
        description="Show settings, or set the default address",
        usage="config [address]",
        handler="cmd_config",
    ),
    Command(
        name="clear-config",
        aliases=["cc"],
        description="Delete saved settings",
        usage="clear-config",
        handler="cmd_clear_config",
    ),
    Command(
        name="help",
        aliases=["h", "?"],
        description="Show all available commands",
        usage="help",
        handler="cmd_help",
    ),
    Command(
        name="quit",
        aliases=["q", "exit"],
        description="Exit the REPL",
        usage="quit",
        handler="cmd_quit",
    ),
]

# Commands whose first argument is a device address
ADDRESS_COMMANDS = ("monitor", "m", "start", "config", "cfg")


def get_command(name: str) -> Command | None:
    """Get command by name or alias.

    Args:
        name: Command name or alias

    Returns:
        Command object if found, None otherwise
    """
    for cmd in COMMANDS:
        if cmd.name == name or name in cmd.aliases:
            return cmd
    return None


class CommandCompleter(Completer):
    """Auto-completion for commands and device addresses."""

    def __init__(self, addresses: Iterable[str] = ()) -> None:
        """Initialize completer.

        Args:
            addresses: Known device addresses to suggest as arguments
        """
        self._command_names = set()
        self._command_aliases = set()
        self.addresses = list(addresses)

        for cmd in COMMANDS:
            self._command_names.add(cmd.name)
            self._command_aliases.update(cmd.aliases)

    def get_completions(self, document: Document, complete_event) -> Any:  # type: ignore[no-untyped-def]
        """Get completion suggestions for current input.

        Args:
            document: Current input document
            complete_event: Completion event

        Yields:
            Completion objects for matching commands/arguments
        """
        text = document.text_before_cursor.lstrip()
        parts = text.split()

        # If no text yet, suggest nothing (avoid spam)
        if not text:
            return

        # First part: complete command name
        if len(parts) == 1 and not text.endswith(" "):
            partial_cmd = parts[0].lower()
            all_names = self._command_names | self._command_aliases

            for name in sorted(all_names):
                if name.startswith(partial_cmd):
                    completion = name[len(partial_cmd) :]
                    yield Completion(
                        completion,
                        start_position=0,
                        display=f"({name})",
                    )
            return

        # Second part: suggest known addresses
        if parts[0].lower() in ADDRESS_COMMANDS:
            partial = "" if text.endswith(" ") else parts[-1].upper()
            for address in self.addresses:
                if address.upper().startswith(partial):
                    yield Completion(
                        address,
                        start_position=-len(partial),
                        display=address,
                    )
