"""
Display manager for Rich-based output and live readings.

Handles all console output including the status table, messages and the
toggle-able live view fed by monitor callbacks.
"""

import logging
from typing import Any, Optional

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.table import Table

logger = logging.getLogger(__name__)

NO_VALUE = "--"


class DisplayManager:
    """Manages console output with Rich library."""

    def __init__(self, console: Optional[Console] = None):
        """Initialize display manager.

        Args:
            console: Rich Console instance (creates one if None)
        """
        self.console = console or Console()
        self.live_enabled = False
        self._live: Optional[Live] = None
        self._live_data: dict[str, Any] = {}

    def print_banner(self) -> None:
        """Print startup banner."""
        panel = Panel(
            "[bold cyan]ftmsmon - FTMS Bike Monitor[/bold cyan]\n"
            "[dim]Type 'help' for commands, 'quit' to exit[/dim]",
            expand=False,
        )
        self.console.print(panel)

    def print_status(self, data: dict) -> None:
        """Display one-time monitor status table.

        Args:
            data: Dictionary from MonitorController.get_status()
        """
        table = self.format_status_table(data)
        self.console.print(table)

    def print_error(self, message: str) -> None:
        """Print red error message.

        Args:
            message: Error message text
        """
        self.console.print(f"[red]Error:[/red] {message}", highlight=False)

    def print_info(self, message: str) -> None:
        """Print blue info message.

        Args:
            message: Info message text
        """
        self.console.print(f"[cyan]Info:[/cyan] {message}", highlight=False)

    def print_help(self, commands: list) -> None:
        """Display command reference.

        Args:
            commands: List of Command objects
        """
        table = Table(title="Available Commands", show_header=True)
        table.add_column("Command", style="cyan")
        table.add_column("Aliases", style="magenta")
        table.add_column("Description", style="white")
        table.add_column("Usage", style="yellow")

        for cmd in commands:
            aliases = ", ".join(cmd.aliases) if cmd.aliases else "-"
            table.add_row(cmd.name, aliases, cmd.description, cmd.usage)

        self.console.print(table)
        self.console.print(
            "[dim]Keyboard shortcuts: Ctrl+C to interrupt, Ctrl+D to exit[/dim]"
        )

    def show_status(self, text: str) -> None:
        """Monitor status callback: live view if enabled, else a message."""
        if self.live_enabled:
            self.update_live({"status": text})
        else:
            self.print_info(text)

    def show_reading(self, cadence: Optional[float], power: Optional[float]) -> None:
        """Monitor reading callback; absent values replace stale ones."""
        self.update_live({"cadence": cadence, "power": power})

    def start_live(self) -> None:
        """Start live display refresh mode."""
        if self.live_enabled:
            return

        self.live_enabled = True
        self._live_data = {
            "status": "Connecting...",
            "cadence": None,
            "power": None,
        }
        renderable = self._create_live_table()
        self._live = Live(renderable, console=self.console, refresh_per_second=4)
        self._live.start()
        self.console.print(
            "[dim]Live display enabled ['live' to disable][/dim]"
        )

    def stop_live(self) -> None:
        """Stop live display refresh mode."""
        if not self.live_enabled:
            return

        self.live_enabled = False
        if self._live is not None:
            self._live.stop()
            self._live = None

    def update_live(self, data: dict) -> None:
        """Update live display with new values.

        Args:
            data: Any of status, cadence, power
        """
        if not self.live_enabled or self._live is None:
            return

        self._live_data.update(data)

        try:
            self._live.update(self._create_live_table())
        except Exception as e:
            logger.error(f"Live update error: {e}")

    def toggle_live(self) -> bool:
        """Toggle live display on/off.

        Returns:
            New live display state (True = on, False = off)
        """
        if self.live_enabled:
            self.stop_live()
        else:
            self.start_live()
        return self.live_enabled

    def _create_live_table(self) -> Table:
        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="yellow")

        table.add_row("Status", self._live_data.get("status") or "UNKNOWN")
        table.add_row("Cadence", self.format_cadence(self._live_data.get("cadence")))
        table.add_row("Power", self.format_power(self._live_data.get("power")))

        return table

    def format_status_table(self, data: dict) -> Table:
        """Create Rich Table for monitor status.

        Args:
            data: Dictionary from MonitorController.get_status()

        Returns:
            Rich Table object
        """
        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="yellow")

        table.add_row("Status", data.get("status") or "UNKNOWN")
        table.add_row("State", data.get("state") or "IDLE")
        table.add_row("Device", data.get("device") or NO_VALUE)
        table.add_row("Cadence", self.format_cadence(data.get("cadence")))
        table.add_row("Power", self.format_power(data.get("power")))
        table.add_row("Readings", f"{data.get('readings', 0):,}")
        table.add_row("Sessions", str(data.get("sessions", 0)))

        return table

    @staticmethod
    def format_cadence(value: Optional[float]) -> str:
        """Format cadence value.

        Args:
            value: Cadence reading, None if not reported

        Returns:
            Formatted cadence string
        """
        if value is None:
            return f"{NO_VALUE} rpm"
        return f"{value:.2f} rpm"

    @staticmethod
    def format_power(value: Optional[float]) -> str:
        """Format power value.

        Args:
            value: Power reading, None if not reported

        Returns:
            Formatted power string
        """
        if value is None:
            return f"{NO_VALUE} W"
        return f"{value:.1f} W"
