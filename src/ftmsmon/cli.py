"""
Main REPL application for FTMS bike monitoring.

Interactive command loop with async support, auto-completion,
and live reading display.
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from prompt_toolkit import PromptSession
from prompt_toolkit.formatted_text import FormattedText
from prompt_toolkit.history import InMemoryHistory
from prompt_toolkit.patch_stdout import patch_stdout

from .commands import COMMANDS, CommandCompleter, get_command
from .config import MonitorConfig, clear_config, get_config_file, load_config, save_config
from .controller import MonitorController
from .core import DeviceIdentity
from .display import DisplayManager

logger = logging.getLogger(__name__)


def configure_logging(verbose: bool = False) -> None:
    """Configure root logging for the application."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
    )
    # bleak is chatty at DEBUG
    logging.getLogger("bleak").setLevel(logging.INFO if verbose else logging.WARNING)


class MonitorREPL:
    """Interactive REPL for FTMS bike monitoring."""

    def __init__(self, config: Optional[MonitorConfig] = None) -> None:
        """Initialize REPL with controller and display manager."""
        self.config = config or load_config()
        self.controller = MonitorController(self.config)
        self.display = DisplayManager()
        self.running = False
        self.session: PromptSession

        # Set up callbacks
        self.controller.set_on_status(self.display.show_status)
        self.controller.set_on_reading(self.display.show_reading)

        # Create prompt session with auto-completion
        self.session = PromptSession(
            completer=CommandCompleter([self.config.address]),
            history=InMemoryHistory(),
            enable_history_search=True,
        )

    async def run(self) -> None:
        """Run the main REPL loop."""
        self.running = True
        self.display.print_banner()
        self.display.print_info(
            f"Default device: {self.config.identity}. Use 'monitor' to start."
        )

        try:
            with patch_stdout():
                while self.running:
                    try:
                        text = await self.session.prompt_async(self._get_prompt())
                        if text.strip():
                            await self._handle_input(text.strip())
                    except KeyboardInterrupt:
                        # Just show new prompt on Ctrl+C
                        continue
        except EOFError:
            # End of input (Ctrl+D)
            await self.cmd_quit([])
        finally:
            self.running = False
            await self.controller.stop_monitoring()

    def _get_prompt(self) -> FormattedText:
        """Get dynamic prompt based on monitor state.

        Returns:
            FormattedText for prompt_toolkit
        """
        state = self.controller.state
        if self.controller.is_running and state is not None:
            return FormattedText([("class:prompt", f"[{state.name.lower()}] > ")])
        return FormattedText([("class:prompt", "[idle] > ")])

    async def _handle_input(self, text: str) -> None:
        """Parse and dispatch command.

        Args:
            text: Raw user input text
        """
        parts = text.split(maxsplit=1)
        if not parts:
            return

        cmd_name = parts[0].lower()
        args = parts[1].split() if len(parts) > 1 else []

        cmd = get_command(cmd_name)
        if not cmd:
            self.display.print_error(
                f"Unknown command: {cmd_name}. Type 'help' for available commands."
            )
            return

        handler = getattr(self, cmd.handler, None)
        if handler is None:
            self.display.print_error(f"Handler not found: {cmd.handler}")
            return

        try:
            await handler(args)
        except Exception as e:
            self.display.print_error(f"Command failed: {e}")
            logger.exception("Command exception")

    # ========== Command Handlers ==========

    async def cmd_monitor(self, args: list) -> None:
        """Start monitoring."""
        if self.controller.is_running:
            self.display.print_info(f"Already monitoring {self.controller.identity}")
            return

        address = args[0] if args else None
        identity = self.controller.start_monitoring(address)
        self.display.print_info(f"Monitoring {identity}")

    async def cmd_stop(self, args: list) -> None:
        """Stop monitoring."""
        if not self.controller.is_running:
            self.display.print_info("Not monitoring")
            return

        if self.display.live_enabled:
            self.display.stop_live()
        await self.controller.stop_monitoring()

    async def cmd_status(self, args: list) -> None:
        """Show monitor state."""
        self.display.print_status(self.controller.get_status())

    async def cmd_live(self, args: list) -> None:
        """Toggle live display mode."""
        enabled = self.display.toggle_live()
        if enabled:
            status = self.controller.get_status()
            self.display.update_live(status)
        else:
            self.display.print_info("Live display disabled")

    async def cmd_config(self, args: list) -> None:
        """Show settings or set the default address."""
        if args:
            identity = DeviceIdentity(args[0])
            self.config.address = identity.address
            save_config(self.config)
            self.session.completer = CommandCompleter([identity.address])
            self.display.print_info(f"Default device set to {identity.address}")
            return

        self.display.console.print(f"[bold cyan]Settings[/bold cyan] ({get_config_file()})")
        for key, value in self.config.to_dict().items():
            self.display.console.print(f"  {key}: {value}")
        self.display.console.print(f"  retry policy: {self.config.retry_policy()!r}")

    async def cmd_clear_config(self, args: list) -> None:
        """Delete saved settings."""
        if clear_config():
            self.display.print_info("Cleared saved settings")
        else:
            self.display.print_info("No saved settings")

    async def cmd_help(self, args: list) -> None:
        """Show all available commands."""
        self.display.print_help(COMMANDS)

    async def cmd_quit(self, args: list) -> None:
        """Exit the REPL."""
        if self.display.live_enabled:
            self.display.stop_live()

        if self.controller.is_running:
            self.display.print_info("Disconnecting...")
            await self.controller.stop_monitoring()

        self.display.console.print("[cyan]Goodbye![/cyan]")
        self.running = False


async def run_monitor(config: MonitorConfig, address: Optional[str] = None) -> int:
    """Monitor with a live display until interrupted or given up.

    Returns:
        Process exit code
    """
    controller = MonitorController(config)
    display = DisplayManager()
    controller.set_on_status(display.show_status)
    controller.set_on_reading(display.show_reading)

    display.start_live()
    try:
        controller.start_monitoring(address)
        await controller.wait()
    finally:
        await controller.stop_monitoring()
        display.stop_live()

    # The supervisor only returns on its own when it cannot go on
    display.print_error(controller.last_status or "Monitoring ended")
    return 1


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        description="Live cadence and power monitor for FTMS indoor bikes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ftmsmon                              # Start interactive REPL
  ftmsmon --monitor                    # Monitor the configured bike
  ftmsmon --monitor -a FE:E8:C4:2B:4D:9A --save
  ftmsmon --monitor --retry-delay 2 --max-attempts 10
  ftmsmon --clear-config               # Delete saved settings
        """,
    )

    parser.add_argument("--monitor", action="store_true", help="Monitor without the REPL")
    parser.add_argument("-a", "--address", help="Bluetooth address of the bike")
    parser.add_argument(
        "--timeout",
        type=float,
        help="Seconds allowed per handshake step (0 waits forever)",
    )
    parser.add_argument(
        "--retry-delay",
        type=float,
        help="Initial delay between reconnects in seconds (0 = immediate)",
    )
    parser.add_argument(
        "--max-attempts",
        type=int,
        help="Give up after this many consecutive failed sessions",
    )
    parser.add_argument("--save", action="store_true", help="Save the given options as defaults")
    parser.add_argument("--clear-config", action="store_true", help="Delete saved settings")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def apply_overrides(config: MonitorConfig, args: argparse.Namespace) -> MonitorConfig:
    """Apply command line options on top of loaded settings."""
    if args.address:
        config.address = DeviceIdentity(args.address).address
    if args.timeout is not None:
        config.step_timeout = args.timeout if args.timeout > 0 else None
    if args.retry_delay is not None:
        config.retry_delay = max(args.retry_delay, 0.0)
    if args.max_attempts is not None:
        config.max_attempts = args.max_attempts if args.max_attempts > 0 else None
    return config


def main() -> None:
    """Entry point for the ftmsmon application."""
    parser = build_parser()
    args = parser.parse_args()
    configure_logging(args.verbose)

    if args.clear_config:
        removed = clear_config()
        print("Cleared saved settings" if removed else "No saved settings")
        sys.exit(0)

    try:
        config = apply_overrides(load_config(), args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)

    if args.save:
        save_config(config)

    if args.monitor:
        try:
            sys.exit(asyncio.run(run_monitor(config)))
        except KeyboardInterrupt:
            print("\nInterrupted")
            sys.exit(0)

    try:
        repl = MonitorREPL(config)
        asyncio.run(repl.run())
    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(0)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
