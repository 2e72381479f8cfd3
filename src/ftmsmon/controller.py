"""
Monitoring controller: the entry point presentation layers talk to.

This module owns the supervisor task, remembers the latest status and
reading, and fans both out to registered callbacks.
"""

import asyncio
import logging
from typing import Callable, Optional

from .config import MonitorConfig
from .core import DeviceIdentity
from .decoder import Reading
from .session import ConnectionState
from .sink import LoopSink
from .supervisor import ReconnectSupervisor
from .transport import BleakAdapter, RadioAdapter

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]
ReadingCallback = Callable[[Optional[float], Optional[float]], None]


class MonitorController:
    """Starts, stops and observes monitoring of one FTMS bike."""

    def __init__(
        self,
        config: Optional[MonitorConfig] = None,
        adapter: Optional[RadioAdapter] = None,
    ) -> None:
        """Initialize controller with no monitoring running.

        Args:
            config: Monitor settings (defaults if None)
            adapter: Radio to use (host Bluetooth via bleak if None)
        """
        self.config = config or MonitorConfig()
        self._adapter = adapter or BleakAdapter()
        self._supervisor: Optional[ReconnectSupervisor] = None
        self._task: Optional[asyncio.Task] = None
        self._identity: Optional[DeviceIdentity] = None

        self.last_status: Optional[str] = None
        self.last_reading: Optional[Reading] = None
        self.readings_received = 0

        # Callbacks
        self._on_status: Optional[StatusCallback] = None
        self._on_reading: Optional[ReadingCallback] = None

    @property
    def is_running(self) -> bool:
        """Check if a supervisor task is active."""
        return self._task is not None and not self._task.done()

    @property
    def identity(self) -> Optional[DeviceIdentity]:
        """Device being monitored, if any."""
        return self._identity

    @property
    def state(self) -> Optional[ConnectionState]:
        """State of the current link session, if any."""
        if self._supervisor is None or self._supervisor.current_session is None:
            return None
        return self._supervisor.current_session.state

    @property
    def sessions_started(self) -> int:
        """Link sessions started by the current supervisor."""
        if self._supervisor is None:
            return 0
        return self._supervisor.sessions_started

    def set_on_status(self, callback: StatusCallback) -> None:
        """Set callback for status text updates.

        Args:
            callback: Function called with the status string
        """
        self._on_status = callback

    def set_on_reading(self, callback: ReadingCallback) -> None:
        """Set callback for decoded readings.

        Args:
            callback: Function called with (cadence, power); either may be None
        """
        self._on_reading = callback

    def start_monitoring(self, address: Optional[str] = None) -> DeviceIdentity:
        """Start monitoring a device in the background.

        Args:
            address: Device address (configured address if None)

        Returns:
            Identity of the monitored device

        Raises:
            RuntimeError: If monitoring is already running
        """
        if self.is_running:
            raise RuntimeError(f"Already monitoring {self._identity}")

        if address:
            identity = DeviceIdentity(address)
        else:
            identity = self.config.identity

        self._identity = identity
        self.last_reading = None
        self.readings_received = 0
        self._supervisor = ReconnectSupervisor(
            self._adapter,
            retry_policy=self.config.retry_policy(),
            step_timeout=self.config.step_timeout,
        )
        self._task = asyncio.create_task(self._supervise(self._supervisor, identity))
        logger.info(f"Monitoring {identity}")
        return identity

    async def stop_monitoring(self) -> None:
        """Stop monitoring and release the connection."""
        task, self._task = self._task, None
        if task is None:
            return

        logger.info("Stopping monitor...")
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        self.on_status("Stopped")

    async def wait(self) -> None:
        """Wait until monitoring ends on its own or is stopped."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    def get_status(self) -> dict:
        """Get current monitor state without waiting for an update.

        Returns:
            Dictionary with status, state, device, cadence, power, sessions
        """
        state = self.state
        reading = self.last_reading
        return {
            "status": self.last_status or "Idle",
            "state": state.name if state else "IDLE",
            "device": str(self._identity) if self._identity else None,
            "cadence": reading.cadence if reading else None,
            "power": reading.power if reading else None,
            "readings": self.readings_received,
            "sessions": self.sessions_started,
        }

    async def _supervise(self, supervisor: ReconnectSupervisor, identity: DeviceIdentity) -> None:
        # Sink calls are queued on this loop, outside the session event dispatch
        sink = LoopSink(self, asyncio.get_running_loop())
        try:
            await supervisor.run(identity, sink)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception("Supervisor crashed")
            self.on_status(f"Monitor error: {e}")

    def on_status(self, text: str) -> None:
        """Sink entry point for status text."""
        self.last_status = text
        if self._on_status:
            try:
                self._on_status(text)
            except Exception as e:
                logger.error(f"Status callback error: {e}")

    def on_reading(self, cadence: Optional[float], power: Optional[float]) -> None:
        """Sink entry point for decoded readings."""
        self.last_reading = Reading(cadence=cadence, power=power)
        self.readings_received += 1
        if self._on_reading:
            try:
                self._on_reading(cadence, power)
            except Exception as e:
                logger.error(f"Reading callback error: {e}")
