"""
Link session: one connection attempt to one FTMS peer.

The session drives connect -> service discovery -> subscription and then
streams decoded Indoor Bike Data until the peer drops or ``stop()`` is
called. Everything it does is reported through a single-consumer event
queue, and the last event of every session is exactly one ``Terminated``.

All state lives on the event loop that called ``start()``. Radio callbacks
arrive through ``RadioLink``, which hops them onto that loop, so a
transition and a concurrent ``stop()`` never interleave.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Awaitable, Optional, Type, TypeVar, Union

from .core import DEFAULT_STEP_TIMEOUT, FTMS_SERVICE_UUID, DeviceIdentity
from .decoder import IndoorBikeDataDecoder, Reading, TelemetryDecoder
from .errors import (
    ConnectFailed,
    DecodeError,
    MonitorError,
    PeerDisconnected,
    ServiceOrCharacteristicMissing,
    SubscriptionFailed,
)
from .transport import RadioAdapter, RadioLink, ServiceMap

logger = logging.getLogger(__name__)

T = TypeVar("T")

REQUESTED = "requested"


class ConnectionState(Enum):
    """Lifecycle of a link session."""

    IDLE = "idle"
    CONNECTING = "connecting"
    SERVICES_DISCOVERING = "services_discovering"
    SUBSCRIBING = "subscribing"
    STREAMING = "streaming"
    DISCONNECTED = "disconnected"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ConnectionState.DISCONNECTED, ConnectionState.FAILED)


_TRANSITIONS = {
    ConnectionState.IDLE: {ConnectionState.CONNECTING, ConnectionState.DISCONNECTED},
    ConnectionState.CONNECTING: {
        ConnectionState.SERVICES_DISCOVERING,
        ConnectionState.FAILED,
        ConnectionState.DISCONNECTED,
    },
    ConnectionState.SERVICES_DISCOVERING: {
        ConnectionState.SUBSCRIBING,
        ConnectionState.FAILED,
        ConnectionState.DISCONNECTED,
    },
    ConnectionState.SUBSCRIBING: {
        ConnectionState.STREAMING,
        ConnectionState.FAILED,
        ConnectionState.DISCONNECTED,
    },
    ConnectionState.STREAMING: {ConnectionState.DISCONNECTED},
    ConnectionState.DISCONNECTED: set(),
    ConnectionState.FAILED: set(),
}


class InvalidTransition(RuntimeError):
    """A state change the session state machine does not allow."""


@dataclass(frozen=True)
class StatusChanged:
    """Human-readable progress update."""

    text: str


@dataclass(frozen=True)
class ReadingReceived:
    """A decoded Indoor Bike Data frame."""

    reading: Reading


@dataclass(frozen=True)
class Terminated:
    """Final event of a session.

    Attributes:
        reason: Why the session ended ("requested" for an explicit stop)
        error: Failure category, None for an explicit stop
        requested: True if ``stop()`` ended the session
        streamed: True if the session reached STREAMING before ending
    """

    reason: str
    error: Optional[MonitorError] = None
    requested: bool = False
    streamed: bool = False


SessionEvent = Union[StatusChanged, ReadingReceived, Terminated]


class LinkSession:
    """Single-use state machine for one connection to one peer."""

    def __init__(
        self,
        adapter: RadioAdapter,
        decoder: Optional[TelemetryDecoder] = None,
        step_timeout: Optional[float] = DEFAULT_STEP_TIMEOUT,
    ) -> None:
        """Initialize an idle session.

        Args:
            adapter: Radio the session opens its link on
            decoder: Telemetry decoder (Indoor Bike Data by default)
            step_timeout: Seconds allowed per handshake step, None for no limit
        """
        self._adapter = adapter
        self._decoder: TelemetryDecoder = decoder or IndoorBikeDataDecoder()
        self._step_timeout = step_timeout

        self._state = ConnectionState.IDLE
        self._reason: Optional[str] = None
        self._error: Optional[MonitorError] = None
        self._identity: Optional[DeviceIdentity] = None

        self._link: Optional[RadioLink] = None
        self._task: Optional[asyncio.Task] = None
        self._events: asyncio.Queue = asyncio.Queue()
        self._peer_gone = asyncio.Event()

        self._streamed = False
        self._stop_requested = False
        self._closing = False
        self._released = False
        self._terminated = False

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""
        return self._state

    @property
    def reason(self) -> Optional[str]:
        """Termination reason once the session is terminal."""
        return self._reason

    @property
    def error(self) -> Optional[MonitorError]:
        """Failure that ended the session, if any."""
        return self._error

    @property
    def identity(self) -> Optional[DeviceIdentity]:
        return self._identity

    def start(self, identity: DeviceIdentity) -> None:
        """Begin the handshake with ``identity`` in a background task.

        Raises:
            RuntimeError: If the session was already started or stopped
        """
        if self._state is not ConnectionState.IDLE or self._task is not None:
            raise RuntimeError(f"Session cannot start from state {self._state.name}")

        self._identity = identity
        self._transition(ConnectionState.CONNECTING)
        self._task = asyncio.create_task(self._run(identity))

    async def stop(self) -> None:
        """Stop the session from any state and release the link.

        Safe to call repeatedly and concurrently with in-flight handshake
        steps. Returns once the session has emitted ``Terminated``.
        """
        first_request = not self._stop_requested
        self._stop_requested = True

        task = self._task
        if task is not None:
            if first_request and not task.done() and not self._closing:
                logger.debug("Stop requested, cancelling session task")
                task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        # A task cancelled before its first step never reaches its finally
        await self._release()
        self._finish(None)

    async def next_event(self) -> SessionEvent:
        """Wait for the next session event."""
        return await self._events.get()

    async def events(self) -> AsyncIterator[SessionEvent]:
        """Yield session events up to and including ``Terminated``."""
        while True:
            event = await self._events.get()
            yield event
            if isinstance(event, Terminated):
                return

    async def _run(self, identity: DeviceIdentity) -> None:
        error: Optional[MonitorError] = None
        try:
            await self._handshake(identity)
            await self._peer_gone.wait()
            error = PeerDisconnected("Disconnected.")
        except MonitorError as e:
            error = e
        except Exception as e:
            logger.exception("Link session crashed")
            error = MonitorError(f"Unexpected error: {e}")
        finally:
            self._closing = True
            await self._release()
            self._finish(error)

    async def _handshake(self, identity: DeviceIdentity) -> None:
        self._emit_status(f"Connecting to {identity}...")
        self._link = self._adapter.open_link(identity.address)

        await self._step(
            self._link.connect(self._on_disconnect), ConnectFailed, "Connect"
        )
        self._transition(ConnectionState.SERVICES_DISCOVERING)
        self._emit_status("Connected. Discovering services...")

        services = await self._step(
            self._link.discover_services(),
            ServiceOrCharacteristicMissing,
            "Service discovery",
        )
        self._require_characteristic(services)
        self._transition(ConnectionState.SUBSCRIBING)
        self._emit_status("Subscribing to bike data...")

        await self._step(
            self._link.enable_notifications(
                self._decoder.characteristic, self._on_notification
            ),
            SubscriptionFailed,
            "Subscription",
        )
        self._transition(ConnectionState.STREAMING)
        self._streamed = True
        self._emit_status("Connected")

    async def _step(
        self, awaitable: Awaitable[T], error_cls: Type[MonitorError], what: str
    ) -> T:
        try:
            result = await asyncio.wait_for(awaitable, self._step_timeout)
        except asyncio.TimeoutError as e:
            # With no step timeout the link itself gave up
            if self._step_timeout is None:
                raise error_cls(f"{what} timed out: {str(e) or 'no response'}") from e
            raise error_cls(f"{what} timed out after {self._step_timeout:g}s.") from e

        # wait_for may return a result even though the task was cancelled
        if self._stop_requested:
            raise asyncio.CancelledError()
        if self._peer_gone.is_set():
            raise PeerDisconnected(f"Disconnected during {what.lower()}.")
        return result

    def _require_characteristic(self, services: ServiceMap) -> None:
        normalized = {
            service.lower(): {char.lower() for char in chars}
            for service, chars in services.items()
        }
        chars = normalized.get(FTMS_SERVICE_UUID)
        if chars is None:
            raise ServiceOrCharacteristicMissing("FTMS Service not found.")
        if self._decoder.characteristic.lower() not in chars:
            raise ServiceOrCharacteristicMissing(
                "Service found, but characteristic not found."
            )
        logger.debug("FTMS service and bike data characteristic found")

    def _on_disconnect(self) -> None:
        if self._state.is_terminal or self._closing:
            return
        logger.info(f"Peer disconnected in state {self._state.name}")
        self._peer_gone.set()

    def _on_notification(self, characteristic: str, data: bytes) -> None:
        if self._state is not ConnectionState.STREAMING:
            logger.debug(f"Dropping notification in state {self._state.name}")
            return

        try:
            reading = self._decoder.decode(characteristic, data)
        except DecodeError as e:
            logger.warning(f"Malformed frame {bytes(data).hex()}: {e}")
            self._emit_status(f"Malformed frame: {e}")
            return

        if reading is None:
            return
        if not reading.has_data:
            logger.debug(f"Frame without cadence or power, flags {bytes(data[:2]).hex()}")
        self._events.put_nowait(ReadingReceived(reading))

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True

        link, self._link = self._link, None
        if link is not None:
            logger.debug("Releasing link")
            await link.close()

    def _finish(self, error: Optional[MonitorError]) -> None:
        if self._terminated:
            return
        self._terminated = True

        if error is None:
            state, reason = ConnectionState.DISCONNECTED, REQUESTED
        elif (
            isinstance(error, PeerDisconnected)
            and self._state is ConnectionState.STREAMING
        ):
            state, reason = ConnectionState.DISCONNECTED, str(error)
        else:
            state, reason = ConnectionState.FAILED, str(error)

        self._transition(state)
        self._reason = reason
        self._error = error

        if error is None:
            logger.info("Session stopped")
        elif state is ConnectionState.FAILED:
            logger.error(f"Session failed: {reason}")
        else:
            logger.warning(f"Session ended: {reason}")

        self._events.put_nowait(
            Terminated(
                reason=reason,
                error=error,
                requested=error is None,
                streamed=self._streamed,
            )
        )

    def _transition(self, new: ConnectionState) -> None:
        if new not in _TRANSITIONS[self._state]:
            raise InvalidTransition(f"{self._state.name} -> {new.name}")
        logger.debug(f"Session state {self._state.name} -> {new.name}")
        self._state = new

    def _emit_status(self, text: str) -> None:
        logger.info(text)
        self._events.put_nowait(StatusChanged(text))
