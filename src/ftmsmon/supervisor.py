"""
Reconnect supervisor.

Keeps exactly one link session alive for a device: every time a session
terminates, a fresh one is started according to a retry policy. The only
condition that stops it on its own is a disabled Bluetooth adapter, which
needs the operator to act.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from .core import DEFAULT_STEP_TIMEOUT, DeviceIdentity
from .decoder import TelemetryDecoder
from .errors import PeerDisconnected
from .session import LinkSession, ReadingReceived, StatusChanged, Terminated
from .sink import MonitorSink
from .transport import RadioAdapter

logger = logging.getLogger(__name__)

ADAPTER_DISABLED_MESSAGE = "Please turn on Bluetooth."


class RetryPolicy(ABC):
    """Decides how long to wait before the next session."""

    @abstractmethod
    def next_delay(self, failures: int) -> Optional[float]:
        """Delay before the next attempt.

        Args:
            failures: Consecutive sessions that ended without streaming

        Returns:
            Seconds to wait, or None to stop retrying
        """


class ImmediateRetry(RetryPolicy):
    """Reconnect at once, forever."""

    def next_delay(self, failures: int) -> Optional[float]:
        return 0.0

    def __repr__(self) -> str:
        return "ImmediateRetry()"


class BackoffRetry(RetryPolicy):
    """Exponential backoff with an optional attempt limit."""

    def __init__(
        self,
        initial: float = 1.0,
        factor: float = 2.0,
        max_delay: float = 30.0,
        max_attempts: Optional[int] = None,
    ) -> None:
        if initial < 0 or max_delay < 0:
            raise ValueError("Retry delays must not be negative")
        if factor < 1.0:
            raise ValueError("Backoff factor must be at least 1.0")
        if max_attempts is not None and max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.initial = initial
        self.factor = factor
        self.max_delay = max_delay
        self.max_attempts = max_attempts

    def next_delay(self, failures: int) -> Optional[float]:
        if self.max_attempts is not None and failures >= self.max_attempts:
            return None
        if failures <= 0:
            return 0.0
        return min(self.initial * self.factor ** (failures - 1), self.max_delay)

    def __repr__(self) -> str:
        return (
            f"BackoffRetry(initial={self.initial}, factor={self.factor}, "
            f"max_delay={self.max_delay}, max_attempts={self.max_attempts})"
        )


class ReconnectSupervisor:
    """Runs link sessions back to back for one device."""

    def __init__(
        self,
        adapter: RadioAdapter,
        retry_policy: Optional[RetryPolicy] = None,
        step_timeout: Optional[float] = DEFAULT_STEP_TIMEOUT,
        decoder_factory: Optional[Callable[[], TelemetryDecoder]] = None,
    ) -> None:
        """Initialize supervisor.

        Args:
            adapter: Radio used for the adapter check and for every session
            retry_policy: Delay strategy between sessions (immediate by default)
            step_timeout: Per-step handshake timeout handed to each session
            decoder_factory: Builds the decoder for each session
        """
        self._adapter = adapter
        self.retry_policy = retry_policy or ImmediateRetry()
        self._step_timeout = step_timeout
        self._decoder_factory = decoder_factory

        self._session: Optional[LinkSession] = None
        self.sessions_started = 0
        self.consecutive_failures = 0

    @property
    def current_session(self) -> Optional[LinkSession]:
        """Session currently being supervised, if any."""
        return self._session

    def _new_session(self) -> LinkSession:
        decoder = self._decoder_factory() if self._decoder_factory else None
        return LinkSession(self._adapter, decoder=decoder, step_timeout=self._step_timeout)

    async def run(self, identity: DeviceIdentity, sink: MonitorSink) -> None:
        """Supervise sessions for ``identity`` until cancelled.

        Returns early only if the adapter is disabled or the retry policy
        gives up; both are reported to ``sink``.
        """
        logger.info(f"Supervising {identity} with {self.retry_policy!r}")

        while True:
            if not await self._adapter.is_enabled():
                logger.error("Bluetooth adapter is disabled, not connecting")
                sink.on_status(ADAPTER_DISABLED_MESSAGE)
                return

            terminated = await self._run_session(identity, sink)
            if terminated.requested:
                logger.info("Session stopped on request, supervisor exiting")
                return

            # A session that streamed ends any run of failures
            if terminated.streamed:
                self.consecutive_failures = 0
            else:
                self.consecutive_failures += 1

            delay = self.retry_policy.next_delay(self.consecutive_failures)
            if delay is None:
                message = f"Giving up after {self.consecutive_failures} failed attempt(s)."
                logger.error(message)
                sink.on_status(message)
                return

            if isinstance(terminated.error, PeerDisconnected):
                sink.on_status(f"{terminated.reason} Reconnecting...")
            else:
                sink.on_status(f"{terminated.reason} Retrying...")

            if delay > 0:
                logger.info(f"Reconnecting in {delay:.1f}s")
                await asyncio.sleep(delay)

    async def _run_session(self, identity: DeviceIdentity, sink: MonitorSink) -> Terminated:
        session = self._new_session()
        self._session = session
        self.sessions_started += 1
        logger.debug(f"Starting session #{self.sessions_started}")

        try:
            session.start(identity)
            async for event in session.events():
                if isinstance(event, StatusChanged):
                    sink.on_status(event.text)
                elif isinstance(event, ReadingReceived):
                    sink.on_reading(event.reading.cadence, event.reading.power)
                elif isinstance(event, Terminated):
                    return event
        finally:
            # Also reached on cancellation; the link must not outlive us
            await session.stop()
            self._session = None

        # events() always ends with Terminated
        raise RuntimeError("Session ended without a Terminated event")
