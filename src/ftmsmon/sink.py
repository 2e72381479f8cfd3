"""
Presentation sink interface.

The supervisor reports human-readable status and decoded readings to a
``MonitorSink``. Sinks bound to a specific event loop (a UI loop running in
another thread, for instance) are wrapped in ``LoopSink`` so every call is
handed off to that loop instead of running on the radio side.
"""

import asyncio
from typing import Optional, Protocol


class MonitorSink(Protocol):
    """Receiver of status text and readings."""

    def on_status(self, text: str) -> None:
        ...

    def on_reading(self, cadence: Optional[float], power: Optional[float]) -> None:
        ...


class LoopSink:
    """Forward sink calls onto ``loop`` without waiting for them."""

    def __init__(self, sink: MonitorSink, loop: asyncio.AbstractEventLoop) -> None:
        self._sink = sink
        self._loop = loop

    def on_status(self, text: str) -> None:
        self._loop.call_soon_threadsafe(self._sink.on_status, text)

    def on_reading(self, cadence: Optional[float], power: Optional[float]) -> None:
        self._loop.call_soon_threadsafe(self._sink.on_reading, cadence, power)
