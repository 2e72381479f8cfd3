"""Shared fixtures: in-memory radio adapter and links."""

import asyncio
from typing import Optional

import pytest

from ftmsmon.core import FTMS_SERVICE_UUID, INDOOR_BIKE_DATA_UUID
from ftmsmon.errors import MonitorError
from ftmsmon.transport import RadioAdapter, RadioLink

TEST_ADDRESS = "FE:E8:C4:2B:4D:9A"


def default_services() -> dict:
    return {FTMS_SERVICE_UUID: {INDOOR_BIKE_DATA_UUID}}


class FakeLink(RadioLink):
    """Scriptable stand-in for a BLE connection."""

    def __init__(
        self,
        connect_error: Optional[MonitorError] = None,
        discover_error: Optional[MonitorError] = None,
        subscribe_error: Optional[MonitorError] = None,
        services: Optional[dict] = None,
        block_connect: bool = False,
        drop_on_connect: bool = False,
    ) -> None:
        self.connect_error = connect_error
        self.discover_error = discover_error
        self.subscribe_error = subscribe_error
        self.services = default_services() if services is None else services
        self.block_connect = block_connect
        self.drop_on_connect = drop_on_connect

        self.address: Optional[str] = None
        self.connected = False
        self.close_calls = 0
        self.subscribed_to: Optional[str] = None
        self.connect_started = asyncio.Event()
        self.release_connect = asyncio.Event()
        self.subscribed = asyncio.Event()
        self._on_disconnect = None
        self._callback = None

    async def connect(self, on_disconnect) -> None:
        self._on_disconnect = on_disconnect
        self.connect_started.set()
        if self.block_connect:
            await self.release_connect.wait()
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True
        if self.drop_on_connect:
            self.drop()

    async def discover_services(self) -> dict:
        if self.discover_error is not None:
            raise self.discover_error
        return self.services

    async def enable_notifications(self, characteristic, callback) -> None:
        if self.subscribe_error is not None:
            raise self.subscribe_error
        self.subscribed_to = characteristic
        self._callback = callback
        self.subscribed.set()

    async def close(self) -> None:
        self.close_calls += 1
        self.connected = False

    def notify(self, data: bytes, characteristic: str = INDOOR_BIKE_DATA_UUID) -> None:
        """Deliver a notification as the radio stack would."""
        self._callback(characteristic, bytes(data))

    def drop(self) -> None:
        """Simulate a peer-initiated disconnect."""
        self.connected = False
        self._on_disconnect()


class FakeAdapter(RadioAdapter):
    """Hands out scripted links, then well-behaved ones."""

    def __init__(self, links=None, enabled=True) -> None:
        self.enabled = enabled
        self.enabled_checks = 0
        self.links: list = []
        self.max_open = 0
        self._scripted = list(links or [])

    @property
    def open_count(self) -> int:
        return sum(1 for link in self.links if link.close_calls == 0)

    async def is_enabled(self) -> bool:
        """Report ``enabled``; a list is consumed one check at a time."""
        self.enabled_checks += 1
        if isinstance(self.enabled, list):
            if len(self.enabled) > 1:
                return self.enabled.pop(0)
            return self.enabled[0]
        return self.enabled

    def open_link(self, address: str) -> RadioLink:
        link = self._scripted.pop(0) if self._scripted else FakeLink()
        link.address = address
        self.links.append(link)
        self.max_open = max(self.max_open, self.open_count)
        return link


class RecordingSink:
    """Sink that keeps everything it receives."""

    def __init__(self) -> None:
        self.statuses: list = []
        self.readings: list = []

    def on_status(self, text: str) -> None:
        self.statuses.append(text)

    def on_reading(self, cadence, power) -> None:
        self.readings.append((cadence, power))


async def _wait_until(predicate, timeout: float = 1.0) -> None:
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(poll(), timeout)


@pytest.fixture
def make_link():
    return FakeLink


@pytest.fixture
def make_adapter():
    return FakeAdapter


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def wait_until():
    return _wait_until


@pytest.fixture
def test_address():
    return TEST_ADDRESS
