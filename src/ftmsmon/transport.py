"""
Radio link abstraction and its bleak implementation.

A ``RadioAdapter`` reports whether the local Bluetooth adapter is usable and
opens ``RadioLink`` handles; a ``RadioLink`` is one connection attempt to one
peer. Link callbacks are always delivered on the event loop that called
``connect()``.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Set

from bleak import BleakClient, BleakScanner
from bleak.exc import (
    BleakBluetoothNotAvailableError,
    BleakDeviceNotFoundError,
    BleakError,
)

from .core import CCCD_UUID
from .errors import (
    ConnectFailed,
    PeerNotReachable,
    ServiceOrCharacteristicMissing,
    SubscriptionFailed,
)

logger = logging.getLogger(__name__)

DisconnectCallback = Callable[[], None]
NotifyCallback = Callable[[str, bytes], None]

# service UUID -> characteristic UUIDs, all lower case
ServiceMap = Dict[str, Set[str]]


class RadioLink(ABC):
    """One connection to one peer. ``close()`` must be idempotent."""

    @abstractmethod
    async def connect(self, on_disconnect: DisconnectCallback) -> None:
        """Connect to the peer.

        Raises:
            ConnectFailed: If the peer does not accept the connection
        """

    @abstractmethod
    async def discover_services(self) -> ServiceMap:
        """Return the peer's services and their characteristics.

        Raises:
            ServiceOrCharacteristicMissing: If discovery itself fails
        """

    @abstractmethod
    async def enable_notifications(
        self, characteristic: str, callback: NotifyCallback
    ) -> None:
        """Write the CCCD of ``characteristic`` and route notifications.

        Raises:
            SubscriptionFailed: If notifications cannot be enabled
        """

    @abstractmethod
    async def close(self) -> None:
        """Release the connection handle."""


class RadioAdapter(ABC):
    """Local radio: adapter state plus a factory for links."""

    @abstractmethod
    async def is_enabled(self) -> bool:
        """Check if the adapter is powered and usable."""

    @abstractmethod
    def open_link(self, address: str) -> RadioLink:
        """Create an unconnected link to ``address``."""


class BleakLink(RadioLink):
    """RadioLink backed by a ``BleakClient``."""

    def __init__(self, address: str, connect_timeout: float = 10.0) -> None:
        self.address = address
        self._connect_timeout = connect_timeout
        self._client: Optional[BleakClient] = None

    @property
    def is_connected(self) -> bool:
        """Check if the underlying client is connected."""
        return self._client is not None and self._client.is_connected

    async def connect(self, on_disconnect: DisconnectCallback) -> None:
        loop = asyncio.get_running_loop()

        def _disconnected(_client: BleakClient) -> None:
            loop.call_soon_threadsafe(on_disconnect)

        self._client = BleakClient(
            self.address,
            disconnected_callback=_disconnected,
            timeout=self._connect_timeout,
        )

        logger.debug(f"Connecting to {self.address} (timeout={self._connect_timeout}s)")
        try:
            await self._client.connect()
        except BleakDeviceNotFoundError as e:
            raise PeerNotReachable(f"Device {self.address} not found") from e
        except (BleakError, OSError, asyncio.TimeoutError) as e:
            raise ConnectFailed(f"Connection failed: {e}") from e

        if not self._client.is_connected:
            raise ConnectFailed("Connection failed - client reports not connected")

    async def discover_services(self) -> ServiceMap:
        if self._client is None:
            raise ServiceOrCharacteristicMissing("Service discovery failed: not connected")

        try:
            services = self._client.services
            found: ServiceMap = {}
            for service in services:
                found[service.uuid.lower()] = {
                    char.uuid.lower() for char in service.characteristics
                }
                logger.debug(f"  Found service: {service.uuid}")
        except BleakError as e:
            raise ServiceOrCharacteristicMissing(f"Service discovery failed: {e}") from e

        logger.debug(f"Total services found: {len(found)}")
        return found

    async def enable_notifications(
        self, characteristic: str, callback: NotifyCallback
    ) -> None:
        if self._client is None:
            raise SubscriptionFailed("Subscription failed: not connected")

        try:
            char = self._client.services.get_characteristic(characteristic)
        except BleakError as e:
            raise SubscriptionFailed(f"Subscription failed: {e}") from e
        if char is None:
            raise SubscriptionFailed(f"Subscription failed: {characteristic} not found")
        if "notify" not in char.properties:
            raise SubscriptionFailed("Subscription failed: characteristic does not notify")
        if char.get_descriptor(CCCD_UUID) is None:
            # CoreBluetooth does not expose the CCCD
            logger.debug(f"No CCCD listed for {characteristic}, relying on start_notify")

        loop = asyncio.get_running_loop()

        def _notified(_sender, data: bytearray) -> None:
            loop.call_soon_threadsafe(callback, characteristic, bytes(data))

        try:
            # start_notify writes the CCCD on every bleak backend
            await self._client.start_notify(characteristic, _notified)
        except (BleakError, OSError, ValueError) as e:
            raise SubscriptionFailed(f"Subscription failed: {e}") from e

    async def close(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return

        try:
            await client.disconnect()
        except Exception as e:
            logger.warning(f"Disconnect failed: {e}")


class BleakAdapter(RadioAdapter):
    """RadioAdapter for the host Bluetooth stack via bleak."""

    def __init__(self, connect_timeout: float = 10.0) -> None:
        self._connect_timeout = connect_timeout

    async def is_enabled(self) -> bool:
        """Probe the adapter with a short scan.

        Only bleak's "Bluetooth not available" error counts as disabled.
        Other probe errors (a busy BlueZ adapter, a D-Bus hiccup) are left
        for the connect attempt to hit, so they go through the retry path.
        """
        scanner = BleakScanner()
        try:
            await scanner.start()
        except BleakBluetoothNotAvailableError as e:
            logger.warning(f"Bluetooth adapter unavailable ({e.reason.name}): {e}")
            return False
        except (BleakError, OSError) as e:
            logger.warning(f"Adapter probe failed, trying to connect anyway: {e}")
            return True

        try:
            await scanner.stop()
        except (BleakError, OSError) as e:
            logger.debug(f"Stopping adapter probe failed: {e}")
        return True

    def open_link(self, address: str) -> RadioLink:
        return BleakLink(address, connect_timeout=self._connect_timeout)
