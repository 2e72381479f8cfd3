"""
Core constants and identity types for FTMS bike monitoring.
"""

from dataclasses import dataclass
from typing import Optional

# FTMS (Fitness Machine Service) and the Indoor Bike Data characteristic
FTMS_SERVICE_UUID = "00001826-0000-1000-8000-00805f9b34fb"
INDOOR_BIKE_DATA_UUID = "00002ad2-0000-1000-8000-00805f9b34fb"

# Client Characteristic Configuration Descriptor (enables notifications)
CCCD_UUID = "00002902-0000-1000-8000-00805f9b34fb"

# Fallback peer when neither the command line nor the config names one
DEFAULT_DEVICE_ADDRESS = "FE:E8:C4:2B:4D:9A"

# Per-step handshake timeout in seconds (None waits for the radio stack)
DEFAULT_STEP_TIMEOUT = 30.0

# Application metadata
__version__ = "0.1.0"
__description__ = "Live cadence and power monitor for FTMS indoor bikes"


def uuid_matches(left: str, right: str) -> bool:
    """Compare two UUID strings ignoring case."""
    return left.lower() == right.lower()


@dataclass(frozen=True)
class DeviceIdentity:
    """The single peripheral a monitor targets."""

    address: str
    name: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.address or not self.address.strip():
            raise ValueError("Device address must not be empty")

    def __str__(self) -> str:
        if self.name:
            return f"{self.name} ({self.address})"
        return self.address
