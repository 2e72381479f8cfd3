"""
ftmsmon - FTMS Indoor Bike Monitor

Keeps a Bluetooth connection to an FTMS indoor bike alive and streams its
cadence and power readings to a display.
"""

__version__ = "0.1.0"
__description__ = "Live cadence and power monitor for FTMS indoor bikes"

from .controller import MonitorController
from .core import DeviceIdentity
from .decoder import IndoorBikeDataDecoder, Reading, decode
from .display import DisplayManager
from .session import ConnectionState, LinkSession
from .supervisor import BackoffRetry, ImmediateRetry, ReconnectSupervisor

__all__ = [
    "BackoffRetry",
    "ConnectionState",
    "DeviceIdentity",
    "DisplayManager",
    "ImmediateRetry",
    "IndoorBikeDataDecoder",
    "LinkSession",
    "MonitorController",
    "Reading",
    "ReconnectSupervisor",
    "decode",
]
