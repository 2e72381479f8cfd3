"""
Error taxonomy for the monitor.

Every failure a link session can end with maps to one of these classes;
the supervisor treats all of them alike except ``AdapterDisabled``.
"""

from typing import Optional


class MonitorError(Exception):
    """Base class for monitor failures."""


class AdapterDisabled(MonitorError):
    """The local Bluetooth adapter is off or missing."""


class ConnectFailed(MonitorError):
    """The peer refused or never acknowledged the connection."""


class PeerNotReachable(ConnectFailed):
    """The peer could not be found on the radio link."""


class ServiceOrCharacteristicMissing(MonitorError):
    """FTMS service or Indoor Bike Data characteristic not available."""


class SubscriptionFailed(MonitorError):
    """Enabling notifications (CCCD write) failed."""


class PeerDisconnected(MonitorError):
    """The peer dropped the link."""


class DecodeError(MonitorError):
    """A telemetry frame could not be decoded."""


class TruncatedFrame(DecodeError):
    """A flag announced a field the frame is too short to hold."""

    def __init__(
        self, length: int, offset: int, flag_bit: Optional[int] = None
    ) -> None:
        self.length = length
        self.offset = offset
        self.flag_bit = flag_bit
        if flag_bit is None:
            message = f"frame of {length} byte(s) has no flags word"
        else:
            message = (
                f"flag bit {flag_bit} set but frame of {length} byte(s) "
                f"ends before offset {offset + 2}"
            )
        super().__init__(message)
