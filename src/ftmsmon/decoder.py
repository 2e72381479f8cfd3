"""
Decoder for the FTMS Indoor Bike Data characteristic.

A frame starts with a little-endian 16-bit flags word. Each recognized flag
bit announces a little-endian signed 16-bit field; fields whose bit is clear
are absent from the byte stream, so the offset is tracked incrementally.
"""

import struct
from dataclasses import dataclass
from typing import Optional, Protocol

from .core import INDOOR_BIKE_DATA_UUID, uuid_matches
from .errors import TruncatedFrame

FLAGS_SIZE = 2
FIELD_SIZE = 2

CADENCE_FLAG_BIT = 2
POWER_FLAG_BIT = 6

# (flag bit, Reading attribute, divisor) in stream order
_FIELDS = (
    (CADENCE_FLAG_BIT, "cadence", 100.0),
    (POWER_FLAG_BIT, "power", 2.0),
)


@dataclass(frozen=True)
class Reading:
    """One decoded frame. ``None`` means the device did not report a value."""

    cadence: Optional[float] = None
    power: Optional[float] = None

    @property
    def has_data(self) -> bool:
        """True if at least one field was present in the frame."""
        return self.cadence is not None or self.power is not None


class TelemetryDecoder(Protocol):
    """Interface the link session decodes notifications through."""

    characteristic: str

    def decode(self, characteristic_id: str, data: bytes) -> Optional[Reading]:
        ...


def decode(characteristic_id: str, data: bytes) -> Optional[Reading]:
    """Decode an Indoor Bike Data frame.

    Args:
        characteristic_id: UUID of the characteristic that sent ``data``
        data: Raw notification payload

    Returns:
        Reading, or None if ``characteristic_id`` is not Indoor Bike Data

    Raises:
        TruncatedFrame: If the flags word or an announced field is cut short
    """
    if not uuid_matches(characteristic_id, INDOOR_BIKE_DATA_UUID):
        return None

    data = bytes(data)
    if len(data) < FLAGS_SIZE:
        raise TruncatedFrame(len(data), 0)

    (flags,) = struct.unpack_from("<H", data, 0)
    offset = FLAGS_SIZE
    values: dict[str, float] = {}

    # Only the two recognized bits advance the offset. Any other set bit
    # below bit 6 would shift the power field in a fuller FTMS decoder.
    for bit, name, divisor in _FIELDS:
        if not flags & (1 << bit):
            continue
        if offset + FIELD_SIZE > len(data):
            raise TruncatedFrame(len(data), offset, bit)
        (raw,) = struct.unpack_from("<h", data, offset)
        values[name] = raw / divisor
        offset += FIELD_SIZE

    return Reading(**values)


class IndoorBikeDataDecoder:
    """Default decoder: cadence (bit 2) and power (bit 6) only."""

    characteristic = INDOOR_BIKE_DATA_UUID

    def decode(self, characteristic_id: str, data: bytes) -> Optional[Reading]:
        return decode(characteristic_id, data)
