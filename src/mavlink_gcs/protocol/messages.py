"""Message catalog: ids, CRC extra seeds and minimum payload lengths.

Only the subset of the MAVLink common dialect this client handles is
listed. The CRC extra values are protocol constants derived from each
message's field layout; a frame whose id is missing here cannot be
checksummed and is dropped.
"""

from __future__ import annotations

from enum import IntEnum


class MessageId(IntEnum):
    """MAVLink message identifiers."""

    HEARTBEAT = 0
    SYS_STATUS = 1
    GPS_RAW_INT = 24
    ATTITUDE = 30
    GLOBAL_POSITION_INT = 33
    VFR_HUD = 74
    COMMAND_LONG = 76


CRC_EXTRA: dict[int, int] = {
    MessageId.HEARTBEAT: 50,
    MessageId.SYS_STATUS: 124,
    MessageId.GPS_RAW_INT: 24,
    MessageId.ATTITUDE: 39,
    MessageId.GLOBAL_POSITION_INT: 104,
    MessageId.VFR_HUD: 20,
    MessageId.COMMAND_LONG: 152,
}

# Shortest payload each decoder accepts
MIN_PAYLOAD_LENGTH: dict[int, int] = {
    MessageId.HEARTBEAT: 9,
    MessageId.SYS_STATUS: 31,
    MessageId.GPS_RAW_INT: 30,
    MessageId.ATTITUDE: 28,
    MessageId.GLOBAL_POSITION_INT: 28,
    MessageId.VFR_HUD: 20,
    MessageId.COMMAND_LONG: 33,
}


def crc_extra(message_id: int) -> int | None:
    """Return the CRC extra seed for ``message_id``, or None if unknown."""
    return CRC_EXTRA.get(message_id)
