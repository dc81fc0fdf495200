"""X.25 CRC-16 as used by MAVLink (CRC-16/MCRF4XX).

The checksum is accumulated one byte at a time starting from ``0xFFFF``
with no final XOR. MAVLink appends one extra byte per message id (the
"CRC extra") after the payload, see :mod:`mavlink_gcs.protocol.messages`.
"""

from __future__ import annotations

CRC_INIT = 0xFFFF


def crc_accumulate(byte: int, crc: int = CRC_INIT) -> int:
    """Mix a single byte into a running checksum and return the new value."""
    tmp = (byte ^ crc) & 0xFF
    tmp = (tmp ^ (tmp << 4)) & 0xFF
    return ((crc >> 8) ^ (tmp << 8) ^ (tmp << 3) ^ (tmp >> 4)) & 0xFFFF


def crc16(data: bytes, crc: int = CRC_INIT) -> int:
    """Accumulate every byte of ``data`` into ``crc``."""
    for byte in data:
        crc = crc_accumulate(byte, crc)
    return crc
