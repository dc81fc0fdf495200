"""MAVLink v1 frame builder, checksum validation and streaming parser.

Frame layout::

    +------+---------+-----+--------+---------+--------+------------------+--------+--------+
    | STX  | Length  | Seq | Sys ID | Comp ID | Msg ID |     Payload      | CRC lo | CRC hi |
    | 0xFE | 1 byte  | 1 B | 1 byte | 1 byte  | 1 byte | 0-255 bytes      | 1 byte | 1 byte |
    +------+---------+-----+--------+---------+--------+------------------+--------+--------+

- Length: number of payload bytes
- Checksum: X.25 CRC-16 over (length .. end of payload) followed by the
  per-message CRC extra byte, little-endian on the wire

Transports deliver bytes in arbitrary chunks. :class:`FrameParser`
counts its way through header, payload and checksum one byte at a time,
so a 0xFE inside a payload is never taken for the start of a new frame.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..utils.crc import CRC_INIT, crc16, crc_accumulate
from .messages import crc_extra

logger = logging.getLogger(__name__)

STX = 0xFE
HEADER_LEN = 6
CRC_LEN = 2
MAX_PAYLOAD_LEN = 255
MAX_FRAME_LEN = HEADER_LEN + MAX_PAYLOAD_LEN + CRC_LEN

GCS_SYSTEM_ID = 255
GCS_COMPONENT_ID = 0


@dataclass
class Frame:
    """A complete, checksum-verified protocol frame."""

    sequence: int
    system_id: int
    component_id: int
    message_id: int
    payload: bytes
    crc: int = 0

    @property
    def payload_len(self) -> int:
        return len(self.payload)

    def to_bytes(self) -> bytes:
        """Serialize back to wire format using the stored checksum."""
        header = bytes([
            STX, len(self.payload), self.sequence,
            self.system_id, self.component_id, self.message_id,
        ])
        return header + self.payload + self.crc.to_bytes(2, "little")

    def __repr__(self) -> str:
        return (
            f"Frame(msg_id={self.message_id}, seq={self.sequence}, "
            f"sys={self.system_id}, comp={self.component_id}, "
            f"payload={self.payload.hex(' ') if self.payload else '(empty)'})"
        )


def frame_crc(body: bytes, message_id: int) -> int | None:
    """Compute the checksum for a frame body.

    Args:
        body: Bytes from the length field through the end of the payload
            (the STX marker and trailing checksum excluded).
        message_id: Message id selecting the CRC extra seed.

    Returns:
        The 16-bit checksum, or None if the message id is not in the
        catalog.
    """
    extra = crc_extra(message_id)
    if extra is None:
        return None
    return crc_accumulate(extra, crc16(body, CRC_INIT))


def validate_frame(data: bytes) -> bool:
    """Check the trailing checksum of a fully buffered frame.

    A mismatch only means the frame should be discarded.
    """
    if len(data) < HEADER_LEN + CRC_LEN or data[0] != STX:
        return False
    payload_len = data[1]
    expected_len = HEADER_LEN + payload_len + CRC_LEN
    if len(data) != expected_len:
        return False

    crc = frame_crc(data[1 : HEADER_LEN + payload_len], data[5])
    if crc is None:
        return False
    return (
        data[expected_len - 2] == crc & 0xFF
        and data[expected_len - 1] == (crc >> 8) & 0xFF
    )


def build_frame(
    message_id: int,
    payload: bytes,
    sequence: int,
    system_id: int = GCS_SYSTEM_ID,
    component_id: int = GCS_COMPONENT_ID,
) -> bytes:
    """Wrap a payload into a complete frame with header and checksum.

    Args:
        message_id: Catalog message id (must have a CRC extra).
        payload: Encoded message payload, at most 255 bytes.
        sequence: Outgoing sequence number 0-255.
        system_id: Sender system id (255 identifies a ground station).
        component_id: Sender component id.

    Returns:
        The frame bytes ready to hand to a transport.
    """
    if len(payload) > MAX_PAYLOAD_LEN:
        raise ValueError(
            f"Payload must be at most {MAX_PAYLOAD_LEN} bytes, got {len(payload)}"
        )
    if not 0 <= sequence <= 255:
        raise ValueError(f"Sequence must be 0-255, got {sequence}")

    body = bytes([len(payload), sequence, system_id, component_id, message_id]) + payload
    crc = frame_crc(body, message_id)
    if crc is None:
        raise ValueError(f"No CRC extra known for message id {message_id}")
    return bytes([STX]) + body + crc.to_bytes(2, "little")


def parse_frame(data: bytes) -> Frame | None:
    """Parse one complete frame.

    Returns:
        A ``Frame`` if ``data`` is exactly one frame with a valid
        checksum, else ``None``.
    """
    if not validate_frame(data):
        return None
    payload_len = data[1]
    return Frame(
        sequence=data[2],
        system_id=data[3],
        component_id=data[4],
        message_id=data[5],
        payload=bytes(data[HEADER_LEN : HEADER_LEN + payload_len]),
        crc=int.from_bytes(data[-2:], "little"),
    )


class ParseState(Enum):
    WAITING_FOR_STX = "waiting_for_stx"
    READING_HEADER = "reading_header"
    READING_PAYLOAD = "reading_payload"
    READING_CRC = "reading_crc"


class FrameParser:
    """Extracts frames from an arbitrarily chunked byte stream.

    Usage::

        parser = FrameParser(on_frame=handle)
        parser.feed(chunk)   # any number of times, any chunk size

    ``feed`` returns the frames completed by that chunk as well as
    calling ``on_frame`` for each. Frames failing the checksum go to
    ``on_reject`` (with their message id) and are otherwise dropped.
    """

    def __init__(
        self,
        on_frame: Optional[Callable[[Frame], None]] = None,
        on_reject: Optional[Callable[[int], None]] = None,
    ) -> None:
        self._on_frame = on_frame
        self._on_reject = on_reject
        self._buffer = bytearray(MAX_FRAME_LEN)
        self._index = 0
        self._expected_length = 0
        self._state = ParseState.WAITING_FOR_STX
        self.frames_received = 0
        self.crc_errors = 0

    @property
    def state(self) -> ParseState:
        return self._state

    def reset(self) -> None:
        """Drop any partially buffered frame and wait for the next STX."""
        self._index = 0
        self._expected_length = 0
        self._state = ParseState.WAITING_FOR_STX

    def feed(self, data: bytes) -> list[Frame]:
        """Consume a chunk of raw bytes."""
        frames: list[Frame] = []
        for byte in data:
            frame = self.process_byte(byte)
            if frame is not None:
                frames.append(frame)
        return frames

    def process_byte(self, byte: int) -> Frame | None:
        """Advance the state machine by one byte.

        Returns:
            The completed frame if this byte finished a valid one.
        """
        state = self._state

        if state is ParseState.WAITING_FOR_STX:
            if byte == STX:
                self._buffer[0] = byte
                self._index = 1
                self._state = ParseState.READING_HEADER
            return None

        self._buffer[self._index] = byte
        self._index += 1

        if state is ParseState.READING_HEADER:
            if self._index >= HEADER_LEN:
                payload_len = self._buffer[1]
                self._expected_length = HEADER_LEN + payload_len + CRC_LEN
                self._state = (
                    ParseState.READING_PAYLOAD if payload_len > 0
                    else ParseState.READING_CRC
                )
        elif state is ParseState.READING_PAYLOAD:
            if self._index >= self._expected_length - CRC_LEN:
                self._state = ParseState.READING_CRC
        elif state is ParseState.READING_CRC:
            if self._index >= self._expected_length:
                data = bytes(self._buffer[: self._expected_length])
                self.reset()
                return self._complete(data)
        return None

    def _complete(self, data: bytes) -> Frame | None:
        frame = parse_frame(data)
        if frame is None:
            self.crc_errors += 1
            logger.debug("Dropping frame msg_id=%d: checksum mismatch", data[5])
            if self._on_reject is not None:
                self._on_reject(data[5])
            return None

        self.frames_received += 1
        if self._on_frame is not None:
            self._on_frame(frame)
        return frame
