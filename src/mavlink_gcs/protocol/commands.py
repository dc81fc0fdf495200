"""COMMAND_LONG encoding and high-level command builders.

COMMAND_LONG payload (33 bytes, little-endian)::

    +--------------------+---------+------------+---------------+--------------+
    | param1 .. param7   | command | target sys | target comp   | confirmation |
    | 7 x float32        | uint16  | uint8      | uint8         | uint8 (0)    |
    +--------------------+---------+------------+---------------+--------------+
"""

from __future__ import annotations

import struct
import threading
from enum import IntEnum

from .framing import build_frame
from .messages import MessageId

COMMAND_LONG_FORMAT = "<7fHBBB"
COMMAND_LONG_LEN = struct.calcsize(COMMAND_LONG_FORMAT)  # 33

DEFAULT_TAKEOFF_ALTITUDE = 10.0


class MavCommand(IntEnum):
    """Command ids carried inside COMMAND_LONG."""

    NAV_RETURN_TO_LAUNCH = 20
    NAV_TAKEOFF = 22
    COMPONENT_ARM_DISARM = 400


class SequenceCounter:
    """Outgoing frame sequence number, wrapping at 256."""

    def __init__(self, start: int = 0) -> None:
        self._next = start & 0xFF
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            value = self._next
            self._next = (self._next + 1) & 0xFF
            return value


def encode_command_long(
    command: int,
    params: tuple[float, ...] | list[float] = (),
    target_system: int = 0,
    target_component: int = 0,
) -> bytes:
    """Encode a COMMAND_LONG payload.

    Args:
        command: Command id (0-65535).
        params: Up to seven float parameters; missing ones are 0.
        target_system: Vehicle system id.
        target_component: Vehicle component id.
    """
    if len(params) > 7:
        raise ValueError(f"COMMAND_LONG takes at most 7 params, got {len(params)}")
    if not 0 <= command <= 0xFFFF:
        raise ValueError(f"Command id must be 0-65535, got {command}")
    if not 0 <= target_system <= 255 or not 0 <= target_component <= 255:
        raise ValueError("Target system and component ids must be 0-255")

    padded = [float(p) for p in params] + [0.0] * (7 - len(params))
    return struct.pack(
        COMMAND_LONG_FORMAT, *padded, command, target_system, target_component, 0
    )


def build_command_long(
    command: int,
    param1: float = 0.0,
    param2: float = 0.0,
    param3: float = 0.0,
    param4: float = 0.0,
    param5: float = 0.0,
    param6: float = 0.0,
    param7: float = 0.0,
    target_system: int = 0,
    target_component: int = 0,
    sequence: int = 0,
) -> bytes:
    """Build a complete COMMAND_LONG frame from the ground station identity."""
    payload = encode_command_long(
        command,
        (param1, param2, param3, param4, param5, param6, param7),
        target_system,
        target_component,
    )
    return build_frame(MessageId.COMMAND_LONG, payload, sequence)


def build_arm_disarm(
    arm: bool, target_system: int = 0, target_component: int = 0, sequence: int = 0
) -> bytes:
    """Build an arm (param1 = 1) or disarm (param1 = 0) command."""
    return build_command_long(
        MavCommand.COMPONENT_ARM_DISARM,
        param1=1.0 if arm else 0.0,
        target_system=target_system,
        target_component=target_component,
        sequence=sequence,
    )


def build_takeoff(
    altitude: float = DEFAULT_TAKEOFF_ALTITUDE,
    target_system: int = 0,
    target_component: int = 0,
    sequence: int = 0,
) -> bytes:
    """Build a takeoff command; the target altitude goes in param7."""
    return build_command_long(
        MavCommand.NAV_TAKEOFF,
        param7=altitude,
        target_system=target_system,
        target_component=target_component,
        sequence=sequence,
    )


def build_return_to_launch(
    target_system: int = 0, target_component: int = 0, sequence: int = 0
) -> bytes:
    """Build a return-to-launch command (all params zero)."""
    return build_command_long(
        MavCommand.NAV_RETURN_TO_LAUNCH,
        target_system=target_system,
        target_component=target_component,
        sequence=sequence,
    )
