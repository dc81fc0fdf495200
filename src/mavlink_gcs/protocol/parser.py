"""Decoders for inbound telemetry messages.

Every field is read little-endian at a fixed offset into the payload.
Payloads shorter than the message's minimum length are rejected by
returning ``None``; nothing here raises on malformed input.
"""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass

from .framing import Frame
from .messages import MIN_PAYLOAD_LENGTH, MessageId

# Flight mode names by base_mode bit, checked in this order
MODE_FLAGS: list[tuple[int, str]] = [
    (0x01, "MANUAL"),
    (0x02, "GUIDED"),
    (0x04, "AUTO"),
    (0x10, "STABILIZE"),
]
ARMED_FLAG = 0x80


@dataclass
class Heartbeat:
    """HEARTBEAT (0): arming state and flight mode."""

    custom_mode: int
    base_mode: int

    @property
    def armed(self) -> bool:
        return bool(self.base_mode & ARMED_FLAG)

    @property
    def mode(self) -> str:
        return mode_name(self.base_mode)


@dataclass
class SysStatus:
    """SYS_STATUS (1): battery readings."""

    battery_voltage: float  # volts
    battery_current: float  # amps
    battery_remaining: int  # percent


@dataclass
class Attitude:
    """ATTITUDE (30), angles already converted to degrees."""

    roll: float
    pitch: float
    yaw: float


@dataclass
class GlobalPositionInt:
    """GLOBAL_POSITION_INT (33)."""

    latitude: float
    longitude: float
    altitude: float  # meters


@dataclass
class GpsRawInt:
    """GPS_RAW_INT (24): fix quality."""

    fix_type: int
    satellites_visible: int


@dataclass
class VfrHud:
    """VFR_HUD (74)."""

    air_speed: float
    ground_speed: float
    heading: float


TelemetryMessage = Heartbeat | SysStatus | Attitude | GlobalPositionInt | GpsRawInt | VfrHud


def mode_name(base_mode: int) -> str:
    """Map base_mode bits to a mode name; the first matching bit wins."""
    for flag, name in MODE_FLAGS:
        if base_mode & flag:
            return name
    return "UNKNOWN"


def _too_short(payload: bytes, message_id: MessageId) -> bool:
    return len(payload) < MIN_PAYLOAD_LENGTH[message_id]


def parse_heartbeat(payload: bytes) -> Heartbeat | None:
    if _too_short(payload, MessageId.HEARTBEAT):
        return None
    custom_mode = struct.unpack_from("<I", payload, 0)[0]
    return Heartbeat(custom_mode=custom_mode, base_mode=payload[5])


def parse_sys_status(payload: bytes) -> SysStatus | None:
    """Voltage is sent in millivolts, current in centiamps."""
    if _too_short(payload, MessageId.SYS_STATUS):
        return None
    voltage_mv, current_ca = struct.unpack_from("<HH", payload, 10)
    return SysStatus(
        battery_voltage=voltage_mv / 1000.0,
        battery_current=current_ca / 100.0,
        battery_remaining=payload[26],
    )


def parse_attitude(payload: bytes) -> Attitude | None:
    if _too_short(payload, MessageId.ATTITUDE):
        return None
    roll, pitch, yaw = struct.unpack_from("<fff", payload, 4)
    return Attitude(
        roll=math.degrees(roll),
        pitch=math.degrees(pitch),
        yaw=math.degrees(yaw),
    )


def parse_global_position_int(payload: bytes) -> GlobalPositionInt | None:
    """Latitude/longitude arrive as degrees * 1e7, altitude in millimeters."""
    if _too_short(payload, MessageId.GLOBAL_POSITION_INT):
        return None
    lat, lon, alt = struct.unpack_from("<iii", payload, 4)
    return GlobalPositionInt(
        latitude=lat / 1e7,
        longitude=lon / 1e7,
        altitude=alt / 1000.0,
    )


def parse_gps_raw_int(payload: bytes) -> GpsRawInt | None:
    if _too_short(payload, MessageId.GPS_RAW_INT):
        return None
    return GpsRawInt(fix_type=payload[12], satellites_visible=payload[13])


def parse_vfr_hud(payload: bytes) -> VfrHud | None:
    if _too_short(payload, MessageId.VFR_HUD):
        return None
    airspeed, groundspeed, heading = struct.unpack_from("<ffH", payload, 0)
    return VfrHud(
        air_speed=airspeed,
        ground_speed=groundspeed,
        heading=float(heading),
    )


PARSERS = {
    MessageId.HEARTBEAT: parse_heartbeat,
    MessageId.SYS_STATUS: parse_sys_status,
    MessageId.ATTITUDE: parse_attitude,
    MessageId.GLOBAL_POSITION_INT: parse_global_position_int,
    MessageId.GPS_RAW_INT: parse_gps_raw_int,
    MessageId.VFR_HUD: parse_vfr_hud,
}


def parse_message(frame: Frame) -> TelemetryMessage | None:
    """Decode a frame's payload by message id.

    Returns:
        The decoded message, or ``None`` for ids outside the inbound
        catalog and payloads that are too short.
    """
    parser = PARSERS.get(frame.message_id)
    if parser is None:
        return None
    return parser(frame.payload)
