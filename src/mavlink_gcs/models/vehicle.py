"""Vehicle state aggregated from decoded telemetry."""

from __future__ import annotations

from dataclasses import asdict, dataclass, replace

from ..protocol.parser import (
    Attitude,
    GlobalPositionInt,
    GpsRawInt,
    Heartbeat,
    SysStatus,
    TelemetryMessage,
    VfrHud,
)


@dataclass
class VehicleState:
    """Latest known values for one vehicle.

    Each telemetry message updates only the fields it carries; the rest
    keep their previous values.
    """

    connected: bool = False
    armed: bool = False
    mode: str = "UNKNOWN"
    system_id: int = 0
    component_id: int = 0
    latitude: float = 0.0
    longitude: float = 0.0
    altitude: float = 0.0
    heading: float = 0.0
    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0
    ground_speed: float = 0.0
    air_speed: float = 0.0
    battery_voltage: float = 0.0
    battery_current: float = 0.0
    battery_remaining: int = 0
    gps_fix_type: int = 0
    gps_num_satellites: int = 0
    identified: bool = False

    def identify(self, system_id: int, component_id: int) -> bool:
        """Record the vehicle's ids once; later calls are ignored.

        Returns:
            True if the ids were recorded by this call.
        """
        if self.identified:
            return False
        self.system_id = system_id
        self.component_id = component_id
        self.identified = True
        return True

    def apply(self, message: TelemetryMessage) -> None:
        """Merge a decoded message into the state."""
        if isinstance(message, Heartbeat):
            self.armed = message.armed
            self.mode = message.mode
        elif isinstance(message, SysStatus):
            self.battery_voltage = message.battery_voltage
            self.battery_current = message.battery_current
            self.battery_remaining = message.battery_remaining
        elif isinstance(message, Attitude):
            self.roll = message.roll
            self.pitch = message.pitch
            self.yaw = message.yaw
        elif isinstance(message, GlobalPositionInt):
            self.latitude = message.latitude
            self.longitude = message.longitude
            self.altitude = message.altitude
        elif isinstance(message, GpsRawInt):
            self.gps_fix_type = message.fix_type
            self.gps_num_satellites = message.satellites_visible
        elif isinstance(message, VfrHud):
            self.air_speed = message.air_speed
            self.ground_speed = message.ground_speed
            self.heading = message.heading
        else:
            raise TypeError(f"Unsupported message type: {type(message).__name__}")

    def reset(self) -> None:
        """Return every field to its default, keeping the connected flag."""
        connected = self.connected
        for name, value in asdict(VehicleState()).items():
            setattr(self, name, value)
        self.connected = connected

    def snapshot(self) -> VehicleState:
        return replace(self)

    def to_dict(self) -> dict:
        d = asdict(self)
        d.pop("identified")
        return d
