"""MCP server entry point for the MAVLink ground station.

Exposes connection management, vehicle commands and live telemetry via
the Model Context Protocol using the official Python MCP SDK with stdio
transport. All protocol work happens in :class:`GroundStation`; this
module only translates tool calls.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp.server.fastmcp import FastMCP

from .config import LISTEN_ALL_HOST, DEFAULT_CLIENT_HOST, GcsConfig, SPP_UUID
from .gcs import GroundStation
from .protocol.commands import DEFAULT_TAKEOFF_ALTITUDE, MavCommand
from .protocol.messages import MIN_PAYLOAD_LENGTH, MessageId
from .telemetry import LoggingTelemetrySink
from .transport.base import (
    BluetoothParams,
    ConnectionParams,
    NetworkParams,
    TransportType,
)
from .transport.bluetooth import BluetoothSppTransport, find_paired_device
from .transport.manager import (
    DEFAULT_FACTORIES,
    TransportManager,
    default_params,
    display_name,
)

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "mavlink-gcs",
    instructions="MCP server for a MAVLink v1 ground control station",
)

# Global station state
_config: GcsConfig | None = None
_station: GroundStation | None = None


def _get_config() -> GcsConfig:
    global _config
    if _config is None:
        _config = GcsConfig.from_env()
    return _config


def _get_station() -> GroundStation:
    """Get the ground station, creating it on first use."""
    global _station
    if _station is None:
        config = _get_config()
        factories = dict(DEFAULT_FACTORIES)
        factories[TransportType.BLUETOOTH_SPP] = lambda: BluetoothSppTransport(
            channel=config.bt_channel, device_lookup=find_paired_device
        )
        _station = GroundStation(
            manager=TransportManager(factories=factories),
            telemetry=LoggingTelemetrySink(enabled=config.telemetry_log),
        )
    return _station


def _get_connected_station() -> GroundStation:
    """Get the ground station, raising if no transport is connected."""
    station = _get_station()
    if not station.manager.is_connected():
        raise RuntimeError(
            "Not connected to a vehicle. Use the 'connect' tool first."
        )
    return station


def _build_params(
    transport_type: TransportType,
    host: str | None,
    port: int | None,
    device_address: str | None,
    device_name: str | None,
) -> ConnectionParams:
    config = _get_config()
    defaults = default_params(transport_type)

    if isinstance(defaults, BluetoothParams):
        return BluetoothParams(
            device_address=device_address or config.bt_address,
            device_name=device_name or config.bt_name,
        )

    if host is None:
        if transport_type is TransportType.UDP_LISTEN:
            host = LISTEN_ALL_HOST
        elif config.host and config.host != LISTEN_ALL_HOST:
            host = config.host
        else:
            host = DEFAULT_CLIENT_HOST
    if port is None:
        port = config.port or defaults.port
    return NetworkParams(host=host, port=port)


def _connection_status(station: GroundStation) -> dict[str, Any]:
    manager = station.manager
    active = manager.active_transport_type.value
    return {
        "state": manager.connection_state.value.value,
        "connected": manager.is_connected(),
        "transport": active.value if active else None,
        "info": manager.connection_info.value,
    }


def _command_result(sent: bool, command: str, **extra: Any) -> dict[str, Any]:
    result: dict[str, Any] = {"sent": sent, "command": command}
    result.update(extra)
    if not sent:
        result["error"] = "Transport rejected the command"
    return result


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def connect(
    transport: str | None = None,
    host: str | None = None,
    port: int | None = None,
    device_address: str | None = None,
    device_name: str | None = None,
) -> dict[str, Any]:
    """Connect to a vehicle over UDP, TCP or Bluetooth.

    Any existing connection is closed first.

    Args:
        transport: One of udp_listen, udp_client, tcp_client, bluetooth_spp
                   (default from MAVLINK_GCS_TRANSPORT, else udp_listen).
        host: Remote host for client transports.
        port: Port (default 14550 for UDP, 5760 for TCP).
        device_address: Paired Bluetooth device address for bluetooth_spp.
        device_name: Optional Bluetooth device name for display.
    """
    name = (transport or _get_config().transport).lower()
    try:
        transport_type = TransportType(name)
    except ValueError:
        valid = [t.value for t in TransportType]
        return {"error": f"Unknown transport '{name}'. Valid: {valid}"}

    params = _build_params(transport_type, host, port, device_address, device_name)
    station = _get_station()
    connected = station.start_connection(transport_type, params)

    result = _connection_status(station)
    if not connected:
        result["error"] = f"Could not connect via {display_name(transport_type)}"
    return result


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Close the active connection."""
    if _station is None:
        return {"disconnected": True}
    _station.stop_connection()
    return {"disconnected": True}


@mcp.tool()
def connection_status() -> dict[str, Any]:
    """Report the connection state and active transport."""
    return _connection_status(_get_station())


@mcp.tool()
def list_transports() -> dict[str, Any]:
    """List transports usable on this host, with their default parameters."""
    station = _get_station()
    transports = []
    for transport_type in station.manager.available_transports():
        params = default_params(transport_type)
        entry: dict[str, Any] = {
            "id": transport_type.value,
            "name": display_name(transport_type),
        }
        if isinstance(params, NetworkParams):
            entry["default_host"] = params.host
            entry["default_port"] = params.port
        transports.append(entry)
    return {"transports": transports}


@mcp.tool()
def list_bluetooth_devices() -> dict[str, Any]:
    """List paired Bluetooth devices that may offer a serial port."""
    devices = _get_station().manager.bluetooth_devices()
    return {"devices": [d.to_dict() for d in devices]}


# ─── TELEMETRY TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def get_vehicle_state() -> dict[str, Any]:
    """Latest telemetry: attitude, position, speed, battery and GPS."""
    return _get_station().vehicle.to_dict()


# ─── COMMAND TOOLS ───────────────────────────────────────────────────

@mcp.tool()
def arm() -> dict[str, Any]:
    """Arm the vehicle's motors."""
    station = _get_connected_station()
    return _command_result(station.arm_disarm(True), "arm")


@mcp.tool()
def disarm() -> dict[str, Any]:
    """Disarm the vehicle's motors."""
    station = _get_connected_station()
    return _command_result(station.arm_disarm(False), "disarm")


@mcp.tool()
def takeoff(altitude: float = DEFAULT_TAKEOFF_ALTITUDE) -> dict[str, Any]:
    """Take off to the given altitude.

    Args:
        altitude: Target altitude in meters (default 10).
    """
    if altitude <= 0:
        return {"error": "Altitude must be positive"}
    station = _get_connected_station()
    return _command_result(station.takeoff(altitude), "takeoff", altitude=altitude)


@mcp.tool()
def return_to_launch() -> dict[str, Any]:
    """Fly back to the launch point and land."""
    station = _get_connected_station()
    return _command_result(station.return_to_launch(), "return_to_launch")


@mcp.tool()
def send_command(command: int, params: list[float] | None = None) -> dict[str, Any]:
    """Send an arbitrary COMMAND_LONG.

    Args:
        command: MAV_CMD id (0-65535).
        params: Up to seven float parameters.
    """
    params = params or []
    if len(params) > 7:
        return {"error": "At most 7 params are allowed"}
    if not 0 <= command <= 0xFFFF:
        return {"error": "Command id must be 0-65535"}
    station = _get_connected_station()
    return _command_result(station.send_command(command, *params), str(command))


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("gcs://vehicle/state")
def resource_vehicle_state() -> str:
    """Latest vehicle telemetry."""
    if _station is None:
        return json.dumps({"connected": False})
    return json.dumps(_station.vehicle.to_dict())


@mcp.resource("gcs://connection/status")
def resource_connection_status() -> str:
    """Connection state and active transport."""
    if _station is None:
        return json.dumps({"state": "disconnected", "connected": False})
    return json.dumps(_connection_status(_station))


@mcp.resource("gcs://catalog/transports")
def resource_transport_catalog() -> str:
    """All transport types with display names and defaults."""
    transports = []
    for transport_type in TransportType:
        params = default_params(transport_type)
        entry: dict[str, Any] = {"id": transport_type.value, "name": display_name(transport_type)}
        if isinstance(params, NetworkParams):
            entry["default_port"] = params.port
        else:
            entry["service_uuid"] = SPP_UUID
        transports.append(entry)
    return json.dumps({"transports": transports})


@mcp.resource("gcs://catalog/messages")
def resource_message_catalog() -> str:
    """Message kinds understood by the ground station."""
    messages = [
        {"id": int(m), "name": m.name, "min_length": MIN_PAYLOAD_LENGTH[m]}
        for m in MessageId
    ]
    commands = [{"id": int(c), "name": c.name} for c in MavCommand]
    return json.dumps({"messages": messages, "commands": commands})


# ─── MCP PROMPTS ─────────────────────────────────────────────────────

@mcp.prompt()
def preflight_check() -> str:
    """Walk through a pre-flight check before arming."""
    return """Read the vehicle state using get_vehicle_state and check:
- GPS fix type is 3 (3D fix) or better with at least 6 satellites
- Battery voltage and remaining percentage are healthy
- Roll and pitch are near zero (vehicle is level)
- The vehicle is disarmed and the mode is as expected

Report any problem before suggesting the arm tool."""


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    config = _get_config()
    logging.basicConfig(level=config.log_level_value)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
