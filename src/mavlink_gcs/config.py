"""Connection defaults and environment-driven configuration."""

from __future__ import annotations

import dataclasses
import logging
import os

DEFAULT_UDP_PORT = 14550
DEFAULT_TCP_PORT = 5760
DEFAULT_CLIENT_HOST = "192.168.1.100"
LISTEN_ALL_HOST = "0.0.0.0"

SPP_UUID = "00001101-0000-1000-8000-00805F9B34FB"
DEFAULT_RFCOMM_CHANNEL = 1

RECEIVE_BUFFER_SIZE = 1024
# Applies to establishing stream connections only; reads never time out
CONNECT_TIMEOUT = 10.0
# Upper bound on waiting for a receive thread to exit after its socket is closed
RECEIVE_JOIN_TIMEOUT = 2.0


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError:
        return default


@dataclasses.dataclass(frozen=True)
class GcsConfig:
    """Ground station configuration.

    Parameters
    ----------
    transport : str
        Transport used by the ``connect`` tool when none is given
        (``udp_listen``, ``udp_client``, ``tcp_client``, ``bluetooth_spp``).
    host : str
        Remote host for client transports, bind address for UDP listen.
    port : int or None
        Port; ``None`` selects the transport's default.
    bt_address : str
        Paired Bluetooth device address (``AA:BB:CC:DD:EE:FF``).
    bt_name : str
        Display name for the Bluetooth device.
    bt_channel : int
        RFCOMM channel the SPP service listens on.
    log_level : str
        Root log level for the server entry point.
    telemetry_log : bool
        Whether raw inbound chunks and outgoing commands are logged.
    """

    transport: str = "udp_listen"
    host: str = LISTEN_ALL_HOST
    port: int | None = None
    bt_address: str = ""
    bt_name: str = ""
    bt_channel: int = DEFAULT_RFCOMM_CHANNEL
    log_level: str = "INFO"
    telemetry_log: bool = False

    @property
    def log_level_value(self) -> int:
        level = logging.getLevelName(self.log_level.upper())
        return level if isinstance(level, int) else logging.INFO

    @classmethod
    def from_env(cls) -> GcsConfig:
        """Build a config from ``MAVLINK_GCS_*`` environment variables."""
        env = os.environ
        port = env.get("MAVLINK_GCS_PORT")
        return cls(
            transport=env.get("MAVLINK_GCS_TRANSPORT", cls.transport).strip().lower(),
            host=env.get("MAVLINK_GCS_HOST", cls.host).strip(),
            port=_env_int(port, 0) or None,
            bt_address=env.get("MAVLINK_GCS_BT_ADDRESS", "").strip(),
            bt_name=env.get("MAVLINK_GCS_BT_NAME", "").strip(),
            bt_channel=_env_int(env.get("MAVLINK_GCS_BT_CHANNEL"), DEFAULT_RFCOMM_CHANNEL),
            log_level=env.get("MAVLINK_GCS_LOG_LEVEL", cls.log_level).strip(),
            telemetry_log=_env_bool(env.get("MAVLINK_GCS_TELEMETRY_LOG"), False),
        )
