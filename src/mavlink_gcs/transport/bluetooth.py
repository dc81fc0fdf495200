"""Bluetooth Serial Port Profile transport.

Talks RFCOMM to a device that is already paired with the host (pairing
is left to the operating system). The SPP service is identified by the
well-known UUID ``00001101-0000-1000-8000-00805F9B34FB``; the RFCOMM
channel it listens on is looked up through ``channel_resolver``, which
defaults to the configured channel (1 on nearly every SPP adapter).

Requires a Python built with ``AF_BLUETOOTH`` support (Linux/BlueZ).
"""

from __future__ import annotations

import logging
import re
import socket
import subprocess
from dataclasses import dataclass
from typing import Callable, Optional

from ..config import DEFAULT_RFCOMM_CHANNEL, SPP_UUID
from ..utils.observable import Observable
from .base import (
    BluetoothParams,
    ConnectionParams,
    DataCallback,
    SocketLink,
    TransportState,
    TransportType,
)
from .tcp import stream_reader

logger = logging.getLogger(__name__)

ADDRESS_PATTERN = re.compile(r"^[0-9A-Fa-f]{2}(:[0-9A-Fa-f]{2}){5}$")
PAIRED_DEVICE_LINE = re.compile(r"^Device\s+([0-9A-Fa-f:]{17})\s*(.*)$")


@dataclass
class BluetoothDeviceInfo:
    """A device known to the host's Bluetooth stack."""

    name: str
    address: str
    is_paired: bool = True

    def to_dict(self) -> dict:
        return {"name": self.name, "address": self.address, "paired": self.is_paired}


def bluetooth_supported() -> bool:
    """Whether this interpreter can open RFCOMM sockets."""
    return hasattr(socket, "AF_BLUETOOTH") and hasattr(socket, "BTPROTO_RFCOMM")


def list_paired_devices(timeout: float = 5.0) -> list[BluetoothDeviceInfo]:
    """List paired devices as reported by ``bluetoothctl``.

    Returns an empty list when BlueZ tooling is not installed or the
    adapter is unavailable.
    """
    try:
        result = subprocess.run(
            ["bluetoothctl", "devices", "Paired"],
            capture_output=True,
            text=True,
            timeout=timeout,
            check=True,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("Could not list paired devices: %s", e)
        return []

    devices = []
    for line in result.stdout.splitlines():
        match = PAIRED_DEVICE_LINE.match(line.strip())
        if match:
            address, name = match.groups()
            devices.append(BluetoothDeviceInfo(name=name or "Unknown Device", address=address.upper()))
    return devices


def find_paired_device(address: str) -> BluetoothDeviceInfo | None:
    """Look up a paired device by address (case-insensitive)."""
    wanted = address.upper()
    for device in list_paired_devices():
        if device.address == wanted:
            return device
    return None


class BluetoothSppTransport:
    """RFCOMM stream to a paired SPP device."""

    transport_type = TransportType.BLUETOOTH_SPP

    def __init__(
        self,
        channel: int = DEFAULT_RFCOMM_CHANNEL,
        channel_resolver: Optional[Callable[[str, str], Optional[int]]] = None,
        device_lookup: Optional[Callable[[str], Optional[BluetoothDeviceInfo]]] = None,
    ) -> None:
        """
        Args:
            channel: RFCOMM channel used when no resolver is given.
            channel_resolver: ``(address, service_uuid) -> channel`` lookup,
                e.g. backed by an SDP query.
            device_lookup: ``address -> device`` check that the device is
                paired; skipped when ``None``.
        """
        self.connection_state: Observable[TransportState] = Observable(
            TransportState.DISCONNECTED
        )
        self._link = SocketLink("bluetooth-spp", self.connection_state)
        self._channel = channel
        self._channel_resolver = channel_resolver
        self._device_lookup = device_lookup
        self._address = ""
        self._name = ""

    def connect(self, params: ConnectionParams) -> bool:
        if not isinstance(params, BluetoothParams):
            logger.warning("Bluetooth SPP needs BluetoothParams, got %s", type(params).__name__)
            return False
        if not ADDRESS_PATTERN.match(params.device_address):
            logger.warning("Invalid Bluetooth address %r", params.device_address)
            return False

        self.disconnect()
        self.connection_state.set(TransportState.CONNECTING)
        self._address = params.device_address.upper()
        self._name = params.device_name

        if not bluetooth_supported():
            logger.warning("This Python build has no Bluetooth socket support")
            self.connection_state.set(TransportState.ERROR)
            return False

        if self._device_lookup is not None:
            device = self._device_lookup(self._address)
            if device is None:
                logger.warning("Bluetooth device %s is not paired", self._address)
                self.connection_state.set(TransportState.ERROR)
                return False
            self._name = self._name or device.name

        channel = self._resolve_channel()
        if channel is None:
            logger.warning("No SPP service found on %s", self._address)
            self.connection_state.set(TransportState.ERROR)
            return False

        sock = socket.socket(socket.AF_BLUETOOTH, socket.SOCK_STREAM, socket.BTPROTO_RFCOMM)
        try:
            sock.connect((self._address, channel))
        except OSError as e:
            sock.close()
            self._link.fail(e, f"connect to {self._address} channel {channel}")
            return False

        self._link.open(sock, stream_reader(sock))
        logger.info("Bluetooth SPP connected to %s (%s)", self._name, self._address)
        return True

    def _resolve_channel(self) -> int | None:
        if self._channel_resolver is None:
            return self._channel
        return self._channel_resolver(self._address, SPP_UUID)

    def disconnect(self) -> None:
        self._link.close()

    def send_data(self, data: bytes) -> bool:
        sock = self._link.sock
        if sock is None:
            return False
        try:
            sock.sendall(data)
        except OSError as e:
            self._link.fail(e, "send")
            return False
        return True

    def set_data_callback(self, callback: Optional[DataCallback]) -> None:
        self._link.set_callback(callback)

    def connection_info(self) -> str:
        return f"Bluetooth SPP to {self._name} ({self._address})"
