"""Owns the single active transport and republishes its state.

Switching transports always tears the previous one down completely,
receive thread included, before the next one is built, so two receive
loops are never live at once.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from ..config import (
    DEFAULT_CLIENT_HOST,
    DEFAULT_TCP_PORT,
    DEFAULT_UDP_PORT,
    LISTEN_ALL_HOST,
)
from ..utils.observable import Observable
from .base import (
    BluetoothParams,
    ConnectionParams,
    DataCallback,
    NetworkParams,
    Transport,
    TransportState,
    TransportType,
)
from .bluetooth import (
    BluetoothDeviceInfo,
    BluetoothSppTransport,
    bluetooth_supported,
    list_paired_devices,
)
from .tcp import TcpClientTransport
from .udp import UdpClientTransport, UdpListenTransport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[], Transport]

DEFAULT_FACTORIES: dict[TransportType, TransportFactory] = {
    TransportType.UDP_LISTEN: UdpListenTransport,
    TransportType.UDP_CLIENT: UdpClientTransport,
    TransportType.TCP_CLIENT: TcpClientTransport,
    TransportType.BLUETOOTH_SPP: BluetoothSppTransport,
}

DISPLAY_NAMES: dict[TransportType, str] = {
    TransportType.UDP_LISTEN: "UDP Listen",
    TransportType.UDP_CLIENT: "UDP Client",
    TransportType.TCP_CLIENT: "TCP Client",
    TransportType.BLUETOOTH_SPP: "Bluetooth SPP",
}


def default_params(transport_type: TransportType) -> ConnectionParams:
    """Connection parameters pre-filled for each transport type."""
    if transport_type is TransportType.UDP_LISTEN:
        return NetworkParams(LISTEN_ALL_HOST, DEFAULT_UDP_PORT)
    if transport_type is TransportType.UDP_CLIENT:
        return NetworkParams(DEFAULT_CLIENT_HOST, DEFAULT_UDP_PORT)
    if transport_type is TransportType.TCP_CLIENT:
        return NetworkParams(DEFAULT_CLIENT_HOST, DEFAULT_TCP_PORT)
    return BluetoothParams("", "")


def display_name(transport_type: TransportType) -> str:
    return DISPLAY_NAMES[transport_type]


class TransportManager:
    """Single point of access to whichever transport is active.

    Usage::

        manager = TransportManager()
        manager.set_data_callback(on_bytes)
        manager.connect(TransportType.UDP_LISTEN, NetworkParams("0.0.0.0", 14550))
        manager.send_data(frame)
        manager.disconnect()
    """

    def __init__(
        self,
        factories: Optional[dict[TransportType, TransportFactory]] = None,
        bluetooth_gate: Callable[[], bool] = bluetooth_supported,
    ) -> None:
        """
        Args:
            factories: Transport constructors by type; defaults to the
                four built-in backends.
            bluetooth_gate: Returns whether Bluetooth may be used
                (platform support, user permission).
        """
        self._factories = dict(DEFAULT_FACTORIES if factories is None else factories)
        self._bluetooth_gate = bluetooth_gate
        self._lock = threading.RLock()
        self._transport: Transport | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._data_callback: Optional[DataCallback] = None

        self.connection_state: Observable[TransportState] = Observable(
            TransportState.DISCONNECTED
        )
        self.connection_info: Observable[str] = Observable("")
        self.active_transport_type: Observable[TransportType | None] = Observable(None)

    @property
    def transport(self) -> Transport | None:
        return self._transport

    def set_data_callback(self, callback: Optional[DataCallback]) -> None:
        """Set the receiver for raw chunks from any transport."""
        self._data_callback = callback

    def _dispatch(self, data: bytes, length: int) -> None:
        callback = self._data_callback
        if callback is not None:
            callback(data, length)

    def connect(self, transport_type: TransportType, params: ConnectionParams) -> bool:
        """Replace the active transport with a new one and connect it.

        Returns:
            True if the new transport connected.
        """
        with self._lock:
            self.disconnect()

            if transport_type is TransportType.BLUETOOTH_SPP and not self._bluetooth_gate():
                logger.warning("Bluetooth transport is not available")
                return False

            factory = self._factories.get(transport_type)
            if factory is None:
                logger.warning("No transport registered for %s", transport_type)
                return False

            transport = factory()
            self._transport = transport
            self.active_transport_type.set(transport_type)
            transport.set_data_callback(self._dispatch)
            self._unsubscribe = transport.connection_state.subscribe(
                lambda state: self._on_transport_state(transport, state)
            )

            logger.info("Connecting via %s", display_name(transport_type))
            return transport.connect(params)

    def _on_transport_state(self, transport: Transport, state: TransportState) -> None:
        if transport is not self._transport:
            return
        self.connection_state.set(state)
        self.connection_info.set(
            transport.connection_info() if state is TransportState.CONNECTED else ""
        )

    def disconnect(self) -> None:
        """Tear down the active transport, waiting for its receive thread."""
        with self._lock:
            if self._unsubscribe is not None:
                self._unsubscribe()
                self._unsubscribe = None

            transport = self._transport
            self._transport = None
            if transport is not None:
                transport.set_data_callback(None)
                transport.disconnect()
                logger.info("Disconnected %s", display_name(transport.transport_type))

            self.active_transport_type.set(None)
            self.connection_state.set(TransportState.DISCONNECTED)
            self.connection_info.set("")

    def send_data(self, data: bytes) -> bool:
        """Send through the active transport; False when there is none."""
        transport = self._transport
        if transport is None:
            return False
        return transport.send_data(data)

    def is_connected(self) -> bool:
        return self.connection_state.value is TransportState.CONNECTED

    def available_transports(self) -> list[TransportType]:
        """Network transports always; Bluetooth only when the gate allows it."""
        available = [
            TransportType.UDP_LISTEN,
            TransportType.UDP_CLIENT,
            TransportType.TCP_CLIENT,
        ]
        if self._bluetooth_gate():
            available.append(TransportType.BLUETOOTH_SPP)
        return available

    def bluetooth_devices(self) -> list[BluetoothDeviceInfo]:
        if not self._bluetooth_gate():
            return []
        return list_paired_devices()
