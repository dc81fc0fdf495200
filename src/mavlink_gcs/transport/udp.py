"""UDP transports: listen (server) mode and client mode.

In listen mode the socket is bound on all interfaces and the vehicle
is unknown until its first datagram arrives; that sender becomes the
fixed reply target for every later send. In client mode the socket is
connected to a known host and port up front.
"""

from __future__ import annotations

import logging
import socket
import threading
from typing import Optional

from ..config import RECEIVE_BUFFER_SIZE
from ..utils.observable import Observable
from .base import (
    ConnectionParams,
    DataCallback,
    NetworkParams,
    SocketLink,
    TransportState,
    TransportType,
)

logger = logging.getLogger(__name__)


class UdpListenTransport:
    """Receives on a local port and replies to the first sender seen."""

    transport_type = TransportType.UDP_LISTEN

    def __init__(self) -> None:
        self.connection_state: Observable[TransportState] = Observable(
            TransportState.DISCONNECTED
        )
        self._link = SocketLink("udp-listen", self.connection_state)
        self._lock = threading.Lock()
        self._remote: tuple | None = None
        self._port = 0

    @property
    def remote_address(self) -> tuple | None:
        """The latched reply target, once a datagram has been received."""
        with self._lock:
            return self._remote

    @property
    def local_port(self) -> int:
        return self._port

    def connect(self, params: ConnectionParams) -> bool:
        if not isinstance(params, NetworkParams):
            logger.warning("UDP listen needs NetworkParams, got %s", type(params).__name__)
            return False

        self.disconnect()
        self.connection_state.set(TransportState.CONNECTING)

        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(("", params.port))
        except OSError as e:
            sock.close()
            self._link.fail(e, "bind")
            return False

        self._port = sock.getsockname()[1]
        with self._lock:
            self._remote = None

        buffer = bytearray(RECEIVE_BUFFER_SIZE)

        def read_chunk() -> Optional[bytes]:
            length, address = sock.recvfrom_into(buffer)
            with self._lock:
                if self._remote is None and address is not None:
                    self._remote = address
                    logger.info("UDP listen: replying to %s:%d", address[0], address[1])
            return bytes(buffer[:length])

        self._link.open(sock, read_chunk)
        logger.info("UDP listening on port %d", self._port)
        return True

    def disconnect(self) -> None:
        self._link.close()
        with self._lock:
            self._remote = None

    def send_data(self, data: bytes) -> bool:
        sock = self._link.sock
        remote = self.remote_address
        if sock is None or remote is None:
            return False
        try:
            sock.sendto(data, remote)
        except OSError as e:
            self._link.fail(e, "send")
            return False
        return True

    def set_data_callback(self, callback: Optional[DataCallback]) -> None:
        self._link.set_callback(callback)

    def connection_info(self) -> str:
        return f"UDP Listen on port {self._port}"


class UdpClientTransport:
    """Exchanges datagrams with a fixed remote endpoint."""

    transport_type = TransportType.UDP_CLIENT

    def __init__(self) -> None:
        self.connection_state: Observable[TransportState] = Observable(
            TransportState.DISCONNECTED
        )
        self._link = SocketLink("udp-client", self.connection_state)
        self._host = ""
        self._port = 0

    def connect(self, params: ConnectionParams) -> bool:
        if not isinstance(params, NetworkParams):
            logger.warning("UDP client needs NetworkParams, got %s", type(params).__name__)
            return False

        self.disconnect()
        self.connection_state.set(TransportState.CONNECTING)
        self._host = params.host
        self._port = params.port

        try:
            family, _, _, _, address = socket.getaddrinfo(
                params.host, params.port, socket.AF_INET, socket.SOCK_DGRAM
            )[0]
        except OSError as e:
            self._link.fail(e, f"resolve {params.host}")
            return False

        sock = socket.socket(family, socket.SOCK_DGRAM)
        try:
            sock.connect(address)
        except OSError as e:
            sock.close()
            self._link.fail(e, "connect")
            return False

        buffer = bytearray(RECEIVE_BUFFER_SIZE)

        def read_chunk() -> Optional[bytes]:
            length = sock.recv_into(buffer)
            return bytes(buffer[:length])

        self._link.open(sock, read_chunk)
        logger.info("UDP client connected to %s:%d", params.host, params.port)
        return True

    def disconnect(self) -> None:
        self._link.close()

    def send_data(self, data: bytes) -> bool:
        sock = self._link.sock
        if sock is None:
            return False
        try:
            sock.send(data)
        except OSError as e:
            self._link.fail(e, "send")
            return False
        return True

    def set_data_callback(self, callback: Optional[DataCallback]) -> None:
        self._link.set_callback(callback)

    def connection_info(self) -> str:
        return f"UDP Client to {self._host}:{self._port}"
