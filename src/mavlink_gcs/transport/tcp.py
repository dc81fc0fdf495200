"""TCP client transport."""

from __future__ import annotations

import logging
import socket
from typing import Optional

from ..config import CONNECT_TIMEOUT, RECEIVE_BUFFER_SIZE
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


def stream_reader(sock: socket.socket, size: int = RECEIVE_BUFFER_SIZE):
    """Return a read function for a stream socket.

    A zero-byte read means the peer closed the connection and is
    reported as ``None``.
    """
    buffer = bytearray(size)

    def read_chunk() -> Optional[bytes]:
        length = sock.recv_into(buffer)
        if length == 0:
            return None
        return bytes(buffer[:length])

    return read_chunk


class TcpClientTransport:
    """Stream connection to a remote host, e.g. a SITL instance on port 5760."""

    transport_type = TransportType.TCP_CLIENT

    def __init__(self, connect_timeout: float = CONNECT_TIMEOUT) -> None:
        self.connection_state: Observable[TransportState] = Observable(
            TransportState.DISCONNECTED
        )
        self._link = SocketLink("tcp-client", self.connection_state)
        self._connect_timeout = connect_timeout
        self._host = ""
        self._port = 0

    def connect(self, params: ConnectionParams) -> bool:
        if not isinstance(params, NetworkParams):
            logger.warning("TCP client needs NetworkParams, got %s", type(params).__name__)
            return False

        self.disconnect()
        self.connection_state.set(TransportState.CONNECTING)
        self._host = params.host
        self._port = params.port

        try:
            sock = socket.create_connection(
                (params.host, params.port), timeout=self._connect_timeout
            )
        except OSError as e:
            self._link.fail(e, f"connect to {params.host}:{params.port}")
            return False

        sock.settimeout(None)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        self._link.open(sock, stream_reader(sock))
        logger.info("TCP connected to %s:%d", params.host, params.port)
        return True

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
        return f"TCP Client to {self._host}:{self._port}"
