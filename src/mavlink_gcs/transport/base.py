"""Transport contract, connection parameters and the shared receive loop.

Every backend satisfies the :class:`Transport` protocol. Each runs one
background thread that reads raw chunks from its socket and hands them
to the data callback exactly as the medium delivered them; frame
boundaries are the parser's concern, not the transport's.
"""

from __future__ import annotations

import logging
import socket
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol, Union, runtime_checkable

from ..config import RECEIVE_JOIN_TIMEOUT
from ..utils.observable import Observable

logger = logging.getLogger(__name__)

DataCallback = Callable[[bytes, int], None]


class TransportType(Enum):
    UDP_LISTEN = "udp_listen"
    UDP_CLIENT = "udp_client"
    TCP_CLIENT = "tcp_client"
    BLUETOOTH_SPP = "bluetooth_spp"


class TransportState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass(frozen=True)
class NetworkParams:
    """Host and port for the UDP and TCP transports."""

    host: str
    port: int


@dataclass(frozen=True)
class BluetoothParams:
    """A previously paired Bluetooth device."""

    device_address: str
    device_name: str = ""


ConnectionParams = Union[NetworkParams, BluetoothParams]


@runtime_checkable
class Transport(Protocol):
    """Byte-stream carrier beneath the protocol layer."""

    transport_type: TransportType
    connection_state: Observable[TransportState]

    def connect(self, params: ConnectionParams) -> bool:
        """Open the link and start receiving; False on failure."""
        ...

    def disconnect(self) -> None:
        """Stop receiving and release the socket."""
        ...

    def send_data(self, data: bytes) -> bool:
        ...

    def set_data_callback(self, callback: Optional[DataCallback]) -> None:
        ...

    def connection_info(self) -> str:
        ...


def close_socket(sock: socket.socket | None) -> None:
    """Shut down and close a socket, waking any thread blocked reading it."""
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        # Unconnected datagram sockets report ENOTCONN but are still woken
        pass
    try:
        sock.close()
    except OSError as e:
        logger.warning("Error closing socket: %s", e)


class ReceiveLoop:
    """Background thread feeding raw chunks from ``read_chunk`` to ``deliver``.

    ``read_chunk`` blocks until data arrives and returns the chunk, or
    ``None`` when the peer closed the stream. An ``OSError`` while the
    loop is running moves ``state`` to ERROR; a remote close or a clean
    stop moves it to DISCONNECTED. Stopping is cooperative: the owner
    calls :meth:`stop` and then closes the socket so the pending read
    returns.
    """

    def __init__(
        self,
        name: str,
        read_chunk: Callable[[], Optional[bytes]],
        deliver: Callable[[bytes], None],
        state: Observable[TransportState],
    ) -> None:
        self._name = name
        self._read_chunk = read_chunk
        self._deliver = deliver
        self._state = state
        self._closing = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        """Mark the loop as closing; reads that fail from now on are expected."""
        self._closing.set()

    def join(self, timeout: float = RECEIVE_JOIN_TIMEOUT) -> None:
        if self._thread is threading.current_thread() or not self._thread.is_alive():
            return
        self._thread.join(timeout)
        if self._thread.is_alive():
            logger.warning("%s: receive thread did not exit within %.1fs", self._name, timeout)

    def _run(self) -> None:
        logger.debug("%s: receive loop started", self._name)
        while not self._closing.is_set():
            try:
                chunk = self._read_chunk()
            except OSError as e:
                if not self._closing.is_set():
                    logger.warning("%s: receive failed: %s", self._name, e)
                    self._state.set(TransportState.ERROR)
                    return
                break

            if self._closing.is_set():
                break
            if chunk is None:
                logger.info("%s: connection closed by remote", self._name)
                break
            if chunk:
                try:
                    self._deliver(chunk)
                except Exception:
                    logger.exception("%s: data callback failed", self._name)

        if self._state.value is TransportState.CONNECTED:
            self._state.set(TransportState.DISCONNECTED)
        logger.debug("%s: receive loop stopped", self._name)


class SocketLink:
    """One open socket plus its receive loop and data callback.

    Transports compose this to share socket lifetime handling::

        link = SocketLink("tcp", state)
        link.open(sock, read_chunk)
        link.deliver(chunk)      # from read side, via the loop
        link.close()             # stops the loop, releases the socket
    """

    def __init__(self, name: str, state: Observable[TransportState]) -> None:
        self._name = name
        self._state = state
        self._lock = threading.Lock()
        self._callback: Optional[DataCallback] = None
        self._sock: socket.socket | None = None
        self._loop: ReceiveLoop | None = None

    @property
    def sock(self) -> socket.socket | None:
        return self._sock

    @property
    def receiving(self) -> bool:
        loop = self._loop
        return loop is not None and loop.running

    def set_callback(self, callback: Optional[DataCallback]) -> None:
        self._callback = callback

    def open(self, sock: socket.socket, read_chunk: Callable[[], Optional[bytes]]) -> None:
        """Adopt a connected socket, mark CONNECTED and start receiving."""
        with self._lock:
            self._sock = sock
            self._loop = ReceiveLoop(self._name, read_chunk, self.deliver, self._state)
            self._state.set(TransportState.CONNECTED)
            self._loop.start()

    def deliver(self, chunk: bytes) -> None:
        callback = self._callback
        if callback is not None:
            callback(chunk, len(chunk))

    def fail(self, error: OSError, action: str) -> None:
        logger.warning("%s: %s failed: %s", self._name, action, error)
        self._state.set(TransportState.ERROR)

    def close(self) -> None:
        """Stop the receive loop, release the socket and wait for the thread."""
        with self._lock:
            sock, loop = self._sock, self._loop
            self._sock = None
            self._loop = None

        if loop is not None:
            loop.stop()
        close_socket(sock)
        if loop is not None:
            loop.join()
        self._state.set(TransportState.DISCONNECTED)
