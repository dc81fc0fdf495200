"""Tests for the UDP, TCP and Bluetooth transports over loopback sockets."""

from __future__ import annotations

import socket
import threading
import time
import types

import pytest

from mavlink_gcs.transport import bluetooth as bluetooth_module
from mavlink_gcs.transport.base import (
    BluetoothParams,
    NetworkParams,
    Transport,
    TransportState,
)
from mavlink_gcs.transport.bluetooth import BluetoothDeviceInfo, BluetoothSppTransport
from mavlink_gcs.transport.tcp import TcpClientTransport
from mavlink_gcs.transport.udp import UdpClientTransport, UdpListenTransport


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class Collector:
    """Data callback that records every chunk it receives."""

    def __init__(self) -> None:
        self.chunks: list[bytes] = []
        self._lock = threading.Lock()

    def __call__(self, data: bytes, length: int) -> None:
        with self._lock:
            self.chunks.append(bytes(data[:length]))

    @property
    def data(self) -> bytes:
        with self._lock:
            return b"".join(self.chunks)


@pytest.fixture
def udp_peer():
    peers = []

    def make() -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.bind(("127.0.0.1", 0))
        sock.settimeout(2.0)
        peers.append(sock)
        return sock

    yield make
    for sock in peers:
        sock.close()


def test_transports_satisfy_protocol():
    for transport in (
        UdpListenTransport(),
        UdpClientTransport(),
        TcpClientTransport(),
        BluetoothSppTransport(),
    ):
        assert isinstance(transport, Transport)
        assert transport.connection_state.value is TransportState.DISCONNECTED


# ─── UDP listen ──────────────────────────────────────────────────────

def test_udp_listen_latches_first_sender(udp_peer):
    transport = UdpListenTransport()
    received = Collector()
    transport.set_data_callback(received)
    assert transport.connect(NetworkParams("0.0.0.0", 0))
    assert transport.connection_state.value is TransportState.CONNECTED
    port = transport.local_port

    first = udp_peer()
    second = udp_peer()
    try:
        assert transport.send_data(b"early") is False

        first.sendto(b"\xfe\x01", ("127.0.0.1", port))
        assert _wait_for(lambda: transport.remote_address is not None)
        assert transport.remote_address == first.getsockname()

        second.sendto(b"\x02", ("127.0.0.1", port))
        assert _wait_for(lambda: received.data == b"\xfe\x01\x02")
        assert transport.remote_address == first.getsockname()

        assert transport.send_data(b"reply")
        assert first.recv(64) == b"reply"
    finally:
        transport.disconnect()

    assert transport.connection_state.value is TransportState.DISCONNECTED
    assert transport.remote_address is None


def test_udp_listen_connection_info():
    transport = UdpListenTransport()
    assert transport.connect(NetworkParams("0.0.0.0", 0))
    try:
        assert transport.connection_info() == f"UDP Listen on port {transport.local_port}"
    finally:
        transport.disconnect()


def test_udp_listen_rejects_bluetooth_params():
    transport = UdpListenTransport()
    assert transport.connect(BluetoothParams("00:11:22:33:44:55")) is False
    assert transport.connection_state.value is TransportState.DISCONNECTED


def test_udp_listen_reconnect_releases_previous_socket():
    transport = UdpListenTransport()
    assert transport.connect(NetworkParams("0.0.0.0", 0))
    first_port = transport.local_port
    assert transport.connect(NetworkParams("0.0.0.0", first_port))
    try:
        assert transport.local_port == first_port
        assert transport.connection_state.value is TransportState.CONNECTED
    finally:
        transport.disconnect()


# ─── UDP client ──────────────────────────────────────────────────────

def test_udp_client_exchanges_datagrams(udp_peer):
    vehicle = udp_peer()
    host, port = vehicle.getsockname()

    transport = UdpClientTransport()
    received = Collector()
    transport.set_data_callback(received)
    assert transport.connect(NetworkParams(host, port))
    try:
        assert transport.connection_info() == f"UDP Client to {host}:{port}"
        assert transport.send_data(b"hello")
        data, address = vehicle.recvfrom(64)
        assert data == b"hello"

        vehicle.sendto(b"telemetry", address)
        assert _wait_for(lambda: received.data == b"telemetry")
    finally:
        transport.disconnect()
    assert transport.send_data(b"late") is False


def test_udp_client_unresolvable_host():
    transport = UdpClientTransport()
    assert transport.connect(NetworkParams("host.invalid", 14550)) is False
    assert transport.connection_state.value is TransportState.ERROR


# ─── TCP client ──────────────────────────────────────────────────────

@pytest.fixture
def tcp_server():
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    server.settimeout(2.0)
    yield server
    server.close()


def test_tcp_client_send_and_receive(tcp_server):
    host, port = tcp_server.getsockname()
    transport = TcpClientTransport(connect_timeout=2.0)
    received = Collector()
    transport.set_data_callback(received)

    assert transport.connect(NetworkParams(host, port))
    peer, _ = tcp_server.accept()
    peer.settimeout(2.0)
    try:
        peer.sendall(b"\xfe\x09\x00")
        peer.sendall(b"\x01\x01")
        assert _wait_for(lambda: received.data == b"\xfe\x09\x00\x01\x01")

        assert transport.send_data(b"command")
        assert peer.recv(64) == b"command"
    finally:
        transport.disconnect()
        peer.close()
    assert transport.connection_state.value is TransportState.DISCONNECTED


def test_tcp_remote_close_disconnects(tcp_server):
    host, port = tcp_server.getsockname()
    transport = TcpClientTransport(connect_timeout=2.0)
    assert transport.connect(NetworkParams(host, port))

    peer, _ = tcp_server.accept()
    peer.close()

    assert _wait_for(
        lambda: transport.connection_state.value is TransportState.DISCONNECTED
    )
    transport.disconnect()


def test_tcp_connection_refused():
    probe = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    probe.bind(("127.0.0.1", 0))
    port = probe.getsockname()[1]
    probe.close()

    transport = TcpClientTransport(connect_timeout=1.0)
    assert transport.connect(NetworkParams("127.0.0.1", port)) is False
    assert transport.connection_state.value is TransportState.ERROR

    transport.disconnect()
    assert transport.connection_state.value is TransportState.DISCONNECTED


def test_tcp_disconnect_is_idempotent():
    transport = TcpClientTransport()
    transport.disconnect()
    transport.disconnect()
    assert transport.connection_state.value is TransportState.DISCONNECTED
    assert transport.send_data(b"x") is False


# ─── Bluetooth SPP ───────────────────────────────────────────────────

class FakeRfcommSocket:
    """Stands in for an RFCOMM socket, backed by one end of a socket pair."""

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock
        self.address = None

    def connect(self, address) -> None:
        self.address = address

    def __getattr__(self, name):
        return getattr(self._sock, name)


@pytest.fixture
def rfcomm(monkeypatch):
    local, remote = socket.socketpair()
    fake = FakeRfcommSocket(local)
    fake_socket_module = types.SimpleNamespace(
        AF_BLUETOOTH=31,
        BTPROTO_RFCOMM=3,
        SOCK_STREAM=socket.SOCK_STREAM,
        socket=lambda *args: fake,
    )
    monkeypatch.setattr(bluetooth_module, "socket", fake_socket_module)
    remote.settimeout(2.0)
    yield fake, remote
    remote.close()
    local.close()


def test_bluetooth_connects_on_resolved_channel(rfcomm):
    fake, remote = rfcomm
    lookups = []
    transport = BluetoothSppTransport(
        channel_resolver=lambda address, uuid: lookups.append((address, uuid)) or 4,
        device_lookup=lambda address: BluetoothDeviceInfo("Telemetry", address),
    )
    received = Collector()
    transport.set_data_callback(received)

    assert transport.connect(BluetoothParams("00:11:22:aa:bb:cc"))
    try:
        assert fake.address == ("00:11:22:AA:BB:CC", 4)
        assert lookups == [("00:11:22:AA:BB:CC", "00001101-0000-1000-8000-00805F9B34FB")]
        assert transport.connection_info() == "Bluetooth SPP to Telemetry (00:11:22:AA:BB:CC)"

        remote.sendall(b"\xfe\x00")
        assert _wait_for(lambda: received.data == b"\xfe\x00")
        assert transport.send_data(b"cmd")
        assert remote.recv(16) == b"cmd"
    finally:
        transport.disconnect()
    assert transport.connection_state.value is TransportState.DISCONNECTED


def test_bluetooth_default_channel(rfcomm):
    fake, _ = rfcomm
    transport = BluetoothSppTransport(channel=2)
    assert transport.connect(BluetoothParams("00:11:22:33:44:55", "Radio"))
    transport.disconnect()
    assert fake.address == ("00:11:22:33:44:55", 2)


def test_bluetooth_invalid_address_leaves_state():
    transport = BluetoothSppTransport()
    assert transport.connect(BluetoothParams("not-an-address")) is False
    assert transport.connect(NetworkParams("127.0.0.1", 1)) is False
    assert transport.connection_state.value is TransportState.DISCONNECTED


def test_bluetooth_unsupported_platform(monkeypatch):
    monkeypatch.setattr(bluetooth_module, "socket", types.SimpleNamespace())
    transport = BluetoothSppTransport()
    assert transport.connect(BluetoothParams("00:11:22:33:44:55")) is False
    assert transport.connection_state.value is TransportState.ERROR


def test_bluetooth_unpaired_device(rfcomm):
    transport = BluetoothSppTransport(device_lookup=lambda address: None)
    assert transport.connect(BluetoothParams("00:11:22:33:44:55")) is False
    assert transport.connection_state.value is TransportState.ERROR


def test_bluetooth_no_spp_service(rfcomm):
    transport = BluetoothSppTransport(channel_resolver=lambda address, uuid: None)
    assert transport.connect(BluetoothParams("00:11:22:33:44:55")) is False
    assert transport.connection_state.value is TransportState.ERROR


def test_list_paired_devices_parses_bluetoothctl(monkeypatch):
    output = (
        "Device 00:11:22:33:44:55 SiK Radio\n"
        "Device aa:bb:cc:dd:ee:ff\n"
        "garbage line\n"
    )
    completed = types.SimpleNamespace(stdout=output)
    monkeypatch.setattr(bluetooth_module.subprocess, "run", lambda *a, **kw: completed)

    devices = bluetooth_module.list_paired_devices()

    assert [d.to_dict() for d in devices] == [
        {"name": "SiK Radio", "address": "00:11:22:33:44:55", "paired": True},
        {"name": "Unknown Device", "address": "AA:BB:CC:DD:EE:FF", "paired": True},
    ]
    assert bluetooth_module.find_paired_device("aa:bb:cc:dd:ee:ff").name == "Unknown Device"
    assert bluetooth_module.find_paired_device("01:02:03:04:05:06") is None


def test_list_paired_devices_without_bluez(monkeypatch):
    def missing(*args, **kwargs):
        raise FileNotFoundError("bluetoothctl")

    monkeypatch.setattr(bluetooth_module.subprocess, "run", missing)
    assert bluetooth_module.list_paired_devices() == []
