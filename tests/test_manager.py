"""Tests for transport selection and switching."""

from __future__ import annotations

import pytest

from mavlink_gcs.transport.base import (
    BluetoothParams,
    NetworkParams,
    TransportState,
    TransportType,
)
from mavlink_gcs.transport.manager import (
    TransportManager,
    default_params,
    display_name,
)
from mavlink_gcs.utils.observable import Observable


class RecordingTransport:
    """Transport double that records the order of lifecycle calls."""

    def __init__(self, transport_type: TransportType, events: list, succeed: bool = True) -> None:
        self.transport_type = transport_type
        self.connection_state = Observable(TransportState.DISCONNECTED)
        self.events = events
        self.succeed = succeed
        self.callback = None
        self.sent: list[bytes] = []

    def connect(self, params) -> bool:
        self.events.append(("connect", self.transport_type))
        if not self.succeed:
            self.connection_state.set(TransportState.ERROR)
            return False
        self.connection_state.set(TransportState.CONNECTED)
        return True

    def disconnect(self) -> None:
        self.events.append(("disconnect", self.transport_type))
        self.connection_state.set(TransportState.DISCONNECTED)

    def send_data(self, data: bytes) -> bool:
        self.sent.append(data)
        return True

    def set_data_callback(self, callback) -> None:
        self.callback = callback

    def connection_info(self) -> str:
        return f"fake {self.transport_type.value}"

    def push(self, data: bytes) -> None:
        if self.callback is not None:
            self.callback(data, len(data))


@pytest.fixture
def events():
    return []


@pytest.fixture
def created():
    return []


@pytest.fixture
def manager(events, created):
    def factory(transport_type):
        def build():
            transport = RecordingTransport(transport_type, events)
            created.append(transport)
            return transport
        return build

    return TransportManager(
        factories={t: factory(t) for t in TransportType},
        bluetooth_gate=lambda: True,
    )


def test_connect_publishes_state_and_info(manager):
    assert manager.connect(TransportType.TCP_CLIENT, NetworkParams("127.0.0.1", 5760))
    assert manager.is_connected()
    assert manager.connection_state.value is TransportState.CONNECTED
    assert manager.connection_info.value == "fake tcp_client"
    assert manager.active_transport_type.value is TransportType.TCP_CLIENT


def test_switch_disconnects_previous_first(manager, events, created):
    manager.connect(TransportType.UDP_LISTEN, NetworkParams("0.0.0.0", 14550))
    manager.connect(TransportType.TCP_CLIENT, NetworkParams("127.0.0.1", 5760))

    assert events == [
        ("connect", TransportType.UDP_LISTEN),
        ("disconnect", TransportType.UDP_LISTEN),
        ("connect", TransportType.TCP_CLIENT),
    ]
    assert manager.transport is created[1]
    assert manager.connection_info.value == "fake tcp_client"


def test_no_delivery_from_replaced_transport(manager, created):
    received = []
    manager.set_data_callback(lambda data, length: received.append(data))

    manager.connect(TransportType.UDP_LISTEN, NetworkParams("0.0.0.0", 14550))
    old = created[0]
    old.push(b"a")
    manager.connect(TransportType.UDP_CLIENT, NetworkParams("127.0.0.1", 14550))

    old.push(b"stale")
    created[1].push(b"b")

    assert received == [b"a", b"b"]


def test_stale_transport_state_is_ignored(manager, created):
    manager.connect(TransportType.UDP_LISTEN, NetworkParams("0.0.0.0", 14550))
    manager.connect(TransportType.UDP_CLIENT, NetworkParams("127.0.0.1", 14550))

    created[0].connection_state.set(TransportState.ERROR)

    assert manager.connection_state.value is TransportState.CONNECTED


def test_transport_error_is_republished(manager, created):
    manager.connect(TransportType.TCP_CLIENT, NetworkParams("127.0.0.1", 5760))
    created[0].connection_state.set(TransportState.ERROR)
    assert manager.connection_state.value is TransportState.ERROR
    assert manager.connection_info.value == ""


def test_failed_connect_reports_error(events, created):
    manager = TransportManager(
        factories={
            TransportType.TCP_CLIENT: lambda: RecordingTransport(
                TransportType.TCP_CLIENT, events, succeed=False
            )
        }
    )
    assert manager.connect(TransportType.TCP_CLIENT, NetworkParams("10.0.0.1", 5760)) is False
    assert manager.connection_state.value is TransportState.ERROR


def test_disconnect_resets_everything(manager, created):
    states = []
    manager.connection_state.subscribe(states.append)
    manager.connect(TransportType.UDP_LISTEN, NetworkParams("0.0.0.0", 14550))

    manager.disconnect()

    assert manager.transport is None
    assert manager.active_transport_type.value is None
    assert manager.connection_info.value == ""
    assert states[-1] is TransportState.DISCONNECTED
    assert created[0].callback is None


def test_send_without_transport(manager):
    assert manager.send_data(b"\xfe") is False


def test_send_goes_to_active_transport(manager, created):
    manager.connect(TransportType.UDP_CLIENT, NetworkParams("127.0.0.1", 14550))
    assert manager.send_data(b"\xfe\x00")
    assert created[0].sent == [b"\xfe\x00"]


def test_bluetooth_gate_blocks_connect(events):
    manager = TransportManager(
        factories={
            TransportType.BLUETOOTH_SPP: lambda: RecordingTransport(
                TransportType.BLUETOOTH_SPP, events
            )
        },
        bluetooth_gate=lambda: False,
    )
    params = BluetoothParams("00:11:22:33:44:55")
    assert manager.connect(TransportType.BLUETOOTH_SPP, params) is False
    assert events == []
    assert TransportType.BLUETOOTH_SPP not in manager.available_transports()
    assert manager.bluetooth_devices() == []


def test_available_transports_with_bluetooth(manager):
    assert manager.available_transports() == [
        TransportType.UDP_LISTEN,
        TransportType.UDP_CLIENT,
        TransportType.TCP_CLIENT,
        TransportType.BLUETOOTH_SPP,
    ]


def test_unregistered_transport_type(events):
    manager = TransportManager(factories={})
    assert manager.connect(TransportType.UDP_LISTEN, NetworkParams("0.0.0.0", 1)) is False
    assert manager.connection_state.value is TransportState.DISCONNECTED


@pytest.mark.parametrize(
    "transport_type, expected",
    [
        (TransportType.UDP_LISTEN, NetworkParams("0.0.0.0", 14550)),
        (TransportType.UDP_CLIENT, NetworkParams("192.168.1.100", 14550)),
        (TransportType.TCP_CLIENT, NetworkParams("192.168.1.100", 5760)),
        (TransportType.BLUETOOTH_SPP, BluetoothParams("", "")),
    ],
)
def test_default_params(transport_type, expected):
    assert default_params(transport_type) == expected


def test_display_names():
    assert display_name(TransportType.UDP_LISTEN) == "UDP Listen"
    assert display_name(TransportType.BLUETOOTH_SPP) == "Bluetooth SPP"
