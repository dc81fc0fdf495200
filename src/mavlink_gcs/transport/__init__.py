"""Transports: UDP listen/client, TCP client and Bluetooth SPP."""

from .base import (
    BluetoothParams,
    ConnectionParams,
    NetworkParams,
    Transport,
    TransportState,
    TransportType,
)
from .manager import TransportManager
