"""MAVLink v1 ground control station: transports, framing and vehicle telemetry."""

from .gcs import GroundStation
from .models.vehicle import VehicleState
from .transport.base import BluetoothParams, NetworkParams, TransportState, TransportType

__version__ = "0.1.0"
