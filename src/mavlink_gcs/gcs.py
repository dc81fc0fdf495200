"""Ground station: ties transports, frame parsing and vehicle state together.

Raw chunks arrive on the active transport's receive thread and are
queued; one dispatcher thread drains the queue into the frame parser,
so parsing and decoding always happen on a single thread regardless of
which transport delivered the bytes. Commands are encoded and sent on
the caller's thread.
"""

from __future__ import annotations

import logging
import queue
import threading
from typing import Optional, Union

from .config import DEFAULT_UDP_PORT, LISTEN_ALL_HOST
from .models.vehicle import VehicleState
from .protocol.commands import (
    DEFAULT_TAKEOFF_ALTITUDE,
    MavCommand,
    SequenceCounter,
    build_command_long,
)
from .protocol.framing import Frame, FrameParser
from .protocol.parser import parse_message
from .telemetry import TelemetrySink
from .transport.base import (
    ConnectionParams,
    NetworkParams,
    TransportState,
    TransportType,
)
from .transport.manager import TransportManager
from .utils.observable import Observable

logger = logging.getLogger(__name__)

_STOP = object()
_RESET = object()

QueueItem = Union[bytes, object]


class GroundStation:
    """Telemetry client for one vehicle.

    Usage::

        station = GroundStation()
        station.vehicle_state.subscribe(print)
        station.start_connection(TransportType.UDP_LISTEN, NetworkParams("0.0.0.0", 14550))
        station.arm_disarm(True)
        station.close()
    """

    def __init__(
        self,
        manager: Optional[TransportManager] = None,
        telemetry: Optional[TelemetrySink] = None,
    ) -> None:
        self._manager = manager or TransportManager()
        self._telemetry = telemetry
        self._parser = FrameParser(on_frame=self._handle_frame, on_reject=self._handle_reject)
        self._sequence = SequenceCounter()

        self._lock = threading.Lock()
        self._vehicle = VehicleState()
        self.vehicle_state: Observable[VehicleState] = Observable(self._vehicle.snapshot())

        self._chunks: queue.Queue[QueueItem] = queue.Queue()
        self._dispatcher: threading.Thread | None = None

        self._manager.set_data_callback(self._enqueue)
        self._unsubscribe_state = self._manager.connection_state.subscribe(
            self._on_connection_state
        )

    @property
    def manager(self) -> TransportManager:
        return self._manager

    @property
    def parser(self) -> FrameParser:
        return self._parser

    @property
    def vehicle(self) -> VehicleState:
        """A copy of the current vehicle state."""
        with self._lock:
            return self._vehicle.snapshot()

    # ─── LIFECYCLE ───────────────────────────────────────────────────

    def start(self) -> None:
        """Start the dispatcher thread if it is not already running."""
        if self._dispatcher is not None and self._dispatcher.is_alive():
            return
        self._dispatcher = threading.Thread(
            target=self._dispatch_loop, name="gcs-dispatch", daemon=True
        )
        self._dispatcher.start()

    def close(self) -> None:
        """Disconnect and stop the dispatcher once queued data is processed."""
        self._manager.disconnect()
        dispatcher = self._dispatcher
        if dispatcher is not None and dispatcher.is_alive():
            self._chunks.put(_STOP)
            dispatcher.join()
        self._dispatcher = None

    def start_connection(
        self, transport_type: TransportType, params: ConnectionParams
    ) -> bool:
        """Connect a transport, starting a fresh vehicle session."""
        self.start()
        self._manager.disconnect()
        self._chunks.put(_RESET)
        return self._manager.connect(transport_type, params)

    def start_udp(self, host: str, port: int = DEFAULT_UDP_PORT) -> bool:
        """Listen when ``host`` is ``0.0.0.0``, otherwise act as a UDP client."""
        transport_type = (
            TransportType.UDP_LISTEN if host == LISTEN_ALL_HOST else TransportType.UDP_CLIENT
        )
        return self.start_connection(transport_type, NetworkParams(host, port))

    def stop_connection(self) -> None:
        self._manager.disconnect()

    # ─── INBOUND ─────────────────────────────────────────────────────

    def _enqueue(self, data: bytes, length: int) -> None:
        self._chunks.put(bytes(data[:length]))

    def _dispatch_loop(self) -> None:
        while True:
            item = self._chunks.get()
            if item is _STOP:
                break
            if item is _RESET:
                self.reset_session()
                continue
            try:
                self.process_chunk(item)
            except Exception:
                logger.exception("Failed to process %d received bytes", len(item))

    def process_chunk(self, data: bytes) -> list[Frame]:
        """Parse a raw chunk and apply every complete frame it finishes."""
        if self._telemetry is not None:
            self._telemetry.log_frame(data, len(data))
        return self._parser.feed(data)

    def reset_session(self) -> None:
        """Forget partial frames and vehicle state from a previous link."""
        self._parser.reset()
        with self._lock:
            self._vehicle.reset()
            snapshot = self._vehicle.snapshot()
        self.vehicle_state.set(snapshot)

    def _handle_frame(self, frame: Frame) -> None:
        message = parse_message(frame)
        with self._lock:
            if self._vehicle.identify(frame.system_id, frame.component_id):
                logger.info(
                    "Vehicle identified: system %d component %d",
                    frame.system_id, frame.component_id,
                )
            if message is not None:
                self._vehicle.apply(message)
            snapshot = self._vehicle.snapshot()
        self.vehicle_state.set(snapshot)

    def _handle_reject(self, message_id: int) -> None:
        if self._telemetry is not None:
            self._telemetry.log_message(f"CRC validation failed for message ID {message_id}")

    def _on_connection_state(self, state: TransportState) -> None:
        with self._lock:
            self._vehicle.connected = state is TransportState.CONNECTED
            snapshot = self._vehicle.snapshot()
        self.vehicle_state.set(snapshot)

    # ─── OUTBOUND ────────────────────────────────────────────────────

    def send_command(
        self,
        command: int,
        param1: float = 0.0,
        param2: float = 0.0,
        param3: float = 0.0,
        param4: float = 0.0,
        param5: float = 0.0,
        param6: float = 0.0,
        param7: float = 0.0,
    ) -> bool:
        """Send a COMMAND_LONG to the identified vehicle.

        Returns:
            True if the active transport accepted the frame.
        """
        with self._lock:
            target_system = self._vehicle.system_id
            target_component = self._vehicle.component_id

        params = (param1, param2, param3, param4, param5, param6, param7)
        packet = build_command_long(
            command,
            *params,
            target_system=target_system,
            target_component=target_component,
            sequence=self._sequence.next(),
        )
        sent = self._manager.send_data(packet)

        if self._telemetry is not None:
            self._telemetry.log_message(
                f"CMD: {int(command)} params: " + " ".join(str(p) for p in params)
            )
        if not sent:
            logger.warning("Command %d not sent: no active connection", command)
        return sent

    def arm_disarm(self, arm: bool) -> bool:
        return self.send_command(MavCommand.COMPONENT_ARM_DISARM, 1.0 if arm else 0.0)

    def takeoff(self, altitude: float = DEFAULT_TAKEOFF_ALTITUDE) -> bool:
        return self.send_command(MavCommand.NAV_TAKEOFF, param7=altitude)

    def return_to_launch(self) -> bool:
        return self.send_command(MavCommand.NAV_RETURN_TO_LAUNCH)
