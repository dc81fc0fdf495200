"""Telemetry recording sink.

The ground station reports every raw inbound chunk and every outgoing
command here. Storage is not this module's business: the default sink
renders hex lines onto the ``mavlink_gcs.telemetry`` logger, and any
handler attached to that logger (a file, a rotating file, a socket)
decides where they go.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Protocol

TELEMETRY_LOGGER = "mavlink_gcs.telemetry"


class TelemetrySink(Protocol):
    def log_frame(self, data: bytes, length: int) -> None:
        """Record ``length`` raw bytes from ``data``."""
        ...

    def log_message(self, message: str) -> None:
        """Record a text annotation."""
        ...


def _timestamp() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]


class LoggingTelemetrySink:
    """Writes ``[timestamp] [HEX] ..`` and ``[timestamp] [MSG] ..`` lines."""

    def __init__(self, logger: logging.Logger | None = None, enabled: bool = True) -> None:
        self._logger = logger or logging.getLogger(TELEMETRY_LOGGER)
        self._enabled = enabled

    @property
    def is_logging(self) -> bool:
        return self._enabled

    def start_logging(self) -> None:
        if not self._enabled:
            self._enabled = True
            self._logger.info("[%s] [MSG] Logging started", _timestamp())

    def stop_logging(self) -> None:
        if self._enabled:
            self._logger.info("[%s] [MSG] Logging stopped", _timestamp())
            self._enabled = False

    def log_frame(self, data: bytes, length: int) -> None:
        if not self._enabled:
            return
        self._logger.info("[%s] [HEX] %s", _timestamp(), bytes(data[:length]).hex(" ").upper())

    def log_message(self, message: str) -> None:
        if not self._enabled:
            return
        self._logger.info("[%s] [MSG] %s", _timestamp(), message)
