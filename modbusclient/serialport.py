"""Serial line configuration and connection management."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

import serial

from .protocol import ProtocolError

SERIAL_TIMEOUT = 5.0
SERIAL_IDLE_TIMEOUT = 60.0


class SerialPort:
    """Serial port configuration plus a lazily opened, idle-closing connection.

    ``port`` is any object with ``read``, ``write`` and ``close`` methods; when
    it is ``None`` a :class:`serial.Serial` is opened on ``address``.
    """

    def __init__(
        self,
        address: str = "",
        baud_rate: int = 19200,
        data_bits: int = 8,
        stop_bits: float = 1,
        parity: str = "E",
        timeout: float = SERIAL_TIMEOUT,
        idle_timeout: float = SERIAL_IDLE_TIMEOUT,
        logger: logging.Logger | None = None,
        port: Any = None,
    ) -> None:
        self.address = address
        self.baud_rate = baud_rate
        self.data_bits = data_bits
        self.stop_bits = stop_bits
        self.parity = parity
        self.timeout = timeout
        self.idle_timeout = idle_timeout
        self.logger = logger
        self.port = port
        self._lock = threading.Lock()
        self._last_activity = 0.0
        self._close_timer: threading.Timer | None = None

    def connect(self) -> None:
        """Open the serial port unless it is already open."""
        with self._lock:
            self._connect()

    def close(self) -> None:
        """Close the serial port if it is open."""
        with self._lock:
            self._close()

    def __enter__(self) -> SerialPort:
        self.connect()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # Callers of the methods below must hold the lock.

    def _connect(self) -> None:
        if self.port is None:
            self.port = serial.Serial(
                port=self.address,
                baudrate=self.baud_rate,
                bytesize=self.data_bits,
                parity=self.parity,
                stopbits=self.stop_bits,
                timeout=self.timeout,
            )

    def _close(self) -> None:
        if self.port is not None:
            port, self.port = self.port, None
            port.close()

    def _logf(self, fmt: str, *args: object) -> None:
        if self.logger is not None:
            self.logger.info(fmt, *args)

    def _mark_activity(self) -> None:
        """Record activity now and (re)arm the idle close timer."""
        self._last_activity = time.monotonic()
        self._start_close_timer()

    def _start_close_timer(self) -> None:
        if self.idle_timeout <= 0:
            return
        if self._close_timer is not None:
            self._close_timer.cancel()
        self._schedule_close(self.idle_timeout)

    def _schedule_close(self, delay: float) -> None:
        timer = threading.Timer(delay, self._close_idle)
        timer.daemon = True
        self._close_timer = timer
        timer.start()

    def _close_idle(self) -> None:
        with self._lock:
            if self.idle_timeout <= 0:
                return
            idle = time.monotonic() - self._last_activity
            if idle >= self.idle_timeout:
                self._logf("modbus: closing connection due to idle timeout: %.3fs", idle)
                self._close()
            else:
                self._schedule_close(self.idle_timeout - idle)

    def _read_exact(self, size: int) -> bytes:
        buf = bytearray()
        while len(buf) < size:
            chunk = self.port.read(size - len(buf))
            if not chunk:
                raise ProtocolError(
                    f"modbus: unexpected end of response: received '{len(buf)}' "
                    f"of '{size}' bytes"
                )
            buf += chunk
        return bytes(buf)

    def _read_waiting(self, limit: int) -> bytes:
        waiting = min(getattr(self.port, "in_waiting", 0) or 0, limit)
        if waiting <= 0:
            return b""
        return bytes(self.port.read(waiting))

    def _read_some(self, limit: int) -> bytes:
        """Read at least one byte (blocking up to the timeout) and whatever else is buffered."""
        first = bytes(self.port.read(1))
        if not first:
            return b""
        return first + self._read_waiting(limit - 1)