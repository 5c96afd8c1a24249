"""MODBUS TCP framing and socket transport."""

from __future__ import annotations

import logging
import socket
import struct
import threading
import time

from .client import Client, new_client
from .protocol import Packager, ProtocolDataUnit, ProtocolError, Transporter

TCP_PROTOCOL_IDENTIFIER = 0x0000
TCP_HEADER_SIZE = 7
TCP_MAX_LENGTH = 260
TCP_TIMEOUT = 10.0
TCP_IDLE_TIMEOUT = 60.0

_MAX_LENGTH_FIELD = TCP_MAX_LENGTH - (TCP_HEADER_SIZE - 1)


def _uint16_at(data: bytes, offset: int) -> int:
    return struct.unpack_from(">H", data, offset)[0]


def _split_address(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep or not port:
        raise ValueError(f"modbus: address '{address}' must be of the form host:port")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        return host, int(port)
    except ValueError:
        raise ValueError(f"modbus: invalid port in address '{address}'") from None


class TCPPackager(Packager):
    """Adds and strips the MODBUS application protocol (MBAP) header."""

    def __init__(self, slave_id: int = 0) -> None:
        self.slave_id = slave_id
        self.transaction_id = 0
        self._tid_lock = threading.Lock()

    def _next_transaction_id(self) -> int:
        with self._tid_lock:
            self.transaction_id = (self.transaction_id + 1) & 0xFFFFFFFF
            return self.transaction_id & 0xFFFF

    def encode(self, pdu: ProtocolDataUnit) -> bytes:
        length = 1 + 1 + len(pdu.data)
        header = struct.pack(
            ">HHHBB",
            self._next_transaction_id(),
            TCP_PROTOCOL_IDENTIFIER,
            length & 0xFFFF,
            self.slave_id & 0xFF,
            pdu.function_code & 0xFF,
        )
        return header + pdu.data

    def verify(self, adu_request: bytes, adu_response: bytes) -> None:
        if len(adu_response) < TCP_HEADER_SIZE:
            raise ProtocolError(
                f"modbus: response length '{len(adu_response)}' does not meet "
                f"minimum '{TCP_HEADER_SIZE}'"
            )
        for label, offset in (("transaction id", 0), ("protocol id", 2)):
            response_val = _uint16_at(adu_response, offset)
            request_val = _uint16_at(adu_request, offset)
            if response_val != request_val:
                raise ProtocolError(
                    f"modbus: response {label} '{response_val}' does not match "
                    f"request '{request_val}'"
                )
        if adu_response[6] != adu_request[6]:
            raise ProtocolError(
                f"modbus: response unit id '{adu_response[6]}' does not match "
                f"request '{adu_request[6]}'"
            )

    def decode(self, adu: bytes) -> ProtocolDataUnit:
        adu = bytes(adu)
        if len(adu) < 6:
            raise ProtocolError(
                f"modbus: response length '{len(adu)}' is too short for a header"
            )
        expected = (_uint16_at(adu, 4) - 1) & 0xFFFF
        pdu_length = len(adu) - TCP_HEADER_SIZE
        if pdu_length <= 0 or pdu_length != expected:
            raise ProtocolError(
                f"modbus: length in response '{expected}' does not match "
                f"pdu data length '{pdu_length}'"
            )
        return ProtocolDataUnit(adu[TCP_HEADER_SIZE], adu[TCP_HEADER_SIZE + 1:])


class TCPTransporter(Transporter):
    """Sends frames over a lazily opened TCP connection that closes when idle."""

    def __init__(
        self,
        address: str = "",
        timeout: float = TCP_TIMEOUT,
        idle_timeout: float = TCP_IDLE_TIMEOUT,
        logger: logging.Logger | None = None,
    ) -> None:
        self.address = address
        self.timeout = timeout
        self.idle_timeout = idle_timeout
        self.logger = logger
        self.conn: socket.socket | None = None
        self._lock = threading.Lock()
        self._last_activity = 0.0
        self._close_timer: threading.Timer | None = None

    def send(self, adu_request: bytes) -> bytes:
        adu_request = bytes(adu_request)
        with self._lock:
            self._connect()
            self._last_activity = time.monotonic()
            self._start_close_timer()
            self.conn.settimeout(self.timeout if self.timeout > 0 else None)

            self._logf("modbus: sending %s", adu_request.hex(" "))
            self.conn.sendall(adu_request)

            size = TCP_HEADER_SIZE + 1
            head = self._read_exact(size)
            request_id = _uint16_at(adu_request, 0)
            response_id = _uint16_at(head, 0)
            # A stray heartbeat byte in front of the response shifts the frame by one.
            heartbeat = request_id != response_id
            if heartbeat:
                self._logf("modbus: heartbeat byte before response: %s", head[:1].hex())
            header = head[1:] if heartbeat else head
            self._logf("modbus: header %s", head.hex(" "))

            length = _uint16_at(header, 4)
            if length < 2 or length > _MAX_LENGTH_FIELD:
                self._flush()
                raise ProtocolError(
                    f"modbus: length in response header '{length}' must not greater "
                    f"than '{TCP_MAX_LENGTH - TCP_HEADER_SIZE + 1}'"
                )
            self._logf("modbus: data length %d", length)
            total = length + size - 1
            if not heartbeat:
                total -= 1
            frame = head + self._read_exact(total - size)
            response = frame[1:total] if heartbeat else frame[:total]
            self._logf("modbus: received %s", response.hex(" "))
            return response

    def connect(self) -> None:
        """Open the connection unless it is already open."""
        with self._lock:
            self._connect()

    def close(self) -> None:
        """Close the connection if it is open."""
        with self._lock:
            self._close()

    def __enter__(self) -> TCPTransporter:
        self.connect()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # Callers of the methods below must hold the lock.

    def _connect(self) -> None:
        if self.conn is None:
            host, port = _split_address(self.address)
            self.conn = socket.create_connection(
                (host, port), timeout=self.timeout if self.timeout > 0 else None
            )

    def _close(self) -> None:
        if self.conn is not None:
            conn, self.conn = self.conn, None
            conn.close()

    def _read_exact(self, size: int) -> bytes:
        buf = bytearray()
        while len(buf) < size:
            chunk = self.conn.recv(size - len(buf))
            if not chunk:
                raise ConnectionError(
                    f"modbus: connection closed after '{len(buf)}' of '{size}' bytes"
                )
            buf += chunk
        return bytes(buf)

    def _flush(self) -> None:
        """Discard whatever is pending in the connection without blocking."""
        try:
            self.conn.setblocking(False)
            try:
                self.conn.recv(TCP_MAX_LENGTH)
            finally:
                self.conn.settimeout(self.timeout if self.timeout > 0 else None)
        except (BlockingIOError, InterruptedError, socket.timeout):
            pass

    def _logf(self, fmt: str, *args: object) -> None:
        if self.logger is not None:
            self.logger.info(fmt, *args)

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


class TCPClientHandler(TCPPackager, TCPTransporter):
    """Packager and transporter for MODBUS TCP."""

    def __init__(self, address: str, slave_id: int = 0) -> None:
        TCPPackager.__init__(self, slave_id)
        TCPTransporter.__init__(
            self, address, timeout=TCP_TIMEOUT, idle_timeout=TCP_IDLE_TIMEOUT
        )


def tcp_client(address: str) -> Client:
    """Create a TCP client with a default handler for the given host:port."""
    return new_client(TCPClientHandler(address))