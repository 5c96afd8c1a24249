"""MODBUS ASCII framing and serial transport."""

from __future__ import annotations

from .client import Client, new_client
from .lrc import Lrc
from .protocol import Packager, ProtocolDataUnit, ProtocolError, Transporter
from .serialport import SERIAL_IDLE_TIMEOUT, SERIAL_TIMEOUT, SerialPort

ASCII_START = b":"
ASCII_END = b"\r\n"
ASCII_MIN_SIZE = 3
ASCII_MAX_SIZE = 513

_HEX_DIGITS = frozenset(b"0123456789abcdefABCDEF")


def write_hex(data: bytes) -> bytes:
    """Encode bytes as upper-case hexadecimal characters, e.g. 0xA5 -> b"A5"."""
    return bytes(data).hex().upper().encode("ascii")


def _decode_hex(data: bytes) -> bytes:
    data = bytes(data)
    if len(data) % 2:
        raise ProtocolError("modbus: odd length hex string")
    if not set(data) <= _HEX_DIGITS:
        raise ProtocolError(f"modbus: invalid hex string {data!r}")
    return bytes.fromhex(data.decode("ascii"))


def read_hex(data: bytes) -> int:
    """Decode the first two hexadecimal characters into a byte, e.g. b"8C" -> 0x8C."""
    chunk = bytes(data[:2])
    if len(chunk) < 2:
        raise ProtocolError("modbus: unexpected end of hex string")
    return _decode_hex(chunk)[0]


def _frame_lrc(address: int, function_code: int, data: bytes) -> int:
    return Lrc().push_byte(address).push_byte(function_code).push_bytes(data).value()


class ASCIIPackager(Packager):
    """Frames PDUs as ASCII: colon, hex payload, LRC and CRLF."""

    def __init__(self, slave_id: int = 0) -> None:
        self.slave_id = slave_id

    def encode(self, pdu: ProtocolDataUnit) -> bytes:
        checksum = _frame_lrc(self.slave_id, pdu.function_code, pdu.data)
        return b"".join(
            (
                ASCII_START,
                write_hex(bytes([self.slave_id, pdu.function_code])),
                write_hex(pdu.data),
                write_hex(bytes([checksum])),
                ASCII_END,
            )
        )

    def verify(self, adu_request: bytes, adu_response: bytes) -> None:
        length = len(adu_response)
        minimum = ASCII_MIN_SIZE + 6
        if length < minimum:
            raise ProtocolError(
                f"modbus: response length '{length}' does not meet minimum '{minimum}'"
            )
        if length % 2 != 1:
            raise ProtocolError(
                f"modbus: response length '{length - 1}' is not an even number"
            )
        start = bytes(adu_response[: len(ASCII_START)])
        if start != ASCII_START:
            raise ProtocolError(
                f"modbus: response frame '{start.decode('ascii', 'replace')}'... "
                f"is not started with '{ASCII_START.decode()}'"
            )
        end = bytes(adu_response[-len(ASCII_END):])
        if end != ASCII_END:
            raise ProtocolError(
                f"modbus: response frame ...'{end.decode('ascii', 'replace')}' "
                f"is not ended with '{ASCII_END.decode()!r}'"
            )
        response_id = read_hex(adu_response[1:])
        request_id = read_hex(adu_request[1:])
        if response_id != request_id:
            raise ProtocolError(
                f"modbus: response slave id '{response_id}' does not match "
                f"request '{request_id}'"
            )

    def decode(self, adu: bytes) -> ProtocolDataUnit:
        adu = bytes(adu)
        address = read_hex(adu[1:])
        function_code = read_hex(adu[3:])
        data_end = len(adu) - 4
        data = _decode_hex(adu[5:data_end])
        lrc_value = read_hex(adu[data_end:])
        expected = _frame_lrc(address, function_code, data)
        if lrc_value != expected:
            raise ProtocolError(
                f"modbus: response lrc '{lrc_value}' does not match expected '{expected}'"
            )
        return ProtocolDataUnit(function_code, data)


class ASCIISerialTransporter(SerialPort, Transporter):
    """Sends ASCII frames over a serial line."""

    def send(self, adu_request: bytes) -> bytes:
        with self._lock:
            self._connect()
            self._mark_activity()

            self._logf("modbus: sending %r", bytes(adu_request))
            self.port.write(adu_request)

            data = bytearray()
            while True:
                chunk = self._read_some(ASCII_MAX_SIZE - len(data))
                data += chunk
                if len(data) >= ASCII_MAX_SIZE or not chunk:
                    break
                if len(data) > ASCII_MIN_SIZE and data.endswith(ASCII_END):
                    break
            response = bytes(data)
            self._logf("modbus: received %r", response)
            return response


class ASCIIClientHandler(ASCIIPackager, ASCIISerialTransporter):
    """Packager and transporter for MODBUS ASCII over a serial line."""

    def __init__(self, address: str, slave_id: int = 0) -> None:
        ASCIIPackager.__init__(self, slave_id)
        ASCIISerialTransporter.__init__(
            self, address, timeout=SERIAL_TIMEOUT, idle_timeout=SERIAL_IDLE_TIMEOUT
        )


def ascii_client(address: str) -> Client:
    """Create an ASCII client with a default handler on the given serial device."""
    return new_client(ASCIIClientHandler(address))