"""MODBUS RTU framing and serial transport."""

from __future__ import annotations

import struct
import time

from .client import Client, new_client
from .crc import Crc
from .protocol import FunctionCode, Packager, ProtocolDataUnit, ProtocolError, Transporter
from .serialport import SERIAL_IDLE_TIMEOUT, SERIAL_TIMEOUT, SerialPort

RTU_MIN_SIZE = 4
RTU_MAX_SIZE = 256
RTU_EXCEPTION_SIZE = 5


class RTUPackager(Packager):
    """Frames PDUs as RTU: slave id, function, data and CRC."""

    def __init__(self, slave_id: int = 0) -> None:
        self.slave_id = slave_id

    def encode(self, pdu: ProtocolDataUnit) -> bytes:
        length = len(pdu.data) + 4
        if length > RTU_MAX_SIZE:
            raise ProtocolError(
                f"modbus: length of data '{length}' must not be bigger than '{RTU_MAX_SIZE}'"
            )
        body = bytes([self.slave_id & 0xFF, pdu.function_code & 0xFF]) + pdu.data
        checksum = Crc().push_bytes(body).value()
        return body + bytes([checksum & 0xFF, checksum >> 8])

    def verify(self, adu_request: bytes, adu_response: bytes) -> None:
        length = len(adu_response)
        if length < RTU_MIN_SIZE:
            raise ProtocolError(
                f"modbus: response length '{length}' does not meet minimum '{RTU_MIN_SIZE}'"
            )
        if adu_response[0] != adu_request[0]:
            raise ProtocolError(
                f"modbus: response slave id '{adu_response[0]}' does not match "
                f"request '{adu_request[0]}'"
            )

    def decode(self, adu: bytes) -> ProtocolDataUnit:
        adu = bytes(adu)
        if len(adu) < RTU_MIN_SIZE:
            raise ProtocolError(
                f"modbus: response length '{len(adu)}' does not meet minimum '{RTU_MIN_SIZE}'"
            )
        expected = Crc().push_bytes(adu[:-2]).value()
        checksum = adu[-1] << 8 | adu[-2]
        if checksum != expected:
            raise ProtocolError(
                f"modbus: response crc '{checksum}' does not match expected '{expected}'"
            )
        return ProtocolDataUnit(adu[1], adu[2:-2])


class RTUSerialTransporter(SerialPort, Transporter):
    """Sends RTU frames over a serial line."""

    def send(self, adu_request: bytes) -> bytes:
        with self._lock:
            self._connect()
            self._mark_activity()

            self._logf("modbus: sending %s", adu_request.hex(" "))
            self.port.write(adu_request)

            function = adu_request[1]
            function_fail = function | 0x80
            bytes_to_read = calculate_response_length(adu_request)
            time.sleep(self.calculate_delay(len(adu_request) + bytes_to_read))

            data = self._read_exact(RTU_MIN_SIZE)
            data += self._read_waiting(RTU_MAX_SIZE - len(data))
            if data[1] == function:
                if (
                    len(data) < bytes_to_read
                    and RTU_MIN_SIZE < bytes_to_read <= RTU_MAX_SIZE
                ):
                    data += self._read_exact(bytes_to_read - len(data))
            elif data[1] == function_fail:
                if len(data) < RTU_EXCEPTION_SIZE:
                    data += self._read_exact(RTU_EXCEPTION_SIZE - len(data))

            self._logf("modbus: received %s", data.hex(" "))
            return data

    def calculate_delay(self, chars: int) -> float:
        """Rough time in seconds needed to transfer ``chars`` characters plus a frame gap."""
        if self.baud_rate <= 0 or self.baud_rate > 19200:
            character_delay = 750
            frame_delay = 1750
        else:
            character_delay = 15_000_000 // self.baud_rate
            frame_delay = 35_000_000 // self.baud_rate
        return (character_delay * chars + frame_delay) / 1_000_000


class RTUClientHandler(RTUPackager, RTUSerialTransporter):
    """Packager and transporter for MODBUS RTU over a serial line."""

    def __init__(self, address: str, slave_id: int = 0) -> None:
        RTUPackager.__init__(self, slave_id)
        RTUSerialTransporter.__init__(
            self, address, timeout=SERIAL_TIMEOUT, idle_timeout=SERIAL_IDLE_TIMEOUT
        )


def rtu_client(address: str) -> Client:
    """Create an RTU client with a default handler on the given serial device."""
    return new_client(RTUClientHandler(address))


def calculate_response_length(adu: bytes) -> int:
    """Expected length of the response frame to the given request frame."""
    length = RTU_MIN_SIZE
    function = adu[1]
    if function in (FunctionCode.READ_DISCRETE_INPUTS, FunctionCode.READ_COILS):
        count = struct.unpack_from(">H", adu, 4)[0]
        length += 1 + count // 8
        if count % 8:
            length += 1
    elif function in (
        FunctionCode.READ_INPUT_REGISTERS,
        FunctionCode.READ_HOLDING_REGISTERS,
        FunctionCode.READ_WRITE_MULTIPLE_REGISTERS,
    ):
        count = struct.unpack_from(">H", adu, 4)[0]
        length += 1 + count * 2
    elif function in (
        FunctionCode.WRITE_SINGLE_COIL,
        FunctionCode.WRITE_MULTIPLE_COILS,
        FunctionCode.WRITE_SINGLE_REGISTER,
        FunctionCode.WRITE_MULTIPLE_REGISTERS,
    ):
        length += 4
    elif function == FunctionCode.MASK_WRITE_REGISTER:
        length += 6
    return length