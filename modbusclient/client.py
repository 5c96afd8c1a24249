"""High-level MODBUS client built on a packager and a transporter."""

from __future__ import annotations

import struct
from collections.abc import Iterable

from .protocol import (
    FunctionCode,
    ModbusError,
    Packager,
    ProtocolDataUnit,
    ProtocolError,
    Transporter,
)


def _check_uint16(value: int) -> int:
    value = int(value)
    if not 0 <= value <= 0xFFFF:
        raise ValueError(f"value {value} does not fit in 16 bits")
    return value


def data_block(*args: int) -> bytes:
    """Pack 16-bit values into big-endian bytes."""
    values = [_check_uint16(v) for v in args]
    return struct.pack(f">{len(values)}H", *values)


def data_block_suffix(suffix: bytes | Iterable[int], *args: int) -> bytes:
    """Pack 16-bit values, then the suffix length as one byte, then the suffix."""
    suffix = bytes(suffix)
    return data_block(*args) + bytes([len(suffix) & 0xFF]) + suffix


def response_error(response: ProtocolDataUnit) -> ModbusError:
    """Build the exception matching an exception response."""
    exception_code = response.data[0] if response.data else 0
    return ModbusError(response.function_code, exception_code)


def _check_quantity(quantity: int, low: int, high: int, what: str = "quantity") -> None:
    if not low <= quantity <= high:
        raise ProtocolError(
            f"modbus: {what} '{quantity}' must be between '{low}' and '{high}',"
        )


def _uint16_at(data: bytes, offset: int) -> int:
    return struct.unpack_from(">H", data, offset)[0]


class Client:
    """MODBUS client issuing requests through a packager and a transporter."""

    def __init__(self, packager: Packager, transporter: Transporter) -> None:
        self.packager = packager
        self.transporter = transporter

    # Bit access

    def read_coils(self, address: int, quantity: int) -> bytes:
        """Read 1 to 2000 contiguous coils and return their packed status."""
        _check_quantity(quantity, 1, 2000)
        return self._read_counted(FunctionCode.READ_COILS, data_block(address, quantity))

    def read_discrete_inputs(self, address: int, quantity: int) -> bytes:
        """Read 1 to 2000 contiguous discrete inputs and return their packed status."""
        _check_quantity(quantity, 1, 2000)
        return self._read_counted(
            FunctionCode.READ_DISCRETE_INPUTS, data_block(address, quantity)
        )

    def write_single_coil(self, address: int, value: int) -> bytes:
        """Set one coil ON (0xFF00) or OFF (0x0000); return the echoed value."""
        if value not in (0xFF00, 0x0000):
            raise ProtocolError(
                f"modbus: state '{value}' must be either 0xFF00 (ON) or 0x0000 (OFF)"
            )
        return self._write_echo(
            FunctionCode.WRITE_SINGLE_COIL, data_block(address, value), address, value, "value"
        )

    def write_multiple_coils(
        self, address: int, quantity: int, value: bytes | Iterable[int]
    ) -> bytes:
        """Force a sequence of coils; return the echoed quantity."""
        _check_quantity(quantity, 1, 1968)
        return self._write_echo(
            FunctionCode.WRITE_MULTIPLE_COILS,
            data_block_suffix(value, address, quantity),
            address,
            quantity,
            "quantity",
        )

    # 16-bit access

    def read_holding_registers(self, address: int, quantity: int) -> bytes:
        """Read 1 to 125 contiguous holding registers."""
        _check_quantity(quantity, 1, 125)
        return self._read_counted(
            FunctionCode.READ_HOLDING_REGISTERS, data_block(address, quantity)
        )

    def read_input_registers(self, address: int, quantity: int) -> bytes:
        """Read 1 to 125 contiguous input registers."""
        _check_quantity(quantity, 1, 125)
        return self._read_counted(
            FunctionCode.READ_INPUT_REGISTERS, data_block(address, quantity)
        )

    def write_single_register(self, address: int, value: int) -> bytes:
        """Write one holding register; return the echoed value."""
        return self._write_echo(
            FunctionCode.WRITE_SINGLE_REGISTER, data_block(address, value), address, value, "value"
        )

    def write_multiple_registers(
        self, address: int, quantity: int, value: bytes | Iterable[int]
    ) -> bytes:
        """Write 1 to 123 contiguous registers; return the echoed quantity."""
        _check_quantity(quantity, 1, 123)
        return self._write_echo(
            FunctionCode.WRITE_MULTIPLE_REGISTERS,
            data_block_suffix(value, address, quantity),
            address,
            quantity,
            "quantity",
        )

    def mask_write_register(self, address: int, and_mask: int, or_mask: int) -> bytes:
        """Modify a register with AND/OR masks; return the echoed masks."""
        request = ProtocolDataUnit(
            FunctionCode.MASK_WRITE_REGISTER, data_block(address, and_mask, or_mask)
        )
        data = self._send(request).data
        if len(data) != 6:
            raise ProtocolError(
                f"modbus: response data size '{len(data)}' does not match expected '6'"
            )
        checks = (("address", address, 0), ("AND-mask", and_mask, 2), ("OR-mask", or_mask, 4))
        for label, expected, offset in checks:
            actual = _uint16_at(data, offset)
            if actual != expected:
                raise ProtocolError(
                    f"modbus: response {label} '{actual}' does not match request '{expected}'"
                )
        return data[2:]

    def read_write_multiple_registers(
        self,
        read_address: int,
        read_quantity: int,
        write_address: int,
        write_quantity: int,
        value: bytes | Iterable[int],
    ) -> bytes:
        """Write registers and read registers in one transaction; return those read."""
        _check_quantity(read_quantity, 1, 125, "quantity to read")
        _check_quantity(write_quantity, 1, 121, "quantity to write")
        return self._read_counted(
            FunctionCode.READ_WRITE_MULTIPLE_REGISTERS,
            data_block_suffix(value, read_address, read_quantity, write_address, write_quantity),
        )

    def read_fifo_queue(self, address: int) -> bytes:
        """Read the contents of a FIFO queue of registers."""
        request = ProtocolDataUnit(FunctionCode.READ_FIFO_QUEUE, data_block(address))
        data = self._send(request).data
        if len(data) < 4:
            raise ProtocolError(
                f"modbus: response data size '{len(data)}' is less than expected '4'"
            )
        count = _uint16_at(data, 0)
        if count != len(data) - 1:
            raise ProtocolError(
                f"modbus: response data size '{len(data) - 1}' does not match count '{count}'"
            )
        fifo_count = _uint16_at(data, 2)
        if fifo_count > 31:
            raise ProtocolError(
                f"modbus: fifo count '{fifo_count}' is greater than expected '31'"
            )
        return data[4:]

    # Helpers

    def _read_counted(self, function_code: FunctionCode, payload: bytes) -> bytes:
        data = self._send(ProtocolDataUnit(function_code, payload)).data
        count = data[0]
        length = len(data) - 1
        if count != length:
            raise ProtocolError(
                f"modbus: response data size '{length}' does not match count '{count}'"
            )
        return data[1:]

    def _write_echo(
        self,
        function_code: FunctionCode,
        payload: bytes,
        address: int,
        expected: int,
        label: str,
    ) -> bytes:
        data = self._send(ProtocolDataUnit(function_code, payload)).data
        if len(data) != 4:
            raise ProtocolError(
                f"modbus: response data size '{len(data)}' does not match expected '4'"
            )
        resp_address = _uint16_at(data, 0)
        if resp_address != address:
            raise ProtocolError(
                f"modbus: response address '{resp_address}' does not match request '{address}'"
            )
        resp_value = _uint16_at(data, 2)
        if resp_value != expected:
            raise ProtocolError(
                f"modbus: response {label} '{resp_value}' does not match request '{expected}'"
            )
        return data[2:]

    def _send(self, request: ProtocolDataUnit) -> ProtocolDataUnit:
        adu_request = self.packager.encode(request)
        adu_response = self.transporter.send(adu_request)
        self.packager.verify(adu_request, adu_response)
        response = self.packager.decode(adu_response)
        if response.function_code != request.function_code:
            raise response_error(response)
        if not response.data:
            raise ProtocolError("modbus: response data is empty")
        return response


def new_client(handler) -> Client:
    """Create a client from an object acting as both packager and transporter."""
    return Client(handler, handler)