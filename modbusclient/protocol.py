"""Core MODBUS protocol definitions: codes, errors, PDU and layer interfaces."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import IntEnum


class FunctionCode(IntEnum):
    """Public function codes supported by the client."""

    # Bit access
    READ_COILS = 1
    READ_DISCRETE_INPUTS = 2
    WRITE_SINGLE_COIL = 5
    WRITE_MULTIPLE_COILS = 15

    # 16-bit access
    READ_HOLDING_REGISTERS = 3
    READ_INPUT_REGISTERS = 4
    WRITE_SINGLE_REGISTER = 6
    WRITE_MULTIPLE_REGISTERS = 16
    MASK_WRITE_REGISTER = 22
    READ_WRITE_MULTIPLE_REGISTERS = 23
    READ_FIFO_QUEUE = 24


class ExceptionCode(IntEnum):
    """Exception codes a remote device may return."""

    ILLEGAL_FUNCTION = 1
    ILLEGAL_DATA_ADDRESS = 2
    ILLEGAL_DATA_VALUE = 3
    SERVER_DEVICE_FAILURE = 4
    ACKNOWLEDGE = 5
    SERVER_DEVICE_BUSY = 6
    MEMORY_PARITY_ERROR = 8
    GATEWAY_PATH_UNAVAILABLE = 10
    GATEWAY_TARGET_DEVICE_FAILED_TO_RESPOND = 11


_EXCEPTION_NAMES = {
    ExceptionCode.ILLEGAL_FUNCTION: "illegal function",
    ExceptionCode.ILLEGAL_DATA_ADDRESS: "illegal data address",
    ExceptionCode.ILLEGAL_DATA_VALUE: "illegal data value",
    ExceptionCode.SERVER_DEVICE_FAILURE: "server device failure",
    ExceptionCode.ACKNOWLEDGE: "acknowledge",
    ExceptionCode.SERVER_DEVICE_BUSY: "server device busy",
    ExceptionCode.MEMORY_PARITY_ERROR: "memory parity error",
    ExceptionCode.GATEWAY_PATH_UNAVAILABLE: "gateway path unavailable",
    ExceptionCode.GATEWAY_TARGET_DEVICE_FAILED_TO_RESPOND: "gateway target device failed to respond",
}


class ProtocolError(Exception):
    """Raised when a request or a response breaks the protocol rules."""


class ModbusError(ProtocolError):
    """An exception response returned by the remote device."""

    def __init__(self, function_code: int, exception_code: int = 0) -> None:
        super().__init__(function_code, exception_code)
        self.function_code = int(function_code)
        self.exception_code = int(exception_code)

    @property
    def name(self) -> str:
        """Human-readable name of the exception code."""
        return _EXCEPTION_NAMES.get(self.exception_code, "unknown")

    def __str__(self) -> str:
        return (
            f"modbus: exception '{self.exception_code}' ({self.name}), "
            f"function '{self.function_code}'"
        )


@dataclass
class ProtocolDataUnit:
    """A PDU, independent of the underlying communication layer."""

    function_code: int
    data: bytes = field(default=b"")

    def __post_init__(self) -> None:
        self.function_code = int(self.function_code)
        self.data = bytes(self.data)


class Packager(ABC):
    """Frames PDUs into application data units and back."""

    @abstractmethod
    def encode(self, pdu: ProtocolDataUnit) -> bytes:
        """Wrap a PDU into a frame ready to send."""

    @abstractmethod
    def decode(self, adu: bytes) -> ProtocolDataUnit:
        """Extract the PDU from a received frame."""

    @abstractmethod
    def verify(self, adu_request: bytes, adu_response: bytes) -> None:
        """Check that a response frame belongs to the request frame."""


class Transporter(ABC):
    """Moves frames to and from the remote device."""

    @abstractmethod
    def send(self, adu_request: bytes) -> bytes:
        """Send a request frame and return the response frame."""