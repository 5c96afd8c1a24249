"""Cyclical redundancy check used by MODBUS RTU frames."""

from __future__ import annotations

from collections.abc import Iterable


def _build_table() -> tuple[int, ...]:
    table = []
    for byte in range(256):
        value = byte
        for _ in range(8):
            value = (value >> 1) ^ 0xA001 if value & 1 else value >> 1
        table.append(value)
    return tuple(table)


_TABLE = _build_table()


class Crc:
    """Incremental CRC-16/MODBUS calculator."""

    def __init__(self) -> None:
        self._register = 0xFFFF

    def reset(self) -> Crc:
        """Restore the initial state."""
        self._register = 0xFFFF
        return self

    def push_bytes(self, data: bytes | Iterable[int]) -> Crc:
        """Feed bytes into the checksum."""
        register = self._register
        for b in bytes(data):
            register = (register >> 8) ^ _TABLE[(register ^ b) & 0xFF]
        self._register = register
        return self

    def value(self) -> int:
        """Current checksum as a 16-bit integer (high byte first)."""
        return self._register


def crc16(data: bytes | Iterable[int]) -> int:
    """Return the CRC-16/MODBUS checksum of ``data``."""
    return Crc().push_bytes(data).value()