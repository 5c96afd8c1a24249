"""Longitudinal redundancy check used by MODBUS ASCII frames."""

from __future__ import annotations

from collections.abc import Iterable


class Lrc:
    """Incremental LRC calculator."""

    def __init__(self) -> None:
        self._sum = 0

    def reset(self) -> Lrc:
        """Restore the initial state."""
        self._sum = 0
        return self

    def push_byte(self, b: int) -> Lrc:
        """Feed a single byte into the checksum."""
        if not 0 <= b <= 0xFF:
            raise ValueError(f"byte must be in range(0, 256), got {b}")
        self._sum = (self._sum + b) & 0xFF
        return self

    def push_bytes(self, data: bytes | Iterable[int]) -> Lrc:
        """Feed bytes into the checksum."""
        self._sum = (self._sum + sum(bytes(data))) & 0xFF
        return self

    def value(self) -> int:
        """Two's complement of the running byte sum."""
        return -self._sum & 0xFF


def lrc(data: bytes | Iterable[int]) -> int:
    """Return the LRC checksum of ``data``."""
    return Lrc().push_bytes(data).value()