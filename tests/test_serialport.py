import io
import time
from unittest import mock

import pytest

from modbusclient.protocol import ProtocolError
from modbusclient.serialport import SerialPort


class FakePort:
    def __init__(self, incoming=b""):
        self.incoming = io.BytesIO(incoming)
        self.written = bytearray()
        self.closed = False

    def read(self, size=1):
        return self.incoming.read(size)

    def write(self, data):
        self.written += data
        return len(data)

    def close(self):
        self.closed = True


def test_close_idle():
    port = FakePort()
    s = SerialPort(port=port, idle_timeout=0.1)
    s._mark_activity()
    time.sleep(0.25)
    assert port.closed
    assert s.port is None


def test_no_idle_close_when_disabled():
    port = FakePort()
    s = SerialPort(port=port, idle_timeout=0)
    s._mark_activity()
    time.sleep(0.05)
    assert not port.closed
    assert s.port is port


def test_close_clears_port():
    port = FakePort()
    s = SerialPort(port=port, idle_timeout=0)
    s.close()
    assert port.closed
    assert s.port is None


def test_context_manager_closes():
    port = FakePort()
    with SerialPort(port=port, idle_timeout=0) as s:
        assert s.port is port
    assert port.closed
    assert s.port is None


def test_connect_keeps_existing_port():
    port = FakePort()
    s = SerialPort(port=port, idle_timeout=0)
    with mock.patch("modbusclient.serialport.serial.Serial") as opener:
        s.connect()
    assert opener.call_count == 0
    assert s.port is port


def test_connect_opens_serial_with_config():
    s = SerialPort("/dev/ttyFAKE0", baud_rate=9600, parity="N", timeout=2.0, idle_timeout=0)
    with mock.patch("modbusclient.serialport.serial.Serial") as opener:
        s.connect()
    opener.assert_called_once_with(
        port="/dev/ttyFAKE0",
        baudrate=9600,
        bytesize=8,
        parity="N",
        stopbits=1,
        timeout=2.0,
    )
    assert s.port is opener.return_value


def test_read_exact_short_raises():
    s = SerialPort(port=FakePort(b"\x01\x02"), idle_timeout=0)
    with pytest.raises(ProtocolError):
        s._read_exact(4)


def test_read_exact_returns_bytes():
    s = SerialPort(port=FakePort(b"\x01\x02\x03\x04\x05"), idle_timeout=0)
    assert s._read_exact(4) == b"\x01\x02\x03\x04"