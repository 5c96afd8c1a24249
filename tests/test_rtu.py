import io

import pytest

from modbusclient.client import new_client
from modbusclient.protocol import ModbusError, ProtocolDataUnit, ProtocolError
from modbusclient.rtu import (
    RTUClientHandler,
    RTUPackager,
    calculate_response_length,
)


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


def make_handler(response, slave_id=1):
    handler = RTUClientHandler("/dev/ttyFAKE0", slave_id)
    handler.idle_timeout = 0
    handler.baud_rate = 0
    handler.port = FakePort(response)
    return handler


def test_rtu_encoding():
    adu = RTUPackager(0x01).encode(ProtocolDataUnit(0x03, bytes([0x50, 0x00, 0x00, 0x18])))
    assert adu == bytes([0x01, 0x03, 0x50, 0x00, 0x00, 0x18, 0x54, 0xC0])


def test_rtu_decoding():
    pdu = RTUPackager().decode(bytes([0x01, 0x10, 0x8A, 0x00, 0x00, 0x03, 0xAA, 0x10]))
    assert pdu.function_code == 16
    assert pdu.data == bytes([0x8A, 0x00, 0x00, 0x03])


def test_rtu_decoding_bad_crc():
    with pytest.raises(ProtocolError, match="crc"):
        RTUPackager().decode(bytes([0x01, 0x10, 0x8A, 0x00, 0x00, 0x03, 0xAA, 0x11]))


def test_rtu_encode_too_long():
    with pytest.raises(ProtocolError, match="must not be bigger"):
        RTUPackager(1).encode(ProtocolDataUnit(3, bytes(253)))


def test_rtu_encode_decode_round_trip():
    pdu = ProtocolDataUnit(0x10, bytes(range(252)))
    assert RTUPackager(9).decode(RTUPackager(9).encode(pdu)) == pdu


def test_verify_short_response():
    with pytest.raises(ProtocolError, match="minimum '4'"):
        RTUPackager().verify(b"\x01\x03\x00\x00", b"\x01\x03\x00")


def test_verify_slave_mismatch():
    with pytest.raises(ProtocolError, match="slave id '2' does not match request '1'"):
        RTUPackager().verify(b"\x01\x03\x00\x00", b"\x02\x03\x00\x00")


@pytest.mark.parametrize(
    "adu, length",
    [
        (bytes([4, 1, 0, 0xA, 0, 0xD, 0xDD, 0x98]), 7),
        (bytes([4, 2, 0, 0xA, 0, 0xD, 0x99, 0x98]), 7),
        (bytes([1, 3, 0, 0, 0, 2, 0xC4, 0xB]), 9),
        (bytes([0x11, 5, 0, 0xAC, 0xFF, 0, 0x4E, 0x8B]), 8),
        (bytes([0x11, 6, 0, 1, 0, 3, 0x9A, 0x9B]), 8),
        (bytes([0x11, 0xF, 0, 0x13, 0, 0xA, 2, 0xCD, 1, 0xBF, 0xB]), 8),
        (bytes([0x11, 0x10, 0, 1, 0, 2, 4, 0, 0xA, 1, 2, 0xC6, 0xF0]), 8),
    ],
)
def test_calculate_response_length(adu, length):
    assert calculate_response_length(adu) == length


def test_calculate_delay_fast_baud_rate():
    handler = RTUClientHandler("/dev/ttyFAKE0")
    handler.baud_rate = 38400
    assert handler.calculate_delay(10) == pytest.approx(0.00925)


def test_calculate_delay_slow_baud_rate():
    handler = RTUClientHandler("/dev/ttyFAKE0")
    handler.baud_rate = 9600
    assert handler.calculate_delay(2) == pytest.approx(0.006769)


def test_send_reads_full_response():
    response = RTUPackager(1).encode(ProtocolDataUnit(3, bytes([4, 0, 1, 0, 2])))
    handler = make_handler(response)
    request = RTUPackager(1).encode(ProtocolDataUnit(3, bytes([0, 0, 0, 2])))
    assert handler.send(request) == response
    assert bytes(handler.port.written) == request


def test_send_short_response_raises():
    handler = make_handler(b"\x01\x03")
    request = RTUPackager(1).encode(ProtocolDataUnit(3, bytes([0, 0, 0, 2])))
    with pytest.raises(ProtocolError):
        handler.send(request)


def test_client_read_holding_registers():
    response = RTUPackager(1).encode(ProtocolDataUnit(3, bytes([4, 0, 1, 0, 2])))
    handler = make_handler(response)
    client = new_client(handler)
    assert client.read_holding_registers(0, 2) == b"\x00\x01\x00\x02"
    expected_request = RTUPackager(1).encode(ProtocolDataUnit(3, bytes([0, 0, 0, 2])))
    assert bytes(handler.port.written) == expected_request


def test_client_exception_response():
    response = RTUPackager(1).encode(ProtocolDataUnit(0x83, b"\x02"))
    client = new_client(make_handler(response))
    with pytest.raises(ModbusError) as info:
        client.read_holding_registers(0, 2)
    assert info.value.exception_code == 2
    assert str(info.value) == "modbus: exception '2' (illegal data address), function '131'"