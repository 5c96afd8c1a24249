import io

import pytest

from modbusclient.ascii import (
    ASCIIClientHandler,
    ASCIIPackager,
    read_hex,
    write_hex,
)
from modbusclient.client import new_client
from modbusclient.protocol import ProtocolDataUnit, ProtocolError


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


def make_handler(response, slave_id=17):
    handler = ASCIIClientHandler("/dev/ttyFAKE0", slave_id)
    handler.idle_timeout = 0
    handler.port = FakePort(response)
    return handler


def test_ascii_encoding():
    adu = ASCIIPackager(17).encode(ProtocolDataUnit(3, bytes([0, 107, 0, 3])))
    assert adu == b":1103006B00037E\r\n"


def test_ascii_decoding():
    pdu = ASCIIPackager(247).decode(b":F7031389000A60\r\n")
    assert pdu.function_code == 3
    assert pdu.data == bytes([0x13, 0x89, 0, 0x0A])


def test_ascii_decoding_bad_lrc():
    with pytest.raises(ProtocolError, match="lrc"):
        ASCIIPackager(247).decode(b":F7031389000A61\r\n")


def test_ascii_round_trip():
    pdu = ProtocolDataUnit(16, bytes([0xAB, 0xCD, 0x01]))
    assert ASCIIPackager(5).decode(ASCIIPackager(5).encode(pdu)) == pdu


def test_write_hex_upper_case():
    assert write_hex(b"\xa5\x0f") == b"A50F"


@pytest.mark.parametrize("text, value", [(b"8C", 0x8C), (b"8c", 0x8C), (b"00", 0)])
def test_read_hex(text, value):
    assert read_hex(text) == value


@pytest.mark.parametrize("text", [b"zz", b"8", b" 8"])
def test_read_hex_invalid(text):
    with pytest.raises(ProtocolError):
        read_hex(text)


REQUEST = b":1103006B00037E\r\n"


@pytest.mark.parametrize(
    "response, message",
    [
        (b":1103\r\n", "does not meet minimum '9'"),
        (b":110300\r\n\r", "is not an even number"),
        (b"X1103006B\r\n", "is not started with"),
        (b":1103006B0\n\n", "is not ended with"),
        (b":1203006B\r\n", "slave id '18' does not match request '17'"),
    ],
)
def test_verify_errors(response, message):
    with pytest.raises(ProtocolError, match=message):
        ASCIIPackager(17).verify(REQUEST, response)


def test_verify_accepts_matching_frame():
    response = ASCIIPackager(17).encode(ProtocolDataUnit(3, bytes([2, 0, 1])))
    ASCIIPackager(17).verify(REQUEST, response)
    assert ASCIIPackager(17).decode(response).data == bytes([2, 0, 1])


def test_send_stops_at_frame_end():
    response = b":F7031389000A60\r\n"
    handler = make_handler(response + b"trailing")
    assert handler.send(REQUEST) == response
    assert bytes(handler.port.written) == REQUEST


def test_send_returns_partial_on_timeout():
    handler = make_handler(b":F703")
    assert handler.send(REQUEST) == b":F703"


def test_client_read_holding_registers():
    response = ASCIIPackager(17).encode(
        ProtocolDataUnit(3, bytes([6, 0x02, 0x2B, 0x00, 0x00, 0x00, 0x64]))
    )
    handler = make_handler(response)
    client = new_client(handler)
    assert client.read_holding_registers(0x006B, 3) == bytes([0x02, 0x2B, 0, 0, 0, 0x64])
    assert bytes(handler.port.written) == REQUEST