# modbusclient

A MODBUS client (master) for three transports: TCP, RTU over a serial line,
and ASCII over a serial line.

These function codes are supported, as methods of `modbusclient.client.Client`:

| Method | Function code |
| --- | --- |
| `read_coils(address, quantity)` | 1 |
| `read_discrete_inputs(address, quantity)` | 2 |
| `read_holding_registers(address, quantity)` | 3 |
| `read_input_registers(address, quantity)` | 4 |
| `write_single_coil(address, value)` | 5 |
| `write_single_register(address, value)` | 6 |
| `write_multiple_coils(address, quantity, value)` | 15 |
| `write_multiple_registers(address, quantity, value)` | 16 |
| `mask_write_register(address, and_mask, or_mask)` | 22 |
| `read_write_multiple_registers(read_address, read_quantity, write_address, write_quantity, value)` | 23 |
| `read_fifo_queue(address)` | 24 |

Every method returns the response payload as `bytes`:

- the read methods return the data after the byte count (coil and input status
  packed into bytes, or registers as big-endian 16-bit values);
- the single and multiple write methods return the echoed value or quantity
  (2 bytes);
- `mask_write_register` returns the echoed AND and OR masks (4 bytes);
- `read_fifo_queue` returns the register values after the byte and FIFO counts.

Quantities are checked before anything is sent: 1 to 2000 for coil and input
reads, 1 to 1968 for multiple coils, 1 to 125 for register reads, 1 to 123 for
multiple registers, and for read/write 1 to 125 to read and 1 to 121 to write.
`write_single_coil` accepts only `0xFF00` (ON) or `0x0000` (OFF).

## Installation

```
pip install modbusclient
```

The serial transports use `pyserial`.

## Usage

### TCP

```python
from modbusclient.tcp import tcp_client

client = tcp_client("localhost:502")
coils = client.read_coils(0x0013, 0x0013)
registers = client.read_holding_registers(0x006B, 3)
```

The address has the form `host:port` (`[host]:port` for IPv6).

For more control, build a handler yourself. A handler is both the packager and
the transporter, and it works as a context manager that connects on entry and
closes the connection on exit:

```python
from modbusclient.client import new_client
from modbusclient.tcp import TCPClientHandler

handler = TCPClientHandler("localhost:502", slave_id=1)
handler.timeout = 5.0
with handler:
    client = new_client(handler)
    client.write_multiple_registers(1, 2, b"\x00\x03\x00\x04")
    client.write_multiple_coils(5, 10, b"\x04\x03")
```

The TCP connection is opened lazily on the first request. `timeout` (default
10 seconds) applies to connecting and to each send/receive; `idle_timeout`
(default 60 seconds) closes the connection after that long without a request,
and it is reopened on the next one. A value of 0 or less turns either off.
Pass a `logging.Logger` as `handler.logger` to log the frames sent and received.

### RTU and ASCII over a serial line

```python
from modbusclient.client import new_client
from modbusclient.rtu import RTUClientHandler

handler = RTUClientHandler("/dev/ttyUSB0", slave_id=17)
handler.baud_rate = 9600
handler.parity = "N"
with handler:
    client = new_client(handler)
    client.read_discrete_inputs(15, 2)
```

`modbusclient.ascii.ASCIIClientHandler` is used the same way for MODBUS ASCII.
`rtu_client(address)` and `ascii_client(address)` return a client with default
settings in one call.

Serial settings are attributes of the handler (see
`modbusclient.serialport.SerialPort`): `address`, `baud_rate` (default 19200),
`data_bits` (8), `stop_bits` (1), `parity` (`"E"`), `timeout` (5 seconds),
`idle_timeout` (60 seconds) and `logger`. The port is opened with
`serial.Serial` on first use. Any object with `read`, `write` and `close`
methods can be put in `handler.port` instead.

For RTU, the transporter waits an estimated transfer time after writing. That
time comes from the baud rate (`calculate_delay`). It then reads the response
length that `calculate_response_length` expects for the request, or 5 bytes
for an exception response. For ASCII, it reads until the frame ends with CRLF,
up to 513 bytes.

## Errors

- `modbusclient.protocol.ModbusError` is raised when the device answers with an
  exception response. It carries `function_code`, `exception_code` and `name`,
  and its message reads, e.g.,
  `modbus: exception '1' (illegal function), function '152'`.
  `modbusclient.protocol.ExceptionCode` lists the known exception codes.
- `modbusclient.protocol.ProtocolError` (the base of `ModbusError`) is raised
  for quantities out of range, for frames that are too long, and for malformed
  responses: bad length, checksum, slave id, unit id or transaction id, an
  empty payload, or a serial response that ends early.
- `ValueError` is raised for 16-bit arguments outside 0–65535 and for a TCP
  address that is not `host:port`.
- `ConnectionError` is raised when the TCP peer closes the connection in the
  middle of a response. Socket and serial errors are passed through as raised.

## Building blocks

The framing layers can be used on their own. `Packager` and `Transporter` in
`modbusclient.protocol` are the interfaces, and `Client(packager, transporter)`
accepts any pair of them:

```python
from modbusclient.protocol import ProtocolDataUnit
from modbusclient.rtu import RTUPackager

packager = RTUPackager(slave_id=1)
adu = packager.encode(ProtocolDataUnit(function_code=3, data=b"\x50\x00\x00\x18"))
# b"\x01\x03\x50\x00\x00\x18\x54\xc0"
```

`TCPPackager` and `ASCIIPackager` work the same way. `modbusclient.crc.crc16`
computes the RTU checksum and `modbusclient.lrc.lrc` the ASCII one. `Crc` and
`Lrc` do the same incrementally. `data_block` and `data_block_suffix` in
`modbusclient.client` pack 16-bit values into request payloads.

## What it does not do

This package is a client only. It has no MODBUS server (slave) side and no
command-line tool. It does not support diagnostic or device-identification
function codes, and it does not convert register bytes into typed values.

## Running the tests

```
pip install -e ".[test]"
pytest
```