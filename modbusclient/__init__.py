"""MODBUS client with TCP, RTU and ASCII framing, checksums and transports."""

__version__ = "0.1.0"