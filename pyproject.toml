[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "modbusclient"
version = "0.1.0"
description = "MODBUS client for TCP, RTU and ASCII transports"
requires-python = ">=3.10"
dependencies = [
    "pyserial",
]
keywords = ["modbus", "tcp", "rtu", "ascii", "serial", "crc", "lrc"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Embedded Systems",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["modbusclient"]

[tool.pytest.ini_options]
addopts = "-ra"
