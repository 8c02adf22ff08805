# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""Pytest configuration and a simulated bootloader for unit tests."""

import time
from unittest.mock import patch

import pytest
import serial

from fmu_bootloader.crc32 import crc32
from fmu_bootloader.protocol import Command, DeviceInfo, Status

# Short deadlines so silent-device tests finish quickly
FAST_TIMEOUTS = dict(
    sync_retry_delay=0.0,
    sync_timeout=0.05,
    ack_timeout=0.05,
    info_timeout=0.05,
    erase_timeout=0.05,
)


def pytest_addoption(parser):
    """Add custom command-line options."""
    parser.addoption(
        "--device",
        action="store",
        default=None,
        help="Serial port of a board in bootloader mode (e.g., /dev/ttyACM0)",
    )


class FakeBootloader:
    """
    Serial port stand-in that answers the bootloader protocol.

    Each write is parsed as one request frame. Replies are queued and
    handed out by read(); an empty queue reads as a timeout.

    Knobs:
        sync_failures: number of GET_SYNC requests left unanswered
        silent: commands that never get a reply
        reject: command -> status byte sent instead of OK
        reject_chunk: index of the PROG_MULTI frame to reject
        max_read: cap on bytes returned per read() call
    """

    def __init__(
        self,
        bootloader_revision: int = 5,
        board_id: int = 9,
        board_revision: int = 0,
        flash_size: int = 4096,
        sync_failures: int = 0,
        max_read: int = None,
    ):
        self.device_info = {
            DeviceInfo.BL_REV: bootloader_revision,
            DeviceInfo.BOARD_ID: board_id,
            DeviceInfo.BOARD_REV: board_revision,
            DeviceInfo.FLASH_SIZE: flash_size,
        }
        self.flash_size = flash_size
        self.sync_failures = sync_failures
        self.max_read = max_read
        self.silent = set()
        self.reject = {}
        self.reject_chunk = None
        self.crc_override = None

        self.port = "/dev/ttyTEST"
        self.is_open = True
        self.timeout = None
        self.requests = []
        self.chunks = []
        self.flash = bytearray()
        self.erased = False
        self.booted = False
        self._rx = bytearray()

    @property
    def commands(self) -> list:
        return [req[0] for req in self.requests]

    def write(self, data: bytes) -> int:
        if not self.is_open:
            raise serial.PortNotOpenError()
        data = bytes(data)
        assert data[-1] == Command.EOC, f"Frame not terminated: {data.hex()}"
        self.requests.append(data)
        self._handle(data)
        return len(data)

    def flush(self):
        pass

    def read(self, size: int) -> bytes:
        if not self.is_open:
            raise serial.PortNotOpenError()
        if not self._rx:
            time.sleep(0.001)
            return b""
        count = min(size, self.max_read or size)
        out = bytes(self._rx[:count])
        del self._rx[:count]
        return out

    def reset_input_buffer(self):
        self._rx.clear()

    def close(self):
        self.is_open = False

    def _ack(self, cmd: int):
        self._rx += bytes([Command.INSYNC, self.reject.get(cmd, Status.OK)])

    def _handle(self, data: bytes):
        cmd = data[0]
        if cmd in self.silent:
            return

        if cmd == Command.GET_SYNC:
            if self.sync_failures > 0:
                self.sync_failures -= 1
                return
            self._ack(cmd)
        elif cmd == Command.GET_DEVICE:
            value = self.device_info[DeviceInfo(data[1])]
            self._rx += value.to_bytes(4, "little")
            self._ack(cmd)
        elif cmd == Command.CHIP_ERASE:
            self.flash.clear()
            self.erased = True
            self._ack(cmd)
        elif cmd == Command.PROG_MULTI:
            length = data[1]
            assert len(data) == length + 3, "Length byte does not match payload"
            index = len(self.chunks)
            self.chunks.append(data[2:2 + length])
            if index == self.reject_chunk:
                self._rx += bytes([Command.INSYNC, Status.FAILED])
                return
            self.flash += data[2:2 + length]
            self._ack(cmd)
        elif cmd == Command.GET_CRC:
            if self.crc_override is not None:
                value = self.crc_override
            else:
                padding = b"\xff" * (self.flash_size - len(self.flash))
                value = crc32(bytes(self.flash) + padding)
            self._rx += value.to_bytes(4, "little")
            self._ack(cmd)
        elif cmd == Command.BOOT:
            self.booted = True
        else:
            self._rx += bytes([Command.INSYNC, Status.INVALID])


@pytest.fixture
def device_port(request):
    """Get the device port from command line."""
    return request.config.getoption("--device")


@pytest.fixture
def fake_bootloader():
    """A simulated bootloader in a healthy state."""
    return FakeBootloader()


@pytest.fixture
def mock_serial_port(fake_bootloader):
    """Route serial.Serial to the fake bootloader and skip settle delays."""
    with patch("fmu_bootloader.transport.serial.Serial", return_value=fake_bootloader) as mock_serial_class, \
            patch("fmu_bootloader.transport.time.sleep"):
        yield mock_serial_class


@pytest.fixture
def session(mock_serial_port):
    """A connected session with short deadlines."""
    from fmu_bootloader.session import Session

    session = Session("/dev/ttyTEST", **FAST_TIMEOUTS)
    session.connect()
    yield session
    session.disconnect()
