# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Transport layer for bootloader communication.

Owns the serial port and the error taxonomy shared by every stage.
Reads are bounded by a deadline rather than by pyserial's per-call
timeout, so a request for N bytes either returns exactly N bytes or
raises.
"""

import logging
import time
from typing import Optional

import serial

logger = logging.getLogger(__name__)

DEFAULT_BAUDRATE = 115200


class BootloaderError(Exception):
    """Base exception for bootloader errors."""
    pass


class PortError(BootloaderError):
    """I/O failure on the serial port."""
    pass


class PortUnavailable(PortError):
    """The serial port could not be opened."""
    pass


class TimeoutError(BootloaderError):
    """Timeout waiting for response."""
    pass


class IncompleteRead(TimeoutError):
    """Some, but not all, of the expected bytes arrived before the deadline."""

    def __init__(self, expected: int, received: int):
        super().__init__(f"Read incomplete: {received}/{expected} bytes")
        self.expected = expected
        self.received = received


class ProtocolError(BootloaderError):
    """Protocol-level error (malformed or unexpected reply)."""
    pass


class CommandRejected(ProtocolError):
    """The bootloader answered INSYNC with a non-OK status."""

    def __init__(self, code: int, message: str = ""):
        super().__init__(message or f"Command failed code: 0x{code:02x}")
        self.code = code


class SyncFailed(BootloaderError):
    """Handshake did not succeed within the allowed attempts."""
    pass


class SessionError(BootloaderError):
    """A stage was invoked out of order."""
    pass


class ImageTooLarge(BootloaderError):
    """Firmware image does not fit in the board's flash."""
    pass


class VerifyError(BootloaderError):
    """Checksum read back from the board does not match the image."""

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"CRC mismatch: expected 0x{expected:08x}, board reported 0x{actual:08x}"
        )
        self.expected = expected
        self.actual = actual


class Transport:
    """
    Serial transport to a flight-controller bootloader.

    Can be used as a context manager:
        with Transport("/dev/ttyACM0") as t:
            t.write(b"\\x21\\x20")
            reply = t.read(2, timeout=1.0)
    """

    def __init__(
        self,
        port: str,
        baudrate: int = DEFAULT_BAUDRATE,
        timeout: float = 1.0,
    ):
        """
        Open a connection to the bootloader.

        Args:
            port: Serial port path (e.g., "/dev/ttyACM0")
            baudrate: Baud rate (default 115200)
            timeout: Default read timeout in seconds (default 1.0)

        Raises:
            PortUnavailable: If the port cannot be opened
        """
        self.timeout = timeout
        self._closed = False
        self._ser = None
        try:
            self._ser = serial.Serial(port, baudrate, timeout=timeout)
        except (serial.SerialException, OSError) as e:
            raise PortUnavailable(f"Cannot open {port}: {e}") from e
        logger.debug(f"Opened {port} at {baudrate} baud")
        time.sleep(0.1)  # Let the device settle

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def close(self):
        """
        Close the serial connection. Safe to call repeatedly.

        A read blocked in another thread is woken up and fails with PortError.
        """
        self._closed = True
        if self._ser and self._ser.is_open:
            cancel_read = getattr(self._ser, "cancel_read", None)
            if cancel_read:
                cancel_read()
            self._ser.close()
            logger.debug(f"Closed {self.port}")

    @property
    def port(self) -> str:
        """Return the serial port name."""
        return self._ser.port

    @property
    def is_open(self) -> bool:
        return not self._closed and bool(self._ser and self._ser.is_open)

    def write(self, data: bytes) -> None:
        """
        Send raw bytes and wait until they are flushed.

        Raises:
            PortError: If the port is closed or the write fails
        """
        if not self.is_open:
            raise PortError("Port is closed")
        logger.debug(f">>> {data.hex().upper()}")
        try:
            self._ser.write(data)
            self._ser.flush()
        except (serial.SerialException, OSError) as e:
            raise PortError(f"Write failed: {e}") from e

    def read(self, size: int, timeout: Optional[float] = None) -> bytes:
        """
        Read exactly size bytes before a deadline.

        Args:
            size: Number of bytes required
            timeout: Seconds allowed for the whole read (default: self.timeout)

        Returns:
            The bytes read

        Raises:
            TimeoutError: If nothing arrived before the deadline
            IncompleteRead: If only part of the data arrived
            PortError: If the port is closed or the read fails
        """
        if timeout is None:
            timeout = self.timeout
        deadline = time.monotonic() + timeout
        result = bytearray()

        while len(result) < size:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            if not self.is_open:
                raise PortError("Port is closed")
            try:
                self._ser.timeout = remaining
                chunk = self._ser.read(size - len(result))
            except Exception as e:
                # pyserial fails with arbitrary errors once closed mid-read
                if not self.is_open:
                    raise PortError("Port is closed") from e
                if isinstance(e, (serial.SerialException, OSError)):
                    raise PortError(f"Read failed: {e}") from e
                raise
            if chunk:
                result.extend(chunk)

        if not result and size:
            raise TimeoutError(f"Timeout waiting for {size} bytes")
        if len(result) < size:
            raise IncompleteRead(size, len(result))

        logger.debug(f"<<< {bytes(result).hex().upper()}")
        return bytes(result)

    def discard_input(self) -> None:
        """Drop any bytes already received but not read."""
        if not self.is_open:
            raise PortError("Port is closed")
        try:
            self._ser.reset_input_buffer()
        except (serial.SerialException, OSError) as e:
            raise PortError(f"Input flush failed: {e}") from e
