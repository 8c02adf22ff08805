# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
One firmware-update attempt against a bootloader.

A Session owns exactly one open Transport. Stages run strictly one at
a time, each a write followed by a bounded read of the reply. Only the
handshake retries; every other stage reports its failure as-is.
"""

import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from .image import FirmwareImage
from .protocol import (
    PROG_MULTI_MAX,
    BoardInfo,
    DeviceInfo,
    ProgressEvent,
    Status,
    decode_ack,
    decode_uint32,
    encode_boot,
    encode_chip_erase,
    encode_get_crc,
    encode_get_device,
    encode_get_sync,
    encode_prog_multi,
)
from .transport import (
    DEFAULT_BAUDRATE,
    CommandRejected,
    PortError,
    ProtocolError,
    SessionError,
    TimeoutError,
    Transport,
)

logger = logging.getLogger(__name__)

SYNC_ATTEMPTS = 3
SYNC_RETRY_DELAY = 0.1
SYNC_TIMEOUT = 1.0
ACK_TIMEOUT = 1.0
INFO_TIMEOUT = 2.0
ERASE_TIMEOUT = 30.0


class Session:
    """
    Bootloader session bound to one serial port.

    Typical use:
        with Session("/dev/ttyACM0") as session:
            if not session.sync():
                ...
            info = session.get_board_info()
            session.erase()
            session.program(image, progress_callback=print)
            session.reboot()
    """

    def __init__(
        self,
        port: str,
        baudrate: int = DEFAULT_BAUDRATE,
        sync_attempts: int = SYNC_ATTEMPTS,
        sync_retry_delay: float = SYNC_RETRY_DELAY,
        sync_timeout: float = SYNC_TIMEOUT,
        ack_timeout: float = ACK_TIMEOUT,
        info_timeout: float = INFO_TIMEOUT,
        erase_timeout: float = ERASE_TIMEOUT,
    ):
        self.port = port
        self.baudrate = baudrate
        self.sync_attempts = sync_attempts
        self.sync_retry_delay = sync_retry_delay
        self.sync_timeout = sync_timeout
        self.ack_timeout = ack_timeout
        self.info_timeout = info_timeout
        self.erase_timeout = erase_timeout

        self._transport: Optional[Transport] = None
        self._synced = False

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()
        return False

    @property
    def is_connected(self) -> bool:
        return self._transport is not None and self._transport.is_open

    @property
    def is_synced(self) -> bool:
        return self._synced

    def connect(self) -> None:
        """
        Open the serial port.

        Raises:
            PortUnavailable: If the port cannot be opened
            SessionError: If already connected
        """
        if self._transport is not None:
            raise SessionError("Session is already connected")
        self._transport = Transport(self.port, self.baudrate, timeout=self.ack_timeout)
        self._synced = False
        logger.info(f"Connected to {self.port}")

    def disconnect(self) -> None:
        """Close the serial port. Calling it again is a no-op."""
        transport, self._transport = self._transport, None
        self._synced = False
        if transport is not None:
            transport.close()
            logger.info(f"Disconnected from {self.port}")

    def sync(self) -> bool:
        """
        Handshake with the bootloader.

        Returns:
            True once an attempt succeeds, False after all attempts failed
        """
        transport = self._require_connected()
        self._synced = False

        for attempt in range(1, self.sync_attempts + 1):
            try:
                transport.discard_input()
                transport.write(encode_get_sync())
                self._get_ack(transport, self.sync_timeout)
            except (TimeoutError, ProtocolError) as e:
                logger.warning(f"Sync attempt {attempt} failed: {e}")
                if attempt < self.sync_attempts:
                    time.sleep(self.sync_retry_delay)
                continue
            self._synced = True
            logger.info(f"In sync with bootloader after {attempt} attempt(s)")
            return True

        return False

    def get_board_info(self) -> BoardInfo:
        """
        Read the board identity attributes.

        Raises:
            SessionError: If not in sync
            TimeoutError: If a reply does not arrive in time
            ProtocolError: If an acknowledgment is malformed or rejected
        """
        transport = self._require_synced("get_board_info")
        with self._invalidate_on_failure():
            info = BoardInfo(
                bootloader_revision=self._get_device(transport, DeviceInfo.BL_REV),
                board_id=self._get_device(transport, DeviceInfo.BOARD_ID),
                board_revision=self._get_device(transport, DeviceInfo.BOARD_REV),
                flash_size_bytes=self._get_device(transport, DeviceInfo.FLASH_SIZE),
            )
        logger.info(
            f"Board ID {info.board_id} rev {info.board_revision}, "
            f"bootloader rev {info.bootloader_revision}, "
            f"flash {info.flash_size_bytes} bytes"
        )
        return info

    def erase(self) -> bool:
        """
        Erase the whole program area.

        Blocks for up to erase_timeout seconds. Never retried.

        Raises:
            SessionError: If not in sync
            TimeoutError: If the erase is not acknowledged in time
            CommandRejected: If the bootloader refused the erase
        """
        transport = self._require_synced("erase")
        logger.info("Erasing flash")
        with self._invalidate_on_failure():
            transport.write(encode_chip_erase())
            self._get_ack(transport, self.erase_timeout)
        logger.info("Erase complete")
        return True

    def iter_program(self, image: FirmwareImage) -> Iterator[ProgressEvent]:
        """
        Program image one PROG_MULTI chunk at a time.

        Yields a ProgressEvent after each acknowledged chunk. The last
        event has bytes_sent == total_bytes. The sync check happens
        before the first chunk is written.

        Raises:
            SessionError: If not in sync
            ValueError: If the image is empty
            TimeoutError: If a chunk is not acknowledged in time
            CommandRejected: If the bootloader refused a chunk
        """
        transport = self._require_synced("program")
        if not isinstance(image, FirmwareImage):
            image = FirmwareImage(image)
        if not image.size:
            raise ValueError("Firmware image is empty")
        return self._program_chunks(transport, image)

    def _program_chunks(self, transport: Transport, image: FirmwareImage) -> Iterator[ProgressEvent]:
        total = image.size
        sent = 0
        logger.info(f"Programming {total} bytes")
        with self._invalidate_on_failure():
            for chunk in image.chunks(PROG_MULTI_MAX):
                transport.write(encode_prog_multi(chunk))
                self._get_ack(transport, self.ack_timeout)
                sent += len(chunk)
                yield ProgressEvent(bytes_sent=sent, total_bytes=total)
        logger.info("Programming complete")

    def program(
        self,
        image: FirmwareImage,
        progress_callback: Optional[Callable[[ProgressEvent], None]] = None,
    ) -> bool:
        """
        Program image, reporting progress through progress_callback.

        Returns:
            True once every chunk was acknowledged
        """
        for event in self.iter_program(image):
            if progress_callback:
                progress_callback(event)
        return True

    def verify(self) -> int:
        """
        Read the checksum the bootloader computes over its program area.

        The caller compares it against FirmwareImage.padded_crc().

        Raises:
            SessionError: If not in sync
            TimeoutError: If the reply does not arrive in time
            ProtocolError: If the acknowledgment is malformed or rejected
        """
        transport = self._require_synced("verify")
        with self._invalidate_on_failure():
            transport.write(encode_get_crc())
            value = decode_uint32(transport.read(4, self.info_timeout))
            self._get_ack(transport, self.ack_timeout)
        logger.info(f"Board CRC: 0x{value:08x}")
        return value

    def reboot(self) -> bool:
        """
        Start the application. No acknowledgment is awaited.

        Raises:
            SessionError: If not in sync
            PortError: If the write fails
        """
        transport = self._require_synced("reboot")
        transport.write(encode_boot())
        self._synced = False
        logger.info("Reboot requested")
        return True

    def _get_device(self, transport: Transport, attribute: DeviceInfo) -> int:
        transport.write(encode_get_device(attribute))
        value = decode_uint32(transport.read(4, self.info_timeout))
        self._get_ack(transport, self.ack_timeout)
        logger.debug(f"{attribute.name} = {value}")
        return value

    def _get_ack(self, transport: Transport, timeout: float) -> None:
        """Wait for INSYNC followed by OK."""
        reply = transport.read(2, timeout)
        try:
            status = decode_ack(reply)
        except ValueError as e:
            raise ProtocolError(str(e)) from e
        if status != Status.OK:
            try:
                name = str(Status(status))
            except ValueError:
                name = f"0x{status:02x}"
            raise CommandRejected(status, f"Command failed: {name}")

    def _require_connected(self) -> Transport:
        if self._transport is None:
            raise SessionError("Session is not connected")
        if not self._transport.is_open:
            raise PortError("Port is closed")
        return self._transport

    def _require_synced(self, stage: str) -> Transport:
        transport = self._require_connected()
        if not self._synced:
            raise SessionError(f"{stage}() requires a successful sync()")
        return transport

    @contextmanager
    def _invalidate_on_failure(self):
        """Require a fresh sync() after a stage that did not complete."""
        try:
            yield
        except BaseException:
            self._synced = False
            raise
