# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Complete firmware update sequence.

Runs every stage in order on a fresh Session and always releases the
port, whichever stage fails.
"""

import logging
from typing import Callable, Optional

from .image import FirmwareImage
from .protocol import BoardInfo, ProgressEvent
from .session import Session
from .transport import ImageTooLarge, SyncFailed, VerifyError

logger = logging.getLogger(__name__)

SYNC_FAILED_MESSAGE = "Failed to sync with bootloader. Check cable and try again."


def check_image_size(image: FirmwareImage, info: BoardInfo) -> None:
    """
    Reject images that cannot fit in the board's flash.

    Raises:
        ImageTooLarge: If the image is larger than the reported flash size
    """
    if image.size > info.flash_size_bytes:
        raise ImageTooLarge(
            f"Firmware is {image.size} bytes but board {info.board_id} "
            f"has {info.flash_size_bytes} bytes of flash"
        )


def flash_firmware(
    port: str,
    image: FirmwareImage,
    progress_callback: Optional[Callable[[ProgressEvent], None]] = None,
    status_callback: Optional[Callable[[str], None]] = None,
    verify: bool = True,
    enforce_flash_size: bool = True,
    **session_options,
) -> BoardInfo:
    """
    Flash image onto the board attached to port and start it.

    Args:
        port: Serial port path
        image: Firmware to program
        progress_callback: Optional callback(ProgressEvent) per chunk
        status_callback: Optional callback(str) for human-readable status
        verify: Compare the board checksum with the padded image checksum
        enforce_flash_size: Refuse images larger than the board's flash
        **session_options: Passed to Session (baudrate, timeouts, ...)

    Returns:
        BoardInfo of the flashed board

    Raises:
        PortUnavailable: If the port cannot be opened
        SyncFailed: If the handshake fails
        ImageTooLarge: If the image does not fit
        VerifyError: If the checksum does not match
        BootloaderError: For any other stage failure
    """
    if not isinstance(image, FirmwareImage):
        image = FirmwareImage(image)

    def status(message: str):
        logger.info(message)
        if status_callback:
            status_callback(message)

    session = Session(port, **session_options)
    try:
        status(f"Opening {port}...")
        session.connect()

        status("Waiting for bootloader sync...")
        if not session.sync():
            raise SyncFailed(SYNC_FAILED_MESSAGE)

        status("Getting board info...")
        info = session.get_board_info()
        status(f"Board ID: {info.board_id}, Flash Size: {info.flash_size_bytes} bytes")

        if enforce_flash_size:
            check_image_size(image, info)

        expected = None
        if verify:
            if image.size > info.flash_size_bytes:
                raise ImageTooLarge(
                    f"Cannot verify a {image.size} byte image against "
                    f"{info.flash_size_bytes} bytes of flash; disable verify to flash it"
                )
            expected = image.padded_crc(info.flash_size_bytes)

        status("Erasing flash (this may take 20s)...")
        session.erase()

        status("Flashing firmware...")

        def progress(event: ProgressEvent):
            status(f"Flashing: {event.percent}%")
            if progress_callback:
                progress_callback(event)

        session.program(image, progress)

        if verify:
            status("Verifying...")
            actual = session.verify()
            if actual != expected:
                raise VerifyError(expected, actual)

        status("Rebooting vehicle...")
        session.reboot()

        status("Firmware update successful!")
        return info
    finally:
        session.disconnect()
