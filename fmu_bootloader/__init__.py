# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Flight-controller bootloader client.

This package flashes firmware onto a flight controller through its
serial bootloader: handshake, board identification, chip erase,
chunked programming with progress, checksum read-back and reboot.

Example usage:
    from fmu_bootloader import FirmwareImage, Session

    image = FirmwareImage.from_file("arducopter.bin")

    with Session("/dev/ttyACM0") as session:
        if not session.sync():
            raise SystemExit("No bootloader")

        info = session.get_board_info()
        print(f"Board {info.board_id}, {info.flash_size_bytes} bytes flash")

        session.erase()
        session.program(image, progress_callback=lambda e: print(f"{e.percent}%"))

        if session.verify() != image.padded_crc(info.flash_size_bytes):
            raise SystemExit("CRC mismatch")

        session.reboot()
"""

from .crc32 import crc32
from .image import ERASE_FILL, FirmwareImage
from .protocol import (
    PROG_MULTI_MAX,
    BoardInfo,
    Command,
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
from .session import Session
from .transport import (
    BootloaderError,
    CommandRejected,
    ImageTooLarge,
    IncompleteRead,
    PortError,
    PortUnavailable,
    ProtocolError,
    SessionError,
    SyncFailed,
    TimeoutError,
    Transport,
    VerifyError,
)
from .updater import check_image_size, flash_firmware

__version__ = "0.1.0"

__all__ = [
    # CRC
    "crc32",
    # Image
    "ERASE_FILL",
    "FirmwareImage",
    # Protocol types
    "PROG_MULTI_MAX",
    "BoardInfo",
    "Command",
    "DeviceInfo",
    "ProgressEvent",
    "Status",
    # Protocol encoding
    "decode_ack",
    "decode_uint32",
    "encode_boot",
    "encode_chip_erase",
    "encode_get_crc",
    "encode_get_device",
    "encode_get_sync",
    "encode_prog_multi",
    # Session
    "Session",
    "check_image_size",
    "flash_firmware",
    # Transport
    "Transport",
    "BootloaderError",
    "CommandRejected",
    "ImageTooLarge",
    "IncompleteRead",
    "PortError",
    "PortUnavailable",
    "ProtocolError",
    "SessionError",
    "SyncFailed",
    "TimeoutError",
    "VerifyError",
]
