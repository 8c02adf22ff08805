#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Firmware upload tool for flight-controller bootloaders over serial.

Usage:
    python fmu_upload.py --port /dev/ttyACM0 info
    python fmu_upload.py --port /dev/ttyACM0 upload arducopter.bin
    python fmu_upload.py --port /dev/ttyACM0 reboot

Requirements:
    pip install pyserial
"""

import argparse
import logging
import sys
from pathlib import Path

from fmu_bootloader import FirmwareImage, Session, flash_firmware
from fmu_bootloader.protocol import ProgressEvent
from fmu_bootloader.transport import DEFAULT_BAUDRATE, BootloaderError, SyncFailed
from fmu_bootloader.updater import SYNC_FAILED_MESSAGE


def cmd_info(port: str, baudrate: int) -> bool:
    """Print board identity."""
    with Session(port, baudrate=baudrate) as session:
        if not session.sync():
            raise SyncFailed(SYNC_FAILED_MESSAGE)
        info = session.get_board_info()

    print("Board Info:")
    print(f"  Bootloader revision: {info.bootloader_revision}")
    print(f"  Board ID:            {info.board_id}")
    print(f"  Board revision:      {info.board_revision}")
    print(f"  Flash size:          {info.flash_size_bytes} bytes")
    return True


def cmd_upload(port: str, baudrate: int, firmware_path: Path,
               verify: bool, enforce_flash_size: bool) -> bool:
    """Flash firmware and reboot."""
    image = FirmwareImage.from_file(firmware_path)

    print(f"Firmware: {firmware_path} ({image.size} bytes)")
    print()

    def progress(event: ProgressEvent):
        print(
            f"\rFlashing: {event.percent:3d}% ({event.bytes_sent}/{event.total_bytes} bytes)",
            end="", flush=True,
        )
        if event.bytes_sent == event.total_bytes:
            print()

    info = flash_firmware(
        port,
        image,
        progress_callback=progress,
        verify=verify,
        enforce_flash_size=enforce_flash_size,
        baudrate=baudrate,
    )

    print()
    print(f"Firmware flashed to board {info.board_id} successfully!")
    print("The vehicle is rebooting. You can now connect normally.")
    return True


def cmd_reboot(port: str, baudrate: int) -> bool:
    """Start the application."""
    print("Rebooting device... ", end="", flush=True)
    with Session(port, baudrate=baudrate) as session:
        if not session.sync():
            print("FAILED")
            raise SyncFailed(SYNC_FAILED_MESSAGE)
        session.reboot()
    print("OK")
    return True


def main():
    parser = argparse.ArgumentParser(
        description="Firmware upload tool for flight-controller bootloaders"
    )
    parser.add_argument(
        "--port", "-p",
        required=True,
        help="Serial port (e.g., /dev/ttyACM0)"
    )
    parser.add_argument(
        "--baudrate", "-b",
        type=int,
        default=DEFAULT_BAUDRATE,
        help=f"Baud rate (default {DEFAULT_BAUDRATE})"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log wire traffic"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # info command
    subparsers.add_parser("info", help="Show board identity")

    # upload command
    upload_parser = subparsers.add_parser("upload", help="Flash firmware and reboot")
    upload_parser.add_argument("file", type=Path, help="Firmware binary file")
    upload_parser.add_argument("--no-verify", action="store_true",
                               help="Skip the CRC check after programming")
    upload_parser.add_argument("--no-size-check", action="store_true",
                               help="Do not compare image size with flash size")

    # reboot command
    subparsers.add_parser("reboot", help="Start the application")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.command == "info":
            cmd_info(args.port, args.baudrate)
        elif args.command == "upload":
            if not args.file.exists():
                print(f"Error: File not found: {args.file}")
                sys.exit(1)
            cmd_upload(args.port, args.baudrate, args.file,
                       verify=not args.no_verify,
                       enforce_flash_size=not args.no_size_check)
        elif args.command == "reboot":
            cmd_reboot(args.port, args.baudrate)
    except BootloaderError as e:
        print(f"\nError: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
