# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Flight-controller bootloader protocol definitions and serialization.

Every request is a command byte, optional arguments, and a trailing
EOC byte. Every acknowledged request is answered with INSYNC followed
by a status byte; some replies carry a 4-byte little-endian payload
ahead of the acknowledgment.
"""

import struct
from dataclasses import dataclass
from enum import IntEnum

# Maximum payload carried by a single PROG_MULTI frame.
PROG_MULTI_MAX = 64


class Command(IntEnum):
    """Request command bytes."""
    INSYNC = 0x12
    EOC = 0x20
    GET_SYNC = 0x21
    GET_DEVICE = 0x22
    CHIP_ERASE = 0x23
    PROG_MULTI = 0x27
    GET_CRC = 0x29
    BOOT = 0x30


class Status(IntEnum):
    """Status byte following INSYNC."""
    OK = 0x10
    FAILED = 0x11
    INVALID = 0x13

    def __str__(self) -> str:
        return self.name


class DeviceInfo(IntEnum):
    """GET_DEVICE attribute selectors."""
    BL_REV = 1
    BOARD_ID = 2
    BOARD_REV = 3
    FLASH_SIZE = 4


@dataclass(frozen=True)
class BoardInfo:
    """Board identity as reported by the bootloader."""
    bootloader_revision: int
    board_id: int
    board_revision: int
    flash_size_bytes: int


@dataclass(frozen=True)
class ProgressEvent:
    """Cumulative programming progress."""
    bytes_sent: int
    total_bytes: int

    @property
    def percent(self) -> int:
        if self.total_bytes == 0:
            return 100
        return self.bytes_sent * 100 // self.total_bytes


def encode_get_sync() -> bytes:
    """Encode a GET_SYNC handshake request."""
    return _frame(bytes([Command.GET_SYNC]))


def encode_get_device(attribute: DeviceInfo) -> bytes:
    """Encode a GET_DEVICE request for one attribute."""
    return _frame(bytes([Command.GET_DEVICE, attribute]))


def encode_chip_erase() -> bytes:
    """Encode a CHIP_ERASE request."""
    return _frame(bytes([Command.CHIP_ERASE]))


def encode_prog_multi(data: bytes) -> bytes:
    """
    Encode a PROG_MULTI request.

    Args:
        data: Chunk payload (1 to PROG_MULTI_MAX bytes)

    Raises:
        ValueError: If the chunk is empty or too long
    """
    if not data:
        raise ValueError("Empty program chunk")
    if len(data) > PROG_MULTI_MAX:
        raise ValueError(
            f"Program chunk of {len(data)} bytes exceeds {PROG_MULTI_MAX}"
        )
    return _frame(bytes([Command.PROG_MULTI, len(data)]) + bytes(data))


def encode_get_crc() -> bytes:
    """Encode a GET_CRC request."""
    return _frame(bytes([Command.GET_CRC]))


def encode_boot() -> bytes:
    """Encode a BOOT request."""
    return _frame(bytes([Command.BOOT]))


def decode_uint32(data: bytes) -> int:
    """
    Decode a 32-bit unsigned little-endian value.

    Raises:
        ValueError: If data is not exactly 4 bytes
    """
    if len(data) != 4:
        raise ValueError(f"Expected 4 bytes, got {len(data)}")
    return struct.unpack("<I", data)[0]


def decode_ack(data: bytes) -> int:
    """
    Split a 2-byte acknowledgment.

    Args:
        data: Raw reply bytes (INSYNC, status)

    Returns:
        The status byte (compare against Status.OK)

    Raises:
        ValueError: If the reply is truncated or not prefixed by INSYNC
    """
    if len(data) != 2:
        raise ValueError(f"Truncated acknowledgment: {data.hex()}")
    if data[0] != Command.INSYNC:
        raise ValueError(f"Invalid sync byte: 0x{data[0]:02x}")
    return data[1]


def _frame(data: bytes) -> bytes:
    """Terminate a request with EOC."""
    return data + bytes([Command.EOC])
