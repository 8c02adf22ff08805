# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Bootloader CRC-32.

Same reflected table as ISO HDLC CRC-32 (polynomial 0xEDB88320), but
the bootloader starts from 0 and applies no final inversion, so the
result differs from zlib.crc32. The state can be chained across calls.
"""

# Pre-computed CRC-32 lookup table
_CRC32_TABLE = []


def _init_table():
    """Initialize the CRC-32 lookup table."""
    global _CRC32_TABLE
    poly = 0xEDB88320
    for i in range(256):
        crc = i
        for _ in range(8):
            if crc & 1:
                crc = (crc >> 1) ^ poly
            else:
                crc >>= 1
        _CRC32_TABLE.append(crc)


_init_table()


def crc32(data: bytes, state: int = 0) -> int:
    """
    Compute the bootloader checksum.

    Args:
        data: Bytes to fold into the checksum
        state: Checksum of preceding data (0 to start)

    Returns:
        32-bit CRC value
    """
    crc = state & 0xFFFFFFFF
    for byte in data:
        crc = _CRC32_TABLE[(crc ^ byte) & 0xFF] ^ (crc >> 8)
    return crc
