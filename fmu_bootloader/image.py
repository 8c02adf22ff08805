# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""Firmware image handed to the programmer."""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from .crc32 import crc32
from .protocol import PROG_MULTI_MAX

# Value of an erased flash byte.
ERASE_FILL = 0xFF


@dataclass(frozen=True)
class FirmwareImage:
    """Raw firmware bytes. Never modified once built."""
    data: bytes

    def __post_init__(self):
        # Freeze bytearray/memoryview input
        object.__setattr__(self, "data", bytes(self.data))

    def __len__(self) -> int:
        return len(self.data)

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_file(cls, path: Path) -> "FirmwareImage":
        """
        Load a raw binary image.

        Raises:
            FileNotFoundError: If the file does not exist
        """
        return cls(Path(path).read_bytes())

    def chunks(self, chunk_size: int = PROG_MULTI_MAX) -> Iterator[bytes]:
        """Yield consecutive slices of at most chunk_size bytes."""
        if chunk_size <= 0:
            raise ValueError(f"Invalid chunk size: {chunk_size}")
        for offset in range(0, len(self.data), chunk_size):
            yield self.data[offset:offset + chunk_size]

    def crc(self) -> int:
        """Checksum of the image bytes alone."""
        return crc32(self.data)

    def padded_crc(self, flash_size: int) -> int:
        """
        Checksum the bootloader reports after programming this image.

        The device sums its whole program area, so the image is extended
        with erase-fill bytes up to flash_size.

        Raises:
            ValueError: If the image does not fit in flash_size
        """
        if len(self.data) > flash_size:
            raise ValueError(
                f"Image of {len(self.data)} bytes exceeds flash size {flash_size}"
            )
        state = crc32(self.data)
        return crc32(bytes([ERASE_FILL]) * (flash_size - len(self.data)), state)
