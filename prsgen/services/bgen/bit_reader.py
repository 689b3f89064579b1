"""
Bounds-checked readers over an in-memory genotype block.

``ByteCursor`` handles the fixed-width little-endian fields of headers and
identity records, ``BitReader`` the packed probability fields of layout 1.2
blocks. Neither ever reads past the end it was given.
"""

from __future__ import annotations

import struct
from typing import Optional, Type, Union

from .errors import BgenFormatError, VariantFormatError

Buffer = Union[bytes, bytearray, memoryview]

MAX_BIT_WIDTH = 32

_UINT_FORMATS = {1: "<B", 2: "<H", 4: "<I", 8: "<Q"}


class ByteCursor:
    """Little-endian reader over ``data[offset:end]``."""

    def __init__(
        self,
        data: Buffer,
        offset: int = 0,
        end: Optional[int] = None,
        error: Type[BgenFormatError] = VariantFormatError,
    ):
        self.data = data
        self.pos = offset
        self.end = len(data) if end is None else end
        self.error = error
        if not 0 <= self.pos <= self.end <= len(data):
            raise self.error(
                f"Invalid cursor bounds [{self.pos}, {self.end}) over {len(data)} bytes"
            )

    @property
    def remaining(self) -> int:
        return self.end - self.pos

    def require(self, size: int, what: str = "field") -> None:
        if size > self.remaining:
            raise self.error(
                f"Truncated {what}: need {size} bytes at offset {self.pos}, "
                f"only {self.remaining} left"
            )

    def read_uint(self, size: int, what: str = "integer") -> int:
        self.require(size, what)
        (value,) = struct.unpack_from(_UINT_FORMATS[size], self.data, self.pos)
        self.pos += size
        return value

    def read_bytes(self, size: int, what: str = "bytes") -> bytes:
        self.require(size, what)
        chunk = bytes(self.data[self.pos:self.pos + size])
        self.pos += size
        return chunk

    def skip(self, size: int, what: str = "bytes") -> None:
        self.require(size, what)
        self.pos += size


class BitReader:
    """
    Reads unsigned fields of 1-32 bits, least significant bit first.

    Bytes are shifted into ``pending_value`` above the ``pending_bits``
    already held, so the register never holds more than 32 + 7 bits.
    The register lives for one variant's decode pass.
    """

    def __init__(self, data: Buffer, offset: int = 0, end: Optional[int] = None):
        self.data = data
        self.start = offset
        self.pos = offset
        self.end = len(data) if end is None else end
        if not 0 <= offset <= self.end <= len(data):
            raise VariantFormatError(
                f"Invalid bit reader bounds [{offset}, {self.end}) over {len(data)} bytes"
            )
        self.pending_bits = 0
        self.pending_value = 0

    @property
    def bit_position(self) -> int:
        """Number of bits handed out since ``offset``."""
        return (self.pos - self.start) * 8 - self.pending_bits

    @property
    def bytes_consumed(self) -> int:
        return self.pos - self.start

    def read(self, width: int) -> int:
        if not 1 <= width <= MAX_BIT_WIDTH:
            raise VariantFormatError(f"Invalid bit width {width}; expected 1-{MAX_BIT_WIDTH}")
        while self.pending_bits < width:
            if self.pos >= self.end:
                raise VariantFormatError(
                    f"Bit reader overrun: requested {width} bits with "
                    f"{self.pending_bits} pending at byte {self.pos} (end {self.end})"
                )
            self.pending_value |= self.data[self.pos] << self.pending_bits
            self.pending_bits += 8
            self.pos += 1
        value = self.pending_value & ((1 << width) - 1)
        self.pending_value >>= width
        self.pending_bits -= width
        return value

    def read_probability(self, width: int) -> float:
        """Read one field and scale it to [0, 1]."""
        return self.read(width) / float((1 << width) - 1)
