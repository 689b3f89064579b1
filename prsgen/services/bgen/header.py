"""
Container-level and per-variant header parsing for BGEN files.

The container header decides, once per file, which probability layout
every variant block uses:

- layout 1.1 blocks carry no header: three 16-bit probabilities per sample
  scaled by 32767;
- layout 1.2 blocks open with a sample count, allele count, ploidy range,
  one ploidy/missing byte per sample, a phased flag and the bit depth.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from math import comb
from typing import BinaryIO, List

from .bit_reader import ByteCursor
from .errors import ContainerFormatError, UnsupportedFeatureError, VariantFormatError

FIXED_HEADER_SIZE = 20
VALID_MAGIC = (b"bgen", b"\x00\x00\x00\x00")

COMPRESSION_MASK = 0x3
LAYOUT_MASK = 0x3C
LAYOUT_SHIFT = 2
SAMPLE_IDENTIFIER_FLAG = 0x80000000

# Layout 1.1 constants
V11_VALUES_PER_SAMPLE = 3
V11_BYTES_PER_SAMPLE = 6
V11_SCALE = 32767.0

PLOIDY_MASK = 0x3F
MISSING_MASK = 0x80
MAX_BIT_DEPTH = 32


class Compression(IntEnum):
    NONE = 0
    ZLIB = 1
    ZSTD = 2


class Layout(IntEnum):
    V11 = 1
    V12 = 2


@dataclass(frozen=True)
class ContainerHeader:
    variant_count: int
    sample_count: int
    layout_version: Layout
    compression_kind: Compression
    has_sample_identifier_block: bool
    data_offset: int
    header_length: int = FIXED_HEADER_SIZE
    magic: bytes = b"bgen"
    flags: int = 0

    @property
    def first_variant_offset(self) -> int:
        return self.data_offset + 4

    @property
    def sample_block_offset(self) -> int:
        return self.header_length + 4

    @property
    def compressed(self) -> bool:
        return self.compression_kind is not Compression.NONE


@dataclass(frozen=True)
class VariantBlockHeader:
    sample_count: int
    allele_count: int
    ploidy_min: int
    ploidy_max: int
    phased: bool
    bits_per_probability: int
    ploidy: bytes = b""

    def sample_ploidy(self, index: int) -> int:
        return self.ploidy[index] & PLOIDY_MASK

    def sample_missing(self, index: int) -> bool:
        return bool(self.ploidy[index] & MISSING_MASK)


def stored_value_count(ploidy: int, allele_count: int) -> int:
    """Number of probabilities stored per unphased sample (last one is implied)."""
    if allele_count < 1:
        return 0
    return comb(ploidy + allele_count - 1, allele_count - 1) - 1


def decode_flags(flags: int) -> tuple:
    """Split the flag word into (compression, layout, has_sample_identifiers)."""
    raw_compression = flags & COMPRESSION_MASK
    raw_layout = (flags & LAYOUT_MASK) >> LAYOUT_SHIFT

    if raw_compression == Compression.ZSTD:
        raise ContainerFormatError("zstd compression currently not supported")
    if raw_compression not in (Compression.NONE, Compression.ZLIB):
        raise ContainerFormatError(f"Unknown compression flag value {raw_compression}")

    if raw_layout in (0, 1):
        layout = Layout.V11
    elif raw_layout == 2:
        layout = Layout.V12
    else:
        raise ContainerFormatError(f"Unknown layout flag value {raw_layout}")

    return Compression(raw_compression), layout, bool(flags & SAMPLE_IDENTIFIER_FLAG)


def read_container_header(stream: BinaryIO) -> ContainerHeader:
    """Parse the header at the start of ``stream``."""
    stream.seek(0)
    prefix = stream.read(8)
    if len(prefix) < 8:
        raise ContainerFormatError("Problem reading bgen file: truncated header")
    cursor = ByteCursor(prefix, error=ContainerFormatError)
    data_offset = cursor.read_uint(4, "data offset")
    header_length = cursor.read_uint(4, "header length")
    if header_length < FIXED_HEADER_SIZE:
        raise ContainerFormatError(
            f"Header length {header_length} is smaller than the fixed {FIXED_HEADER_SIZE} bytes"
        )

    # header_length counts its own 4 bytes, the fixed fields and the flag word
    body = stream.read(header_length - 4)
    if len(body) < header_length - 4:
        raise ContainerFormatError("Problem reading bgen file: truncated header")
    cursor = ByteCursor(body, error=ContainerFormatError)
    variant_count = cursor.read_uint(4, "variant count")
    sample_count = cursor.read_uint(4, "sample count")
    magic = cursor.read_bytes(4, "magic")
    cursor.skip(header_length - FIXED_HEADER_SIZE, "free data")
    flags = cursor.read_uint(4, "flags")

    if magic not in VALID_MAGIC:
        raise ContainerFormatError(
            "Incorrect magic string! Please check you have provided a valid bgen file"
        )
    if data_offset < header_length:
        raise ContainerFormatError(
            f"Data offset {data_offset} points inside the header ({header_length} bytes)"
        )

    compression, layout, has_ids = decode_flags(flags)
    return ContainerHeader(
        variant_count=variant_count,
        sample_count=sample_count,
        layout_version=layout,
        compression_kind=compression,
        has_sample_identifier_block=has_ids,
        data_offset=data_offset,
        header_length=header_length,
        magic=magic,
        flags=flags,
    )


def read_sample_identifiers(stream: BinaryIO, header: ContainerHeader) -> List[str]:
    """
    Read the optional sample identifier block.

    Returns an empty list when the container does not carry one.
    """
    if not header.has_sample_identifier_block:
        return []

    stream.seek(header.sample_block_offset)
    prefix = stream.read(8)
    if len(prefix) < 8:
        raise ContainerFormatError("Problem reading bgen file: truncated sample block")
    cursor = ByteCursor(prefix, error=ContainerFormatError)
    block_size = cursor.read_uint(4, "sample block size")
    declared_samples = cursor.read_uint(4, "sample block count")
    if declared_samples != header.sample_count:
        raise ContainerFormatError(
            f"Sample identifier block lists {declared_samples} samples, "
            f"header declares {header.sample_count}"
        )
    if block_size < 8:
        raise ContainerFormatError(f"Sample identifier block size {block_size} is too small")

    body = stream.read(block_size - 8)
    cursor = ByteCursor(body, error=ContainerFormatError)
    identifiers: List[str] = []
    seen = set()
    for _ in range(declared_samples):
        length = cursor.read_uint(2, "sample identifier length")
        identifier = cursor.read_bytes(length, "sample identifier").decode("utf-8")
        if identifier in seen:
            raise ContainerFormatError(f"Duplicated sample identifier {identifier!r}")
        seen.add(identifier)
        identifiers.append(identifier)

    consumed = 8 + cursor.pos
    if consumed != block_size or cursor.remaining:
        raise ContainerFormatError(
            f"Sample identifier block declares {block_size} bytes, read {consumed}"
        )
    return identifiers


def parse_variant_block_header(cursor: ByteCursor, header: ContainerHeader) -> VariantBlockHeader:
    """
    Parse a layout 1.2 probability block preamble, leaving ``cursor`` on
    the first packed probability.
    """
    if cursor.remaining < 8:
        raise VariantFormatError("BGEN format error: genotype block shorter than its header")
    sample_count = cursor.read_uint(4, "block sample count")
    if sample_count != header.sample_count:
        raise VariantFormatError(
            f"BGEN format error! Number of sample mismatched: block has {sample_count}, "
            f"container has {header.sample_count}"
        )
    if cursor.remaining < 4 + sample_count + 2:
        raise VariantFormatError("BGEN format error! Invalid block size")

    allele_count = cursor.read_uint(2, "allele count")
    ploidy_min = cursor.read_uint(1, "minimum ploidy")
    ploidy_max = cursor.read_uint(1, "maximum ploidy")
    ploidy = cursor.read_bytes(sample_count, "ploidy")
    phased = bool(cursor.read_uint(1, "phased flag") & 0x1)
    bits = cursor.read_uint(1, "bit depth")

    if phased:
        raise UnsupportedFeatureError("Currently we do not support phased data")
    if not 1 <= bits <= MAX_BIT_DEPTH:
        raise VariantFormatError(f"Invalid number of bits per probability: {bits}")
    if ploidy_min > ploidy_max:
        raise VariantFormatError(f"Ploidy range [{ploidy_min}, {ploidy_max}] is empty")

    return VariantBlockHeader(
        sample_count=sample_count,
        allele_count=allele_count,
        ploidy_min=ploidy_min,
        ploidy_max=ploidy_max,
        phased=phased,
        bits_per_probability=bits,
        ploidy=ploidy,
    )
