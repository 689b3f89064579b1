"""
Minimal BGEN writer for synthetic containers.

Used by the test fixtures and ``generate_test_bgen.py``. Probabilities are
given per sample as the full category distribution (``None`` for a missing
sample); the last category is implied on disk for layout 1.2.
"""

from __future__ import annotations

import math
import struct
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .header import (
    FIXED_HEADER_SIZE,
    LAYOUT_SHIFT,
    MISSING_MASK,
    SAMPLE_IDENTIFIER_FLAG,
    V11_SCALE,
    Compression,
    Layout,
)

Probabilities = Optional[Sequence[float]]


@dataclass
class SyntheticVariant:
    rsid: str
    chromosome: str
    position: int
    probabilities: Sequence[Probabilities]
    alleles: Sequence[str] = ("A", "G")
    snp_id: str = ""
    ploidy: Optional[Sequence[int]] = None
    phased: bool = False


class BitWriter:
    """LSB-first counterpart of :class:`~prsgen.services.bgen.bit_reader.BitReader`."""

    def __init__(self):
        self._buffer = bytearray()
        self._value = 0
        self._bits = 0

    def write(self, value: int, width: int) -> None:
        if value < 0 or value >= (1 << width):
            raise ValueError(f"Value {value} does not fit in {width} bits")
        self._value |= value << self._bits
        self._bits += width
        while self._bits >= 8:
            self._buffer.append(self._value & 0xFF)
            self._value >>= 8
            self._bits -= 8

    def getvalue(self) -> bytes:
        if self._bits:
            return bytes(self._buffer) + bytes([self._value & 0xFF])
        return bytes(self._buffer)


def quantize(probabilities: Sequence[float], bits: int) -> List[int]:
    """
    Scale probabilities to ``bits``-bit integers, rounding so the values
    still add up to the full scale when the input sums to one.
    """
    scale = (1 << bits) - 1
    scaled = [max(p, 0.0) * scale for p in probabilities]
    values = [int(math.floor(v)) for v in scaled]
    shortfall = int(round(sum(scaled))) - sum(values)
    order = sorted(range(len(values)), key=lambda i: scaled[i] - values[i], reverse=True)
    for i in order[:max(shortfall, 0)]:
        values[i] += 1
    return [min(v, scale) for v in values]


def _string(value: str, length_size: int) -> bytes:
    encoded = value.encode("utf-8")
    return struct.pack("<H" if length_size == 2 else "<I", len(encoded)) + encoded


def encode_probability_block(
    variant: SyntheticVariant,
    layout: Layout,
    bits: int = 16,
) -> bytes:
    """Uncompressed genotype block of one variant."""
    sample_count = len(variant.probabilities)
    if layout is Layout.V11:
        out = bytearray()
        for probs in variant.probabilities:
            triplet = (0.0, 0.0, 0.0) if probs is None else probs
            if len(triplet) != 3:
                raise ValueError("Layout 1.1 stores exactly three probabilities per sample")
            for p in triplet:
                out += struct.pack("<H", int(round(p * V11_SCALE)))
        return bytes(out)

    ploidy = list(variant.ploidy) if variant.ploidy is not None else [2] * sample_count
    if len(ploidy) != sample_count:
        raise ValueError(f"Got {len(ploidy)} ploidy values for {sample_count} samples")
    ploidy_bytes = bytes(
        p | (MISSING_MASK if probs is None else 0)
        for p, probs in zip(ploidy, variant.probabilities)
    )
    out = bytearray()
    out += struct.pack("<IHBB", sample_count, len(variant.alleles), min(ploidy), max(ploidy))
    out += ploidy_bytes
    out += struct.pack("<BB", 1 if variant.phased else 0, bits)

    writer = BitWriter()
    allele_count = len(variant.alleles)
    for p, probs in zip(ploidy, variant.probabilities):
        stored = math.comb(p + allele_count - 1, allele_count - 1) - 1
        if probs is None:
            for _ in range(stored):
                writer.write(0, bits)
            continue
        if len(probs) != stored + 1:
            raise ValueError(f"Expected {stored + 1} probabilities for ploidy {p}, got {len(probs)}")
        for value in quantize(probs, bits)[:stored]:
            writer.write(value, bits)
    out += writer.getvalue()
    return bytes(out)


def _identity_bytes(variant: SyntheticVariant, layout: Layout, sample_count: int) -> bytes:
    out = bytearray()
    if layout is Layout.V11:
        if len(variant.alleles) != 2:
            raise ValueError("Layout 1.1 stores exactly two alleles")
        out += struct.pack("<I", sample_count)
    out += _string(variant.snp_id or variant.rsid, 2)
    out += _string(variant.rsid, 2)
    out += _string(variant.chromosome, 2)
    out += struct.pack("<I", variant.position)
    if layout is Layout.V12:
        out += struct.pack("<H", len(variant.alleles))
    for allele in variant.alleles:
        out += _string(allele, 4)
    return bytes(out)


def _genotype_block_bytes(block: bytes, layout: Layout, compression: Compression) -> bytes:
    if compression is Compression.NONE:
        if layout is Layout.V11:
            return block
        return struct.pack("<I", len(block)) + block
    compressed = zlib.compress(block)
    if layout is Layout.V11:
        return struct.pack("<I", len(compressed)) + compressed
    return struct.pack("<II", len(compressed) + 4, len(block)) + compressed


def write_bgen(
    path: Union[str, Path],
    variants: Sequence[SyntheticVariant],
    sample_count: Optional[int] = None,
    sample_ids: Optional[Sequence[str]] = None,
    layout: Layout = Layout.V12,
    compression: Compression = Compression.ZLIB,
    bits: int = 16,
    free_data: bytes = b"",
    magic: bytes = b"bgen",
) -> Path:
    """Write ``variants`` to ``path`` and return the path."""
    if sample_count is None:
        if sample_ids:
            sample_count = len(sample_ids)
        elif variants:
            sample_count = len(variants[0].probabilities)
        else:
            sample_count = 0
    for variant in variants:
        if len(variant.probabilities) != sample_count:
            raise ValueError(
                f"Variant {variant.rsid} has {len(variant.probabilities)} samples, expected {sample_count}"
            )

    header_length = FIXED_HEADER_SIZE + len(free_data)
    flags = int(compression) | (int(layout) << LAYOUT_SHIFT)
    sample_block = b""
    if sample_ids is not None:
        flags |= SAMPLE_IDENTIFIER_FLAG
        body = b"".join(_string(identifier, 2) for identifier in sample_ids)
        sample_block = struct.pack("<II", 8 + len(body), len(sample_ids)) + body

    out = bytearray()
    out += struct.pack("<I", header_length + len(sample_block))
    out += struct.pack("<III", header_length, len(variants), sample_count)
    out += magic
    out += free_data
    out += struct.pack("<I", flags)
    out += sample_block
    for variant in variants:
        out += _identity_bytes(variant, layout, sample_count)
        block = encode_probability_block(variant, layout, bits)
        out += _genotype_block_bytes(block, layout, compression)

    target = Path(path)
    target.write_bytes(bytes(out))
    return target
