"""
Opening BGEN containers and walking their variant blocks.

A container is opened once; its header fixes the layout and compression
for every variant. Variants are read sequentially for the build pass, and
randomly (seek to a recorded byte offset) at scoring time.
"""

from __future__ import annotations

import logging
import zlib
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator, List, NamedTuple, Optional, Tuple, Union

from .bit_reader import ByteCursor
from .errors import VariantFormatError
from .header import (
    V11_BYTES_PER_SAMPLE,
    Compression,
    ContainerHeader,
    Layout,
    read_container_header,
    read_sample_identifiers,
)

logger = logging.getLogger(__name__)

MISSING_RSID = "."

_AMBIGUOUS_PAIRS = {("A", "T"), ("T", "A"), ("C", "G"), ("G", "C")}


@dataclass(frozen=True)
class VariantIdentity:
    snp_id: str
    rsid: str
    chromosome: str
    position: int
    alleles: Tuple[str, ...]

    @property
    def key(self) -> str:
        """rsid, or ``chromosome:position`` when the rsid is not available."""
        if self.rsid == MISSING_RSID or not self.rsid:
            return f"{self.chromosome}:{self.position}"
        return self.rsid

    @property
    def ref(self) -> str:
        return self.alleles[0] if self.alleles else ""

    @property
    def alt(self) -> str:
        return self.alleles[-1] if self.alleles else ""

    @property
    def is_ambiguous(self) -> bool:
        """Strand-ambiguous allele pair (A/T or C/G)."""
        return (self.ref.upper(), self.alt.upper()) in _AMBIGUOUS_PAIRS


class RawBlock(NamedTuple):
    data: bytes
    uncompressed_size: Optional[int]


def _read_exact(stream: BinaryIO, size: int, what: str) -> bytes:
    data = stream.read(size)
    if len(data) != size:
        raise VariantFormatError(f"Unexpected end of file while reading {what}")
    return data


def _read_uint(stream: BinaryIO, size: int, what: str) -> int:
    return ByteCursor(_read_exact(stream, size, what)).read_uint(size, what)


def _read_string(stream: BinaryIO, length_size: int, what: str) -> str:
    length = _read_uint(stream, length_size, f"{what} length")
    return _read_exact(stream, length, what).decode("utf-8", errors="replace")


def read_variant_identity(stream: BinaryIO, header: ContainerHeader) -> VariantIdentity:
    """Read the identifying fields that precede each genotype block."""
    if header.layout_version is Layout.V11:
        block_samples = _read_uint(stream, 4, "variant sample count")
        if block_samples != header.sample_count:
            raise VariantFormatError(
                f"Variant declares {block_samples} samples, container has {header.sample_count}"
            )
    snp_id = _read_string(stream, 2, "SNP ID")
    rsid = _read_string(stream, 2, "RSID")
    chromosome = _read_string(stream, 2, "chromosome")
    position = _read_uint(stream, 4, "position")
    if header.layout_version is Layout.V11:
        allele_count = 2
    else:
        allele_count = _read_uint(stream, 2, "allele count")
    alleles = tuple(_read_string(stream, 4, "allele") for _ in range(allele_count))
    return VariantIdentity(
        snp_id=snp_id,
        rsid=rsid,
        chromosome=chromosome,
        position=position,
        alleles=alleles,
    )


def read_genotype_block(stream: BinaryIO, header: ContainerHeader) -> Tuple[bytes, Optional[int]]:
    """
    Read one raw (possibly compressed) genotype block.

    Returns the stored bytes and the declared uncompressed length (None
    when the layout does not store one).
    """
    if header.layout_version is Layout.V11:
        expected = V11_BYTES_PER_SAMPLE * header.sample_count
        if not header.compressed:
            return _read_exact(stream, expected, "genotype block"), expected
        stored = _read_uint(stream, 4, "compressed block length")
        return _read_exact(stream, stored, "genotype block"), expected

    total = _read_uint(stream, 4, "genotype block length")
    if not header.compressed:
        return _read_exact(stream, total, "genotype block"), total
    if total < 4:
        raise VariantFormatError(f"Compressed genotype block length {total} is too small")
    uncompressed = _read_uint(stream, 4, "uncompressed block length")
    return _read_exact(stream, total - 4, "genotype block"), uncompressed


def decompress_block(raw: bytes, header: ContainerHeader, expected: Optional[int]) -> bytes:
    if header.compression_kind is Compression.NONE:
        payload = raw
    elif header.compression_kind is Compression.ZLIB:
        try:
            payload = zlib.decompress(raw)
        except zlib.error as exc:
            raise VariantFormatError(f"Failed to decompress genotype block: {exc}") from exc
    else:
        # Rejected when the header is read; kept exhaustive for new members.
        raise VariantFormatError(f"Unsupported compression {header.compression_kind!r}")

    if expected is not None and len(payload) != expected:
        raise VariantFormatError(
            f"Genotype block is {len(payload)} bytes, expected {expected}"
        )
    return payload


class BgenContainer:
    """
    One open BGEN file.

    The instance owns its file handle; concurrent readers must open their
    own container.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._stream: BinaryIO = self.path.open("rb")
        try:
            self.header = read_container_header(self._stream)
            self.sample_ids: List[str] = read_sample_identifiers(self._stream, self.header)
        except Exception:
            self._stream.close()
            raise
        logger.info(
            "Opened bgen container %s",
            self.path,
            extra={
                "variants": self.header.variant_count,
                "samples": self.header.sample_count,
                "layout": self.header.layout_version.name,
                "compression": self.header.compression_kind.name,
            },
        )

    def __enter__(self) -> "BgenContainer":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        if not self._stream.closed:
            self._stream.close()

    @property
    def sample_count(self) -> int:
        return self.header.sample_count

    def iter_variants(self) -> Iterator[Tuple[VariantIdentity, int, RawBlock]]:
        """
        Walk every variant in file order.

        Yields ``(identity, byte_offset, block)``; ``byte_offset`` points at
        the genotype block so it can be re-read later with
        :meth:`read_payload`. The block is still compressed; pass it to
        :meth:`decompress` only when the variant is actually needed.
        """
        position = self.header.first_variant_offset
        for index in range(self.header.variant_count):
            self._stream.seek(position)
            try:
                identity = read_variant_identity(self._stream, self.header)
                offset = self._stream.tell()
                raw, expected = read_genotype_block(self._stream, self.header)
            except VariantFormatError as exc:
                raise VariantFormatError(f"{self.path}: variant {index}: {exc}") from exc
            position = self._stream.tell()
            yield identity, offset, RawBlock(raw, expected)

    def decompress(self, block: RawBlock) -> bytes:
        return decompress_block(block.data, self.header, block.uncompressed_size)

    def read_payload(self, byte_offset: int) -> bytes:
        """Seek to a genotype block and return its decompressed bytes."""
        self._stream.seek(byte_offset)
        raw, expected = read_genotype_block(self._stream, self.header)
        return decompress_block(raw, self.header, expected)

