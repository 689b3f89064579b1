"""
Tests for container header, sample identifier block and variant block
header parsing.
"""

import struct

import pytest

from prsgen.services.bgen.bit_reader import ByteCursor
from prsgen.services.bgen.container import BgenContainer
from prsgen.services.bgen.errors import ContainerFormatError, UnsupportedFeatureError, VariantFormatError
from prsgen.services.bgen.header import (
    Compression,
    ContainerHeader,
    Layout,
    decode_flags,
    parse_variant_block_header,
    read_container_header,
    stored_value_count,
)
from prsgen.services.bgen.writer import SyntheticVariant, encode_probability_block

HET = (0.0, 1.0, 0.0)


def _header(sample_count=2, layout=Layout.V12):
    return ContainerHeader(
        variant_count=1,
        sample_count=sample_count,
        layout_version=layout,
        compression_kind=Compression.NONE,
        has_sample_identifier_block=False,
        data_offset=20,
    )


class TestContainerHeader:
    """Fixed header fields and flag decoding."""

    def test_reads_written_header(self, make_bgen):
        """Counts, layout, compression and the identifier flag survive a write."""
        path = make_bgen(
            [SyntheticVariant("rs1", "1", 10, [HET, HET])],
            sample_ids=["a", "b"],
            layout=Layout.V12,
            compression=Compression.ZLIB,
        )
        with path.open("rb") as f:
            header = read_container_header(f)
        assert header.variant_count == 1
        assert header.sample_count == 2
        assert header.layout_version is Layout.V12
        assert header.compression_kind is Compression.ZLIB
        assert header.has_sample_identifier_block
        assert header.header_length == 20
        assert header.sample_block_offset == 24
        assert header.first_variant_offset == header.data_offset + 4

    def test_free_data_is_skipped(self, make_bgen):
        """Free data inside the header does not disturb the variants."""
        path = make_bgen([SyntheticVariant("rs1", "1", 10, [HET])], free_data=b"extra")
        with BgenContainer(path) as container:
            assert container.header.header_length == 25
            identities = [identity.rsid for identity, _, _ in container.iter_variants()]
        assert identities == ["rs1"]

    def test_zero_magic_is_accepted(self, make_bgen):
        """Four zero bytes are a valid magic."""
        path = make_bgen([SyntheticVariant("rs1", "1", 10, [HET])], magic=b"\x00\x00\x00\x00")
        with BgenContainer(path) as container:
            assert container.header.magic == b"\x00\x00\x00\x00"

    def test_bad_magic(self, make_bgen):
        """Anything else is rejected at open."""
        path = make_bgen([SyntheticVariant("rs1", "1", 10, [HET])], magic=b"nope")
        with pytest.raises(ContainerFormatError, match="magic"):
            BgenContainer(path)

    def test_truncated_file(self, tmp_path):
        """A file shorter than the fixed header fails cleanly."""
        path = tmp_path / "short.bgen"
        path.write_bytes(b"\x14\x00\x00")
        with pytest.raises(ContainerFormatError):
            BgenContainer(path)

    def test_zstd_rejected_at_open(self, make_bgen):
        """The zstd compression value is recognized and refused."""
        path = make_bgen([SyntheticVariant("rs1", "1", 10, [HET])], compression=Compression.ZSTD)
        with pytest.raises(ContainerFormatError, match="zstd"):
            BgenContainer(path)

    def test_decode_flags(self):
        """Layout 0 and 1 both mean 1.1; bit 31 flags the identifier block."""
        assert decode_flags(0) == (Compression.NONE, Layout.V11, False)
        assert decode_flags(1 | (1 << 2)) == (Compression.ZLIB, Layout.V11, False)
        assert decode_flags((2 << 2) | 0x80000000) == (Compression.NONE, Layout.V12, True)
        with pytest.raises(ContainerFormatError):
            decode_flags(3 << 2)
        with pytest.raises(ContainerFormatError):
            decode_flags(3)


class TestSampleIdentifiers:
    """Optional identifier block."""

    def test_identifiers_are_read(self, make_bgen):
        path = make_bgen([SyntheticVariant("rs1", "1", 10, [HET, HET, HET])], sample_ids=["x", "yy", "zzz"])
        with BgenContainer(path) as container:
            assert container.sample_ids == ["x", "yy", "zzz"]

    def test_missing_block_gives_empty_list(self, make_bgen):
        path = make_bgen([SyntheticVariant("rs1", "1", 10, [HET])])
        with BgenContainer(path) as container:
            assert container.sample_ids == []

    def test_duplicated_identifiers(self, make_bgen):
        """The same identifier twice is a container error."""
        path = make_bgen([SyntheticVariant("rs1", "1", 10, [HET, HET])], sample_ids=["a", "a"])
        with pytest.raises(ContainerFormatError, match="Duplicated"):
            BgenContainer(path)

    def test_count_mismatch(self, make_bgen):
        """The block must list exactly the header's sample count."""
        path = make_bgen([SyntheticVariant("rs1", "1", 10, [HET, HET])], sample_ids=["a", "b"])
        data = bytearray(path.read_bytes())
        # header declares 3 samples, block still lists 2
        struct.pack_into("<I", data, 12, 3)
        path.write_bytes(bytes(data))
        with pytest.raises(ContainerFormatError):
            BgenContainer(path)


class TestVariantBlockHeader:
    """Layout 1.2 block preamble."""

    def test_stored_value_count(self):
        """C(ploidy + K - 1, K - 1) - 1 values per unphased sample."""
        assert stored_value_count(2, 2) == 2
        assert stored_value_count(1, 2) == 1
        assert stored_value_count(3, 2) == 3
        assert stored_value_count(2, 3) == 5

    def test_parses_written_block(self):
        """Fields are read and the cursor is left on the probabilities."""
        variant = SyntheticVariant("rs1", "1", 10, [HET, None])
        block = encode_probability_block(variant, Layout.V12, bits=8)
        cursor = ByteCursor(block)
        parsed = parse_variant_block_header(cursor, _header(sample_count=2))
        assert parsed.allele_count == 2
        assert (parsed.ploidy_min, parsed.ploidy_max) == (2, 2)
        assert parsed.bits_per_probability == 8
        assert not parsed.sample_missing(0)
        assert parsed.sample_missing(1)
        assert parsed.sample_ploidy(1) == 2
        assert cursor.pos == 4 + 2 + 2 + 2 + 2

    def test_sample_count_mismatch(self):
        block = encode_probability_block(SyntheticVariant("rs1", "1", 10, [HET]), Layout.V12)
        with pytest.raises(VariantFormatError, match="mismatched"):
            parse_variant_block_header(ByteCursor(block), _header(sample_count=2))

    def test_phased_is_unsupported(self):
        variant = SyntheticVariant("rs1", "1", 10, [HET], phased=True)
        block = encode_probability_block(variant, Layout.V12)
        with pytest.raises(UnsupportedFeatureError):
            parse_variant_block_header(ByteCursor(block), _header(sample_count=1))

    @pytest.mark.parametrize("bits", [0, 33])
    def test_invalid_bit_depth(self, bits):
        block = struct.pack("<IHBB", 1, 2, 2, 2) + b"\x02" + bytes([0, bits]) + b"\x00" * 8
        with pytest.raises(VariantFormatError):
            parse_variant_block_header(ByteCursor(block), _header(sample_count=1))

    def test_short_block(self):
        """A payload that cannot hold the per-sample ploidy bytes is rejected."""
        block = struct.pack("<IHBB", 4, 2, 2, 2) + b"\x02"
        with pytest.raises(VariantFormatError):
            parse_variant_block_header(ByteCursor(block), _header(sample_count=4))
