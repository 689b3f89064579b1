"""
Tests for the bounds-checked byte cursor and the LSB-first bit reader.
"""

import pytest

from prsgen.services.bgen.bit_reader import BitReader, ByteCursor
from prsgen.services.bgen.errors import ContainerFormatError, VariantFormatError
from prsgen.services.bgen.writer import BitWriter


class TestBitReader:
    """Bit extraction order, straddling and overrun handling."""

    def test_least_significant_bits_come_first(self):
        """0b10110100 read as 3 then 5 bits gives 0b100 and 0b10110."""
        reader = BitReader(bytes([0b10110100]))
        assert reader.read(3) == 0b100
        assert reader.read(5) == 0b10110

    def test_field_straddling_bytes(self):
        """A 9-bit field takes the whole first byte and one bit of the next."""
        reader = BitReader(b"\xff\x01")
        assert reader.read(9) == 511

    @pytest.mark.parametrize("width", [1, 8, 16, 32])
    def test_round_trip_aligned_and_unaligned(self, width):
        """Values written after a 3-bit prefix read back unchanged."""
        values = [0, (1 << width) - 1, (1 << (width - 1)), 1]
        for prefix in (0, 3):
            writer = BitWriter()
            if prefix:
                writer.write(0b101, prefix)
            for value in values:
                writer.write(value, width)
            reader = BitReader(writer.getvalue())
            if prefix:
                assert reader.read(prefix) == 0b101
            assert [reader.read(width) for _ in values] == values

    def test_carry_register_and_position(self):
        """Pending bits are tracked between calls."""
        reader = BitReader(b"\xab\xcd")
        reader.read(3)
        assert reader.bit_position == 3
        assert reader.pending_bits == 5
        assert reader.bytes_consumed == 1
        reader.read(13)
        assert reader.bit_position == 16
        assert reader.pending_bits == 0

    def test_overrun_raises(self):
        """Asking for more bits than remain is a format error."""
        reader = BitReader(b"\x00")
        with pytest.raises(VariantFormatError):
            reader.read(9)

    def test_end_bound_is_respected(self):
        """Bytes past ``end`` are never read."""
        reader = BitReader(b"\x01\x02\x03", offset=1, end=2)
        assert reader.read(8) == 2
        with pytest.raises(VariantFormatError):
            reader.read(1)

    @pytest.mark.parametrize("width", [0, 33])
    def test_invalid_width(self, width):
        """Widths outside 1-32 are rejected."""
        with pytest.raises(VariantFormatError):
            BitReader(b"\x00" * 8).read(width)

    def test_read_probability_scales_to_unit_interval(self):
        """The maximum field value maps to exactly 1.0."""
        reader = BitReader(b"\xff\x00")
        assert reader.read_probability(8) == 1.0
        assert reader.read_probability(8) == 0.0


class TestByteCursor:
    """Little-endian fixed-width reads."""

    def test_little_endian_integers(self):
        """Multi-byte fields are little endian."""
        cursor = ByteCursor(b"\x01\x02\x03\x04\x05\x06\x07")
        assert cursor.read_uint(2) == 0x0201
        assert cursor.read_uint(4) == 0x06050403
        assert cursor.read_uint(1) == 7
        assert cursor.remaining == 0

    def test_truncation_raises_configured_error(self):
        """The error type follows the caller (container vs variant)."""
        with pytest.raises(VariantFormatError):
            ByteCursor(b"\x00").read_uint(2)
        with pytest.raises(ContainerFormatError):
            ByteCursor(b"\x00", error=ContainerFormatError).read_uint(4)

    def test_read_bytes_and_skip(self):
        """Raw reads and skips advance the position."""
        cursor = ByteCursor(b"abcdef")
        cursor.skip(2)
        assert cursor.read_bytes(3) == b"cde"
        assert cursor.pos == 5
        with pytest.raises(VariantFormatError):
            cursor.skip(2)
