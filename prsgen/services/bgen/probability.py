"""
Probability decoding for both BGEN genotype layouts.

Every sample's fields are consumed from the stream, whether or not the
sample is included or missing, so the cursor stays aligned. Only included,
non-missing samples carry probabilities, a dosage and a hard call.

Dosage is the expected count of the first allele: category ``h`` weighs
``2 - h``, and the implied last category takes ``1 - sum`` of the stored
values.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .bit_reader import BitReader, Buffer, ByteCursor
from .errors import VariantFormatError
from .header import (
    V11_BYTES_PER_SAMPLE,
    V11_SCALE,
    V11_VALUES_PER_SAMPLE,
    ContainerHeader,
    Layout,
    VariantBlockHeader,
    parse_variant_block_header,
    stored_value_count,
)

logger = logging.getLogger(__name__)

PROBABILITY_TOLERANCE = 1e-8


@dataclass
class SampleProbability:
    index: int
    included: bool = True
    missing: bool = False
    ploidy: int = 2
    probabilities: Tuple[float, ...] = ()
    probability_sum: float = 0.0
    dosage: float = 0.0
    hard_call: Optional[int] = None

    @property
    def usable(self) -> bool:
        return self.included and not self.missing


@dataclass
class DecodedVariant:
    samples: List[SampleProbability]
    block_header: Optional[VariantBlockHeader] = None
    inconsistent_samples: int = 0
    included_count: int = 0

    @property
    def sample_count(self) -> int:
        return len(self.samples)


def interpret_probabilities(
    values: Sequence[float],
    hard_call_threshold: float,
    implied_last: bool,
) -> Tuple[Tuple[float, ...], float, float, Optional[int]]:
    """
    Turn one sample's stored probabilities into
    ``(all probabilities, stored sum, dosage, hard call)``.

    The hard call is the most probable category at or above the threshold;
    ties keep the earlier category and a zero probability never wins.
    """
    total = 0.0
    dosage = 0.0
    hard: Optional[int] = None
    best = 0.0
    for h, value in enumerate(values):
        total += value
        dosage += value * (2 - h)
        if value >= hard_call_threshold and value > best:
            hard = h
            best = value
    if not implied_last:
        return tuple(values), total, dosage, hard

    last_index = len(values)
    remainder = 1.0 - total
    if remainder >= hard_call_threshold and remainder > best:
        hard = last_index
    dosage += remainder * (2 - last_index)
    return tuple(values) + (remainder,), total, dosage, hard


class ProbabilityDecoder:
    """Decode decompressed genotype blocks of one container."""

    def __init__(self, header: ContainerHeader, hard_call_threshold: float = 0.0):
        self.header = header
        self.hard_call_threshold = hard_call_threshold

    def decode(self, payload: Buffer, include: Optional[Sequence[bool]] = None) -> DecodedVariant:
        if include is not None and len(include) != self.header.sample_count:
            raise ValueError(
                f"Inclusion mask has {len(include)} entries for {self.header.sample_count} samples"
            )
        if self.header.layout_version is Layout.V11:
            return self._decode_v11(payload, include)
        return self._decode_v12(payload, include)

    def _decode_v11(self, payload: Buffer, include: Optional[Sequence[bool]]) -> DecodedVariant:
        sample_count = self.header.sample_count
        if len(payload) != V11_BYTES_PER_SAMPLE * sample_count:
            raise VariantFormatError(
                f"Invalid bgen format! Block is {len(payload)} bytes, "
                f"expected {V11_BYTES_PER_SAMPLE * sample_count}"
            )
        cursor = ByteCursor(payload)
        samples: List[SampleProbability] = []
        included_count = 0
        for i in range(sample_count):
            raw = [cursor.read_uint(2, "probability") for _ in range(V11_VALUES_PER_SAMPLE)]
            if include is not None and not include[i]:
                samples.append(SampleProbability(index=i, included=False))
                continue
            included_count += 1
            values = [value / V11_SCALE for value in raw]
            probabilities, total, dosage, hard = interpret_probabilities(
                values, self.hard_call_threshold, implied_last=False
            )
            if total <= 0.0:
                samples.append(SampleProbability(index=i, missing=True))
                continue
            samples.append(
                SampleProbability(
                    index=i,
                    probabilities=probabilities,
                    probability_sum=total,
                    dosage=dosage,
                    hard_call=hard,
                )
            )
        return DecodedVariant(samples=samples, included_count=included_count)

    def _decode_v12(self, payload: Buffer, include: Optional[Sequence[bool]]) -> DecodedVariant:
        cursor = ByteCursor(payload)
        block = parse_variant_block_header(cursor, self.header)
        bits = block.bits_per_probability
        reader = BitReader(payload, cursor.pos)

        samples: List[SampleProbability] = []
        included_count = 0
        inconsistent = 0
        for i in range(block.sample_count):
            ploidy = block.sample_ploidy(i)
            missing = block.sample_missing(i)
            count = stored_value_count(ploidy, block.allele_count)
            included = include is None or bool(include[i])

            if not included or missing:
                for _ in range(count):
                    reader.read(bits)
                if included:
                    included_count += 1
                samples.append(
                    SampleProbability(index=i, included=included, missing=missing, ploidy=ploidy)
                )
                continue

            included_count += 1
            values = [reader.read_probability(bits) for _ in range(count)]
            probabilities, total, dosage, hard = interpret_probabilities(
                values, self.hard_call_threshold, implied_last=True
            )
            if total > 1.0 + PROBABILITY_TOLERANCE:
                inconsistent += 1
            samples.append(
                SampleProbability(
                    index=i,
                    ploidy=ploidy,
                    probabilities=probabilities,
                    probability_sum=total,
                    dosage=dosage,
                    hard_call=hard,
                )
            )

        if reader.pos != reader.end:
            raise VariantFormatError(
                f"Genotype block has {reader.end - reader.pos} trailing bytes after the last sample"
            )
        if inconsistent:
            logger.warning(
                "Stored probabilities sum above 1 for %d samples; using the computed complement",
                inconsistent,
            )
        return DecodedVariant(
            samples=samples,
            block_header=block,
            inconsistent_samples=inconsistent,
            included_count=included_count,
        )
