"""
Hard-call materialization into the PLINK-style 2-bit genotype layout.

Each sample takes two bits of a 64-bit word, starting from the least
significant slot:

    00  homozygous for the first allele (category 0)
    10  heterozygous                     (category 1)
    11  homozygous for the second allele (category 2)
    01  missing / no call

Samples that were not included keep their slot (coded missing) so word
positions line up with container sample ordinals.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

import numpy as np

from .errors import UnsupportedFeatureError
from .probability import DecodedVariant

WORD_BITS = 64
SAMPLES_PER_WORD = WORD_BITS // 2
WORD_DTYPE = np.uint64

CODE_HOM_FIRST = 0b00
CODE_MISSING = 0b01
CODE_HET = 0b10
CODE_HOM_SECOND = 0b11

_CATEGORY_TO_CODE = (CODE_HOM_FIRST, CODE_HET, CODE_HOM_SECOND)
_CODE_TO_CATEGORY = {CODE_HOM_FIRST: 0, CODE_HET: 1, CODE_HOM_SECOND: 2, CODE_MISSING: None}
# first-allele copies for each code, None for missing
_CODE_TO_GENOTYPE = {CODE_HOM_FIRST: 2, CODE_HET: 1, CODE_HOM_SECOND: 0, CODE_MISSING: None}


def word_count(sample_count: int) -> int:
    return (sample_count + SAMPLES_PER_WORD - 1) // SAMPLES_PER_WORD


def allocate_words(sample_count: int) -> np.ndarray:
    return np.zeros(word_count(sample_count), dtype=WORD_DTYPE)


def code_for_call(call: Optional[int]) -> int:
    if call is None:
        return CODE_MISSING
    if not 0 <= call < len(_CATEGORY_TO_CODE):
        raise UnsupportedFeatureError(
            f"Hard call category {call} cannot be stored in the 2-bit genotype layout"
        )
    return _CATEGORY_TO_CODE[call]


def genotype_from_code(code: int) -> Optional[int]:
    """Number of first-allele copies for a 2-bit code, None when missing."""
    return _CODE_TO_GENOTYPE[code & 0b11]


def pack_hard_calls(calls: Sequence[Optional[int]], out: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Pack hard-call categories (None = no call) into 64-bit words.

    ``out`` may be a reused buffer; a word is cleared when its first slot is
    written, so stale bits from a previous variant never leak through.
    """
    words = allocate_words(len(calls)) if out is None else out
    if len(words) < word_count(len(calls)):
        raise ValueError(f"Genotype buffer holds {len(words)} words, need {word_count(len(calls))}")

    index = 0
    shift = 0
    current = 0
    for call in calls:
        if shift == 0:
            current = 0
        current |= code_for_call(call) << shift
        shift += 2
        if shift == WORD_BITS:
            words[index] = current
            index += 1
            shift = 0
    if shift:
        words[index] = current
    return words


def unpack_codes(words: np.ndarray, sample_count: int) -> List[int]:
    codes: List[int] = []
    for i in range(sample_count):
        word = int(words[i // SAMPLES_PER_WORD])
        codes.append((word >> (2 * (i % SAMPLES_PER_WORD))) & 0b11)
    return codes


def unpack_hard_calls(words: np.ndarray, sample_count: int) -> List[Optional[int]]:
    """Inverse of :func:`pack_hard_calls`."""
    return [_CODE_TO_CATEGORY[code] for code in unpack_codes(words, sample_count)]


def materialize(decoded: DecodedVariant, out: Optional[np.ndarray] = None) -> np.ndarray:
    """Pack the hard calls of a decoded variant; unusable samples are coded missing."""
    calls = [sample.hard_call if sample.usable else None for sample in decoded.samples]
    return pack_hard_calls(calls, out)
