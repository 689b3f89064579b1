"""
BGEN Service

Container parsing, probability decoding, variant filtering and hard-call
materialization for BGEN 1.1 / 1.2 genotype files.
"""

from .errors import (
    BgenFormatError,
    ContainerFormatError,
    DuplicateIdentityError,
    UnsupportedFeatureError,
    VariantFormatError,
)
from .bit_reader import BitReader, ByteCursor
from .header import (
    Compression,
    ContainerHeader,
    Layout,
    VariantBlockHeader,
    read_container_header,
    stored_value_count,
)
from .container import BgenContainer, VariantIdentity
from .probability import DecodedVariant, ProbabilityDecoder, SampleProbability
from .records import ContainerCursor, VariantRecord
from .filters import FilterDecision, FilterReport, FilterResult, RunningStatistic, VariantFilter, filter_records
from .genotype import materialize, pack_hard_calls, unpack_hard_calls

__all__ = [
    # Errors
    "BgenFormatError",
    "ContainerFormatError",
    "DuplicateIdentityError",
    "UnsupportedFeatureError",
    "VariantFormatError",

    # Container
    "BgenContainer",
    "BitReader",
    "ByteCursor",
    "Compression",
    "ContainerHeader",
    "Layout",
    "VariantBlockHeader",
    "VariantIdentity",
    "read_container_header",
    "stored_value_count",

    # Decoding
    "DecodedVariant",
    "ProbabilityDecoder",
    "SampleProbability",

    # Filtering
    "ContainerCursor",
    "FilterDecision",
    "FilterReport",
    "FilterResult",
    "RunningStatistic",
    "VariantFilter",
    "VariantRecord",
    "filter_records",

    # Genotypes
    "materialize",
    "pack_hard_calls",
    "unpack_hard_calls",
]
