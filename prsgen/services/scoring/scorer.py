"""
Polygenic score accumulation from BGEN genotype blocks.

Two strategies share one transform and one missing-data policy:

- hard-call: decode, materialize into the 2-bit genotype words and score
  the unpacked calls;
- dosage: score the expected (model-transformed) genotype directly.

Effects are scaled by 0.5 so a certain dosage scores exactly like the
matching hard call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

from prsgen.config import get_filter_thresholds, get_scoring_config
from prsgen.services.bgen.errors import BgenFormatError, UnsupportedFeatureError
from prsgen.services.bgen.genotype import allocate_words, genotype_from_code, materialize, unpack_codes, word_count
from prsgen.services.bgen.probability import DecodedVariant, ProbabilityDecoder
from prsgen.services.bgen.records import ContainerCursor, VariantRecord

from .models import (
    DosageCall,
    GenotypeSource,
    HardCall,
    InheritanceModel,
    MissingPolicy,
    ScoreAccumulator,
    effect_value,
)

logger = logging.getLogger(__name__)

DOSAGE_SCALE = 0.5


@dataclass
class ScoreReport:
    scored: int = 0
    invalidated: int = 0
    skipped_invalid: int = 0

    def merge(self, other: "ScoreReport") -> "ScoreReport":
        return ScoreReport(
            scored=self.scored + other.scored,
            invalidated=self.invalidated + other.invalidated,
            skipped_invalid=self.skipped_invalid + other.skipped_invalid,
        )


def accumulate_variant(
    accumulator: ScoreAccumulator,
    values: Sequence[Optional[float]],
    effect_size: float,
    policy: MissingPolicy,
    samples: Optional[Iterable[int]] = None,
) -> bool:
    """
    Add one variant to ``accumulator``.

    ``values`` holds the model-transformed genotype of every retained
    sample (None when missing). The centering score is always taken over
    all of them; ``samples`` only limits which entries are written.
    Returns False, without touching the accumulator, when every sample is
    missing.
    """
    present = [value for value in values if value is not None]
    if not present:
        return False
    center_score = effect_size * sum(present) / (2.0 * len(present))
    targets = range(len(values)) if samples is None else list(samples)
    for i in targets:
        if not 0 <= i < len(values):
            raise ValueError(f"Sample index {i} outside the {len(values)} retained samples")

    score_sum = accumulator.score_sum
    counted = accumulator.variants_counted
    for i in targets:
        value = values[i]
        if value is None:
            if policy is MissingPolicy.MEAN_IMPUTE:
                score_sum[i] += center_score
                counted[i] += 1
            elif policy is MissingPolicy.CENTER:
                counted[i] += 1
            elif policy is MissingPolicy.SET_ZERO:
                pass
            else:
                raise ValueError(f"Unhandled missing policy {policy!r}")
            continue
        if policy is MissingPolicy.CENTER:
            # keeps missing samples at zero
            score_sum[i] -= center_score
        score_sum[i] += value * effect_size * DOSAGE_SCALE
        counted[i] += 1
    return True


def _require_biallelic_diploid(decoded: DecodedVariant) -> None:
    block = decoded.block_header
    if block is not None and block.allele_count != 2:
        raise UnsupportedFeatureError(
            f"Scoring supports bi-allelic variants only (found {block.allele_count} alleles)"
        )
    for sample in decoded.samples:
        if sample.usable and len(sample.probabilities) != 3:
            raise UnsupportedFeatureError(
                f"Scoring supports diploid samples only (sample {sample.index} has ploidy {sample.ploidy})"
            )


class VariantScorer:
    """
    Adds variant effects to a :class:`ScoreAccumulator`.

    The scorer owns one file handle and one genotype word buffer; give each
    concurrent worker its own scorer.
    """

    def __init__(
        self,
        include: Optional[Sequence[bool]] = None,
        hard_call_threshold: Optional[float] = None,
        model: Optional[InheritanceModel] = None,
        missing_policy: Optional[MissingPolicy] = None,
        hard_coded: Optional[bool] = None,
    ):
        # Unset options fall back to the global configuration
        scoring = get_scoring_config()
        if hard_call_threshold is None:
            hard_call_threshold = get_filter_thresholds().hard_call_probability_threshold
        self.include = include
        self.hard_call_threshold = hard_call_threshold
        self.model = InheritanceModel(scoring.model if model is None else model)
        self.missing_policy = MissingPolicy(scoring.missing_policy if missing_policy is None else missing_policy)
        self.hard_coded = scoring.hard_coded if hard_coded is None else hard_coded
        self._cursor = ContainerCursor()
        self._genotype_words = None

    def __enter__(self) -> "VariantScorer":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        self._cursor.close()

    def score(
        self,
        records: Sequence[VariantRecord],
        accumulator: ScoreAccumulator,
        start: int = 0,
        end: Optional[int] = None,
        region: Optional[int] = None,
        samples: Optional[Iterable[int]] = None,
    ) -> ScoreReport:
        """
        Score ``records[start:end]`` belonging to ``region``.

        ``samples`` restricts the accumulator entries this call writes, for
        workers sharing one accumulator over disjoint sample subsets.
        """
        end = len(records) if end is None else min(end, len(records))
        targets = sorted(set(samples)) if samples is not None else None
        if targets and (targets[0] < 0 or targets[-1] >= len(accumulator)):
            raise ValueError(
                f"Sample indices must lie in [0, {len(accumulator)}), got {targets[0]}..{targets[-1]}"
            )
        report = ScoreReport()
        for index in range(start, end):
            record = records[index]
            if not record.in_region(region):
                continue
            if record.invalidated:
                report.skipped_invalid += 1
                continue
            try:
                values = self._variant_values(record)
            except BgenFormatError:
                logger.error(
                    "Scoring aborted at variant %s (%s @ %d)",
                    record.key, record.source_file, record.byte_offset,
                )
                raise
            if len(values) != len(accumulator):
                raise ValueError(
                    f"Accumulator has {len(accumulator)} entries for {len(values)} retained samples"
                )
            if not accumulate_variant(accumulator, values, record.effect_size, self.missing_policy, targets):
                record.invalidate()
                report.invalidated += 1
                continue
            report.scored += 1

        logger.info(
            "Score pass finished",
            extra={
                "scored": report.scored,
                "invalidated": report.invalidated,
                "skipped_invalid": report.skipped_invalid,
                "hard_coded": self.hard_coded,
            },
        )
        return report

    def _variant_values(self, record: VariantRecord) -> List[Optional[float]]:
        container = self._cursor.open(record.source_file)
        payload = container.read_payload(record.byte_offset)
        decoder = ProbabilityDecoder(container.header, self.hard_call_threshold)
        decoded = decoder.decode(payload, self.include)
        _require_biallelic_diploid(decoded)

        if self.hard_coded:
            sources = self._hard_call_sources(decoded)
        else:
            sources = self._dosage_sources(decoded)
        return [effect_value(source, self.model, record.is_flipped) for source in sources]

    def _hard_call_sources(self, decoded: DecodedVariant) -> List[Optional[GenotypeSource]]:
        sample_count = decoded.sample_count
        if self._genotype_words is None or len(self._genotype_words) < word_count(sample_count):
            self._genotype_words = allocate_words(sample_count)
        words = materialize(decoded, self._genotype_words)
        codes = unpack_codes(words, sample_count)

        sources: List[Optional[GenotypeSource]] = []
        for sample, code in zip(decoded.samples, codes):
            if not sample.included:
                continue
            genotype = genotype_from_code(code)
            sources.append(None if genotype is None else HardCall(genotype))
        return sources

    @staticmethod
    def _dosage_sources(decoded: DecodedVariant) -> List[Optional[GenotypeSource]]:
        sources: List[Optional[GenotypeSource]] = []
        for sample in decoded.samples:
            if not sample.included:
                continue
            sources.append(DosageCall(sample.probabilities) if sample.usable else None)
        return sources


def read_score(
    records: Sequence[VariantRecord],
    accumulator: ScoreAccumulator,
    start: int = 0,
    end: Optional[int] = None,
    region: Optional[int] = None,
    *,
    include: Optional[Sequence[bool]] = None,
    hard_call_threshold: Optional[float] = None,
    model: Optional[InheritanceModel] = None,
    missing_policy: Optional[MissingPolicy] = None,
    hard_coded: Optional[bool] = None,
    samples: Optional[Iterable[int]] = None,
) -> ScoreReport:
    """
    One-shot scoring pass with a private scorer (and file handle).

    Options left as None come from ``get_scoring_config()`` and the
    filter thresholds' hard-call probability.
    """
    with VariantScorer(
        include=include,
        hard_call_threshold=hard_call_threshold,
        model=model,
        missing_policy=missing_policy,
        hard_coded=hard_coded,
    ) as scorer:
        return scorer.score(records, accumulator, start, end, region, samples)
