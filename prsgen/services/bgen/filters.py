"""
Variant quality filtering over decoded genotype probabilities.

A variant is excluded by the first failing check, in this order:
genotype missingness, degenerate MAF (every sample MAF-missing), MAF,
INFO score. Zero denominators never raise; they resolve to an exclusion
when the corresponding threshold is active.

MAF is always counted from hard calls: a sample without a call at the
hard-call threshold is MAF-missing. Hard-call mode additionally counts
such samples as missing and leaves them out of the INFO statistic.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from prsgen.config import FilterThresholds

from .bit_reader import Buffer
from .header import ContainerHeader
from .probability import DecodedVariant, ProbabilityDecoder
from .records import ContainerCursor, VariantRecord

logger = logging.getLogger(__name__)


class RunningStatistic:
    """
    Welford mean/variance accumulator.

    Partial statistics combine with :meth:`merge` in any order. An empty
    accumulator reports a mean of 0.0; variance needs two observations.
    """

    __slots__ = ("count", "_mean", "_m2")

    def __init__(self):
        self.count = 0
        self._mean = 0.0
        self._m2 = 0.0

    def push(self, value: float) -> None:
        self.count += 1
        delta = value - self._mean
        self._mean += delta / self.count
        self._m2 += delta * (value - self._mean)

    def merge(self, other: "RunningStatistic") -> "RunningStatistic":
        merged = RunningStatistic()
        merged.count = self.count + other.count
        if merged.count == 0:
            return merged
        delta = other._mean - self._mean
        merged._mean = self._mean + delta * other.count / merged.count
        merged._m2 = self._m2 + other._m2 + delta * delta * self.count * other.count / merged.count
        return merged

    @property
    def mean(self) -> float:
        return self._mean if self.count > 0 else 0.0

    @property
    def variance(self) -> float:
        return self._m2 / (self.count - 1) if self.count > 1 else 0.0


class FilterDecision(str, Enum):
    RETAINED = "retained"
    MISSINGNESS = "missingness"
    MAF = "maf"
    INFO = "info"


@dataclass
class FilterResult:
    decision: FilterDecision
    included_count: int = 0
    missing_count: int = 0
    maf_missing_count: int = 0
    allele_sum: float = 0.0
    maf: Optional[float] = None
    info: Optional[float] = None

    @property
    def excluded(self) -> bool:
        return self.decision is not FilterDecision.RETAINED


@dataclass
class FilterReport:
    """Counters for one build or filter pass. Merge reports from parallel passes."""

    scanned: int = 0
    geno_filtered: int = 0
    maf_filtered: int = 0
    info_filtered: int = 0
    ambiguous: int = 0
    not_selected: int = 0
    duplicated: int = 0
    non_autosomal: int = 0
    retained: List[int] = field(default_factory=list)

    def record(self, result: FilterResult, index: Optional[int] = None) -> None:
        """Count one filter decision; ``scanned`` is left to the caller."""
        decision = result.decision
        if decision is FilterDecision.RETAINED:
            if index is not None:
                self.retained.append(index)
        elif decision is FilterDecision.MISSINGNESS:
            self.geno_filtered += 1
        elif decision is FilterDecision.MAF:
            self.maf_filtered += 1
        elif decision is FilterDecision.INFO:
            self.info_filtered += 1
        else:
            raise ValueError(f"Unhandled filter decision {decision!r}")

    @property
    def filtered(self) -> int:
        return self.geno_filtered + self.maf_filtered + self.info_filtered

    def merge(self, other: "FilterReport") -> "FilterReport":
        return FilterReport(
            scanned=self.scanned + other.scanned,
            geno_filtered=self.geno_filtered + other.geno_filtered,
            maf_filtered=self.maf_filtered + other.maf_filtered,
            info_filtered=self.info_filtered + other.info_filtered,
            ambiguous=self.ambiguous + other.ambiguous,
            not_selected=self.not_selected + other.not_selected,
            duplicated=self.duplicated + other.duplicated,
            non_autosomal=self.non_autosomal + other.non_autosomal,
            retained=sorted(self.retained + other.retained),
        )

    def summary(self) -> dict:
        return {
            "scanned": self.scanned,
            "retained": len(self.retained),
            "geno_filtered": self.geno_filtered,
            "maf_filtered": self.maf_filtered,
            "info_filtered": self.info_filtered,
            "ambiguous": self.ambiguous,
            "not_selected": self.not_selected,
            "duplicated": self.duplicated,
            "non_autosomal": self.non_autosomal,
        }


class VariantFilter:
    """Apply :class:`FilterThresholds` to the variants of one container."""

    def __init__(
        self,
        header: ContainerHeader,
        thresholds: FilterThresholds,
        include: Optional[Sequence[bool]] = None,
    ):
        self.header = header
        self.thresholds = thresholds
        self.include = include
        self.decoder = ProbabilityDecoder(header, thresholds.hard_call_probability_threshold)

    @property
    def needs_payload(self) -> bool:
        return not self.thresholds.is_disabled

    def evaluate(self, payload: Buffer) -> FilterResult:
        if not self.needs_payload:
            return FilterResult(decision=FilterDecision.RETAINED)
        return self.evaluate_decoded(self.decoder.decode(payload, self.include))

    def evaluate_decoded(self, decoded: DecodedVariant) -> FilterResult:
        t = self.thresholds
        hard_mode = t.hard_call_mode
        included = missing = maf_missing = 0
        allele_sum = 0.0
        info_stat = RunningStatistic()

        for sample in decoded.samples:
            if not sample.included:
                continue
            included += 1
            if sample.missing:
                missing += 1
                maf_missing += 1
                continue
            if sample.hard_call is None:
                maf_missing += 1
                if hard_mode:
                    missing += 1
                    continue
            else:
                allele_sum += sample.hard_call
            # sub-threshold samples still inform INFO in dosage mode
            info_stat.push(sample.dosage)

        result = FilterResult(
            decision=FilterDecision.RETAINED,
            included_count=included,
            missing_count=missing,
            maf_missing_count=maf_missing,
            allele_sum=allele_sum,
        )

        if included > 0 and missing / included > t.max_missingness:
            result.decision = FilterDecision.MISSINGNESS
            return result

        min_maf = t.min_minor_allele_frequency
        if min_maf > 0.0 and included == maf_missing:
            result.decision = FilterDecision.MAF
            return result
        if included != maf_missing:
            result.maf = allele_sum / ((included - maf_missing) * 2.0)
            if result.maf < min_maf:
                result.decision = FilterDecision.MAF
                return result

        p = info_stat.mean / 2.0
        expected_variance = 2.0 * p * (1.0 - p)
        if expected_variance > 0.0:
            result.info = info_stat.variance / expected_variance
        if t.min_info_score > 0.0:
            info = result.info
            if info is None or math.isnan(info) or info < t.min_info_score:
                result.decision = FilterDecision.INFO
        return result


def filter_records(
    records: Sequence[VariantRecord],
    thresholds: FilterThresholds,
    start: int = 0,
    end: Optional[int] = None,
    region: Optional[int] = None,
    include: Optional[Sequence[bool]] = None,
) -> FilterReport:
    """
    Re-evaluate ``records[start:end]`` that belong to ``region``.

    Payloads are read through a private file handle. Indices of the
    surviving records are listed in ``FilterReport.retained``.
    """
    end = len(records) if end is None else min(end, len(records))
    report = FilterReport()
    filters = {}
    with ContainerCursor() as cursor:
        for index in range(start, end):
            record = records[index]
            if not record.in_region(region):
                continue
            report.scanned += 1
            container = cursor.open(record.source_file)
            engine = filters.get(container.path)
            if engine is None:
                engine = VariantFilter(container.header, thresholds, include)
                filters[container.path] = engine
            if engine.needs_payload:
                result = engine.evaluate(container.read_payload(record.byte_offset))
            else:
                result = FilterResult(decision=FilterDecision.RETAINED)
            report.record(result, index)
    logger.info("Filter pass finished", extra=report.summary())
    return report
