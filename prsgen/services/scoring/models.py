"""
Scoring data models: inheritance models, missing-data policies, genotype
sources and the per-sample score accumulator.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd


class InheritanceModel(str, Enum):
    """Transform applied to a genotype value before weighting."""
    ADDITIVE = "additive"
    DOMINANT = "dominant"
    RECESSIVE = "recessive"
    HETEROZYGOUS = "heterozygous"

    def transform(self, genotype: float) -> float:
        if self is InheritanceModel.ADDITIVE:
            return genotype
        if self is InheritanceModel.HETEROZYGOUS:
            return 0 if genotype == 2 else genotype
        if self is InheritanceModel.DOMINANT:
            return 1 if genotype == 2 else genotype
        if self is InheritanceModel.RECESSIVE:
            return max(0, genotype - 1)
        raise ValueError(f"Unhandled inheritance model {self!r}")


class MissingPolicy(str, Enum):
    """How a sample without a usable call contributes to its score."""
    MEAN_IMPUTE = "mean_impute"
    CENTER = "center"
    SET_ZERO = "set_zero"


@dataclass(frozen=True)
class HardCall:
    """A discrete genotype: copies (0-2) of the first allele."""
    genotype: int


@dataclass(frozen=True)
class DosageCall:
    """Genotype probabilities indexed by category (0 = homozygous first allele)."""
    probabilities: Tuple[float, ...]


GenotypeSource = Union[HardCall, DosageCall]


def effect_value(source: Optional[GenotypeSource], model: InheritanceModel, flipped: bool) -> Optional[float]:
    """
    Model-transformed genotype value of one sample, None when missing.

    Flipping swaps the counted allele (``g -> 2 - g``). Dosages apply the
    model to each category before taking the expectation, so a certain
    dosage gives exactly the hard-call value.
    """
    if source is None:
        return None
    if isinstance(source, HardCall):
        g = 2 - source.genotype if flipped else source.genotype
        return float(model.transform(g))
    if isinstance(source, DosageCall):
        expected = 0.0
        for category, probability in enumerate(source.probabilities):
            g = category if flipped else 2 - category
            expected += probability * model.transform(g)
        return expected
    raise TypeError(f"Unknown genotype source {type(source).__name__}")


class ScoreAccumulator:
    """
    Running score sum and counted-variant total for each retained sample.

    Entries are addressed by retained-sample ordinal. Accumulators filled
    by independent passes can be combined with :meth:`merge`.
    """

    def __init__(self, sample_count: int):
        self.score_sum = np.zeros(sample_count, dtype=np.float64)
        self.variants_counted = np.zeros(sample_count, dtype=np.int64)

    def __len__(self) -> int:
        return len(self.score_sum)

    def entry(self, index: int) -> Tuple[float, int]:
        return float(self.score_sum[index]), int(self.variants_counted[index])

    def merge(self, other: "ScoreAccumulator") -> "ScoreAccumulator":
        if len(other) != len(self):
            raise ValueError(f"Cannot merge accumulators of size {len(self)} and {len(other)}")
        merged = ScoreAccumulator(len(self))
        merged.score_sum = self.score_sum + other.score_sum
        merged.variants_counted = self.variants_counted + other.variants_counted
        return merged

    def average(self) -> np.ndarray:
        """Score divided by the number of counted variants (0 where none)."""
        with np.errstate(divide="ignore", invalid="ignore"):
            avg = self.score_sum / self.variants_counted
        return np.where(self.variants_counted > 0, avg, 0.0)

    def to_frame(self, sample_ids: Optional[Sequence[str]] = None) -> pd.DataFrame:
        if sample_ids is not None and len(sample_ids) != len(self):
            raise ValueError(f"Got {len(sample_ids)} sample IDs for {len(self)} scores")
        return pd.DataFrame(
            {
                "IID": list(sample_ids) if sample_ids is not None else list(range(len(self))),
                "PRS": self.score_sum,
                "NumVariants": self.variants_counted,
            }
        )
