"""
Scoring Service

Per-sample polygenic score accumulation from hard calls or dosages.
The scorer itself lives in ``prsgen.services.scoring.scorer``.
"""

from .models import (
    DosageCall,
    GenotypeSource,
    HardCall,
    InheritanceModel,
    MissingPolicy,
    ScoreAccumulator,
    effect_value,
)

__all__ = [
    "DosageCall",
    "GenotypeSource",
    "HardCall",
    "InheritanceModel",
    "MissingPolicy",
    "ScoreAccumulator",
    "effect_value",
]
