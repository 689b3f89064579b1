"""
Configuration for the BGEN scoring service.
Centralizes variant filter thresholds, scoring behaviour and build options.
"""

import json

from pydantic import BaseModel, ConfigDict, Field

from prsgen.services.scoring.models import InheritanceModel, MissingPolicy


class FilterThresholds(BaseModel):
    """Variant quality thresholds applied during a build pass."""

    model_config = ConfigDict(frozen=True)

    max_missingness: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Exclude variants whose missing fraction is strictly above this (1.0 disables)"
    )

    min_minor_allele_frequency: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Exclude variants with an allele frequency below this (0.0 disables)"
    )

    min_info_score: float = Field(
        default=0.0,
        ge=0.0,
        description="Exclude variants with an imputation INFO score below this (0.0 disables)"
    )

    hard_call_probability_threshold: float = Field(
        default=0.9,
        ge=0.0,
        le=1.0,
        description="Minimum probability for a genotype category to be accepted as a hard call"
    )

    hard_call_mode: bool = Field(
        default=False,
        description="If True, sub-threshold samples count as missing and MAF uses hard calls"
    )

    @property
    def is_disabled(self) -> bool:
        """No filter is active (hard-call threshold alone never filters)."""
        return (
            self.max_missingness >= 1.0
            and self.min_minor_allele_frequency <= 0.0
            and self.min_info_score <= 0.0
        )


class ScoringConfig(BaseModel):
    """Configuration for per-sample score accumulation."""

    model: InheritanceModel = Field(
        default=InheritanceModel.ADDITIVE,
        description="Inheritance model applied to each genotype before weighting"
    )

    missing_policy: MissingPolicy = Field(
        default=MissingPolicy.MEAN_IMPUTE,
        description="How samples without a usable call contribute to their score"
    )

    hard_coded: bool = Field(
        default=False,
        description="Score from hard calls instead of dosages"
    )


class BuildConfig(BaseModel):
    """Configuration for the variant build pass."""

    keep_ambiguous: bool = Field(
        default=False,
        description="Keep strand-ambiguous (A/T, C/G) variants"
    )

    valid_suffix: str = Field(
        default=".valid",
        description="Suffix of the non-duplicate variant list written when duplicates are found"
    )

    autosomes_only: bool = Field(
        default=True,
        description="Skip variants on sex, mitochondrial or unnumbered chromosomes and codes above max_autosome"
    )

    max_autosome: int = Field(
        default=22,
        ge=1,
        description="Highest numeric chromosome code treated as an autosome"
    )

    progress_interval: int = Field(
        default=1000,
        ge=1,
        description="Log build progress every N variants"
    )


class PrsConfig(BaseModel):
    """Main configuration for the scoring service."""

    filters: FilterThresholds = Field(
        default_factory=FilterThresholds,
        description="Variant filter thresholds"
    )

    scoring: ScoringConfig = Field(
        default_factory=ScoringConfig,
        description="Score accumulation configuration"
    )

    build: BuildConfig = Field(
        default_factory=BuildConfig,
        description="Build pass configuration"
    )

    # Logging
    verbose_logging: bool = Field(
        default=False,
        description="Enable debug logging (per-variant progress)"
    )


# Global configuration instance
_config: PrsConfig = PrsConfig()


def get_config() -> PrsConfig:
    """Get the global configuration instance."""
    return _config


def update_config(**kwargs):
    """Update configuration parameters."""
    global _config
    current_dict = _config.model_dump()

    # Update nested parameters
    for key, value in kwargs.items():
        if '.' in key:
            # Handle nested keys like 'filters.min_info_score'
            parts = key.split('.')
            current = current_dict
            for part in parts[:-1]:
                current = current[part]
            current[parts[-1]] = value
        else:
            current_dict[key] = value

    _config = PrsConfig(**current_dict)
    return _config


def reset_config():
    """Restore the default configuration."""
    global _config
    _config = PrsConfig()
    return _config


def load_config_from_file(filepath: str):
    """Load configuration from a JSON file."""
    global _config

    with open(filepath, 'r') as f:
        config_dict = json.load(f)

    _config = PrsConfig(**config_dict)
    return _config


def save_config_to_file(filepath: str):
    """Save current configuration to a JSON file."""
    with open(filepath, 'w') as f:
        json.dump(_config.model_dump(mode="json"), f, indent=2)


# Convenience accessors
def get_filter_thresholds() -> FilterThresholds:
    """Get variant filter thresholds."""
    return _config.filters


def get_scoring_config() -> ScoringConfig:
    """Get score accumulation configuration."""
    return _config.scoring


def get_build_config() -> BuildConfig:
    """Get build pass configuration."""
    return _config.build
