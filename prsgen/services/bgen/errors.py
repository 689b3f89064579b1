"""
Error types raised while reading BGEN containers.

Every failure is fatal to the container, variant or pass that hit it.
Callers decide whether to retry at the file level.
"""

from __future__ import annotations

from typing import List, Optional, Sequence


class BgenFormatError(ValueError):
    pass


class ContainerFormatError(BgenFormatError):
    """Bad magic, truncated header, unsupported compression or sample mismatch."""


class VariantFormatError(BgenFormatError):
    """A single genotype block is malformed (sample count, length, bit overrun)."""


class UnsupportedFeatureError(BgenFormatError):
    """A recognised wire value this package does not implement (e.g. phased data)."""


class DuplicateIdentityError(BgenFormatError):
    """
    Raised after a complete build pass in which a variant identity occurred
    more than once.

    ``valid_identities`` lists every retained identity that was not
    duplicated, in scan order, so the caller can re-run restricted to it.
    ``artifact_path`` points at the written copy of that list when one was
    requested.
    """

    def __init__(
        self,
        duplicates: Sequence[str],
        valid_identities: Sequence[object],
        artifact_path: Optional[str] = None,
    ):
        self.duplicates: List[str] = sorted(set(duplicates))
        self.valid_identities = list(valid_identities)
        self.artifact_path = artifact_path
        message = f"Duplicated variant ID detected ({len(self.duplicates)} IDs)."
        if artifact_path:
            message += (
                f" Valid variant IDs stored at {artifact_path}."
                f" You can avoid this error by restricting the input to {artifact_path}"
            )
        super().__init__(message)
