"""
Variant records shared by the build pass, the filter engine and the scorer,
plus the single-handle container cursor they read through.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Optional, Union

from .container import BgenContainer, VariantIdentity

logger = logging.getLogger(__name__)


@dataclass
class VariantRecord:
    identity: VariantIdentity
    source_file: str
    byte_offset: int
    is_flipped: bool = False
    effect_size: float = 0.0
    regions: FrozenSet[int] = field(default_factory=lambda: frozenset({0}))
    _invalidated: bool = field(default=False, repr=False)

    @property
    def key(self) -> str:
        return self.identity.key

    @property
    def invalidated(self) -> bool:
        return self._invalidated

    def invalidate(self) -> None:
        """Mark the variant unusable for every later scoring call."""
        self._invalidated = True

    def in_region(self, region: Optional[int]) -> bool:
        return region is None or region in self.regions


class ContainerCursor:
    """
    Keeps one container open at a time, reopening only when the requested
    source file changes.
    """

    def __init__(self):
        self._container: Optional[BgenContainer] = None

    @property
    def current(self) -> Optional[BgenContainer]:
        return self._container

    def open(self, source_file: Union[str, Path]) -> BgenContainer:
        path = Path(source_file)
        if self._container is not None and self._container.path == path:
            return self._container
        self.close()
        logger.debug("Switching genotype file to %s", path)
        self._container = BgenContainer(path)
        return self._container

    def read_payload(self, record: VariantRecord) -> bytes:
        return self.open(record.source_file).read_payload(record.byte_offset)

    def close(self) -> None:
        if self._container is not None:
            self._container.close()
            self._container = None

    def __enter__(self) -> "ContainerCursor":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
