"""
Build pass: enumerate the variants of one or more BGEN containers, apply
the selection list, the strand-ambiguity rule and the quality filters, and
turn the survivors into VariantRecords for scoring.

Duplicate identities are collected over the whole pass and reported at
the end, together with the list of identities that are safe to keep.
"""

from __future__ import annotations

import logging
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import Collection, Dict, List, Optional, Sequence, Set, Union

import pandas as pd

from prsgen.config import FilterThresholds, get_build_config
from prsgen.services.bgen.container import BgenContainer, VariantIdentity
from prsgen.services.bgen.errors import BgenFormatError, ContainerFormatError, DuplicateIdentityError
from prsgen.services.bgen.filters import FilterDecision, FilterReport, FilterResult, VariantFilter
from prsgen.services.bgen.header import ContainerHeader
from prsgen.services.bgen.records import VariantRecord

logger = logging.getLogger(__name__)

VALID_COLUMNS = ["rsid", "chr", "pos", "ref", "alt"]

PathLike = Union[str, Path]


@dataclass
class BuildResult:
    records: List[VariantRecord]
    report: FilterReport
    headers: Dict[str, ContainerHeader] = field(default_factory=dict)
    sample_ids: List[str] = field(default_factory=list)


def write_valid_identities(identities: Sequence[VariantIdentity], path: PathLike) -> Path:
    """Write ``rsid chr pos ref alt`` rows, tab separated, in the given order."""
    frame = pd.DataFrame(
        [(v.key, v.chromosome, v.position, v.ref, v.alt) for v in identities],
        columns=VALID_COLUMNS,
    )
    out = Path(path)
    frame.to_csv(out, sep="\t", header=False, index=False)
    return out


def read_valid_identities(path: PathLike) -> List[str]:
    """Identity keys from a file written by :func:`write_valid_identities`."""
    frame = pd.read_csv(path, sep="\t", header=None, names=VALID_COLUMNS, dtype={"rsid": str})
    return frame["rsid"].tolist()


def autosome_code(chromosome: str, max_autosome: int) -> Optional[int]:
    """Numeric code of an autosome (``"7"``, ``"chr7"``), else None."""
    name = chromosome[3:] if chromosome.lower().startswith("chr") else chromosome
    if not name.isdigit():
        return None
    code = int(name)
    return code if 1 <= code <= max_autosome else None


def _open_containers(stack: ExitStack, paths: Sequence[PathLike]) -> List[BgenContainer]:
    containers = [stack.enter_context(BgenContainer(path)) for path in paths]
    if not containers:
        raise ValueError("At least one genotype file is required")
    expected = containers[0].sample_count
    for container in containers[1:]:
        if container.sample_count != expected:
            logger.warning(
                "Sample count mismatch: %s has %d samples, %s has %d",
                containers[0].path, expected, container.path, container.sample_count,
            )
            raise ContainerFormatError(
                f"Number of samples differs between genotype files: "
                f"{containers[0].path} ({expected}) and {container.path} ({container.sample_count})"
            )
    return containers


def _check_sample_ids(container: BgenContainer, expected_sample_ids: Optional[Sequence[str]]) -> None:
    if not expected_sample_ids or not container.sample_ids:
        return
    if len(expected_sample_ids) != len(container.sample_ids):
        raise ContainerFormatError(
            f"{container.path} lists {len(container.sample_ids)} samples, "
            f"expected {len(expected_sample_ids)}"
        )
    for index, (found, wanted) in enumerate(zip(container.sample_ids, expected_sample_ids)):
        if found != wanted:
            logger.warning("Sample %d of %s is %r, expected %r", index, container.path, found, wanted)
            raise ContainerFormatError(
                f"Sample identifiers of {container.path} do not match the expected samples "
                f"(first mismatch at sample {index}: {found!r} != {wanted!r})"
            )


def build_variant_records(
    paths: Sequence[PathLike],
    thresholds: FilterThresholds,
    *,
    include: Optional[Sequence[bool]] = None,
    selection: Optional[Collection[str]] = None,
    exclude_selection: bool = False,
    keep_ambiguous: Optional[bool] = None,
    expected_sample_ids: Optional[Sequence[str]] = None,
    output_prefix: Optional[PathLike] = None,
    valid_path: Optional[PathLike] = None,
) -> BuildResult:
    """
    Scan every variant of ``paths`` (in order) and return the retained ones.

    Args:
        paths: Genotype files; all must describe the same samples.
        thresholds: Quality filters applied to each non-excluded variant.
        include: Per-sample inclusion mask in container order.
        selection: Identity keys to extract (or, with ``exclude_selection``,
            to drop).
        keep_ambiguous: Keep A/T and C/G variants. Defaults to the build
            configuration.
        expected_sample_ids: Compared with the first file's identifier block
            when both are present.
        output_prefix: Prefix of the non-duplicate identity list written
            if duplicates are found; the build configuration's
            ``valid_suffix`` is appended.
        valid_path: Explicit path for that list, overriding
            ``output_prefix``.

    Raises:
        ContainerFormatError: Inconsistent files or unclustered chromosomes.
        DuplicateIdentityError: After the full pass, if any identity repeats.
    """
    build_config = get_build_config()
    if keep_ambiguous is None:
        keep_ambiguous = build_config.keep_ambiguous
    if valid_path is None and output_prefix is not None:
        valid_path = f"{output_prefix}{build_config.valid_suffix}"
    selected: Optional[Set[str]] = set(selection) if selection is not None else None

    records: List[VariantRecord] = []
    report = FilterReport()
    headers: Dict[str, ContainerHeader] = {}
    seen_keys: Set[str] = set()
    duplicates: Set[str] = set()
    finished_chromosomes: Set[str] = set()
    current_chromosome: Optional[str] = None

    with ExitStack() as stack:
        containers = _open_containers(stack, paths)
        _check_sample_ids(containers[0], expected_sample_ids)
        sample_ids = list(containers[0].sample_ids)

        for container in containers:
            headers[str(container.path)] = container.header
            engine = VariantFilter(container.header, thresholds, include)
            try:
                for identity, offset, block in container.iter_variants():
                    report.scanned += 1
                    if report.scanned % build_config.progress_interval == 0:
                        logger.debug(
                            "Processed %d variants (%d retained)", report.scanned, len(records)
                        )

                    chromosome = identity.chromosome
                    if chromosome != current_chromosome:
                        if chromosome in finished_chromosomes:
                            raise ContainerFormatError(
                                f"Variants of chromosome {chromosome} are not clustered together "
                                f"({container.path}, variant {identity.key})"
                            )
                        if current_chromosome is not None:
                            finished_chromosomes.add(current_chromosome)
                        current_chromosome = chromosome

                    if build_config.autosomes_only and autosome_code(chromosome, build_config.max_autosome) is None:
                        report.non_autosomal += 1
                        continue

                    key = identity.key
                    if key in seen_keys:
                        duplicates.add(key)
                        report.duplicated += 1
                        continue
                    seen_keys.add(key)

                    if selected is not None and (key in selected) == exclude_selection:
                        report.not_selected += 1
                        continue

                    if identity.is_ambiguous:
                        report.ambiguous += 1
                        if not keep_ambiguous:
                            continue

                    if engine.needs_payload:
                        result = engine.evaluate(container.decompress(block))
                    else:
                        result = FilterResult(decision=FilterDecision.RETAINED)
                    report.record(result, len(records))
                    if result.excluded:
                        continue

                    records.append(
                        VariantRecord(
                            identity=identity,
                            source_file=str(container.path),
                            byte_offset=offset,
                        )
                    )
            except BgenFormatError:
                logger.error("Build pass aborted while reading %s", container.path)
                raise

    if report.non_autosomal:
        logger.warning(
            "Ignored %d variants on sex, haploid or out-of-range chromosomes", report.non_autosomal
        )
    if report.ambiguous and not keep_ambiguous:
        logger.warning("Excluded %d strand-ambiguous variants", report.ambiguous)

    if duplicates:
        valid = [record.identity for record in records if record.key not in duplicates]
        artifact = None
        if valid_path is not None:
            artifact = str(write_valid_identities(valid, valid_path))
        logger.warning(
            "Found %d duplicated variant identities",
            len(duplicates),
            extra={"duplicates": len(duplicates), "valid": len(valid), "artifact": artifact},
        )
        raise DuplicateIdentityError(sorted(duplicates), valid, artifact)

    logger.info("Build pass finished", extra=report.summary())
    return BuildResult(records=records, report=report, headers=headers, sample_ids=sample_ids)
