"""
generate_test_bgen.py
=====================
Development utility to generate synthetic BGEN test files.

Usage:
    python generate_test_bgen.py                  # writes test_data/ directory
    python generate_test_bgen.py --out my_dir     # custom output directory

NOT a deployed project asset - this is for local testing only.
"""
from __future__ import annotations

import argparse
import random
from pathlib import Path

from prsgen.services.bgen.header import Compression, Layout
from prsgen.services.bgen.writer import SyntheticVariant, write_bgen

# ---------------------------------------------------------------------------
# Variant sites (hg38 coords)
# ---------------------------------------------------------------------------
SITES = [
    ("1", 925952, "rs2799066", "G", "A"),
    ("1", 97981395, "rs3918290", "C", "T"),
    ("6", 18143955, "rs1142345", "T", "C"),
    ("10", 96541616, "rs12248560", "C", "T"),
    ("10", 96741053, "rs1799853", "C", "T"),
    ("12", 21331549, "rs4149056", "T", "C"),
    ("22", 42522613, "rs3892097", "A", "G"),
    ("22", 42524175, "rs16947", "G", "A"),
]

GENOTYPES = [(1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, 1.0)]


def _sample_ids(count: int) -> list[str]:
    return [f"SAMPLE_{i:04d}" for i in range(count)]


def _probabilities(rng: random.Random, missing_rate: float, uncertain_rate: float):
    if rng.random() < missing_rate:
        return None
    if rng.random() < uncertain_rate:
        a = rng.random()
        b = rng.random() * (1.0 - a)
        return (a, b, max(0.0, 1.0 - a - b))
    return rng.choice(GENOTYPES)


def make_variants(sample_count: int, seed: int = 42, missing_rate: float = 0.05,
                  uncertain_rate: float = 0.3) -> list[SyntheticVariant]:
    """One variant per site, with a sprinkle of missing and uncertain samples."""
    rng = random.Random(seed)
    variants = []
    for chrom, pos, rsid, ref, alt in SITES:
        probs = [_probabilities(rng, missing_rate, uncertain_rate) for _ in range(sample_count)]
        variants.append(SyntheticVariant(rsid=rsid, chromosome=chrom, position=pos,
                                         probabilities=probs, alleles=(ref, alt)))
    return variants


def make_v11_variants(sample_count: int, seed: int = 7) -> list[SyntheticVariant]:
    """Layout 1.1 has no missing flag; missing samples are all-zero triplets."""
    return make_variants(sample_count, seed=seed, missing_rate=0.05, uncertain_rate=0.0)


def make_duplicated(sample_count: int) -> list[SyntheticVariant]:
    """Two sites sharing an rsid, for exercising the duplicate report."""
    variants = make_variants(sample_count, seed=3)[:3]
    variants[2].rsid = variants[0].rsid
    return variants


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def main() -> None:
    parser = argparse.ArgumentParser(description="Generate synthetic BGEN test files.")
    parser.add_argument("--out", default="test_data", help="Output directory (default: test_data)")
    parser.add_argument("--samples", type=int, default=100, help="Samples per file (default: 100)")
    args = parser.parse_args()

    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)
    ids = _sample_ids(args.samples)

    files = {
        "v12_zlib_16bit.bgen": dict(variants=make_variants(args.samples), layout=Layout.V12,
                                    compression=Compression.ZLIB, bits=16),
        "v12_raw_8bit.bgen": dict(variants=make_variants(args.samples), layout=Layout.V12,
                                  compression=Compression.NONE, bits=8),
        "v11_zlib.bgen": dict(variants=make_v11_variants(args.samples), layout=Layout.V11,
                              compression=Compression.ZLIB),
        "duplicated_ids.bgen": dict(variants=make_duplicated(args.samples), layout=Layout.V12,
                                    compression=Compression.ZLIB, bits=16),
    }

    for fname, options in files.items():
        path = write_bgen(out_dir / fname, sample_ids=ids, **options)
        print(f"  wrote {path}  ({len(options['variants'])} variants, {args.samples} samples)")

    print(f"\nDone - {len(files)} BGEN files written to '{out_dir}/'")


if __name__ == "__main__":
    main()
