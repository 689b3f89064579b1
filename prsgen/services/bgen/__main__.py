from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

from prsgen.core.logging import configure_logging, resolve_level

from .container import BgenContainer
from .errors import BgenFormatError

DEFAULT_MAX_VARIANTS = 10


def main(argv: list[str]) -> int:
    if len(argv) < 2 or "--help" in argv:
        print("Usage: python -m prsgen.services.bgen <path-to.bgen> [--max-variants N] [--verbose]")
        return 0

    path = Path(argv[1])
    if not path.exists():
        print(f"File not found: {path}")
        return 2

    max_variants = DEFAULT_MAX_VARIANTS
    if "--max-variants" in argv:
        try:
            idx = argv.index("--max-variants")
            max_variants = int(argv[idx + 1])
        except (ValueError, IndexError):
            print("Error: --max-variants requires an integer argument")
            return 2

    configure_logging(resolve_level("--verbose" in argv, default=logging.WARNING))

    try:
        with BgenContainer(path) as container:
            header = container.header
            variants = []
            for identity, offset, _ in container.iter_variants():
                if len(variants) >= max_variants:
                    break
                variants.append(
                    {
                        "key": identity.key,
                        "snp_id": identity.snp_id,
                        "rsid": identity.rsid,
                        "chrom": identity.chromosome,
                        "pos": identity.position,
                        "alleles": list(identity.alleles),
                        "offset": offset,
                    }
                )
            sample_ids = container.sample_ids
    except BgenFormatError as exc:
        print(f"Invalid bgen file: {exc}")
        return 1

    payload = {
        "path": str(path),
        "header": {
            "variant_count": header.variant_count,
            "sample_count": header.sample_count,
            "layout": header.layout_version.name,
            "compression": header.compression_kind.name,
            "has_sample_identifier_block": header.has_sample_identifier_block,
            "data_offset": header.data_offset,
            "header_length": header.header_length,
        },
        "sample_id_count": len(sample_ids),
        "first_sample_ids": sample_ids[:max_variants],
        "variants": variants,
    }
    print(json.dumps(payload, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv))
