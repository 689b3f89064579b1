from .build import BuildResult, build_variant_records, read_valid_identities, write_valid_identities

__all__ = [
    "BuildResult",
    "build_variant_records",
    "read_valid_identities",
    "write_valid_identities",
]
