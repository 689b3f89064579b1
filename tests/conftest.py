"""
Shared fixtures: synthetic BGEN containers written into ``tmp_path``.
"""

import pytest

from prsgen.config import reset_config
from prsgen.services.bgen.header import Compression, Layout
from prsgen.services.bgen.writer import SyntheticVariant, write_bgen

HOM_FIRST = (1.0, 0.0, 0.0)
HET = (0.0, 1.0, 0.0)
HOM_SECOND = (0.0, 0.0, 1.0)


@pytest.fixture(autouse=True)
def default_config():
    """Every test starts from (and leaves behind) the default configuration."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def make_bgen(tmp_path):
    """Factory writing a container and returning its path."""
    counter = {"n": 0}

    def _make(variants, name=None, **kwargs):
        counter["n"] += 1
        path = tmp_path / (name or f"test_{counter['n']}.bgen")
        return write_bgen(path, variants, **kwargs)

    return _make


@pytest.fixture
def scoring_variants():
    """Three variants over four samples; sample 3 is missing everywhere but rs3."""
    return [
        SyntheticVariant("rs1", "1", 100, [HOM_FIRST, HET, HOM_SECOND, None]),
        SyntheticVariant("rs2", "1", 200, [HET, HET, HOM_FIRST, None]),
        SyntheticVariant("rs3", "2", 300, [HOM_SECOND, HOM_FIRST, HET, HET]),
    ]


@pytest.fixture
def scoring_bgen(make_bgen, scoring_variants):
    return make_bgen(
        scoring_variants,
        sample_ids=["S0", "S1", "S2", "S3"],
        layout=Layout.V12,
        compression=Compression.ZLIB,
        bits=16,
    )
