"""
Tests for the build pass: selection, ambiguity, filtering, clustering and
the duplicate identity report.
"""

import pytest

from prsgen.config import FilterThresholds, update_config
from prsgen.services.bgen.container import BgenContainer
from prsgen.services.bgen.errors import ContainerFormatError, DuplicateIdentityError
from prsgen.services.bgen.writer import SyntheticVariant
from prsgen.services.pipeline.build import autosome_code, build_variant_records, read_valid_identities

HOM_FIRST = (1.0, 0.0, 0.0)
HET = (0.0, 1.0, 0.0)
HOM_SECOND = (0.0, 0.0, 1.0)
MIXED = [HOM_FIRST, HET, HOM_SECOND]


def _variant(rsid, chromosome="1", position=1, probabilities=None, alleles=("A", "G")):
    return SyntheticVariant(rsid, chromosome, position, probabilities or MIXED, alleles=alleles)


class TestBuildPass:
    """Variant enumeration into records."""

    def test_records_point_at_genotype_blocks(self, make_bgen):
        path = make_bgen([_variant("rs1", position=1), _variant("rs2", position=2)], sample_ids=["a", "b", "c"])
        result = build_variant_records([path], FilterThresholds())
        assert [r.key for r in result.records] == ["rs1", "rs2"]
        assert result.report.scanned == 2
        assert result.report.retained == [0, 1]
        assert result.sample_ids == ["a", "b", "c"]
        assert str(path) in result.headers
        with BgenContainer(path) as container:
            blocks = [container.decompress(block) for _, _, block in container.iter_variants()]
            assert [container.read_payload(r.byte_offset) for r in result.records] == blocks

    def test_quality_filters_apply(self, make_bgen):
        path = make_bgen([
            _variant("rs1", position=1),
            _variant("rs2", position=2, probabilities=[HOM_FIRST] * 3),
        ])
        result = build_variant_records([path], FilterThresholds(min_minor_allele_frequency=0.01))
        assert [r.key for r in result.records] == ["rs1"]
        assert result.report.maf_filtered == 1

    def test_selection_extract_and_exclude(self, make_bgen):
        path = make_bgen([_variant("rs1", position=1), _variant(".", position=2), _variant("rs3", position=3)])
        extracted = build_variant_records([path], FilterThresholds(), selection={"rs3", "1:2"})
        assert [r.key for r in extracted.records] == ["1:2", "rs3"]
        assert extracted.report.not_selected == 1
        excluded = build_variant_records([path], FilterThresholds(), selection=["rs3"], exclude_selection=True)
        assert [r.key for r in excluded.records] == ["rs1", "1:2"]

    def test_ambiguous_variants(self, make_bgen):
        """A/T and C/G sites are dropped unless explicitly kept."""
        path = make_bgen([_variant("rs1", position=1, alleles=("A", "T")), _variant("rs2", position=2)])
        dropped = build_variant_records([path], FilterThresholds())
        assert [r.key for r in dropped.records] == ["rs2"]
        assert dropped.report.ambiguous == 1
        kept = build_variant_records([path], FilterThresholds(), keep_ambiguous=True)
        assert [r.key for r in kept.records] == ["rs1", "rs2"]

    def test_keep_ambiguous_defaults_to_configuration(self, make_bgen):
        path = make_bgen([_variant("rs1", alleles=("C", "G"))])
        update_config(**{"build.keep_ambiguous": True})
        assert [r.key for r in build_variant_records([path], FilterThresholds()).records] == ["rs1"]

    def test_chromosomes_must_be_clustered(self, make_bgen):
        path = make_bgen([
            _variant("rs1", "1", 1),
            _variant("rs2", "2", 1),
            _variant("rs3", "1", 2),
        ])
        with pytest.raises(ContainerFormatError, match="clustered"):
            build_variant_records([path], FilterThresholds())

    def test_clustering_spans_files(self, make_bgen):
        first = make_bgen([_variant("rs1", "1", 1), _variant("rs2", "2", 1)])
        second = make_bgen([_variant("rs3", "2", 2), _variant("rs4", "3", 1)])
        result = build_variant_records([first, second], FilterThresholds())
        assert [r.key for r in result.records] == ["rs1", "rs2", "rs3", "rs4"]
        assert result.records[2].source_file == str(second)
        with pytest.raises(ContainerFormatError):
            build_variant_records([second, first], FilterThresholds())

    def test_sample_counts_must_agree(self, make_bgen):
        first = make_bgen([_variant("rs1")])
        second = make_bgen([_variant("rs2", probabilities=[HET, HET])])
        with pytest.raises(ContainerFormatError, match="Number of samples"):
            build_variant_records([first, second], FilterThresholds())

    def test_expected_sample_identifiers(self, make_bgen):
        path = make_bgen([_variant("rs1")], sample_ids=["a", "b", "c"])
        build_variant_records([path], FilterThresholds(), expected_sample_ids=["a", "b", "c"])
        with pytest.raises(ContainerFormatError, match="do not match"):
            build_variant_records([path], FilterThresholds(), expected_sample_ids=["a", "c", "b"])


class TestDuplicateIdentities:
    """Duplicates are reported after the full pass with a recovery list."""

    def test_duplicates_raise_with_valid_list_in_scan_order(self, make_bgen, tmp_path):
        path = make_bgen([
            _variant("rs5", position=1),
            _variant("rs1", position=2),
            _variant("rs2", position=3),
            _variant("rs1", position=4),
            _variant("rs9", position=5, alleles=("A", "T")),
            _variant("rs3", position=6),
            _variant("rs2", position=7),
        ])
        valid_path = tmp_path / "variants.valid"
        with pytest.raises(DuplicateIdentityError) as excinfo:
            build_variant_records([path], FilterThresholds(), valid_path=valid_path)
        error = excinfo.value
        assert error.duplicates == ["rs1", "rs2"]
        assert [v.key for v in error.valid_identities] == ["rs5", "rs3"]
        assert error.artifact_path == str(valid_path)
        assert read_valid_identities(valid_path) == ["rs5", "rs3"]

    def test_artifact_columns(self, make_bgen, tmp_path):
        path = make_bgen([
            _variant("rs5", chromosome="7", position=11),
            _variant("rs5", chromosome="7", position=12),
            _variant(".", chromosome="7", position=13, alleles=("C", "T")),
        ])
        valid_path = tmp_path / "out.valid"
        with pytest.raises(DuplicateIdentityError):
            build_variant_records([path], FilterThresholds(), valid_path=valid_path)
        lines = valid_path.read_text().splitlines()
        assert lines == ["7:13\t7\t13\tC\tT"]

    def test_no_artifact_without_path(self, make_bgen):
        path = make_bgen([_variant("rs1", position=1), _variant("rs1", position=2)])
        with pytest.raises(DuplicateIdentityError) as excinfo:
            build_variant_records([path], FilterThresholds())
        assert excinfo.value.artifact_path is None
        assert excinfo.value.valid_identities == []

    def test_artifact_path_from_prefix_and_configured_suffix(self, make_bgen, tmp_path):
        path = make_bgen([_variant("rs1", position=1), _variant("rs1", position=2), _variant("rs2", position=3)])
        update_config(**{"build.valid_suffix": ".keep"})
        with pytest.raises(DuplicateIdentityError) as excinfo:
            build_variant_records([path], FilterThresholds(), output_prefix=tmp_path / "run")
        expected = tmp_path / "run.keep"
        assert excinfo.value.artifact_path == str(expected)
        assert read_valid_identities(expected) == ["rs2"]


class TestChromosomeCodes:
    """Sex, haploid and out-of-range chromosomes are left out of the build."""

    def test_autosome_code(self):
        assert autosome_code("7", 22) == 7
        assert autosome_code("chr22", 22) == 22
        assert autosome_code("23", 22) is None
        assert autosome_code("X", 22) is None
        assert autosome_code("MT", 22) is None

    def test_non_autosomal_variants_are_counted_and_skipped(self, make_bgen):
        path = make_bgen([
            _variant("rs1", "1", 1),
            _variant("rs2", "X", 1),
            _variant("rs3", "Y", 1),
            _variant("rs4", "25", 1),
        ])
        result = build_variant_records([path], FilterThresholds())
        assert [r.key for r in result.records] == ["rs1"]
        assert result.report.non_autosomal == 3
        assert result.report.scanned == 4

    def test_configured_to_keep_every_chromosome(self, make_bgen):
        path = make_bgen([_variant("rs1", "1", 1), _variant("rs2", "X", 1)])
        update_config(**{"build.autosomes_only": False})
        result = build_variant_records([path], FilterThresholds())
        assert [r.key for r in result.records] == ["rs1", "rs2"]
        assert result.report.non_autosomal == 0
