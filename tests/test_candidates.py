"""
Tests for candidate filtering, ranking and orchestration.
"""

import math
import sys
from collections import OrderedDict
from pathlib import Path
from unittest.mock import patch

import numpy as np
import pandas as pd
import pytest

# Add src to path for mmappr imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from mmappr.candidates import (
    density_score_and_order,
    filter_variants,
    generate_candidates,
    variant_midpoints,
)
from mmappr.config import Config
from mmappr.models import PEAK_DENSITY, MappingData, PeakRegion, empty_variant_table
from mmappr.output import candidates_filename, write_candidates


@pytest.fixture
def annotated_df():
    """VEP-style table: one row per consequence."""
    return pd.DataFrame({
        "CHROM": ["18"] * 6,
        "POS": [100, 100, 200, 300, 400, 500],
        "END": [100, 100, 201, 300, 400, 500],
        "REF": ["A", "A", "GT", "C", "T", "G"],
        "ALT": ["G", "G", "G", "T", "C", "A"],
        "Consequence": ["missense_variant", "synonymous_variant", "frameshift_variant",
                        "intron_variant", "stop_gained", "upstream_gene_variant"],
        "IMPACT": ["MODERATE", "LOW", "HIGH", None, "HIGH", np.nan],
    })


class TestFilterVariants:
    """Tests for LOW impact filtering."""

    def test_low_removed(self, annotated_df):
        filtered = filter_variants(annotated_df)
        assert "LOW" not in filtered["IMPACT"].tolist()
        assert len(filtered) == 5

    def test_missing_impact_kept(self, annotated_df):
        filtered = filter_variants(annotated_df)
        assert 300 in filtered["POS"].tolist()
        assert 500 in filtered["POS"].tolist()

    def test_order_preserved(self, annotated_df):
        filtered = filter_variants(annotated_df)
        assert filtered["Consequence"].tolist() == [
            "missense_variant", "frameshift_variant", "intron_variant",
            "stop_gained", "upstream_gene_variant",
        ]

    def test_modifier_kept(self):
        df = pd.DataFrame({"POS": [1], "END": [1], "IMPACT": ["MODIFIER"]})
        assert len(filter_variants(df)) == 1

    def test_no_impact_column_passes_everything(self):
        df = pd.DataFrame({"POS": [1, 2], "END": [1, 2]})
        filtered = filter_variants(df)
        assert len(filtered) == 2
        assert filtered is not df

    def test_all_low(self):
        df = pd.DataFrame({"POS": [1, 2], "END": [1, 2], "IMPACT": ["LOW", "LOW"]})
        assert filter_variants(df).empty

    def test_empty_table(self):
        assert filter_variants(empty_variant_table(["IMPACT"])).empty


class TestDensityScoring:
    """Tests for midpoint density scoring and ordering."""

    def test_midpoints(self):
        df = pd.DataFrame({"POS": [100, 200, 300], "END": [100, 201, 304]})
        assert variant_midpoints(df).tolist() == [100.0, 200.5, 302.0]

    def test_sorted_descending(self):
        df = pd.DataFrame({"POS": [100, 300, 200], "END": [100, 300, 200]})
        ranked = density_score_and_order(df, lambda pos: pos / 1000)

        assert ranked["POS"].tolist() == [300, 200, 100]
        assert ranked[PEAK_DENSITY].tolist() == pytest.approx([0.3, 0.2, 0.1])

    def test_density_evaluated_at_midpoint(self):
        seen = []

        def density(pos):
            seen.append(pos)
            return 1.0

        df = pd.DataFrame({"POS": [10], "END": [13]})
        density_score_and_order(df, density)
        assert seen == [11.5]

    def test_nan_scores_last(self):
        df = pd.DataFrame({"POS": [1, 2, 3], "END": [1, 2, 3]})
        scores = {1.0: float("nan"), 2.0: 0.5, 3.0: 0.9}
        ranked = density_score_and_order(df, lambda pos: scores[pos])

        assert ranked["POS"].tolist() == [3, 2, 1]
        assert math.isnan(ranked[PEAK_DENSITY].iloc[-1])

    def test_ties_keep_input_order(self):
        """Rows of the same variant (several consequences) stay together in VEP order."""
        df = pd.DataFrame({
            "POS": [5, 5, 9],
            "END": [5, 5, 9],
            "Consequence": ["first", "second", "other"],
        })
        ranked = density_score_and_order(df, lambda pos: 1.0 if pos == 5 else 0.1)
        assert ranked["Consequence"].tolist() == ["first", "second", "other"]

    def test_input_not_modified(self):
        df = pd.DataFrame({"POS": [1], "END": [1]})
        density_score_and_order(df, lambda pos: 1.0)
        assert PEAK_DENSITY not in df.columns

    def test_empty_table_gets_density_column(self):
        ranked = density_score_and_order(empty_variant_table(), lambda pos: 1.0)
        assert ranked.empty
        assert PEAK_DENSITY in ranked.columns

    def test_missing_density_function(self):
        with pytest.raises(ValueError, match="density function"):
            density_score_and_order(pd.DataFrame({"POS": [1], "END": [1]}), None)


class TestGenerateCandidates:
    """Tests for the full per-peak pipeline with external tools mocked."""

    @pytest.fixture
    def data(self, tmp_path):
        config = Config(output_folder=tmp_path, mut_files={"mut": tmp_path / "mut.bam"})
        peaks = OrderedDict([
            ("18", PeakRegion("18", 50, 600, density_function=lambda pos: pos)),
            ("3", PeakRegion("3", 1, 100, density_function=lambda pos: 1.0)),
        ])
        return MappingData(config=config, peaks=peaks)

    def test_pipeline_steps_per_peak(self, data, annotated_df):
        called = pd.DataFrame({"CHROM": ["18"], "POS": [100], "END": [100],
                               "REF": ["A"], "ALT": ["G"]})

        def fake_vep(variants, config):
            if variants.empty:
                return empty_variant_table(["IMPACT"])
            return annotated_df

        def fake_calls(region, config):
            return called if region.seqname == "18" else empty_variant_table()

        with patch("mmappr.candidates.get_variants_for_range", side_effect=fake_calls) as calls, \
                patch("mmappr.candidates.run_vep_for_variants", side_effect=fake_vep):
            result = generate_candidates(data)

        assert list(result.candidates) == ["18", "3"]
        regions = [c.args[0].region_string for c in calls.call_args_list]
        assert regions == ["18:50-600", "3:1-100"]

        chr18 = result.candidates["18"]
        assert "LOW" not in chr18["IMPACT"].tolist()
        assert chr18["POS"].tolist() == [500, 400, 300, 200, 100]
        assert chr18[PEAK_DENSITY].tolist()[1] == pytest.approx(400.0)
        assert result.candidates["3"].empty
        assert result.num_candidates == 5

    def test_missing_density_function(self, data):
        data.peaks["3"].density_function = None
        with patch("mmappr.candidates.get_variants_for_range") as calls:
            with pytest.raises(ValueError, match="3"):
                generate_candidates(data)
        calls.assert_not_called()

    def test_requires_config(self):
        with pytest.raises(ValueError, match="configuration"):
            generate_candidates(MappingData())


class TestWriteCandidates:
    def test_write_per_peak(self, tmp_path):
        data = MappingData(candidates={
            "18": pd.DataFrame({"POS": [1], "IMPACT": [None], PEAK_DENSITY: [0.5]}),
            "chrUn:1": pd.DataFrame({"POS": [2], "IMPACT": ["HIGH"], PEAK_DENSITY: [0.1]}),
        })
        written = write_candidates(data, tmp_path)

        assert written["18"] == tmp_path / "18.candidates.tsv"
        assert written["chrUn:1"].name == "chrUn_1.candidates.tsv"
        back = pd.read_csv(written["18"], sep="\t", keep_default_na=False)
        assert back["IMPACT"].tolist() == ["NA"]

    def test_filename_sanitized(self):
        assert candidates_filename("chr1/alt") == "chr1_alt.candidates.tsv"

    def test_clashing_names_not_overwritten(self, tmp_path):
        data = MappingData(candidates={
            "chr1/alt": pd.DataFrame({"POS": [1], PEAK_DENSITY: [0.5]}),
            "chr1_alt": pd.DataFrame({"POS": [2], PEAK_DENSITY: [0.4]}),
            "chr1_alt.2": pd.DataFrame({"POS": [3], PEAK_DENSITY: [0.3]}),
        })
        written = write_candidates(data, tmp_path)

        assert written["chr1/alt"].name == "chr1_alt.candidates.tsv"
        assert written["chr1_alt"].name == "chr1_alt.2.candidates.tsv"
        assert written["chr1_alt.2"].name == "chr1_alt.2.2.candidates.tsv"
        positions = [pd.read_csv(path, sep="\t")["POS"].tolist() for path in written.values()]
        assert positions == [[1], [2], [3]]

    def test_needs_output_folder(self):
        with pytest.raises(ValueError):
            write_candidates(MappingData())


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
