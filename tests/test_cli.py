"""Tests for command-line entry points and tool helpers."""

import json
import os
import subprocess
import sys
from pathlib import Path
from unittest.mock import patch

import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from mmappr.cli import candidates_main, parse_vep_flags, validate_main
from mmappr.config import reset_config
from mmappr.tools import find_tool, run_command


class TestParseVepFlags:
    def test_switches_and_values(self):
        extra = parse_vep_flags(["symbol", "--canonical", "distance=1000"])
        assert extra == {"symbol": True, "canonical": True, "distance": "1000"}

    def test_none(self):
        assert parse_vep_flags(None) == {}


class TestRunCommand:
    """Tests for run_command."""

    def test_success(self):
        result = run_command([sys.executable, "-c", "print('ok')"])
        assert result.returncode == 0
        assert result.stdout.strip() == "ok"

    def test_failure_raises(self):
        with pytest.raises(subprocess.CalledProcessError) as exc_info:
            run_command([sys.executable, "-c", "import sys; sys.stderr.write('boom'); sys.exit(3)"])
        assert exc_info.value.returncode == 3
        assert "boom" in exc_info.value.stderr

    def test_failure_without_check(self):
        result = run_command([sys.executable, "-c", "import sys; sys.exit(2)"], check=False)
        assert result.returncode == 2


class TestFindTool:
    def test_configured_path(self, tmp_path):
        tool = tmp_path / "bcftools"
        tool.write_text("")
        assert find_tool("bcftools", tool) == tool

    def test_configured_path_missing(self, tmp_path):
        with pytest.raises(RuntimeError, match="configured path"):
            find_tool("bcftools", tmp_path / "missing")

    def test_not_on_path(self):
        with patch("mmappr.tools.shutil.which", return_value=None):
            with pytest.raises(RuntimeError, match="not found"):
                find_tool("vep")


@pytest.fixture
def run_inputs(tmp_path):
    """Reference, indexed BAM, fake tools and a peaks file for a CLI run."""
    ref = tmp_path / "ref.fa"
    ref.write_text(">18\nACGT\n")
    bam = tmp_path / "mut.bam"
    bam.write_bytes(b"")
    Path(f"{bam}.bai").write_bytes(b"")
    bcftools = tmp_path / "bcftools"
    bcftools.write_text("")
    vep = tmp_path / "vep"
    vep.write_text("")
    peaks = tmp_path / "peaks.json"
    peaks.write_text(json.dumps({"peaks": [
        {"seqname": "18", "start": 1, "end": 4, "density": {"x": [1, 4], "y": [0.0, 1.0]}},
    ]}))
    return {
        "argv": [
            "--peaks", str(peaks),
            "--ref-fasta", str(ref),
            "--mut-bam", str(bam),
            "--bcftools-path", str(bcftools),
            "--vep-path", str(vep),
            "--species", "danio_rerio",
            "-o", str(tmp_path / "out"),
        ],
        "out": tmp_path / "out",
    }


class TestCandidatesMain:
    """Tests for mmappr-candidates."""

    def setup_method(self):
        reset_config()

    def teardown_method(self):
        reset_config()

    def test_writes_candidates(self, run_inputs):
        def fake_generate(data):
            data.candidates = {"18": pd.DataFrame({"POS": [2], "IMPACT": ["HIGH"],
                                                   "PEAK_DENSITY": [0.33]})}
            return data

        with patch("mmappr.candidates.generate_candidates", side_effect=fake_generate) as gen:
            with pytest.raises(SystemExit) as exc_info:
                candidates_main(run_inputs["argv"] + ["--vep-flag", "symbol", "--no-indels"])

        assert exc_info.value.code == 0
        data = gen.call_args.args[0]
        assert list(data.peaks) == ["18"]
        assert data.config.call_indels is False
        assert data.config.vep_flags.extra == {"symbol": True}
        assert (run_inputs["out"] / "18.candidates.tsv").exists()

    def test_tool_failure_exits_nonzero(self, run_inputs):
        error = subprocess.CalledProcessError(1, ["vep"], stderr="no cache")
        with patch("mmappr.candidates.generate_candidates", side_effect=error):
            with pytest.raises(SystemExit) as exc_info:
                candidates_main(run_inputs["argv"])
        assert exc_info.value.code == 1

    def test_invalid_config_exits_nonzero(self, run_inputs, tmp_path):
        argv = list(run_inputs["argv"])
        argv[argv.index("--ref-fasta") + 1] = str(tmp_path / "missing.fa")
        with patch("mmappr.candidates.generate_candidates") as gen:
            with pytest.raises(SystemExit) as exc_info:
                candidates_main(argv)
        assert exc_info.value.code == 1
        gen.assert_not_called()

    def test_peaks_required(self):
        with pytest.raises(SystemExit) as exc_info:
            candidates_main([])
        assert exc_info.value.code == 2


class TestValidateMain:
    def test_reports_errors(self, tmp_path, capsys):
        with patch.dict(os.environ, {"MMAPPR_REF_FASTA": ""}), \
                patch("mmappr.tools.run_command") as run:
            run.return_value = subprocess.CompletedProcess([], 0, "bcftools 1.19\n", "")
            with pytest.raises(SystemExit) as exc_info:
                validate_main(["--ref-fasta", str(tmp_path / "missing.fa")])

        assert exc_info.value.code == 1
        assert "MMAPPR Configuration Status" in capsys.readouterr().out

    def test_tool_warnings_formatted(self, tmp_path, capsys):
        with patch.dict(os.environ, {"VEP_PATH": "", "BCFTOOLS_PATH": ""}), \
                patch("mmappr.tools.shutil.which", return_value=None):
            with pytest.raises(SystemExit):
                validate_main(["--ref-fasta", str(tmp_path / "missing.fa")])

        err = capsys.readouterr().err
        assert "[WARNING] bcftools not found" in err
        assert "[WARNING] vep not found" in err


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
