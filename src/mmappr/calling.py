"""
Variant calling within a peak region.

Calling is delegated to ``bcftools mpileup | bcftools call``; pysam handles
merging mutant alignments, indexing and reading the resulting VCF.
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List

import pandas as pd
import pysam

from .models import (
    ALT,
    CHROM,
    DP,
    END,
    POS,
    QUAL,
    REF,
    SAMPLE,
    VARIANT_COLUMNS,
    PeakRegion,
    empty_variant_table,
)
from .tools import find_tool, run_command
from .validation import validate_variant_ref_bases

logger = logging.getLogger(__name__)

MERGED_BAM_NAME = "merged.tmp.bam"
MPILEUP_TMP_NAME = "peak.mpileup.tmp.bcf"
CALLS_TMP_NAME = "peak.calls.tmp.vcf"


def _remove_files(*paths: Path) -> None:
    for path in paths:
        if path.exists():
            path.unlink()


def ensure_fasta_index(fasta: Path) -> Path:
    """Create ``<fasta>.fai`` with pysam if it doesn't exist yet."""
    fasta = Path(fasta)
    if not fasta.exists():
        raise FileNotFoundError(f"Reference FASTA not found: {fasta}")
    fai = Path(f"{fasta}.fai")
    if not fai.exists():
        logger.info(f"Indexing reference FASTA: {fasta}")
        pysam.faidx(str(fasta))
    return fai


@contextmanager
def mutant_alignment(region: PeakRegion, config) -> Iterator[Path]:
    """
    Yield a single indexed BAM holding the mutant reads for ``region``.

    One mutant file is used as is. Several are merged, restricted to the
    region, into ``<output_folder>/merged.tmp.bam``; the merged file and its
    index are removed on exit.
    """
    bams: List[Path] = list(config.mut_files.values())
    if not bams:
        raise ValueError("No mutant BAM files configured")
    for bam in bams:
        if not bam.exists():
            raise FileNotFoundError(f"Mutant BAM not found: {bam}")

    if len(bams) < 2:
        yield bams[0]
        return

    output_folder = Path(config.output_folder)
    output_folder.mkdir(parents=True, exist_ok=True)
    merged = output_folder / MERGED_BAM_NAME
    merged_index = Path(f"{merged}.bai")

    try:
        logger.info(f"Merging {len(bams)} mutant BAMs over {region.region_string}")
        pysam.merge("-f", "-R", region.region_string, str(merged), *[str(b) for b in bams])
        pysam.index(str(merged))
        yield merged
    finally:
        _remove_files(merged, merged_index)


def read_called_variants(vcf_path: Path, sample_label: str = "") -> pd.DataFrame:
    """
    Read a bcftools VCF into a variant table, one row per ALT allele.

    Symbolic alleles (``<*>``, ``<DEL>``...) are skipped.
    """
    rows = []
    with pysam.VariantFile(str(vcf_path)) as vcf:
        for rec in vcf:
            if not rec.alts:
                continue
            depth = rec.info["DP"] if "DP" in rec.info else None
            for alt in rec.alts:
                if alt.startswith("<"):
                    continue
                rows.append({
                    CHROM: rec.chrom,
                    POS: rec.pos,
                    END: rec.pos + len(rec.ref) - 1,
                    REF: rec.ref,
                    ALT: alt,
                    QUAL: rec.qual,
                    DP: depth,
                    SAMPLE: sample_label,
                })

    if not rows:
        return empty_variant_table()
    return pd.DataFrame(rows, columns=VARIANT_COLUMNS)


def call_variants(bam: Path, region: PeakRegion, config) -> pd.DataFrame:
    """Run bcftools mpileup/call on ``bam`` over ``region``."""
    bcftools = find_tool("bcftools", config.bcftools_path)
    ensure_fasta_index(config.ref_fasta)

    output_folder = Path(config.output_folder)
    output_folder.mkdir(parents=True, exist_ok=True)
    mpileup_out = output_folder / MPILEUP_TMP_NAME
    calls_out = output_folder / CALLS_TMP_NAME

    mpileup_cmd = [
        bcftools, "mpileup",
        "-f", config.ref_fasta,
        "-r", region.region_string,
        "-q", config.min_mapping_quality,
        "-Q", config.min_base_quality,
        "-d", config.max_depth,
        "-a", "FORMAT/AD,FORMAT/DP",
        "--threads", config.threads,
        "-Ou", "-o", mpileup_out,
    ]
    if not config.call_indels:
        mpileup_cmd.append("--skip-indels")
    mpileup_cmd.append(bam)

    call_cmd = [
        bcftools, "call",
        "-m", "-v",
        "--threads", config.threads,
        "-Ov", "-o", calls_out,
        mpileup_out,
    ]

    try:
        run_command(mpileup_cmd)
        run_command(call_cmd)
        return read_called_variants(calls_out, sample_label=config.sample_label)
    finally:
        _remove_files(mpileup_out, calls_out)


def get_variants_for_range(region: PeakRegion, config) -> pd.DataFrame:
    """
    Call variants from the mutant pool inside ``region``.

    Args:
        region: Peak region to call in
        config: Run configuration (reference, mutant BAMs, output folder)

    Returns:
        Variant table; empty (with the standard columns) when nothing is called
    """
    logger.info(f"Calling variants in {region.region_string}")
    with mutant_alignment(region, config) as bam:
        variants = call_variants(bam, region, config)

    if variants.empty:
        logger.warning(f"No variants called in {region.region_string}")
        return variants

    logger.info(f"  Called {len(variants)} variant allele(s) in {region.region_string}")
    is_valid, errors, _ = validate_variant_ref_bases(variants, config.ref_fasta, max_errors=5)
    if not is_valid:
        logger.warning(
            "Called REF alleles disagree with the reference; check that the BAMs "
            f"were aligned to {config.ref_fasta}"
        )
        for error in errors:
            logger.warning(f"  {error}")
    return variants
