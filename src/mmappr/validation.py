"""
Input and output sanity checks.

All validators return ``(is_valid, errors, warnings)`` so callers can report
every problem at once instead of stopping at the first.
"""

import os
from pathlib import Path
from typing import List, Set, Tuple, Union

import pandas as pd
import pysam

from .models import CHROM, POS, REF


def validate_inputs(config) -> Tuple[bool, List[str], List[str]]:
    """
    Check the reference and mutant alignments before a run.

    Missing FASTA/BAM indexes are warnings for the reference (it is indexed
    on demand) and errors for BAMs (bcftools needs them for region queries).
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not config.ref_fasta:
        errors.append("Reference FASTA not configured")
    elif not Path(config.ref_fasta).exists():
        errors.append(f"Reference FASTA not found: {config.ref_fasta}")
    elif not Path(f"{config.ref_fasta}.fai").exists():
        warnings.append(f"Reference FASTA is not indexed; will create {config.ref_fasta}.fai")

    if not config.mut_files:
        errors.append("No mutant BAM files configured")

    for name, bam in config.mut_files.items():
        bam = Path(bam)
        if not bam.exists():
            errors.append(f"Mutant BAM for '{name}' not found: {bam}")
            continue
        if bam.suffix != ".bam":
            warnings.append(f"Mutant file for '{name}' does not end in .bam: {bam}")
        has_index = any(
            candidate.exists()
            for candidate in (Path(f"{bam}.bai"), bam.with_suffix(".bai"), Path(f"{bam}.csi"))
        )
        if not has_index:
            errors.append(f"Mutant BAM for '{name}' is not indexed (run samtools index): {bam}")

    if config.output_folder:
        # Missing folders are created with parents, so check the nearest existing ancestor
        folder = Path(config.output_folder).absolute()
        existing = folder
        while not existing.exists() and existing != existing.parent:
            existing = existing.parent
        if not existing.is_dir():
            errors.append(f"Output folder is not under a directory: {existing}")
        elif not os.access(existing, os.W_OK):
            errors.append(f"Output folder is not writable: {existing}")

    return len(errors) == 0, errors, warnings


def validate_vcf(vcf_path: Union[str, Path]) -> Tuple[bool, List[str], List[str]]:
    """
    Basic VCF file validation.

    Args:
        vcf_path: Path to VCF file

    Returns:
        Tuple of (is_valid, errors, warnings)
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not os.path.exists(vcf_path):
        errors.append(f"VCF file not found: {vcf_path}")
        return False, errors, warnings

    has_header = False
    has_column_header = False

    with open(vcf_path, "r") as f:
        for line_number, line in enumerate(f, start=1):
            line = line.rstrip("\n")
            if not line:
                continue

            if line.startswith("##"):
                if line.startswith("##fileformat=VCF"):
                    has_header = True
                continue

            if line.startswith("#CHROM"):
                has_column_header = True
                continue

            parts = line.split("\t")
            if len(parts) < 8:
                errors.append(f"Line {line_number}: expected at least 8 columns, got {len(parts)}")
                continue

            try:
                if int(parts[1]) < 1:
                    errors.append(f"Line {line_number}: position must be >= 1")
            except ValueError:
                errors.append(f"Line {line_number}: invalid position '{parts[1]}'")

            if parts[5] != ".":
                try:
                    float(parts[5])
                except ValueError:
                    warnings.append(f"Line {line_number}: invalid QUAL '{parts[5]}'")

    if not has_header:
        warnings.append("Missing ##fileformat header")
    if not has_column_header:
        errors.append("Missing #CHROM column header")

    return len(errors) == 0, errors, warnings


def validate_variant_ref_bases(
    variants: pd.DataFrame,
    fasta_path: Union[str, Path],
    max_errors: int = 100,
) -> Tuple[bool, List[str], List[str]]:
    """
    Check that REF alleles in a variant table match the reference genome.

    A mismatch usually means the BAMs were aligned against a different
    assembly than the configured reference.
    """
    errors: List[str] = []
    warnings: List[str] = []

    if not os.path.exists(fasta_path):
        errors.append(f"Reference FASTA not found: {fasta_path}")
        return False, errors, warnings

    if variants.empty:
        return True, errors, warnings

    unknown_chroms: Set[str] = set()
    # Random access through <fasta>.fai; pysam builds the index if it is missing
    with pysam.FastaFile(str(fasta_path)) as reference:
        contigs = set(reference.references)
        for row in variants[[CHROM, POS, REF]].itertuples(index=False):
            chrom, pos, ref = str(row[0]), int(row[1]), str(row[2]).upper()

            if chrom not in contigs:
                if chrom not in unknown_chroms:
                    unknown_chroms.add(chrom)
                    warnings.append(f"Chromosome '{chrom}' not found in reference FASTA")
                continue

            start_idx = pos - 1
            end_idx = start_idx + len(ref)
            if start_idx < 0 or end_idx > reference.get_reference_length(chrom):
                errors.append(f"{chrom}:{pos}: REF '{ref}' lies outside the sequence")
            else:
                actual = reference.fetch(chrom, start_idx, end_idx).upper()
                if actual != ref:
                    errors.append(
                        f"REF mismatch at {chrom}:{pos} - variant has '{ref}', reference has '{actual}'"
                    )

            if len(errors) >= max_errors:
                warnings.append(f"Stopped after {max_errors} errors")
                break

    return len(errors) == 0, errors, warnings
