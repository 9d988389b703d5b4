"""
Consequence annotation with Ensembl VEP.

Variants are written to a temporary VCF, passed through ``vep --vcf`` and
read back with the CSQ annotation expanded to one row per consequence.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd
import pysam

from .models import ALT, CHROM, END, IMPACT, POS, REF, empty_variant_table
from .tools import find_tool, run_command
from .validation import validate_vcf

logger = logging.getLogger(__name__)

PEAK_VCF_NAME = "peak.tmp.vcf"
VEP_OUTPUT_NAME = "peak.vep.tmp.vcf"

# Internal key joining VEP output back to the called variants
VARIANT_ID = "VARIANT_ID"


@dataclass
class VepFlags:
    """Command-line flags for a VEP run.

    Attributes:
        species: Ensembl species name (e.g. ``danio_rerio``)
        assembly: Assembly name when the cache holds several
        cache: Use a local cache (``--cache``)
        offline: Never contact the Ensembl database (``--offline``)
        database: Query the Ensembl database instead of a cache
        dir_cache: Cache directory
        fasta: Reference FASTA for offline HGVS / sequence lookups
        fork: Number of VEP worker processes
        extra: Additional flags; ``True`` values become bare switches
    """
    species: Optional[str] = None
    assembly: Optional[str] = None
    cache: bool = True
    offline: bool = False
    database: bool = False
    dir_cache: Optional[Path] = None
    fasta: Optional[Path] = None
    fork: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_args(self) -> List[str]:
        """Render flags as a VEP argument list.

        Raises:
            ValueError: If ``database`` is combined with ``cache`` or ``offline``
        """
        if self.database and (self.cache or self.offline):
            raise ValueError("VEP --database cannot be combined with --cache/--offline")

        args = ["--vcf", "--force_overwrite", "--no_stats"]
        if self.species:
            args += ["--species", self.species]
        if self.assembly:
            args += ["--assembly", self.assembly]
        if self.database:
            args.append("--database")
        if self.cache:
            args.append("--cache")
        if self.offline:
            args.append("--offline")
        if self.dir_cache:
            args += ["--dir_cache", str(self.dir_cache)]
        if self.fasta:
            args += ["--fasta", str(self.fasta)]
        if self.fork and self.fork > 1:
            args += ["--fork", str(self.fork)]

        for key, value in self.extra.items():
            flag = key if key.startswith("--") else f"--{key}"
            if value is True:
                args.append(flag)
            elif value is False or value is None:
                continue
            else:
                args += [flag, str(value)]
        return args


def _csq_fields(header: pysam.VariantHeader) -> List[str]:
    """Field names from the CSQ header description (``... Format: A|B|C``)."""
    if "CSQ" not in header.info:
        return []
    description = header.info["CSQ"].description or ""
    if "Format:" not in description:
        return []
    return [name.strip() for name in description.split("Format:", 1)[1].strip().split("|")]


def write_variants_vcf(
    variants: pd.DataFrame,
    path: Union[str, Path],
    contig_lengths: Optional[Dict[str, int]] = None,
) -> Path:
    """
    Write a variant table to an uncompressed VCF.

    Records are sorted by chromosome and position. When a ``VARIANT_ID``
    column is present it becomes the VCF ID.
    """
    path = Path(path)
    header = pysam.VariantHeader()

    contigs = list(dict.fromkeys(variants[CHROM].astype(str))) if not variants.empty else []
    for contig in contigs:
        length = (contig_lengths or {}).get(contig)
        if length:
            header.contigs.add(contig, length=length)
        else:
            header.contigs.add(contig)

    ordered = variants.sort_values([CHROM, POS], kind="mergesort")
    with pysam.VariantFile(str(path), "w", header=header) as out:
        for row in ordered.to_dict("records"):
            ref = str(row[REF])
            qual = row.get("QUAL")
            rec = out.new_record(
                contig=str(row[CHROM]),
                start=int(row[POS]) - 1,
                stop=int(row[POS]) - 1 + len(ref),
                alleles=(ref, str(row[ALT])),
                id=row.get(VARIANT_ID),
                qual=None if qual is None or pd.isna(qual) else float(qual),
            )
            out.write(rec)
    return path


def parse_vep_vcf(path: Union[str, Path]) -> pd.DataFrame:
    """
    Read a VEP-annotated VCF, one row per CSQ entry.

    Variants without a CSQ annotation keep a single row with the annotation
    columns missing. Empty CSQ sub-fields become None.
    """
    rows = []
    with pysam.VariantFile(str(path)) as vcf:
        fields = _csq_fields(vcf.header)
        for rec in vcf:
            base = {
                VARIANT_ID: rec.id,
                CHROM: rec.chrom,
                POS: rec.pos,
                END: rec.stop,
                REF: rec.ref,
                ALT: rec.alts[0] if rec.alts else None,
            }
            entries = rec.info["CSQ"] if fields and "CSQ" in rec.info else ()
            if isinstance(entries, str):
                entries = (entries,)
            if not entries:
                rows.append(dict(base, **{name: None for name in fields}))
                continue
            for entry in entries:
                values = entry.split("|")
                annotation = {
                    name: (values[i] or None) if i < len(values) else None
                    for i, name in enumerate(fields)
                }
                rows.append(dict(base, **annotation))

        columns = [VARIANT_ID, CHROM, POS, END, REF, ALT] + [
            name for name in fields if name not in (CHROM, POS, END, REF, ALT)
        ]

    if not rows:
        return pd.DataFrame(columns=columns)
    return pd.DataFrame(rows).reindex(columns=columns)


def _reference_contig_lengths(ref_fasta: Optional[Path]) -> Dict[str, int]:
    if not ref_fasta or not Path(f"{ref_fasta}.fai").exists():
        return {}
    with pysam.FastaFile(str(ref_fasta)) as fasta:
        return dict(zip(fasta.references, fasta.lengths))


def run_vep_for_variants(variants: pd.DataFrame, config) -> pd.DataFrame:
    """
    Annotate called variants with VEP.

    The temporary VCF and VEP output live in the output folder and are
    removed whether or not VEP succeeds. An empty variant table is returned
    (with an IMPACT column) without invoking VEP.

    Returns:
        One row per variant consequence: the called variant columns followed
        by the CSQ fields
    """
    if variants is None or variants.empty:
        logger.info("No variants to annotate; skipping VEP")
        return empty_variant_table([IMPACT])

    if config.vep_flags is None:
        raise ValueError("VEP flags not configured")
    flags = config.vep_flags.to_args()
    vep = find_tool("vep", config.vep_path)

    output_folder = Path(config.output_folder)
    output_folder.mkdir(parents=True, exist_ok=True)
    vcf = output_folder / PEAK_VCF_NAME
    vep_out = output_folder / VEP_OUTPUT_NAME

    keyed = variants.reset_index(drop=True).copy()
    keyed[VARIANT_ID] = [f"mmappr_{i}" for i in range(len(keyed))]

    logger.info(f"Running VEP on {len(keyed)} variant(s)")
    try:
        write_variants_vcf(keyed, vcf, contig_lengths=_reference_contig_lengths(config.ref_fasta))
        run_command([vep, "--input_file", vcf, "--output_file", vep_out, "--format", "vcf"] + flags)
        is_valid, errors, _ = validate_vcf(vep_out)
        if not is_valid:
            raise RuntimeError(f"VEP produced an unreadable VCF: {'; '.join(errors[:5])}")
        annotated = parse_vep_vcf(vep_out)
    finally:
        for tmp in (vcf, vep_out):
            if tmp.exists():
                tmp.unlink()

    # Carry QUAL/DP/SAMPLE (and anything else called) over from the input
    carried = [c for c in keyed.columns if c not in (CHROM, POS, END, REF, ALT)]
    annotation_columns = [c for c in annotated.columns if c not in keyed.columns]
    merged = annotated[[VARIANT_ID] + annotation_columns].merge(
        keyed[[CHROM, POS, END, REF, ALT] + carried], on=VARIANT_ID, how="left", sort=False
    )

    ordered_columns = [c for c in keyed.columns if c != VARIANT_ID] + annotation_columns
    result = merged[ordered_columns]
    if IMPACT not in result.columns:
        logger.warning("VEP output has no IMPACT field; impact filtering will keep every variant")

    logger.info(f"  VEP returned {len(result)} consequence row(s) for {len(keyed)} variant(s)")
    return result.reset_index(drop=True)
