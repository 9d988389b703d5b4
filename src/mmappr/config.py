"""
MMAPPR Configuration Module

Configuration for the candidate-generation step: reference genome, mutant
alignments, output folder and the external tools it delegates to.

Configuration Priority (highest to lowest):
1. Explicit constructor arguments / CLI options
2. Environment variables
3. Auto-detected defaults (tools on PATH, current directory)

Environment Variables:
    MMAPPR_REF_FASTA    - Reference genome FASTA
    MMAPPR_OUTPUT       - Output folder for candidates and temporary files
    MMAPPR_SPECIES      - Species name passed to VEP (e.g. danio_rerio)
    MMAPPR_THREADS      - Threads for bcftools and VEP (--fork)
    VEP_PATH            - Path to the vep executable
    VEP_CACHE           - VEP cache directory (--dir_cache)
    BCFTOOLS_PATH       - Path to the bcftools executable
"""

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from mmappr.vep import VepFlags

logger = logging.getLogger(__name__)

# Singleton config instance
_config_instance: Optional["Config"] = None


@dataclass
class Config:
    """
    MMAPPR configuration container.

    Attributes:
        ref_fasta: Reference genome FASTA the reads were aligned against
        mut_files: Mutant-pool BAM files, keyed by sample name
        output_folder: Folder for results and temporary files
        species: Species name for VEP
        vep_path: Path to the vep executable
        bcftools_path: Path to the bcftools executable
        vep_flags: Flags used when invoking VEP
        threads: Threads for external tools
        call_indels: Whether indels are called alongside SNVs
        min_mapping_quality: bcftools mpileup -q
        min_base_quality: bcftools mpileup -Q
        max_depth: bcftools mpileup -d
    """

    ref_fasta: Optional[Path] = None
    mut_files: Dict[str, Path] = field(default_factory=dict)
    output_folder: Optional[Path] = None
    species: Optional[str] = None

    # External tools
    vep_path: Optional[Path] = None
    bcftools_path: Optional[Path] = None
    vep_flags: Optional[VepFlags] = None

    # Resources
    threads: Optional[int] = None

    # Calling parameters
    call_indels: bool = True
    min_mapping_quality: int = 0
    min_base_quality: int = 13
    max_depth: int = 250

    _initialized: bool = field(default=False, repr=False)

    def __post_init__(self):
        """Initialize configuration from environment and auto-detection."""
        if not self._initialized:
            self._normalize_paths()
            self._load_from_environment()
            self._auto_detect_paths()
            self._initialized = True

    def _normalize_paths(self) -> None:
        if self.ref_fasta is not None:
            self.ref_fasta = Path(self.ref_fasta)
        if self.output_folder is not None:
            self.output_folder = Path(self.output_folder)
        if self.vep_path is not None:
            self.vep_path = Path(self.vep_path)
        if self.bcftools_path is not None:
            self.bcftools_path = Path(self.bcftools_path)
        if isinstance(self.mut_files, (list, tuple)):
            self.mut_files = mut_files_by_name(self.mut_files)
        self.mut_files = {name: Path(path) for name, path in self.mut_files.items()}

    def _load_from_environment(self) -> None:
        """Fill unset fields from environment variables."""
        if not self.ref_fasta and os.environ.get("MMAPPR_REF_FASTA"):
            self.ref_fasta = Path(os.environ["MMAPPR_REF_FASTA"])
        if not self.output_folder and os.environ.get("MMAPPR_OUTPUT"):
            self.output_folder = Path(os.environ["MMAPPR_OUTPUT"])
        if not self.species and os.environ.get("MMAPPR_SPECIES"):
            self.species = os.environ["MMAPPR_SPECIES"]
        if not self.vep_path and os.environ.get("VEP_PATH"):
            self.vep_path = Path(os.environ["VEP_PATH"])
        if not self.bcftools_path and os.environ.get("BCFTOOLS_PATH"):
            self.bcftools_path = Path(os.environ["BCFTOOLS_PATH"])

        if self.threads is None and os.environ.get("MMAPPR_THREADS"):
            try:
                self.threads = int(os.environ["MMAPPR_THREADS"])
            except ValueError:
                logger.warning(
                    f"Ignoring non-numeric MMAPPR_THREADS: {os.environ['MMAPPR_THREADS']}"
                )

    def _auto_detect_paths(self) -> None:
        """Locate tools on PATH and fill defaults that depend on other fields."""
        if not self.vep_path:
            vep_cmd = shutil.which("vep")
            if vep_cmd:
                self.vep_path = Path(vep_cmd)

        if not self.bcftools_path:
            bcftools_cmd = shutil.which("bcftools")
            if bcftools_cmd:
                self.bcftools_path = Path(bcftools_cmd)

        if not self.output_folder:
            self.output_folder = Path.cwd()

        if self.threads is None:
            self.threads = 1

        if self.vep_flags is None:
            self.vep_flags = VepFlags(
                species=self.species,
                dir_cache=Path(os.environ["VEP_CACHE"]) if os.environ.get("VEP_CACHE") else None,
                fork=self.threads if self.threads > 1 else None,
            )
        elif self.vep_flags.species is None:
            self.vep_flags.species = self.species

    @property
    def sample_label(self) -> str:
        """Mutant sample names joined the way they appear in candidate tables."""
        return " -- ".join(self.mut_files.keys())

    def validate(self, require_tools: bool = True) -> tuple[bool, list[str]]:
        """
        Validate configuration.

        Args:
            require_tools: Whether bcftools and vep must be available

        Returns:
            Tuple of (is_valid, list of error messages)
        """
        errors = []

        if not self.ref_fasta:
            errors.append("Reference FASTA not configured. Use --ref-fasta or MMAPPR_REF_FASTA.")
        elif not self.ref_fasta.exists():
            errors.append(f"Reference FASTA not found: {self.ref_fasta}")

        if not self.mut_files:
            errors.append("No mutant BAM files configured. Use --mut-bam.")
        for name, path in self.mut_files.items():
            if not path.exists():
                errors.append(f"Mutant BAM for sample '{name}' not found: {path}")

        if self.threads < 1:
            errors.append(f"threads must be >= 1, got {self.threads}")

        if require_tools:
            if not self.bcftools_path:
                errors.append("bcftools not found. Set BCFTOOLS_PATH or add it to PATH.")
            elif not self.bcftools_path.exists():
                errors.append(f"bcftools executable not found: {self.bcftools_path}")

            if not self.vep_path:
                errors.append("vep not found. Set VEP_PATH or add it to PATH.")
            elif not self.vep_path.exists():
                errors.append(f"vep executable not found: {self.vep_path}")

            if not self.species and not (self.vep_flags and self.vep_flags.species):
                errors.append("Species not configured. Use --species or MMAPPR_SPECIES.")

        return len(errors) == 0, errors

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as dictionary."""
        return {
            "ref_fasta": str(self.ref_fasta) if self.ref_fasta else None,
            "mut_files": {name: str(path) for name, path in self.mut_files.items()},
            "output_folder": str(self.output_folder) if self.output_folder else None,
            "species": self.species,
            "vep_path": str(self.vep_path) if self.vep_path else None,
            "bcftools_path": str(self.bcftools_path) if self.bcftools_path else None,
            "vep_flags": self.vep_flags.to_args() if self.vep_flags else [],
            "threads": self.threads,
            "call_indels": self.call_indels,
            "min_mapping_quality": self.min_mapping_quality,
            "min_base_quality": self.min_base_quality,
            "max_depth": self.max_depth,
        }

    def print_status(self) -> None:
        """Print configuration status to stdout."""
        print("MMAPPR Configuration Status")
        print("=" * 50)

        def status_icon(path: Optional[Path]) -> str:
            if path is None:
                return "[ ] Not configured"
            elif path.exists():
                return f"[✓] {path}"
            else:
                return f"[✗] {path} (NOT FOUND)"

        print(f"Reference:   {status_icon(self.ref_fasta)}")
        for name, path in self.mut_files.items():
            print(f"Mutant BAM:  {status_icon(path)} ({name})")
        print(f"Output:      {self.output_folder}")
        print(f"bcftools:    {status_icon(self.bcftools_path)}")
        print(f"VEP:         {status_icon(self.vep_path)}")
        print(f"Species:     {self.species or '[ ] Not configured'}")
        print(f"Threads:     {self.threads}")
        print("=" * 50)


def mut_files_by_name(paths: List[Any]) -> Dict[str, Path]:
    """Key BAM paths by sample name (file name without the .bam suffix)."""
    named: Dict[str, Path] = {}
    for path in paths:
        path = Path(path)
        name = path.name[:-4] if path.name.endswith(".bam") else path.name
        if name in named:
            raise ValueError(f"Duplicate mutant sample name '{name}' from {path}")
        named[name] = path
    return named


def get_config() -> Config:
    """
    Get the global configuration instance.

    Returns:
        Config: The singleton configuration instance
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config()
    return _config_instance


def set_config(config: Config) -> None:
    """Install ``config`` as the global configuration instance."""
    global _config_instance
    _config_instance = config


def reset_config() -> None:
    """Reset the global configuration instance (useful for testing)."""
    global _config_instance
    _config_instance = None


def print_setup_instructions() -> None:
    """Print setup instructions for users."""
    print("""
MMAPPR Configuration Setup
==========================

Candidate generation needs:

1. REFERENCE GENOME
     export MMAPPR_REF_FASTA="/path/to/genome.fa"

2. BCFTOOLS (variant calling)
     conda install -c bioconda bcftools
     export BCFTOOLS_PATH="$(which bcftools)"

3. ENSEMBL VEP with a cache for your species
     conda install -c bioconda ensembl-vep
     vep_install -a cf -s danio_rerio -y GRCz11 -c /path/to/vep_cache
     export VEP_PATH="$(which vep)"
     export VEP_CACHE="/path/to/vep_cache"
     export MMAPPR_SPECIES="danio_rerio"

Verify with:

   mmappr-validate --ref-fasta genome.fa --mut-bam mut.bam
""")
