"""
MMAPPR Command-Line Interface

Entry points for the mmappr-candidates and mmappr-validate commands.
"""

import argparse
import subprocess
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from mmappr.logging import setup_logging


def parse_vep_flags(values: Optional[List[str]]) -> Dict[str, Any]:
    """Turn repeated ``--vep-flag KEY[=VALUE]`` options into VepFlags.extra."""
    extra: Dict[str, Any] = {}
    for value in values or []:
        if "=" in value:
            key, flag_value = value.split("=", 1)
            extra[key.strip().lstrip("-")] = flag_value.strip()
        else:
            extra[value.strip().lstrip("-")] = True
    return extra


def _add_config_arguments(parser: argparse.ArgumentParser) -> None:
    inputs = parser.add_argument_group("Inputs")
    inputs.add_argument("--ref-fasta", type=Path, help="Reference genome FASTA (or MMAPPR_REF_FASTA)")
    inputs.add_argument("--mut-bam", type=Path, action="append", default=[],
                        help="Mutant-pool BAM; repeat for several files")
    inputs.add_argument("-o", "--output-folder", type=Path,
                        help="Output folder (or MMAPPR_OUTPUT; default: current directory)")

    tools = parser.add_argument_group("External tools")
    tools.add_argument("--bcftools-path", type=Path, help="bcftools executable (or BCFTOOLS_PATH)")
    tools.add_argument("--vep-path", type=Path, help="vep executable (or VEP_PATH)")
    tools.add_argument("--species", help="VEP species, e.g. danio_rerio (or MMAPPR_SPECIES)")
    tools.add_argument("--assembly", help="VEP assembly, e.g. GRCz11")
    tools.add_argument("--vep-cache", type=Path, help="VEP cache directory (or VEP_CACHE)")
    tools.add_argument("--vep-offline", action="store_true", help="Run VEP with --offline")
    tools.add_argument("--vep-flag", action="append", metavar="KEY[=VALUE]",
                       help="Extra VEP flag, e.g. --vep-flag symbol --vep-flag distance=1000")
    tools.add_argument("-t", "--threads", type=int, help="Threads for bcftools/VEP (or MMAPPR_THREADS)")


def build_config(args: argparse.Namespace):
    """Build a Config from parsed arguments; unset options fall back to the environment."""
    from mmappr.config import Config

    config = Config(
        ref_fasta=args.ref_fasta,
        mut_files=list(args.mut_bam),
        output_folder=args.output_folder,
        species=args.species,
        vep_path=args.vep_path,
        bcftools_path=args.bcftools_path,
        threads=args.threads,
    )

    flags = config.vep_flags
    if args.assembly:
        flags.assembly = args.assembly
    if args.vep_cache:
        flags.dir_cache = args.vep_cache
    if args.vep_offline:
        flags.offline = True
        if config.ref_fasta:
            flags.fasta = config.ref_fasta
    flags.extra.update(parse_vep_flags(args.vep_flag))

    for name in ("call_indels", "min_mapping_quality", "min_base_quality", "max_depth"):
        value = getattr(args, name, None)
        if value is not None:
            setattr(config, name, value)
    return config


def candidates_main(argv: Optional[List[str]] = None):
    """Entry point for mmappr-candidates command."""
    parser = argparse.ArgumentParser(
        prog="mmappr-candidates",
        description="Call, annotate and rank candidate mutations in MMAPPR peak regions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Example:
    mmappr-candidates --peaks peaks.json --ref-fasta GRCz11.fa \\
        --mut-bam mut1.bam --mut-bam mut2.bam --species danio_rerio \\
        --vep-cache ~/.vep --vep-offline -o results/
""",
    )
    parser.add_argument("--peaks", type=Path, required=True,
                        help="Peaks JSON written by peak refinement")
    _add_config_arguments(parser)

    calling = parser.add_argument_group("Variant calling")
    calling.add_argument("--no-indels", dest="call_indels", action="store_false", default=None,
                         help="Call SNVs only")
    calling.add_argument("--min-mapq", dest="min_mapping_quality", type=int,
                         help="Minimum mapping quality (default: 0)")
    calling.add_argument("--min-baseq", dest="min_base_quality", type=int,
                         help="Minimum base quality (default: 13)")
    calling.add_argument("--max-depth", type=int, help="Maximum per-file depth (default: 250)")

    parser.add_argument("--log-file", type=Path, help="Also write the log to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug output")
    args = parser.parse_args(argv)

    logger = setup_logging("mmappr", log_file=args.log_file, verbose=args.verbose)

    from mmappr.candidates import generate_candidates
    from mmappr.config import set_config
    from mmappr.models import MappingData
    from mmappr.output import write_candidates
    from mmappr.peaks import load_peaks
    from mmappr.validation import validate_inputs

    try:
        config = build_config(args)
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)
    set_config(config)

    is_valid, errors = config.validate(require_tools=True)
    inputs_valid, input_errors, input_warnings = validate_inputs(config)
    for warning in input_warnings:
        logger.warning(warning)
    errors += [e for e in input_errors if e not in errors]
    if not (is_valid and inputs_valid):
        logger.error("Configuration Errors:")
        for error in errors:
            logger.error(f"  ✗ {error}")
        sys.exit(1)

    try:
        data = MappingData(config=config, peaks=load_peaks(args.peaks))
        data = generate_candidates(data)
        written = write_candidates(data)
    except (FileNotFoundError, ValueError, RuntimeError, subprocess.CalledProcessError) as e:
        logger.error(f"Candidate generation failed: {e}")
        sys.exit(1)

    logger.info(f"✓ {data.num_candidates} candidate row(s) across {len(written)} peak(s)")
    sys.exit(0)


def validate_main(argv: Optional[List[str]] = None):
    """Entry point for mmappr-validate command."""
    parser = argparse.ArgumentParser(
        prog="mmappr-validate",
        description="Check MMAPPR configuration and external tools",
    )
    _add_config_arguments(parser)
    args = parser.parse_args(argv)

    from mmappr.config import print_setup_instructions
    from mmappr.tools import check_tools

    logger = setup_logging("mmappr")

    logger.info("MMAPPR Configuration Validation")
    logger.info("===============================")

    try:
        config = build_config(args)
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)
    config.print_status()

    for tool, version in check_tools(config).items():
        if version:
            logger.info(f"{tool}: {version}")

    is_valid, errors = config.validate()

    if errors:
        logger.error("Configuration Errors:")
        for error in errors:
            logger.error(f"  ✗ {error}")
        print_setup_instructions()
        sys.exit(1)
    else:
        logger.info("✓ Configuration is valid")
        sys.exit(0)


if __name__ == "__main__":
    candidates_main()
