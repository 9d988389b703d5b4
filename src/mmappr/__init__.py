"""
MMAPPR: Mutation Mapping Analysis Pipeline for Pooled RNA-seq

Candidate generation step: calls variants in refined peak regions, predicts
their consequences with Ensembl VEP, removes low-impact variants and ranks
the rest by peak density.
"""

__version__ = "0.3.0"

from mmappr.candidates import density_score_and_order, filter_variants, generate_candidates
from mmappr.config import Config, get_config
from mmappr.logging import get_logger, setup_logging
from mmappr.models import MappingData, PeakRegion
from mmappr.peaks import load_peaks, make_density_function

__all__ = [
    "Config",
    "get_config",
    "MappingData",
    "PeakRegion",
    "generate_candidates",
    "filter_variants",
    "density_score_and_order",
    "load_peaks",
    "make_density_function",
    "setup_logging",
    "get_logger",
    "__version__",
]
