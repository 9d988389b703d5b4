"""
Candidate generation: potential causative mutations in peak regions.

For every peak left by peak refinement:

1. take the peak's genomic region
2. call variants in it from the mutant pool
3. predict consequences with VEP
4. drop LOW impact consequences
5. score each variant with the peak density at its midpoint and order by it

Example:
    >>> from mmappr.candidates import generate_candidates
    >>> data = MappingData(config=config, peaks=load_peaks("peaks.json"))
    >>> data = generate_candidates(data)
    >>> data.candidates["18"].head()
"""

import logging
from typing import Optional

import numpy as np
import pandas as pd

from .calling import get_variants_for_range
from .logging import log_step
from .models import END, IMPACT, PEAK_DENSITY, POS, DensityFunction, MappingData
from .peaks import get_peak_range
from .vep import run_vep_for_variants

logger = logging.getLogger(__name__)

LOW_IMPACT = "LOW"


def filter_variants(candidates: pd.DataFrame) -> pd.DataFrame:
    """Remove LOW impact rows; rows with no impact call are kept."""
    if IMPACT not in candidates.columns:
        return candidates.copy()

    impact = candidates[IMPACT]
    keep = impact.isna() | (impact.astype(str) != LOW_IMPACT)
    filtered = candidates[keep.to_numpy()]

    removed = len(candidates) - len(filtered)
    if removed:
        logger.info(f"  Removed {removed} LOW impact row(s), {len(filtered)} remaining")
    return filtered


def variant_midpoints(candidates: pd.DataFrame) -> pd.Series:
    """Midpoint of each variant: start + (width - 1) / 2."""
    start = candidates[POS].astype(float)
    width = candidates[END].astype(float) - start + 1
    return start + (width - 1) / 2


def density_score_and_order(
    candidates: pd.DataFrame,
    density_function: Optional[DensityFunction],
) -> pd.DataFrame:
    """
    Add PEAK_DENSITY and sort by it, highest first.

    Ties keep their incoming order; variants scoring NaN go last.

    Raises:
        ValueError: If no density function is given
    """
    if density_function is None:
        raise ValueError("Peak has no density function")

    scored = candidates.copy()
    if scored.empty:
        scored[PEAK_DENSITY] = pd.Series(dtype=float)
        return scored

    scores = [float(density_function(position)) for position in variant_midpoints(scored)]
    scored[PEAK_DENSITY] = np.asarray(scores, dtype=float)

    return scored.sort_values(
        PEAK_DENSITY, ascending=False, kind="mergesort", na_position="last"
    ).reset_index(drop=True)


def generate_candidates(data: MappingData) -> MappingData:
    """
    Fill ``data.candidates`` with ranked candidate variants for each peak.

    Candidates are keyed by the peak's seqname and kept in peak order.

    Raises:
        ValueError: If a peak has no density function
        subprocess.CalledProcessError: If bcftools or VEP fails
    """
    if data.config is None:
        raise ValueError("MappingData has no configuration")

    missing = [name for name, peak in data.peaks.items() if peak.density_function is None]
    if missing:
        raise ValueError(f"Peak(s) without a density function: {', '.join(missing)}")

    candidates = {}
    total = len(data.peaks)
    for i, (seqname, peak) in enumerate(data.peaks.items(), start=1):
        log_step(logger, i, total, f"Candidates for peak {peak.region_string}")

        region = get_peak_range(peak)
        variants = get_variants_for_range(region, data.config)
        annotated = run_vep_for_variants(variants, data.config)
        filtered = filter_variants(annotated)
        candidates[seqname] = density_score_and_order(filtered, peak.density_function)

        logger.info(f"  {len(candidates[seqname])} candidate row(s) on {seqname}")

    data.candidates = candidates
    return data
