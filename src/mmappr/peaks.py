"""
Peak loading and region extraction.

Peaks are written by the peak-refinement step as JSON, each with its
density curve sampled on a grid::

    {"peaks": [
        {"seqname": "18", "start": 3000000, "end": 9000000,
         "density": {"x": [3000000, 3001000, ...], "y": [1.2e-7, ...]}}
    ]}
"""

import json
import logging
from collections import OrderedDict
from pathlib import Path
from typing import Sequence, Union

import numpy as np

from .models import DensityFunction, PeakRegion

logger = logging.getLogger(__name__)


def make_density_function(x: Sequence[float], y: Sequence[float]) -> DensityFunction:
    """Linear interpolation over a sampled density curve.

    Positions outside the sampled range score NaN.

    Raises:
        ValueError: If the grid is empty, lengths differ, or x is not increasing
    """
    xs = np.asarray(x, dtype=float)
    ys = np.asarray(y, dtype=float)

    if xs.ndim != 1 or xs.size == 0:
        raise ValueError("Density grid must be a non-empty 1-D sequence")
    if xs.shape != ys.shape:
        raise ValueError(f"Density grid length mismatch: {xs.size} x values, {ys.size} y values")
    if xs.size > 1 and np.any(np.diff(xs) <= 0):
        raise ValueError("Density grid x values must be strictly increasing")

    def density(position: float) -> float:
        return float(np.interp(position, xs, ys, left=np.nan, right=np.nan))

    return density


def load_peaks(path: Union[str, Path]) -> "OrderedDict[str, PeakRegion]":
    """Read peaks and their density curves from a JSON file.

    Returns:
        Peaks keyed by seqname, in file order

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is malformed or names a seqname twice
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Peaks file not found: {path}")

    with open(path) as f:
        try:
            payload = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Peaks file is not valid JSON: {path}: {e}") from e

    entries = payload.get("peaks") if isinstance(payload, dict) else payload
    if not isinstance(entries, list):
        raise ValueError(f"Peaks file must contain a list of peaks: {path}")

    peaks: "OrderedDict[str, PeakRegion]" = OrderedDict()
    for i, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ValueError(f"Peak #{i + 1} is not an object")

        density_function = None
        density = entry.get("density")
        if density is not None:
            if not isinstance(density, dict):
                raise ValueError(f"Peak #{i + 1}: density must be an object with x/y")
            density_function = make_density_function(density.get("x", []), density.get("y", []))

        peak = PeakRegion.from_dict(entry, density_function=density_function)
        peak.validate()
        if peak.seqname in peaks:
            raise ValueError(f"Duplicate peak for seqname '{peak.seqname}'")
        if density_function is None:
            logger.warning(f"Peak {peak.region_string} has no density curve")
        peaks[peak.seqname] = peak

    logger.info(f"Loaded {len(peaks)} peak(s) from {path}")
    return peaks


def get_peak_range(peak: PeakRegion) -> PeakRegion:
    """Validate a peak and return the bare region (no density) to call variants in."""
    peak.validate()
    logger.debug(f"Peak region {peak.region_string} ({peak.width:,} bp)")
    return PeakRegion(seqname=peak.seqname, start=peak.start, end=peak.end)
