"""
Data models for candidate generation.

Peaks arrive from the peak-refinement step as ``PeakRegion`` objects; the
variants found in them travel between steps as pandas DataFrames using the
column names defined here.
"""

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import pandas as pd

DensityFunction = Callable[[float], float]

# Variant table columns produced by the calling step
CHROM = "CHROM"
POS = "POS"
END = "END"
REF = "REF"
ALT = "ALT"
QUAL = "QUAL"
DP = "DP"
SAMPLE = "SAMPLE"

# Added by annotation / ranking
IMPACT = "IMPACT"
PEAK_DENSITY = "PEAK_DENSITY"

VARIANT_COLUMNS: List[str] = [CHROM, POS, END, REF, ALT, QUAL, DP, SAMPLE]


def empty_variant_table(extra_columns: Optional[List[str]] = None) -> pd.DataFrame:
    """Return an empty variant table with the standard columns."""
    columns = VARIANT_COLUMNS + [c for c in (extra_columns or []) if c not in VARIANT_COLUMNS]
    return pd.DataFrame(columns=columns)


@dataclass
class PeakRegion:
    """A candidate peak on one sequence.

    Attributes:
        seqname: Chromosome / contig name
        start: 1-based inclusive start
        end: 1-based inclusive end
        density_function: Maps a genomic position to the peak density score
    """
    seqname: str
    start: int
    end: int
    density_function: Optional[DensityFunction] = None

    def __post_init__(self):
        self.start = int(self.start)
        self.end = int(self.end)

    @property
    def width(self) -> int:
        return self.end - self.start + 1

    @property
    def region_string(self) -> str:
        """samtools-style region, e.g. ``chr5:1000-2000``."""
        return f"{self.seqname}:{self.start}-{self.end}"

    def validate(self) -> None:
        """Raise ValueError if the coordinates do not describe a region."""
        if not self.seqname:
            raise ValueError("Peak seqname cannot be empty")
        if self.start < 1:
            raise ValueError(f"Peak {self.seqname}: start must be >= 1, got {self.start}")
        if self.start > self.end:
            raise ValueError(
                f"Peak {self.seqname}: start ({self.start}) greater than end ({self.end})"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any],
                  density_function: Optional[DensityFunction] = None) -> "PeakRegion":
        """Build a peak from a mapping with seqname/start/end keys."""
        missing = [key for key in ("seqname", "start", "end") if key not in data]
        if missing:
            raise ValueError(f"Peak entry missing field(s): {', '.join(missing)}")
        try:
            return cls(
                seqname=str(data["seqname"]),
                start=int(data["start"]),
                end=int(data["end"]),
                density_function=density_function,
            )
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid peak coordinates in {data!r}: {e}") from e


@dataclass
class MappingData:
    """State carried through candidate generation.

    Attributes:
        config: Run configuration (``mmappr.config.Config``)
        peaks: Peaks keyed by seqname, in peak-refinement order
        candidates: Ranked candidate variants keyed by seqname
    """
    config: Any = None
    peaks: "OrderedDict[str, PeakRegion]" = field(default_factory=OrderedDict)
    candidates: Dict[str, pd.DataFrame] = field(default_factory=dict)

    @property
    def num_candidates(self) -> int:
        return sum(len(df) for df in self.candidates.values())
