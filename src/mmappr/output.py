"""
Writing candidate tables.
"""

import logging
import re
from pathlib import Path
from typing import Dict, Optional, Union

from .models import MappingData

logger = logging.getLogger(__name__)

CANDIDATES_SUFFIX = ".candidates.tsv"


def candidates_filename(seqname: str) -> str:
    """File name for a peak's candidates; unsafe characters become '_'."""
    safe = re.sub(r"[^A-Za-z0-9._-]", "_", seqname)
    return f"{safe}{CANDIDATES_SUFFIX}"


def write_candidates(
    data: MappingData,
    output_folder: Optional[Union[str, Path]] = None,
) -> Dict[str, Path]:
    """
    Write one tab-separated candidate table per peak.

    Args:
        data: MappingData after ``generate_candidates``
        output_folder: Destination; defaults to the configured output folder

    Returns:
        Mapping of seqname to written file
    """
    if output_folder is None:
        if data.config is None or data.config.output_folder is None:
            raise ValueError("No output folder given or configured")
        output_folder = data.config.output_folder

    output_folder = Path(output_folder)
    output_folder.mkdir(parents=True, exist_ok=True)

    written = {}
    used_names = set()
    for seqname, table in data.candidates.items():
        name = candidates_filename(seqname)
        if name in used_names:
            stem = name[: -len(CANDIDATES_SUFFIX)]
            n = 2
            while f"{stem}.{n}{CANDIDATES_SUFFIX}" in used_names:
                n += 1
            name = f"{stem}.{n}{CANDIDATES_SUFFIX}"
            logger.warning(f"Candidates for '{seqname}' clash with another peak's file name; writing {name}")
        used_names.add(name)

        path = output_folder / name
        table.to_csv(path, sep="\t", index=False, na_rep="NA")
        written[seqname] = path
        logger.info(f"Wrote {len(table)} candidate row(s) to {path}")
    return written
