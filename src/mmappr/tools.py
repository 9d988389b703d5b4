"""
Helpers for invoking external command-line tools (bcftools, vep).
"""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Union

logger = logging.getLogger(__name__)


def run_command(cmd: List[Union[str, Path]], check: bool = True) -> subprocess.CompletedProcess:
    """
    Run a command and log its output.

    Args:
        cmd: Command as a list of arguments
        check: Raise if the command exits non-zero

    Returns:
        CompletedProcess instance with stdout and stderr

    Raises:
        subprocess.CalledProcessError: If ``check`` and the command failed
    """
    cmd = [str(part) for part in cmd]
    cmd_str = " ".join(cmd)
    logger.debug(f"Running command: {cmd_str}")

    result = subprocess.run(
        cmd,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        universal_newlines=True,
        check=False,
    )

    if result.returncode != 0:
        logger.error(f"Command failed with exit code {result.returncode}: {cmd_str}")
        if result.stdout:
            logger.error(f"STDOUT: {result.stdout.strip()}")
        if result.stderr:
            logger.error(f"STDERR: {result.stderr.strip()}")
        if check:
            raise subprocess.CalledProcessError(
                result.returncode, cmd, output=result.stdout, stderr=result.stderr
            )

    return result


def find_tool(name: str, configured: Optional[Union[str, Path]] = None) -> Path:
    """
    Resolve an executable, preferring an explicitly configured path.

    Raises:
        RuntimeError: If the tool cannot be found
    """
    if configured:
        path = Path(configured)
        if path.exists():
            return path
        found = shutil.which(str(configured))
        if found:
            return Path(found)
        raise RuntimeError(f"{name} not found at configured path: {configured}")

    found = shutil.which(name)
    if not found:
        raise RuntimeError(f"{name} not found. Install it or add it to PATH.")
    return Path(found)


def check_tools(config) -> Dict[str, Optional[str]]:
    """
    Report the first line of ``--version`` output for each external tool.

    Returns:
        Mapping of tool name to version string, None when unavailable
    """
    versions: Dict[str, Optional[str]] = {}
    for name, configured, version_args in (
        ("bcftools", config.bcftools_path, ["--version"]),
        ("vep", config.vep_path, ["--help"]),
    ):
        try:
            tool = find_tool(name, configured)
        except RuntimeError as e:
            logger.warning(str(e))
            versions[name] = None
            continue

        result = run_command([tool] + version_args, check=False)
        lines = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        if name == "vep":
            lines = [line for line in lines if line.lower().startswith("ensembl-vep")] or lines
        versions[name] = lines[0] if lines else "unknown"
    return versions
