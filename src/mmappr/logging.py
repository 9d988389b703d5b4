"""
Logging configuration for MMAPPR.

Console output goes to stderr with colored level names when attached to a
terminal. A plain-text log file can be added for pipeline runs.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union


class Colors:
    """ANSI color codes for terminal output."""
    RESET = "\033[0m"
    RED = "\033[0;31m"
    GREEN = "\033[0;32m"
    YELLOW = "\033[1;33m"
    GRAY = "\033[0;90m"


class ColoredFormatter(logging.Formatter):
    """Formatter that wraps the level name in brackets, colored per level."""

    LEVEL_COLORS = {
        logging.DEBUG: Colors.GRAY,
        logging.INFO: Colors.GREEN,
        logging.WARNING: Colors.YELLOW,
        logging.ERROR: Colors.RED,
        logging.CRITICAL: Colors.RED,
    }

    def __init__(self, fmt: Optional[str] = None, use_colors: bool = True):
        super().__init__(fmt or "%(message)s")
        self.use_colors = use_colors and sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        # Work on a copy so file handlers sharing the record see the plain name
        record = logging.makeLogRecord(record.__dict__)
        if self.use_colors:
            color = self.LEVEL_COLORS.get(record.levelno, Colors.RESET)
            record.levelname = f"{color}[{record.levelname}]{Colors.RESET}"
        else:
            record.levelname = f"[{record.levelname}]"
        return super().format(record)


def setup_logging(
    name: str = "mmappr",
    level: int = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    use_colors: bool = True,
    verbose: bool = False,
) -> logging.Logger:
    """
    Set up logging for MMAPPR tools.

    Args:
        name: Logger name (default: "mmappr")
        level: Logging level (default: INFO)
        log_file: Optional path to a log file
        use_colors: Use colored output for console (default: True)
        verbose: Enable debug output, overrides ``level``

    Returns:
        Configured logger instance
    """
    if verbose:
        level = logging.DEBUG

    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(
        ColoredFormatter("%(levelname)s %(message)s", use_colors=use_colors)
    )
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(level)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s")
        )
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str = "mmappr") -> logging.Logger:
    """
    Get or create a logger for MMAPPR tools.

    Args:
        name: Logger name (default: "mmappr")

    Returns:
        Logger instance, set up with defaults if it had no handlers
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        setup_logging(name)
    return logger


def log_step(logger: logging.Logger, step: int, total: int, title: str) -> None:
    """Log a separator line announcing a pipeline step."""
    logger.info("=" * 60)
    logger.info(f"STEP {step}/{total}: {title}")
    logger.info("=" * 60)
