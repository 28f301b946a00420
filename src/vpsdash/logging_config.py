"""
Logging configuration for vpsdash.

The Textual UI owns the terminal, so the dashboard logs to a file; a stream
handler is only added when no file is given.
"""

import logging
import sys
from pathlib import Path

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    level: int | str = logging.INFO,
    log_file: str | Path | None = None,
    format_string: str | None = None,
) -> logging.Logger:
    """
    Configure root logging for vpsdash.

    Args:
        level: Logging level name or number.
        log_file: Optional file path for log output.
        format_string: Custom format string (default provided).
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    if format_string is None:
        format_string = "[%(asctime)s] [VPSDASH] %(levelname)s %(name)s - %(message)s"

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(log_path)
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(format_string, datefmt=DATE_FORMAT))

    logging.basicConfig(level=level, handlers=[handler], force=True)

    logger = logging.getLogger("vpsdash")
    logger.info("Logging initialized (level=%s)", logging.getLevelName(level))
    return logger
