"""
nomad_bootstrap/utils/log_setup.py

One place to configure logging for the console scripts: timestamped, leveled
lines on stderr.
"""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def configure_logging(level: str = "INFO") -> None:
    """Send records at `level` or above to stderr. Existing handlers are kept."""
    logging.basicConfig(format=LOG_FORMAT, datefmt=DATE_FORMAT, stream=sys.stderr)
    logging.getLogger().setLevel(level.upper())
