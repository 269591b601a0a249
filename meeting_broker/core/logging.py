"""Centralized logging configuration for the broker."""

from __future__ import annotations

import logging
import sys


def setup_logging(level: int | str = logging.INFO) -> None:
    """
    Configure logging for the application.

    This should be called once at application startup. All subsequent calls
    to logging.getLogger() will use this configuration.

    Args:
        level: Logging level, as a number or a name such as "DEBUG"
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,  # Override any existing configuration
    )
    # googleapiclient warns about file_cache on every build()
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)
