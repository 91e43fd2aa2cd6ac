"""Logging setup for the command line entry point."""

import logging
import sys


def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger.

    Should be called once at startup, before the workflow runs.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )

    # Request logs would leak tokens embedded in URLs
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
