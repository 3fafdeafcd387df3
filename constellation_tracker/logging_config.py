"""
Logging setup for the tracker.

Modules log through get_logger(__name__); the server entry point calls
configure_logging() once so TLE fetches, refreshes and propagation
failures show up on stdout (and optionally in a file).
"""

import logging
import sys
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)-7s [%(name)s] %(message)s"


def configure_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> None:
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
