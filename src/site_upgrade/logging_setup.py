"""
Logging configuration for the site upgrade commands.

Provides a file handler (always DEBUG) and a console handler (WARNING
by default, DEBUG when verbose).
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime

from .config import PROJECT_ROOT

# Log directory, always in logs/
LOG_DIR = os.path.join(PROJECT_ROOT, "logs")


def setup_logging(
    verbose: bool = False,
    log_prefix: str = "site_upgrade",
    log_dir: str = LOG_DIR,
) -> str:
    """Configure logging with a file handler and a console handler.

    - File handler: always DEBUG level, writes to <log_dir>/<prefix>_<timestamp>.log
    - Console handler: WARNING+ by default.  When *verbose* is True the
      console level drops to DEBUG.

    Returns the path to the log file.
    """
    os.makedirs(log_dir, exist_ok=True)
    timestamp = datetime.now().strftime("%Y-%m-%d-%H%M%S")
    log_path = os.path.join(log_dir, f"{log_prefix}_{timestamp}.log")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Remove any pre-existing handlers (e.g. from basicConfig)
    root_logger.handlers.clear()

    file_handler = logging.FileHandler(log_path, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(
        logging.Formatter(
            "%(levelname)-8s  %(message)s" if not verbose
            else "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root_logger.addHandler(console_handler)

    # urllib3 logs every retry at DEBUG; keep the file readable.
    logging.getLogger("urllib3").setLevel(logging.INFO)

    return log_path
