"""
Logging utilities for the GCE node orchestrator.
"""

import logging
import sys


def setup_logging(
    verbose: bool = False, log_file: str = "gce-nodes.log"
) -> logging.Logger:
    """
    Set up logging configuration.

    Args:
        verbose: Enable verbose (DEBUG) logging
        log_file: Path to log file

    Returns:
        Logger instance
    """
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(threadName)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file),
        ],
    )

    # urllib3 retries are reported by the client itself
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    return logging.getLogger(__name__)
