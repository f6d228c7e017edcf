"""Logging setup for the discovery service.

Every module logs through the shared ``icebreaker`` logger (or a child of
it). Log lines carry user ids and counts only, never profile text.
"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_FILE_PATH = "logs/discovery.log"

# Firestore transport chatter drowns out discovery logs at DEBUG.
NOISY_LOGGERS = ("google.auth", "google.api_core", "grpc", "urllib3")


def setup_logging(*, debug: bool = False, log_file: str = LOG_FILE_PATH) -> None:
    """Configure Python logging.

    - Console output at INFO+ (or DEBUG+ when debug=True).
    - Rotating file output at DEBUG+ for tracing individual discovery runs.
    """

    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG if debug else logging.INFO)
    console_handler.setFormatter(formatter)

    file_handler = RotatingFileHandler(log_file, maxBytes=2_000_000, backupCount=5)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    # Avoid duplicate handlers when reloading in dev.
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(component: str) -> logging.Logger:
    """Child of the service logger, e.g. ``icebreaker.retrieval``."""

    return logger.getChild(component)


logger = logging.getLogger("icebreaker")
