"""
Logging setup for entry points.

Library modules only call `logging.getLogger(__name__)`; scripts call
`configure_logging()` once before doing any work.
"""

from __future__ import annotations

import logging
import os

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def log_level() -> str:
    return os.environ.get("LOG_LEVEL", "INFO").strip().upper() or "INFO"


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(level=level or log_level(), format=LOG_FORMAT)
