"""Logging setup shared by the API and CLI entry points."""

from __future__ import annotations

import logging

from rcti_engine.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once, honouring LOG_LEVEL."""
    resolved = level or get_settings().log_level
    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    logging.getLogger("rcti_engine").setLevel(resolved)
