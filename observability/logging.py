"""Logging configuration for the crawler.

Standard library logging carries the records; structlog renders them as one
JSON object per line so crawl runs can be grepped and shipped as-is.
"""

from __future__ import annotations

import json
import logging
from functools import partial

import structlog

get_logger = structlog.get_logger


def configure_logging(level: str | int = "INFO") -> None:
    """Configure stdlib logging and structlog (safe to call repeatedly)."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(level=level, format="%(message)s")
    logging.getLogger().setLevel(level)
    # httpx logs every request at INFO; the crawler logs its own fetches
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(
                serializer=partial(json.dumps, ensure_ascii=False, default=str)
            ),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )
