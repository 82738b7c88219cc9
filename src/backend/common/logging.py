"""structlog setup for the ledger services and the import CLI.

Records go to stderr so `finance-import --format json` keeps stdout for its payload.
"""

from __future__ import annotations

import logging
import sys
from typing import IO, Optional

import structlog

from common.settings import AppSettings


def _shared_processors() -> list:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        # `log.exception("import_row_failed", ...)` in the pipeline relies on this.
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def setup_logging(
    log_level: str = "INFO",
    json_output: bool = True,
    *,
    stream: Optional[IO[str]] = None,
) -> None:
    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[*_shared_processors(), renderer],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(
        format="%(message)s",
        stream=stream or sys.stderr,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


def setup_logging_from_settings(settings: AppSettings, *, stream: Optional[IO[str]] = None) -> None:
    setup_logging(settings.log_level, json_output=settings.log_json, stream=stream)
