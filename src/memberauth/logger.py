# Copyright (C) 2026 Bernardo Gómez Bey
# SPDX-License-Identifier: AGPL-3.0-or-later

"""Structured logging configuration.

Logs go through structlog and the stdlib ``logging`` module to stdout:
JSON lines by default, a human-readable console renderer when ``LOG_DEBUG``
is set.
"""

from __future__ import annotations

import logging
import sys
from typing import List, Optional

import structlog
from structlog.stdlib import BoundLogger
from structlog.types import Processor

from memberauth.config import get_settings


def _build_processors() -> List[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.add_log_level,
        structlog.processors.format_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]


def _select_renderer(debug: bool) -> Processor:
    if debug:
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def configure_logging(debug: Optional[bool] = None) -> None:
    """Configure structlog and the root stdlib handler."""
    if debug is None:
        debug = get_settings().log_debug

    processors = _build_processors()

    structlog.configure(
        processors=processors + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=_select_renderer(debug),
        foreign_pre_chain=processors,
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    logging.basicConfig(
        handlers=[handler],
        level=logging.DEBUG if debug else logging.INFO,
        force=True,
    )


def get_logger(name: Optional[str] = None) -> BoundLogger:
    """Get a structured logger."""
    return structlog.get_logger(name)
