"""Structured logging setup using structlog.

smtpd copies whatever a filter writes to stderr into the mail log, so
that is where every record goes.  stdout belongs to the filter protocol.
"""

from __future__ import annotations

import logging
import sys

import structlog

# chatty at INFO: one record per directory request / health probe
NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")


def setup_logging(*, json: bool = False, verbose: bool = False) -> None:
    """Configure structlog and the stdlib root logger for the filter process.

    *json* switches from the plain console renderer to JSON lines.
    *verbose* lowers the level to DEBUG, which logs every data line and
    lets the HTTP client libraries speak.
    """
    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET if verbose else logging.WARNING)
