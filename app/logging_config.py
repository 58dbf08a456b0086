from __future__ import annotations
import logging
import sys
from typing import TextIO, Optional
import structlog

def configure_logging(debug: bool = False, json_logs: bool = True, stream: Optional[TextIO] = None) -> None:
    """
    Logs go to stderr by default: the CLI prints exports on stdout and the
    two must not interleave.
    """
    level = logging.DEBUG if debug else logging.INFO
    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )

    # stdlib logging carries the rendered lines
    logging.basicConfig(
        format="%(message)s",
        stream=stream or sys.stderr,
        level=level,
        force=True,
    )
