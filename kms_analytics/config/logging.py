"""
Logging Configuration for KMS Sales Analytics

structlog on top of the stdlib root logger. Report files are the program's
output, so log lines go to stderr.
"""

import logging
import sys
from typing import List, Optional, TextIO

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import add_log_level, ProcessorFormatter

from kms_analytics.config.settings import get_settings


def _shared_processors() -> List:
    """Processors applied to structlog and foreign stdlib records alike"""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]


def _renderer(log_format: str, stream: TextIO):
    if log_format.lower() == "json":
        return JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=stream.isatty())


def configure_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> None:
    """
    Route structlog through a single handler on the root logger.

    Safe to call more than once; earlier root handlers are replaced.

    Args:
        log_level: Override log level (DEBUG, INFO, WARNING, ERROR)
        log_format: Override renderer, ``json`` or ``text``
        stream: Handler stream (default: stderr)
    """
    settings = get_settings()
    level = (log_level or settings.monitoring.log_level).upper()
    fmt = log_format or settings.monitoring.log_format
    stream = stream or sys.stderr
    numeric_level = getattr(logging, level, logging.INFO)

    processors = _shared_processors()
    structlog.configure(
        processors=processors + [ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(stream)
    handler.setLevel(numeric_level)
    handler.setFormatter(ProcessorFormatter(processor=_renderer(fmt, stream), foreign_pre_chain=processors))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(numeric_level)

    structlog.get_logger(__name__).info(
        "Logging configured",
        level=level,
        format=fmt,
        environment=settings.app_env,
    )
