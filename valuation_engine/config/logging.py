"""
Logging Configuration for the Valuation Engine

The engine only emits structlog events; it never configures logging on
import. Host applications (a service, a batch job, a notebook) call
``configure_logging`` once at startup to route those events through the
standard library root logger, tagged with the engine's deployment context.
"""

import logging
import sys
from typing import IO, Optional

import structlog
from structlog.processors import JSONRenderer, TimeStamper
from structlog.stdlib import add_log_level, ProcessorFormatter

from valuation_engine.config.settings import Settings, get_settings


def bind_engine_context(settings: Settings) -> None:
    """Attach app, environment and schema to every subsequent log event"""
    structlog.contextvars.bind_contextvars(
        app_name=settings.app_name,
        environment=settings.app_env,
        schema=settings.database.schema_name,
    )


def configure_logging(
    settings: Optional[Settings] = None,
    log_level: Optional[str] = None,
    stream: Optional[IO[str]] = None,
) -> None:
    """
    Configure structured logging for a process hosting the engine.

    Args:
        settings: Settings to read format, level and context from (default: cached settings)
        log_level: Override log level (DEBUG, INFO, WARNING, ERROR)
        stream: Output stream for the root handler (default: stdout)
    """
    settings = settings or get_settings()
    level = (log_level or settings.monitoring.log_level).upper()
    numeric_level = logging.getLevelName(level)
    if not isinstance(numeric_level, int):
        level, numeric_level = "INFO", logging.INFO

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        add_log_level,
        TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=shared_processors + [
            ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    stream = stream or sys.stdout
    if settings.monitoring.log_format == "json":
        renderer = JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=stream.isatty())

    handler = logging.StreamHandler(stream)
    handler.setLevel(numeric_level)
    handler.setFormatter(ProcessorFormatter(processor=renderer, foreign_pre_chain=shared_processors))

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers[:] = [handler]

    # SQL sources log statements through SQLAlchemy
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database.echo else logging.WARNING
    )

    bind_engine_context(settings)
    structlog.get_logger(__name__).info(
        "Logging configured",
        level=level,
        format=settings.monitoring.log_format,
    )
