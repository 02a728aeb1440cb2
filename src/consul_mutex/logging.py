"""
Structured logging setup using structlog directly.

Library modules only ever call ``get_logger``; configuring output is left to
the application (the CLI calls ``setup_logging`` at start-up).
"""

import logging

import structlog

from consul_mutex.settings import LogLevel, settings


def setup_logging(
    log_level: LogLevel | str | None = None,
    log_format: str | None = None,
) -> None:
    """
    Setup structured logging with structlog.

    Args:
        log_level: Minimum level, defaults to ``settings.log_level``
        log_format: ``json`` or ``console``, defaults to ``settings.log_format``
    """
    level = log_level or settings.log_level
    if not isinstance(level, LogLevel):
        level = LogLevel(level.upper())
    fmt = log_format or settings.log_format

    logging.basicConfig(format="%(message)s", level=level.value)
    logging.getLogger().setLevel(level.value)

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    # Use JSON or console output based on settings
    if fmt == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> structlog.BoundLogger:
    """
    Get a structured logger.

    Args:
        name: Logger name, defaults to caller's module name

    Returns:
        Configured structured logger
    """
    return structlog.get_logger(name)
