"""
Logging configuration.

Provides a single entry point for configuring structured logging. Output
always goes to stderr: stdout is reserved for World JSON.

Configuration is read from settings / environment variables:
- SPAWNER_LOG_LEVEL: DEBUG | INFO | WARNING | ERROR (default: INFO)
- SPAWNER_LOG_FORMAT: json | console (default: console)

Usage:
    from spawner.logging import configure_logging
    configure_logging()

    # Or with explicit settings
    configure_logging(level="DEBUG", format="json")
"""

import logging
import sys
from typing import Literal

import structlog
from structlog.types import Processor

from spawner.errors import ConfigurationError
from spawner.settings import get_settings

# Track if logging has been configured
_configured = False

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] | None = None,
    format: Literal["json", "console"] | None = None,
    force: bool = False,
) -> None:
    """
    Configure structured logging for the application.

    Should be called once at startup (CLI entry). Subsequent calls are
    no-ops unless force=True.

    Args:
        level: Log level (overrides SPAWNER_LOG_LEVEL)
        format: Output format (overrides SPAWNER_LOG_FORMAT)
        force: Reconfigure even if already configured

    Raises:
        ConfigurationError: The level is not a standard logging level.
    """
    global _configured

    if _configured and not force:
        return

    settings = get_settings()
    log_level = (level or settings.log_level).upper()
    log_format = (format or settings.log_format).lower()
    if log_level not in _LEVELS:
        raise ConfigurationError(f"unknown log level {log_level!r}")

    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        # UTC ISO-8601 timestamps
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
        structlog.processors.StackInfoRenderer(),
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, log_level),
        force=True,
    )
    logging.getLogger("spawner").setLevel(getattr(logging, log_level))
    # AWS SDK debug output drowns everything else
    for logger_name in ["boto3", "botocore", "urllib3"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    _configured = True


def is_configured() -> bool:
    """Check if logging has been configured."""
    return _configured
