"""
authstore Logging Configuration

Structured logging with:
- Sensitive data redaction (credentials, tokens, hashes)
- Configurable log levels per environment
- Human-readable format for development, JSON elsewhere

SECURITY: All log processors include sensitive data filtering.
"""

import logging
import sys
from typing import Any

import structlog

from authstore import __version__
from authstore.config.settings import Settings


SENSITIVE_PATTERNS: frozenset[str] = frozenset({
    "password",
    "token",
    "secret",
    "authorization",
    "credential",
    "dsn",
    "database_url",
})


def _redact_sensitive_data(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """
    Redact sensitive data from log entries.

    Scans all keys in the event dictionary and redacts values
    for any key containing sensitive patterns. The ``event`` key
    itself is never redacted.
    """
    def redact_value(key: str, value: Any) -> Any:
        key_lower = key.lower()
        for pattern in SENSITIVE_PATTERNS:
            if pattern in key_lower:
                return "[REDACTED]"

        if isinstance(value, dict):
            return {k: redact_value(k, v) for k, v in value.items()}
        elif isinstance(value, list):
            return [redact_value(key, item) for item in value]

        return value

    return {
        key: value if key == "event" else redact_value(key, value)
        for key, value in event_dict.items()
    }


def _add_service_context(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Add service-level context to all log entries."""
    event_dict["service"] = "authstore"
    event_dict["version"] = __version__
    return event_dict


def get_processors(is_development: bool) -> list[Any]:
    """
    Get structlog processors based on environment.

    Args:
        is_development: Whether running in development mode

    Returns:
        List of log processors
    """
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        _redact_sensitive_data,
        _add_service_context,
    ]

    if is_development:
        shared_processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    else:
        shared_processors.extend([
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ])

    return shared_processors


def configure_logging(settings: Settings) -> None:
    """
    Configure logging.

    Sets up structlog with appropriate processors for the environment.
    Should be called once by the process entry point.

    Args:
        settings: Settings instance
    """
    is_development = settings.env == "development"
    log_level = getattr(logging, settings.log_level.upper())

    structlog.configure(
        processors=get_processors(is_development),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Logs go to stderr so CLI output on stdout stays clean
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=log_level,
    )

    # SQL echo only in debug mode
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.debug else logging.WARNING
    )
    logging.getLogger("asyncpg").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def bind_context(**values: Any) -> None:
    """
    Bind values to the current logging context.

    All subsequent log entries in this context (e.g. one migration
    invocation) include the bound values.
    """
    structlog.contextvars.bind_contextvars(**values)
