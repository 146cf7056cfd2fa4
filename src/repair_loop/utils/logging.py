"""structlog setup for the repair loop.

Every entry passes through two guards before rendering: secrets are
redacted, and oversized string values (bundler output, stack traces, whole
source files) are truncated so one failing build cannot flood the log.
Bound context such as ``session_id`` is merged into each entry.
"""

from __future__ import annotations

import functools
import logging
import sys
from collections.abc import MutableMapping
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any, cast

import structlog

from repair_loop.utils.security import SecretRedactor

if TYPE_CHECKING:
    from repair_loop.config.schema import LoggingConfig

SERVICE_NAME = "code-repair-loop"

# String values longer than this are cut before rendering
MAX_LOG_VALUE_CHARS = 2000


class LogFormat(StrEnum):
    """Rendering used for log output."""

    JSON = "json"
    CONSOLE = "console"


class LogLevel(StrEnum):
    """Standard library level names."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@functools.cache
def _redactor() -> SecretRedactor:
    return SecretRedactor(placeholder="[REDACTED]")


def sanitize_log_value(value: Any) -> Any:
    """Redact secrets from a value, descending into dicts, lists and tuples."""
    if isinstance(value, str):
        return _redactor().redact(value)
    if isinstance(value, dict):
        return {key: sanitize_log_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(sanitize_log_value(item) for item in value)
    return value


def truncate_value(value: str, limit: int = MAX_LOG_VALUE_CHARS) -> str:
    """Cut a string to `limit` characters and note how much was dropped."""
    if len(value) <= limit:
        return value
    return f"{value[:limit]}... [{len(value) - limit} chars truncated]"


def secret_sanitizer(
    logger: logging.Logger,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Processor: redact secrets from every value in the entry."""
    return cast(MutableMapping[str, Any], sanitize_log_value(event_dict))


def truncate_long_values(
    logger: logging.Logger,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Processor: shorten top-level string values over MAX_LOG_VALUE_CHARS."""
    for key, value in event_dict.items():
        if isinstance(value, str):
            event_dict[key] = truncate_value(value)
    return event_dict


def add_service_context(
    logger: logging.Logger,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Processor: stamp entries with the service name and package version."""
    from repair_loop._version import __version__

    event_dict["service"] = SERVICE_NAME
    event_dict["version"] = __version__
    return event_dict


def _processors(log_format: LogFormat) -> list[Any]:
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        add_service_context,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        truncate_long_values,
        # Last before rendering so formatted tracebacks are covered too
        secret_sanitizer,
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == LogFormat.JSON:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stderr.isatty(), exception_formatter=structlog.dev.plain_traceback
            )
        )
    return processors


def _handlers(numeric_level: int, file_path: Path | None) -> list[logging.Handler]:
    # stderr only; stdout carries command results
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    if file_path is not None:
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(file_path))
        except OSError as e:
            logging.getLogger("repair_loop.logging").warning(
                f"Could not open log file {file_path}: {e}"
            )

    for handler in handlers:
        handler.setLevel(numeric_level)
    return handlers


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    log_format: LogFormat | str = LogFormat.JSON,
    file_path: Path | str | None = None,
) -> None:
    """Configure structlog and the standard library root logger.

    Args:
        level: Minimum level to emit
        log_format: ``json`` for aggregation, ``console`` for people
        file_path: Also write entries to this file when given. A file that
            cannot be opened is reported and skipped.

    Example:
        configure_logging(level="DEBUG", log_format="console")
    """
    level = LogLevel(str(level).upper())
    log_format = LogFormat(str(log_format).lower())
    numeric_level = getattr(logging, level.value)

    structlog.configure(
        processors=_processors(log_format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=numeric_level,
        handlers=_handlers(numeric_level, Path(file_path) if file_path else None),
        force=True,
    )


def configure_from_config(config: LoggingConfig, debug: bool = False) -> None:
    """Apply a loaded ``logging`` configuration section.

    Args:
        config: Logging section of RepairConfig
        debug: Force DEBUG regardless of the configured level
    """
    configure_logging(
        level=LogLevel.DEBUG if debug else config.level,
        log_format=config.format,
        file_path=config.file.path if config.file.enabled else None,
    )


def bind_context(**kwargs: Any) -> None:
    """Attach values to every entry logged from the current context.

    Example:
        bind_context(session_id="s1")
        log.info("fix_generated")  # carries session_id
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
