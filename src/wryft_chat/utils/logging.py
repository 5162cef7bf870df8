"""Structured logging for the chat client.

Log lines go to stderr (stdout belongs to the terminal chat view) and,
optionally, to a file. Every entry passes through the secret redactor so a
bearer token echoed by an httpx error never reaches a sink. Session-wide
fields such as the local identity and the open channel are carried with
structlog context variables.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Mapping, MutableMapping
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from wryft_chat._version import __version__
from wryft_chat.utils.security import SecretRedactor

if TYPE_CHECKING:
    from wryft_chat.config.schema import LoggingConfig

SERVICE_NAME = "wryft-chat"


class LogFormat(StrEnum):
    """Renderer used for log output."""

    JSON = "json"
    CONSOLE = "console"


class LogLevel(StrEnum):
    """Supported log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


_redactor = SecretRedactor(placeholder="[REDACTED]")


def sanitize_log_value(value: Any) -> Any:
    """Return ``value`` with secrets redacted from every nested string."""
    if isinstance(value, str):
        return _redactor.redact(value)
    if isinstance(value, Mapping):
        return {key: sanitize_log_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(sanitize_log_value(item) for item in value)
    return value


def secret_sanitizer(
    logger: logging.Logger,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Structlog processor that scrubs secrets from every field."""
    for key, value in event_dict.items():
        event_dict[key] = sanitize_log_value(value)
    return event_dict


def add_service_context(
    logger: logging.Logger,
    method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """Structlog processor that stamps the service name and version."""
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("version", __version__)
    return event_dict


def _renderer(log_format: LogFormat) -> Any:
    if log_format is LogFormat.JSON:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=sys.stderr.isatty(),
        exception_formatter=structlog.dev.plain_traceback,
    )


def _handlers(level: int, file_path: Path | None) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    if file_path is not None:
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(file_path))
        except OSError as e:
            # Keep logging to stderr when the file cannot be opened
            logging.getLogger(__name__).warning("Cannot open log file %s: %s", file_path, e)

    for handler in handlers:
        handler.setLevel(level)
    return handlers


def configure_logging(
    level: LogLevel | str = LogLevel.INFO,
    log_format: LogFormat | str = LogFormat.CONSOLE,
    file_path: Path | str | None = None,
    file_enabled: bool = False,
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        level: Minimum level to emit (case-insensitive).
        log_format: ``json`` or ``console`` (case-insensitive).
        file_path: Log file, used only when ``file_enabled`` is set.
        file_enabled: Also write to ``file_path``.
    """
    level = LogLevel(str(level).upper())
    log_format = LogFormat(str(log_format).lower())
    numeric_level = logging.getLevelName(level.value)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            add_service_context,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            secret_sanitizer,
            _renderer(log_format),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=numeric_level,
        handlers=_handlers(numeric_level, Path(file_path) if file_enabled and file_path else None),
        force=True,
    )


def configure_from_config(
    config: LoggingConfig,
    debug: bool = False,
    log_format: LogFormat | str | None = None,
) -> None:
    """Apply the ``logging`` section of the client configuration.

    Command line choices win: ``debug`` forces the DEBUG level and
    ``log_format``, when given, replaces the configured renderer.
    """
    configure_logging(
        level=LogLevel.DEBUG if debug else config.level,
        log_format=log_format or config.format,
        file_path=config.file.path,
        file_enabled=config.file.enabled,
    )


def register_secret(value: str) -> None:
    """Redact the exact ``value`` from all log output from now on."""
    if not _redactor.add_literal(value):
        structlog.get_logger().warning("secret_too_short_to_redact", length=len(value))


def bind_context(**kwargs: Any) -> None:
    """Attach fields to every subsequent log line in this context.

    Example:
        bind_context(user="alice#0001", channel="srv1/general")
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Drop every bound context field."""
    structlog.contextvars.clear_contextvars()
