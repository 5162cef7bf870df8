"""Utility functions and helpers.

- async_helpers: Error taxonomy, retry for idempotent reads, timeouts
- logging: Structured logging with secret sanitization
- security: Secret redaction
"""

from wryft_chat.utils.async_helpers import (
    AuthenticationError,
    ChatError,
    NotFoundError,
    PersistenceError,
    ProtocolViolation,
    TransientNetworkError,
    create_retry,
    with_timeout,
)
from wryft_chat.utils.logging import (
    LogFormat,
    LogLevel,
    bind_context,
    clear_context,
    configure_from_config,
    configure_logging,
    register_secret,
)
from wryft_chat.utils.security import RedactionError, SecretRedactor

__all__ = [
    # Errors
    "AuthenticationError",
    "ChatError",
    # Logging
    "LogFormat",
    "LogLevel",
    "NotFoundError",
    "PersistenceError",
    "ProtocolViolation",
    # Security
    "RedactionError",
    "SecretRedactor",
    "TransientNetworkError",
    "bind_context",
    "clear_context",
    "configure_from_config",
    "configure_logging",
    "register_secret",
    # Async helpers
    "create_retry",
    "with_timeout",
]
