"""Configuration loading and validation."""

from .loader import load_config
from .schema import (
    ApiConfig,
    ClientConfig,
    GatewayConfig,
    LoggingConfig,
    MentionConfig,
    RetryConfig,
    RosterConfig,
    TypingConfig,
    UserConfig,
)

__all__ = [
    # Loader
    "load_config",
    # Root config
    "ClientConfig",
    # Section configs
    "ApiConfig",
    "GatewayConfig",
    "UserConfig",
    "TypingConfig",
    "MentionConfig",
    "RosterConfig",
    "LoggingConfig",
    "RetryConfig",
]
