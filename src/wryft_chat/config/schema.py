"""Pydantic models for configuration schema."""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ApiConfig(BaseModel):
    """REST backend configuration."""

    base_url: str = "http://localhost:3001/api"
    token: str
    timeout: float = Field(10.0, gt=0.0, le=120.0)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Require an http(s) URL and strip the trailing slash."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("API base_url must start with http:// or https://")
        return v.rstrip("/")


class GatewayConfig(BaseModel):
    """Real-time gateway (websocket) configuration."""

    url: str = "ws://localhost:3001/ws"
    base_delay: float = Field(1.0, ge=0.0, le=60.0, description="First reconnect delay")
    max_delay: float = Field(30.0, ge=0.0, le=600.0, description="Reconnect delay cap")
    max_attempts: int = Field(10, ge=1, le=100, description="Reconnect attempts per drop")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Require a ws(s) URL."""
        if not v.startswith(("ws://", "wss://")):
            raise ValueError("Gateway url must start with ws:// or wss://")
        return v

    @model_validator(mode="after")
    def check_delays(self) -> "GatewayConfig":
        """Ensure the delay cap is not below the first delay."""
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be greater than or equal to base_delay")
        return self


class UserConfig(BaseModel):
    """Identity of the local user."""

    id: str
    username: str = Field(min_length=1)
    discriminator: str

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        """Usernames may not contain the discriminator separator or spaces."""
        if "#" in v or " " in v:
            raise ValueError("Username must not contain '#' or spaces")
        return v

    @field_validator("discriminator")
    @classmethod
    def validate_discriminator(cls, v: str) -> str:
        """Discriminators are exactly four digits."""
        if len(v) != 4 or not v.isdigit():
            raise ValueError("Discriminator must be exactly 4 digits")
        return v

    @property
    def identity(self) -> str:
        """Return the composite ``username#discriminator`` identity."""
        return f"{self.username}#{self.discriminator}"


class TypingConfig(BaseModel):
    """Typing presence configuration."""

    expiry_ms: int = Field(3000, ge=100, le=60000)
    send_interval_ms: int = Field(3000, ge=0, le=60000)
    sweep_interval_ms: int = Field(250, ge=10, le=10000)


class MentionConfig(BaseModel):
    """Mention autocomplete configuration."""

    max_member_candidates: int = Field(5, ge=1, le=50)


class RosterConfig(BaseModel):
    """Member roster configuration."""

    cache_ttl: int = Field(60, ge=0, description="Seconds to cache a guild's member list")


class FileLoggingConfig(BaseModel):
    """File logging configuration."""

    enabled: bool = False
    path: Path = Path("wryft-chat.log")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["json", "console"] = "console"
    file: FileLoggingConfig = FileLoggingConfig()


class RetryConfig(BaseModel):
    """Retry configuration for idempotent reads (history, roster)."""

    max_attempts: int = Field(3, ge=1, le=10)
    min_wait: float = Field(1.0, ge=0.0, le=10.0)
    max_wait: float = Field(30.0, ge=0.0, le=300.0)


class ClientConfig(BaseSettings):
    """Root configuration for the chat client."""

    api: ApiConfig
    user: UserConfig
    gateway: GatewayConfig = GatewayConfig()
    typing: TypingConfig = TypingConfig()
    mentions: MentionConfig = MentionConfig()
    roster: RosterConfig = RosterConfig()
    logging: LoggingConfig = LoggingConfig()
    retry: RetryConfig = RetryConfig()

    model_config = SettingsConfigDict(
        env_prefix="WRYFT_",
        env_file=".env",
        env_nested_delimiter="__",
    )
