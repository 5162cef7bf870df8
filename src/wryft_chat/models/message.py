"""Data models for chat messages."""

from dataclasses import dataclass

from .channel import ChannelKey

DISCRIMINATOR_SEPARATOR = "#"


def split_identity(identity: str) -> tuple[str, str]:
    """Split ``username#discriminator`` into its two parts.

    An identity without a separator yields an empty discriminator.
    """
    username, sep, discriminator = identity.rpartition(DISCRIMINATOR_SEPARATOR)
    if not sep:
        return identity, ""
    return username, discriminator


def join_identity(username: str, discriminator: str) -> str:
    """Build the composite identity string."""
    if not discriminator:
        return username
    return f"{username}{DISCRIMINATOR_SEPARATOR}{discriminator}"


@dataclass(frozen=True)
class Message:
    """A persisted chat message as shown in a channel."""

    id: str  # Server-issued, never generated client-side
    channel_key: ChannelKey
    text: str
    author: str
    author_discriminator: str
    timestamp: str
    edited: bool = False
    deleted: bool = False

    @property
    def author_identity(self) -> str:
        """Return ``author#discriminator``."""
        return join_identity(self.author, self.author_discriminator)
