"""Data models for ephemeral typing presence."""

from dataclasses import dataclass

from .channel import ChannelKey
from .message import split_identity


@dataclass(frozen=True)
class TypingEntry:
    """A user currently typing in a channel.

    ``expires_at`` is on the tracker's clock (monotonic seconds).
    """

    channel_key: ChannelKey
    user_identity: str
    expires_at: float

    @property
    def display_name(self) -> str:
        """Identity with the discriminator stripped."""
        return split_identity(self.user_identity)[0]

    def is_expired(self, now: float) -> bool:
        """Return True once the entry's window has elapsed."""
        return now >= self.expires_at
