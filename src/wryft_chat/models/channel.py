"""Channel keys and the channel-to-topic mapping."""

from dataclasses import dataclass

DM_PREFIX = "dm:"


@dataclass(frozen=True)
class ServerChannel:
    """A named channel inside a guild (server)."""

    guild_id: str
    channel_name: str

    @property
    def topic(self) -> str:
        """Transport topic: ``{guildId}-{channelName}``."""
        return f"{self.guild_id}-{self.channel_name}"

    def __str__(self) -> str:
        return f"{self.guild_id}/{self.channel_name}"


@dataclass(frozen=True)
class DirectMessage:
    """A direct-message conversation."""

    dm_id: str

    @property
    def topic(self) -> str:
        """Transport topic: ``dm-{dmId}``."""
        return f"dm-{self.dm_id}"

    def __str__(self) -> str:
        return f"{DM_PREFIX}{self.dm_id}"


ChannelKey = ServerChannel | DirectMessage


def parse_channel_key(text: str) -> ChannelKey:
    """Parse ``dm:<dmId>`` or ``<guildId>/<channelName>`` into a channel key.

    Raises:
        ValueError: If the text matches neither form.
    """
    if text.startswith(DM_PREFIX):
        dm_id = text[len(DM_PREFIX) :]
        if not dm_id:
            raise ValueError(f"Missing DM id in channel key: {text!r}")
        return DirectMessage(dm_id=dm_id)

    guild_id, sep, channel_name = text.partition("/")
    if not sep or not guild_id or not channel_name:
        raise ValueError(f"Expected 'guild/channel' or 'dm:<id>', got {text!r}")
    return ServerChannel(guild_id=guild_id, channel_name=channel_name)
