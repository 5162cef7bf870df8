"""Abstract interface for the member roster."""

from collections.abc import Sequence
from typing import Protocol

from ..models.channel import ChannelKey
from ..models.mention import MemberCandidate


class RosterProvider(Protocol):
    """Supplies the members that can be mentioned in a conversation.

    The core only reads ``(id, username, discriminator)`` and never mutates
    the returned records.
    """

    async def list_members(self, channel_key: ChannelKey) -> Sequence[MemberCandidate]:
        """
        Return the members of the conversation, in roster order.

        Raises:
            TransientNetworkError: If the backend cannot be reached
            AuthenticationError: If the token is rejected
        """
        ...
