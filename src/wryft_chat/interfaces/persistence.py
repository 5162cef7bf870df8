"""Abstract interface for the message persistence backend."""

from collections.abc import Sequence
from typing import Protocol

from ..models.channel import ChannelKey
from ..models.message import Message


class MessagePersistence(Protocol):
    """REST-shaped persistence collaborator.

    All calls are bearer-token authenticated. Implementations must raise
    ``AuthenticationError`` on HTTP 401 rather than a generic failure.
    """

    async def create_message(
        self,
        channel_key: ChannelKey,
        text: str,
        author_identity: str,
    ) -> Message:
        """
        Persist a new message.

        Args:
            channel_key: Conversation the message belongs to
            text: Message body
            author_identity: ``username#discriminator`` of the author

        Returns:
            The stored message carrying its server-issued id and timestamp

        Raises:
            TransientNetworkError: If the backend cannot be reached
            AuthenticationError: If the token is rejected
        """
        ...

    async def edit_message(self, channel_key: ChannelKey, message_id: str, text: str) -> None:
        """
        Replace the text of a stored message.

        Raises:
            NotFoundError: If the id is unknown server-side
            TransientNetworkError: If the backend cannot be reached
            AuthenticationError: If the token is rejected
        """
        ...

    async def delete_message(self, channel_key: ChannelKey, message_id: str) -> None:
        """
        Delete a stored message.

        Raises:
            NotFoundError: If the id is unknown server-side
            TransientNetworkError: If the backend cannot be reached
            AuthenticationError: If the token is rejected
        """
        ...

    async def fetch_history(self, channel_key: ChannelKey) -> Sequence[Message]:
        """
        Return the persisted messages of a conversation, oldest first.

        Raises:
            TransientNetworkError: If the backend cannot be reached
            AuthenticationError: If the token is rejected
        """
        ...
