"""Core messaging components.

This module exports the main classes:
- MessageStore: Per-channel ordered, deduplicated message sequences
- ChannelSession: Subscription to the viewed channel's event stream
- TypingTracker: Expiring "is typing" presence
- Composer: Compose buffer with mention autocomplete
- ChatController: Persist-then-broadcast orchestration
- ChatClient: Line-oriented terminal client
"""

from wryft_chat.core.channel_session import ChannelSession, ConnectionStatus
from wryft_chat.core.client import ChatClient, create_client
from wryft_chat.core.composer import Composer
from wryft_chat.core.controller import ChatController, NoActiveChannelError
from wryft_chat.core.message_store import MessageStore
from wryft_chat.core.typing_tracker import TypingTracker, typing_indicator_text

__all__ = [
    "ChannelSession",
    "ChatClient",
    "ChatController",
    "Composer",
    "ConnectionStatus",
    "MessageStore",
    "NoActiveChannelError",
    "TypingTracker",
    "create_client",
    "typing_indicator_text",
]
