"""Data models and transfer objects."""

from .channel import ChannelKey, DirectMessage, ServerChannel, parse_channel_key
from .events import (
    ChatEvent,
    EventType,
    MessageDeletedEvent,
    MessageEditedEvent,
    MessageEvent,
    TypingEvent,
    UserJoinedEvent,
    UserLeftEvent,
    parse_event,
)
from .mention import (
    SPECIAL_CANDIDATES,
    ComposeState,
    MemberCandidate,
    MentionCandidate,
    MentionQuery,
    Segment,
    SegmentKind,
    SpecialCandidate,
)
from .message import Message, join_identity, split_identity
from .presence import TypingEntry

__all__ = [
    # Channel models
    "ChannelKey",
    "ServerChannel",
    "DirectMessage",
    "parse_channel_key",
    # Message models
    "Message",
    "split_identity",
    "join_identity",
    # Event models
    "EventType",
    "ChatEvent",
    "MessageEvent",
    "MessageEditedEvent",
    "MessageDeletedEvent",
    "TypingEvent",
    "UserJoinedEvent",
    "UserLeftEvent",
    "parse_event",
    # Presence models
    "TypingEntry",
    # Mention models
    "SpecialCandidate",
    "MemberCandidate",
    "MentionCandidate",
    "SPECIAL_CANDIDATES",
    "MentionQuery",
    "ComposeState",
    "SegmentKind",
    "Segment",
]
