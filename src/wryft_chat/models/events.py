"""Real-time events exchanged over a channel's transport topic.

Every event is a JSON object tagged by a ``type`` field. Inbound frames are
parsed with :func:`parse_event`; outbound events are serialized with
``to_payload()``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, ClassVar

from wryft_chat.utils.async_helpers import ProtocolViolation


class EventType(StrEnum):
    """Discriminator values of the ``type`` field."""

    MESSAGE = "message"
    MESSAGE_EDITED = "message_edited"
    MESSAGE_DELETED = "message_deleted"
    TYPING = "typing"
    USER_JOINED = "user_joined"
    USER_LEFT = "user_left"


@dataclass(frozen=True)
class MessageEvent:
    """A message was persisted and is being fanned out."""

    type: ClassVar[EventType] = EventType.MESSAGE

    id: str
    content: str
    author: str  # username#discriminator
    timestamp: str = ""
    channel: str = ""

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "id": self.id,
            "channel": self.channel,
            "content": self.content,
            "author": self.author,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class MessageEditedEvent:
    """A message's text was replaced."""

    type: ClassVar[EventType] = EventType.MESSAGE_EDITED

    id: str
    content: str
    channel: str = ""

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "id": self.id,
            "channel": self.channel,
            "content": self.content,
        }


@dataclass(frozen=True)
class MessageDeletedEvent:
    """A message was deleted."""

    type: ClassVar[EventType] = EventType.MESSAGE_DELETED

    id: str
    channel: str = ""

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type.value, "id": self.id, "channel": self.channel}


@dataclass(frozen=True)
class TypingEvent:
    """A user is composing a message."""

    type: ClassVar[EventType] = EventType.TYPING

    user: str  # username#discriminator
    channel: str = ""

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type.value, "channel": self.channel, "user": self.user}


@dataclass(frozen=True)
class UserJoinedEvent:
    """A participant connected to the topic."""

    type: ClassVar[EventType] = EventType.USER_JOINED

    user: str

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type.value, "user": self.user}


@dataclass(frozen=True)
class UserLeftEvent:
    """A participant disconnected from the topic."""

    type: ClassVar[EventType] = EventType.USER_LEFT

    user: str

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.type.value, "user": self.user}


ChatEvent = (
    MessageEvent
    | MessageEditedEvent
    | MessageDeletedEvent
    | TypingEvent
    | UserJoinedEvent
    | UserLeftEvent
)


def _require_str(data: Mapping[str, Any], field: str) -> str:
    value = data.get(field)
    if not isinstance(value, str) or not value:
        raise ProtocolViolation(f"Event {data.get('type')!r} is missing string field {field!r}")
    return value


def _optional_str(data: Mapping[str, Any], field: str) -> str:
    value = data.get(field)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ProtocolViolation(f"Event field {field!r} must be a string")
    return value


def parse_event(data: Any) -> ChatEvent:
    """Build a typed event from a decoded JSON frame.

    Args:
        data: The decoded frame.

    Returns:
        The typed event.

    Raises:
        ProtocolViolation: If the frame is not an object, has an unknown
            ``type``, or lacks a required field.
    """
    if not isinstance(data, Mapping):
        raise ProtocolViolation(f"Event must be a JSON object, got {type(data).__name__}")

    raw_type = data.get("type")
    try:
        event_type = EventType(raw_type)
    except ValueError:
        raise ProtocolViolation(f"Unknown event type: {raw_type!r}") from None

    if event_type is EventType.MESSAGE:
        return MessageEvent(
            id=_require_str(data, "id"),
            content=_optional_str(data, "content"),
            author=_require_str(data, "author"),
            timestamp=_optional_str(data, "timestamp"),
            channel=_optional_str(data, "channel"),
        )
    if event_type is EventType.MESSAGE_EDITED:
        return MessageEditedEvent(
            id=_require_str(data, "id"),
            content=_optional_str(data, "content"),
            channel=_optional_str(data, "channel"),
        )
    if event_type is EventType.MESSAGE_DELETED:
        return MessageDeletedEvent(
            id=_require_str(data, "id"),
            channel=_optional_str(data, "channel"),
        )
    if event_type is EventType.TYPING:
        return TypingEvent(
            user=_require_str(data, "user"),
            channel=_optional_str(data, "channel"),
        )
    if event_type is EventType.USER_JOINED:
        return UserJoinedEvent(user=_optional_str(data, "user"))
    return UserLeftEvent(user=_optional_str(data, "user"))
