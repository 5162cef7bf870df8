"""Subscription to the real-time event stream of the viewed channel.

The session owns at most one transport subscription at a time. Inbound
frames are decoded, validated and dispatched to the message store or the
typing tracker; malformed frames are logged and dropped, never raised.
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from wryft_chat.models.events import (
    ChatEvent,
    MessageDeletedEvent,
    MessageEditedEvent,
    MessageEvent,
    TypingEvent,
    UserJoinedEvent,
    UserLeftEvent,
    parse_event,
)
from wryft_chat.models.message import Message, split_identity
from wryft_chat.utils.async_helpers import ChatError, ProtocolViolation

if TYPE_CHECKING:
    from wryft_chat.core.message_store import MessageStore
    from wryft_chat.core.typing_tracker import TypingTracker
    from wryft_chat.interfaces.transport import Transport
    from wryft_chat.models.channel import ChannelKey

log = structlog.get_logger()

EventCallback = Callable[[ChatEvent], None]
ResubscribeListener = Callable[["ChannelKey"], Awaitable[None]]


class ConnectionStatus(StrEnum):
    """What the "Connecting…" indicator shows."""

    CONNECTED = "connected"
    CONNECTING = "connecting"


class ChannelSession:
    """One logical subscription to the viewed channel's topic.

    Switching channels tears the old subscription down before the new one
    is established, so events of two channels never interleave.

    Example:
        session = ChannelSession(transport, store, typing)
        await session.activate(ServerChannel("srv1", "general"))
        await session.send(TypingEvent(user="alice#0001", channel="srv1-general"))
        await session.deactivate()
    """

    def __init__(
        self,
        transport: Transport,
        store: MessageStore,
        typing: TypingTracker,
        on_event: EventCallback | None = None,
    ) -> None:
        """Initialize the session.

        Args:
            transport: Publish/subscribe collaborator
            store: Receives message, edit and delete events
            typing: Receives typing events
            on_event: Called after each inbound event has been applied
        """
        self._transport = transport
        self._store = store
        self._typing = typing
        self._on_event = on_event
        self._key: ChannelKey | None = None
        self._resubscribe_listeners: list[ResubscribeListener] = []

    @property
    def active_key(self) -> ChannelKey | None:
        """Return the channel currently subscribed to, if any."""
        return self._key

    @property
    def topic(self) -> str | None:
        """Return the transport topic of the active channel."""
        return self._key.topic if self._key is not None else None

    @property
    def is_connected(self) -> bool:
        return self._key is not None and self._transport.is_connected

    def connection_status(self) -> ConnectionStatus:
        if self.is_connected:
            return ConnectionStatus.CONNECTED
        return ConnectionStatus.CONNECTING

    def add_resubscribe_listener(self, listener: ResubscribeListener) -> None:
        """Register a callback run after the session resubscribes on reconnect."""
        self._resubscribe_listeners.append(listener)

    async def activate(self, channel_key: ChannelKey) -> None:
        """Subscribe to a channel, releasing the previous subscription first.

        Raises:
            TransientNetworkError: If the transport cannot be started
        """
        if channel_key == self._key:
            return

        await self.deactivate()

        self._key = channel_key
        log.info("session_activating", channel=str(channel_key), topic=channel_key.topic)

        try:
            await self._transport.connect()
            self._transport.add_reconnect_listener(self._on_reconnect)
            await self._transport.subscribe(channel_key.topic, self._handle_frame)
        except Exception as e:
            # Leave the session inactive so activating the same key again retries
            self._key = None
            self._transport.remove_reconnect_listener(self._on_reconnect)
            log.warning("session_activation_failed", channel=str(channel_key), error=str(e))
            raise

        log.info("session_activated", channel=str(channel_key))

    async def deactivate(self) -> None:
        """Unsubscribe and release the connection. No-op when inactive."""
        if self._key is None:
            return

        key = self._key
        self._key = None

        self._transport.remove_reconnect_listener(self._on_reconnect)
        try:
            await self._transport.unsubscribe(key.topic)
        finally:
            await self._transport.close()
            self._typing.reset(key)
            # Reopening the channel reloads its history
            self._store.clear(key)

        log.info("session_deactivated", channel=str(key))

    async def send(self, event: ChatEvent) -> bool:
        """Publish an event on the active topic.

        Returns:
            True if the transport accepted the frame. False when there is no
            active channel, the event targets another channel, or the
            transport is not connected. Never raises.
        """
        topic = self.topic
        if topic is None:
            log.debug("send_without_channel", event_type=event.type.value)
            return False

        channel = getattr(event, "channel", "")
        if channel and channel != topic:
            log.debug("send_channel_mismatch", event_type=event.type.value, channel=channel)
            return False

        if not self._transport.is_connected:
            log.info("send_dropped_not_connected", event_type=event.type.value, topic=topic)
            return False

        try:
            return await self._transport.publish(topic, event.to_payload())
        except ChatError as e:
            log.warning("send_failed", event_type=event.type.value, error=str(e))
            return False

    def dispatch(self, event: ChatEvent) -> None:
        """Apply one inbound event to the store or the typing tracker."""
        key = self._key
        if key is None:
            return

        channel = getattr(event, "channel", "")
        if channel and channel != key.topic:
            log.debug("foreign_channel_event_dropped", event_type=event.type.value, channel=channel)
            return

        if isinstance(event, MessageEvent):
            author, discriminator = split_identity(event.author)
            message = Message(
                id=event.id,
                channel_key=key,
                text=event.content,
                author=author,
                author_discriminator=discriminator,
                timestamp=event.timestamp,
            )
            self._store.append(key, message)
            # A sent message supersedes the author's typing state
            self._typing.clear(key, event.author)
        elif isinstance(event, MessageEditedEvent):
            self._store.apply_edit(key, event.id, event.content)
        elif isinstance(event, MessageDeletedEvent):
            self._store.apply_delete(key, event.id)
        elif isinstance(event, TypingEvent):
            self._typing.record(key, event.user)
        elif isinstance(event, UserJoinedEvent):
            log.info("user_joined", channel=str(key), user=event.user)
        elif isinstance(event, UserLeftEvent):
            log.info("user_left", channel=str(key), user=event.user)

        if self._on_event is not None:
            self._on_event(event)

    async def _handle_frame(self, frame: str | bytes) -> None:
        """Decode and dispatch one frame. Bad frames are logged and dropped."""
        try:
            event = parse_event(json.loads(frame))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            log.warning("protocol_violation", reason="invalid_json", error=str(e))
            return
        except ProtocolViolation as e:
            log.warning("protocol_violation", reason="invalid_event", error=str(e))
            return

        self.dispatch(event)

    async def _on_reconnect(self, topic: str) -> None:
        """Restore the subscription the transport dropped on reconnect."""
        key = self._key
        if key is None or topic != key.topic:
            return

        await self._transport.subscribe(topic, self._handle_frame)
        log.info("session_resubscribed", channel=str(key), topic=topic)

        for listener in list(self._resubscribe_listeners):
            await listener(key)
