"""Orchestration of send, edit and delete over persistence and broadcast.

Every mutation is persisted first and then broadcast. The local message
store is never written from these calls: it changes only when the
broadcast comes back through the channel session, exactly as it would for
a remote participant.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog

from wryft_chat.core.channel_session import ChannelSession, ConnectionStatus, EventCallback
from wryft_chat.core.composer import Composer
from wryft_chat.core.mentions import mentions_user
from wryft_chat.core.message_store import MessageStore
from wryft_chat.core.typing_tracker import TypingTracker
from wryft_chat.models.events import (
    MessageDeletedEvent,
    MessageEditedEvent,
    MessageEvent,
    TypingEvent,
)
from wryft_chat.utils.async_helpers import AuthenticationError, ChatError

if TYPE_CHECKING:
    from wryft_chat.config.schema import ClientConfig
    from wryft_chat.interfaces.persistence import MessagePersistence
    from wryft_chat.interfaces.roster import RosterProvider
    from wryft_chat.interfaces.transport import Transport
    from wryft_chat.models.channel import ChannelKey
    from wryft_chat.models.mention import MemberCandidate
    from wryft_chat.models.message import Message

log = structlog.get_logger()


class NoActiveChannelError(ChatError):
    """A command needs an open channel but none is active."""


class ChatController:
    """Composes the store, session, typing tracker and composer.

    Example:
        controller = ChatController(config, rest, transport, rest)
        await controller.open_channel(ServerChannel("srv1", "general"))
        await controller.send_message("hi @bob#0002")
        for message in controller.messages():
            print(message.author, message.text)
    """

    def __init__(
        self,
        config: ClientConfig,
        persistence: MessagePersistence,
        transport: Transport,
        roster: RosterProvider,
        clock: Callable[[], float] = time.monotonic,
        on_event: EventCallback | None = None,
    ) -> None:
        """Initialize the controller.

        Args:
            config: Client configuration
            persistence: REST-shaped message persistence
            transport: Real-time publish/subscribe transport
            roster: Member list source for mention autocomplete
            clock: Monotonic clock in seconds, shared with the typing tracker
            on_event: Called after each inbound event has been applied
        """
        self._config = config
        self._persistence = persistence
        self._roster = roster
        self._clock = clock

        self._store = MessageStore()
        self._typing = TypingTracker(
            local_identity=config.user.identity,
            window=config.typing.expiry_ms / 1000,
            clock=clock,
        )
        self._session = ChannelSession(transport, self._store, self._typing, on_event=on_event)
        self._session.add_resubscribe_listener(self._resync)

        self._members: list[MemberCandidate] = []
        self._composer = Composer(
            lambda: self._members,
            max_member_candidates=config.mentions.max_member_candidates,
        )
        self._last_typing_sent: float | None = None

    @property
    def store(self) -> MessageStore:
        return self._store

    @property
    def session(self) -> ChannelSession:
        return self._session

    @property
    def typing(self) -> TypingTracker:
        return self._typing

    @property
    def composer(self) -> Composer:
        return self._composer

    @property
    def active_channel(self) -> ChannelKey | None:
        return self._session.active_key

    @property
    def members(self) -> list[MemberCandidate]:
        return list(self._members)

    @property
    def is_connected(self) -> bool:
        return self._session.is_connected

    def connection_status(self) -> ConnectionStatus:
        return self._session.connection_status()

    def messages(self, include_deleted: bool = False) -> tuple[Message, ...]:
        """Return the active channel's messages in receipt order."""
        key = self.active_channel
        if key is None:
            return ()
        if include_deleted:
            return self._store.get(key)
        return self._store.visible(key)

    def typing_text(self) -> str:
        """Return the typing line for the active channel."""
        key = self.active_channel
        if key is None:
            return ""
        return self._typing.indicator_text(key)

    def is_mention(self, message: Message) -> bool:
        """Return True if the message mentions the local user."""
        return mentions_user(message.text, self._config.user.username)

    async def open_channel(self, channel_key: ChannelKey) -> None:
        """Switch to a channel, then load its history and member list.

        History and roster failures are logged and leave the channel open;
        only an authentication failure is raised.

        Raises:
            AuthenticationError: If the backend rejects the token
            TransientNetworkError: If the transport cannot be started
        """
        await self._session.activate(channel_key)
        self._last_typing_sent = None
        self._members = []
        self._composer.clear()

        for step in (self.load_history, self.refresh_members):
            try:
                await step()
            except AuthenticationError:
                raise
            except ChatError as e:
                log.warning(
                    "channel_load_step_failed",
                    channel=str(channel_key),
                    step=step.__name__,
                    error=str(e),
                )

    async def close(self) -> None:
        """Release the active subscription."""
        await self._session.deactivate()

    async def load_history(self) -> int:
        """Merge the active channel's persisted history into the store.

        Returns:
            Number of messages that were not already present.
        """
        key = self._require_channel()
        history = await self._persistence.fetch_history(key)

        if self.active_channel != key:
            log.debug("history_discarded_channel_switched", channel=str(key))
            return 0

        added = sum(1 for message in history if self._store.append(key, message))
        log.info("history_loaded", channel=str(key), fetched=len(history), added=added)
        return added

    async def refresh_members(self) -> None:
        """Reload the mention roster for the active channel."""
        key = self._require_channel()
        members = await self._roster.list_members(key)
        if self.active_channel != key:
            return
        self._members = list(members)
        log.debug("members_loaded", channel=str(key), count=len(self._members))

    async def send_message(self, text: str) -> Message:
        """Persist a message, then broadcast it.

        Returns:
            The persisted message. It shows up in ``messages()`` only once
            the broadcast has come back through the session.

        Raises:
            ValueError: If the text is blank
            NoActiveChannelError: If no channel is open
            TransientNetworkError: If persistence is unreachable; nothing is
                broadcast
            AuthenticationError: If the backend rejects the token
        """
        if not text.strip():
            raise ValueError("Cannot send an empty message")

        key = self._require_channel()
        message = await self._persistence.create_message(key, text, self._config.user.identity)
        self._last_typing_sent = None
        log.info("message_persisted", channel=str(key), message_id=message.id)

        event = MessageEvent(
            id=message.id,
            content=message.text,
            author=message.author_identity,
            timestamp=message.timestamp,
            channel=key.topic,
        )
        await self._broadcast(key, event)
        return message

    async def edit_message(self, message_id: str, text: str) -> bool:
        """Persist an edit, then broadcast it.

        Returns:
            True if the broadcast was handed to the transport.

        Raises:
            NotFoundError: If the message does not exist server-side
            TransientNetworkError: If persistence is unreachable
            AuthenticationError: If the backend rejects the token
        """
        key = self._require_channel()
        await self._persistence.edit_message(key, message_id, text)
        log.info("message_edit_persisted", channel=str(key), message_id=message_id)
        return await self._broadcast(
            key, MessageEditedEvent(id=message_id, content=text, channel=key.topic)
        )

    async def delete_message(self, message_id: str) -> bool:
        """Persist a delete, then broadcast it.

        Returns:
            True if the broadcast was handed to the transport.

        Raises:
            NotFoundError: If the message does not exist server-side
            TransientNetworkError: If persistence is unreachable
            AuthenticationError: If the backend rejects the token
        """
        key = self._require_channel()
        await self._persistence.delete_message(key, message_id)
        log.info("message_delete_persisted", channel=str(key), message_id=message_id)
        return await self._broadcast(key, MessageDeletedEvent(id=message_id, channel=key.topic))

    async def notify_typing(self, buffer: str) -> bool:
        """Tell the channel the local user is typing, throttled.

        Returns:
            True if a typing event was sent.
        """
        key = self.active_channel
        if key is None or not buffer.strip():
            return False

        now = self._clock()
        interval = self._config.typing.send_interval_ms / 1000
        if self._last_typing_sent is not None and now - self._last_typing_sent < interval:
            return False

        sent = await self._session.send(
            TypingEvent(user=self._config.user.identity, channel=key.topic)
        )
        if sent:
            self._last_typing_sent = now
        return sent

    async def _broadcast(
        self,
        key: ChannelKey,
        event: MessageEvent | MessageEditedEvent | MessageDeletedEvent,
    ) -> bool:
        # The user may have switched channels while persistence was in flight
        if self.active_channel != key:
            log.info(
                "broadcast_skipped_channel_switched",
                channel=str(key),
                event_type=event.type.value,
            )
            return False

        delivered = await self._session.send(event)
        if not delivered:
            log.warning("broadcast_not_delivered", channel=str(key), event_type=event.type.value)
        return delivered

    async def _resync(self, channel_key: ChannelKey) -> None:
        """Fill any gap left by a dropped connection."""
        try:
            await self.load_history()
        except ChatError as e:
            log.warning("resync_failed", channel=str(channel_key), error=str(e))

    def _require_channel(self) -> ChannelKey:
        key = self.active_channel
        if key is None:
            raise NoActiveChannelError("No channel is open")
        return key
