"""Per-channel ordered message list with identity-keyed merge.

The store is the only owner of each channel's message sequence. Every
message, whether it was sent locally or by another participant, enters
through :meth:`MessageStore.append`, which is idempotent on the message id.

Deleted messages are kept as tombstones (``deleted=True``) so the list
never shrinks under the reader and repeated deletes stay no-ops.
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from wryft_chat.models.channel import ChannelKey
    from wryft_chat.models.message import Message

log = structlog.get_logger()


class MessageStore:
    """Ordered, deduplicated message sequences keyed by channel.

    Invariants:
    - Within one channel, a message id appears at most once.
    - Order is receipt order. Messages are never re-sorted, whatever
      their ``timestamp`` says.

    All operations are total: unknown channels and ids are no-ops and
    never raise.

    Example:
        store = MessageStore()
        store.append(key, message)
        store.apply_edit(key, message.id, "fixed typo")
        for message in store.get(key):
            render(message)
    """

    def __init__(self) -> None:
        self._messages: dict[ChannelKey, list[Message]] = {}
        # channel -> message id -> position in self._messages[channel]
        self._positions: dict[ChannelKey, dict[str, int]] = {}

    def append(self, channel_key: ChannelKey, message: Message) -> bool:
        """Append a message unless its id is already present.

        Args:
            channel_key: Channel to append to.
            message: Message with a server-issued id.

        Returns:
            True if the message was inserted, False if it was a duplicate.
        """
        positions = self._positions.setdefault(channel_key, {})
        if message.id in positions:
            log.debug("duplicate_message_ignored", channel=str(channel_key), message_id=message.id)
            return False

        messages = self._messages.setdefault(channel_key, [])
        positions[message.id] = len(messages)
        messages.append(message)
        log.debug("message_appended", channel=str(channel_key), message_id=message.id)
        return True

    def apply_edit(self, channel_key: ChannelKey, message_id: str, new_text: str) -> bool:
        """Replace a message's text and mark it edited.

        An edit for an id that has not been appended yet is a stale event:
        it is logged and ignored. Edits to tombstoned messages are ignored.

        Returns:
            True if the message was updated.
        """
        position = self._positions.get(channel_key, {}).get(message_id)
        if position is None:
            log.warning("stale_edit_ignored", channel=str(channel_key), message_id=message_id)
            return False

        messages = self._messages[channel_key]
        current = messages[position]
        if current.deleted:
            log.debug("edit_on_deleted_ignored", channel=str(channel_key), message_id=message_id)
            return False

        messages[position] = dataclasses.replace(current, text=new_text, edited=True)
        log.debug("message_edited", channel=str(channel_key), message_id=message_id)
        return True

    def apply_delete(self, channel_key: ChannelKey, message_id: str) -> bool:
        """Tombstone a message. Repeated deletes are no-ops.

        Returns:
            True if the message transitioned to deleted.
        """
        position = self._positions.get(channel_key, {}).get(message_id)
        if position is None:
            log.warning("stale_delete_ignored", channel=str(channel_key), message_id=message_id)
            return False

        messages = self._messages[channel_key]
        current = messages[position]
        if current.deleted:
            return False

        messages[position] = dataclasses.replace(current, deleted=True)
        log.debug("message_deleted", channel=str(channel_key), message_id=message_id)
        return True

    def get(self, channel_key: ChannelKey) -> tuple[Message, ...]:
        """Return the channel's messages in receipt order, tombstones included."""
        return tuple(self._messages.get(channel_key, ()))

    def visible(self, channel_key: ChannelKey) -> tuple[Message, ...]:
        """Return the channel's messages without tombstones."""
        return tuple(m for m in self._messages.get(channel_key, ()) if not m.deleted)

    def find(self, channel_key: ChannelKey, message_id: str) -> Message | None:
        """Look up a message by id."""
        position = self._positions.get(channel_key, {}).get(message_id)
        if position is None:
            return None
        return self._messages[channel_key][position]

    def __contains__(self, item: tuple[ChannelKey, str]) -> bool:
        channel_key, message_id = item
        return message_id in self._positions.get(channel_key, {})

    def count(self, channel_key: ChannelKey) -> int:
        """Return the number of messages held for a channel."""
        return len(self._messages.get(channel_key, ()))

    def clear(self, channel_key: ChannelKey) -> None:
        """Forget everything held for a channel."""
        self._messages.pop(channel_key, None)
        self._positions.pop(channel_key, None)
