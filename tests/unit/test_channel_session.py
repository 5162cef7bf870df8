"""Tests for the channel session."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock

import pytest

from wryft_chat.adapters.transport.memory import LoopbackHub, LoopbackTransport
from wryft_chat.core.channel_session import ChannelSession, ConnectionStatus
from wryft_chat.core.message_store import MessageStore
from wryft_chat.core.typing_tracker import TypingTracker
from wryft_chat.models.channel import DirectMessage, ServerChannel
from wryft_chat.models.events import ChatEvent, MessageEvent, TypingEvent
from wryft_chat.utils.async_helpers import TransientNetworkError

if TYPE_CHECKING:
    from tests.conftest import FakeClock


@pytest.fixture
def store() -> MessageStore:
    return MessageStore()


@pytest.fixture
def typing(clock: FakeClock) -> TypingTracker:
    return TypingTracker(local_identity="alice#0001", clock=clock)


@pytest.fixture
def transport(hub: LoopbackHub) -> LoopbackTransport:
    return hub.transport("alice")


@pytest.fixture
def received() -> list[ChatEvent]:
    return []


@pytest.fixture
def session(
    transport: LoopbackTransport,
    store: MessageStore,
    typing: TypingTracker,
    received: list[ChatEvent],
) -> ChannelSession:
    return ChannelSession(transport, store, typing, on_event=received.append)


def frame(**fields: object) -> str:
    return json.dumps(fields)


class TestTopicMapping:
    """Tests for the channel-to-topic rule."""

    def test_server_channel_topic(self) -> None:
        assert ServerChannel("srv1", "general").topic == "srv1-general"

    def test_dm_topic(self) -> None:
        assert DirectMessage("d42").topic == "dm-d42"


class TestActivation:
    """Tests for the subscription lifecycle."""

    @pytest.mark.asyncio
    async def test_activate_subscribes_to_topic(
        self,
        session: ChannelSession,
        hub: LoopbackHub,
        transport: LoopbackTransport,
        general: ServerChannel,
    ) -> None:
        await session.activate(general)

        assert session.active_key == general
        assert session.topic == "srv1-general"
        assert hub.subscribers("srv1-general") == [transport]
        assert session.connection_status() == ConnectionStatus.CONNECTED

    @pytest.mark.asyncio
    async def test_switch_tears_down_old_subscription_first(
        self,
        store: MessageStore,
        typing: TypingTracker,
        general: ServerChannel,
        random_channel: ServerChannel,
    ) -> None:
        """The old topic is unsubscribed before the new one is subscribed."""
        calls: list[tuple[str, str]] = []
        transport = MagicMock()
        transport.is_connected = True
        transport.connect = AsyncMock(side_effect=lambda: calls.append(("connect", "")))
        transport.close = AsyncMock(side_effect=lambda: calls.append(("close", "")))
        transport.subscribe = AsyncMock(side_effect=lambda t, h: calls.append(("subscribe", t)))
        transport.unsubscribe = AsyncMock(side_effect=lambda t: calls.append(("unsubscribe", t)))

        session = ChannelSession(transport, store, typing)
        await session.activate(general)
        await session.activate(random_channel)

        assert calls == [
            ("connect", ""),
            ("subscribe", "srv1-general"),
            ("unsubscribe", "srv1-general"),
            ("close", ""),
            ("connect", ""),
            ("subscribe", "srv1-random"),
        ]

    @pytest.mark.asyncio
    async def test_activate_same_channel_is_noop(
        self, session: ChannelSession, hub: LoopbackHub, general: ServerChannel
    ) -> None:
        await session.activate(general)
        await session.activate(general)

        assert len(hub.subscribers("srv1-general")) == 1

    @pytest.mark.asyncio
    async def test_failed_connect_can_be_retried(
        self,
        store: MessageStore,
        typing: TypingTracker,
        general: ServerChannel,
    ) -> None:
        """A transport that fails to start leaves the session inactive."""
        transport = MagicMock()
        transport.is_connected = True
        transport.connect = AsyncMock(side_effect=[TransientNetworkError("down"), None])
        transport.subscribe = AsyncMock()
        session = ChannelSession(transport, store, typing)

        with pytest.raises(TransientNetworkError):
            await session.activate(general)

        assert session.active_key is None
        assert not session.is_connected
        transport.remove_reconnect_listener.assert_called_once()

        await session.activate(general)

        assert transport.connect.await_count == 2
        transport.subscribe.assert_awaited_once()
        assert session.active_key == general

    @pytest.mark.asyncio
    async def test_deactivate_releases_subscription(
        self,
        session: ChannelSession,
        hub: LoopbackHub,
        transport: LoopbackTransport,
        general: ServerChannel,
    ) -> None:
        await session.activate(general)
        await session.deactivate()

        assert session.active_key is None
        assert hub.subscribers("srv1-general") == []
        assert not transport.is_connected
        assert session.connection_status() == ConnectionStatus.CONNECTING

    @pytest.mark.asyncio
    async def test_switch_forgets_old_channel_messages(
        self,
        session: ChannelSession,
        hub: LoopbackHub,
        store: MessageStore,
        general: ServerChannel,
        random_channel: ServerChannel,
    ) -> None:
        await session.activate(general)
        await hub.deliver(
            "srv1-general",
            frame(type="message", id="m1", content="hi", author="bob#0002"),
        )
        assert store.count(general) == 1

        await session.activate(random_channel)

        assert store.count(general) == 0

    @pytest.mark.asyncio
    async def test_deactivate_when_inactive_is_noop(self, session: ChannelSession) -> None:
        await session.deactivate()
        assert session.active_key is None

    @pytest.mark.asyncio
    async def test_events_from_old_channel_do_not_leak(
        self,
        session: ChannelSession,
        hub: LoopbackHub,
        store: MessageStore,
        general: ServerChannel,
        random_channel: ServerChannel,
    ) -> None:
        await session.activate(general)
        await session.activate(random_channel)

        await hub.deliver(
            "srv1-general",
            frame(type="message", id="m1", content="x", author="bob#0002"),
        )

        assert store.get(general) == ()
        assert store.get(random_channel) == ()


class TestInboundDispatch:
    """Tests for routing inbound events."""

    @pytest.mark.asyncio
    async def test_message_event_appends_with_split_identity(
        self,
        session: ChannelSession,
        hub: LoopbackHub,
        store: MessageStore,
        general: ServerChannel,
    ) -> None:
        await session.activate(general)
        await hub.deliver(
            "srv1-general",
            frame(
                type="message",
                id="m1",
                channel="srv1-general",
                content="hi",
                author="bob#0002",
                timestamp="2026-01-01T00:00:00Z",
            ),
        )

        (message,) = store.get(general)
        assert message.id == "m1"
        assert message.author == "bob"
        assert message.author_discriminator == "0002"
        assert message.text == "hi"
        assert message.timestamp == "2026-01-01T00:00:00Z"

    @pytest.mark.asyncio
    async def test_duplicate_delivery_is_tolerated(
        self,
        session: ChannelSession,
        hub: LoopbackHub,
        store: MessageStore,
        general: ServerChannel,
    ) -> None:
        await session.activate(general)
        payload = frame(type="message", id="m1", content="hi", author="bob#0002")

        await hub.deliver("srv1-general", payload)
        await hub.deliver("srv1-general", payload)

        assert store.count(general) == 1

    @pytest.mark.asyncio
    async def test_edit_and_delete_events(
        self,
        session: ChannelSession,
        hub: LoopbackHub,
        store: MessageStore,
        general: ServerChannel,
    ) -> None:
        await session.activate(general)
        await hub.deliver("srv1-general", frame(type="message", id="m1", content="a", author="b#1"))
        await hub.deliver("srv1-general", frame(type="message_edited", id="m1", content="b"))

        message = store.find(general, "m1")
        assert message is not None
        assert message.text == "b"
        assert message.edited

        await hub.deliver("srv1-general", frame(type="message_deleted", id="m1"))
        await hub.deliver("srv1-general", frame(type="message_deleted", id="m1"))

        message = store.find(general, "m1")
        assert message is not None
        assert message.deleted
        assert store.count(general) == 1

    @pytest.mark.asyncio
    async def test_stale_edit_is_ignored(
        self,
        session: ChannelSession,
        hub: LoopbackHub,
        store: MessageStore,
        general: ServerChannel,
    ) -> None:
        await session.activate(general)
        await hub.deliver("srv1-general", frame(type="message_edited", id="ghost", content="x"))

        assert store.count(general) == 0

    @pytest.mark.asyncio
    async def test_typing_then_message_clears_typer(
        self,
        session: ChannelSession,
        hub: LoopbackHub,
        typing: TypingTracker,
        general: ServerChannel,
    ) -> None:
        await session.activate(general)
        await hub.deliver("srv1-general", frame(type="typing", user="bob#0002"))
        assert typing.active_typers(general) == ["bob"]

        await hub.deliver(
            "srv1-general",
            frame(type="message", id="m1", content="x", author="bob#0002"),
        )
        assert typing.active_typers(general) == []

    @pytest.mark.asyncio
    async def test_join_and_leave_do_not_mutate_state(
        self,
        session: ChannelSession,
        hub: LoopbackHub,
        store: MessageStore,
        typing: TypingTracker,
        received: list[ChatEvent],
        general: ServerChannel,
    ) -> None:
        await session.activate(general)
        await hub.deliver("srv1-general", frame(type="user_joined", user="bob"))
        await hub.deliver("srv1-general", frame(type="user_left", user="bob"))

        assert store.count(general) == 0
        assert typing.active_typers(general) == []
        assert [e.type.value for e in received] == ["user_joined", "user_left"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            b"\xff\xfe",
            json.dumps([1, 2, 3]),
            json.dumps({"type": "reaction_added", "id": "m1"}),
            json.dumps({"type": "message", "content": "no id", "author": "bob#0002"}),
            json.dumps({"content": "no type"}),
        ],
    )
    async def test_malformed_frames_are_dropped(
        self,
        raw: str | bytes,
        session: ChannelSession,
        hub: LoopbackHub,
        store: MessageStore,
        received: list[ChatEvent],
        general: ServerChannel,
    ) -> None:
        """Protocol violations never crash the session."""
        await session.activate(general)
        await hub.deliver("srv1-general", raw)

        assert store.count(general) == 0
        assert received == []

        # The session keeps working afterwards
        await hub.deliver(
            "srv1-general",
            frame(type="message", id="m1", content="ok", author="b#1"),
        )
        assert store.count(general) == 1

    @pytest.mark.asyncio
    async def test_event_for_other_channel_is_dropped(
        self,
        session: ChannelSession,
        hub: LoopbackHub,
        store: MessageStore,
        general: ServerChannel,
    ) -> None:
        await session.activate(general)
        await hub.deliver(
            "srv1-general",
            frame(type="message", id="m1", channel="srv1-random", content="x", author="b#1"),
        )

        assert store.count(general) == 0


class TestSend:
    """Tests for outbound events."""

    @pytest.mark.asyncio
    async def test_send_publishes_payload(
        self, session: ChannelSession, hub: LoopbackHub, general: ServerChannel
    ) -> None:
        await session.activate(general)

        sent = await session.send(TypingEvent(user="alice#0001", channel="srv1-general"))

        assert sent is True
        assert hub.published == [
            ("srv1-general", {"type": "typing", "channel": "srv1-general", "user": "alice#0001"})
        ]

    @pytest.mark.asyncio
    async def test_send_without_channel_returns_false(self, session: ChannelSession) -> None:
        assert await session.send(TypingEvent(user="alice#0001")) is False

    @pytest.mark.asyncio
    async def test_send_when_disconnected_returns_false(
        self,
        session: ChannelSession,
        hub: LoopbackHub,
        transport: LoopbackTransport,
        general: ServerChannel,
    ) -> None:
        await session.activate(general)
        transport.drop_connection()

        sent = await session.send(MessageEvent(id="m1", content="hi", author="alice#0001"))

        assert sent is False
        assert hub.published == []
        assert session.connection_status() == ConnectionStatus.CONNECTING

    @pytest.mark.asyncio
    async def test_send_for_other_channel_returns_false(
        self, session: ChannelSession, hub: LoopbackHub, general: ServerChannel
    ) -> None:
        await session.activate(general)

        assert await session.send(TypingEvent(user="alice#0001", channel="srv1-random")) is False
        assert hub.published == []

    @pytest.mark.asyncio
    async def test_send_never_raises_on_transport_error(
        self, store: MessageStore, typing: TypingTracker, general: ServerChannel
    ) -> None:
        transport = AsyncMock()
        transport.is_connected = True
        transport.add_reconnect_listener = MagicMock()
        transport.publish.side_effect = TransientNetworkError("socket closed")

        session = ChannelSession(transport, store, typing)
        await session.activate(general)

        assert await session.send(TypingEvent(user="alice#0001")) is False

    @pytest.mark.asyncio
    async def test_own_typing_echo_is_suppressed(
        self,
        session: ChannelSession,
        typing: TypingTracker,
        general: ServerChannel,
    ) -> None:
        await session.activate(general)
        await session.send(TypingEvent(user="alice#0001", channel="srv1-general"))

        assert typing.active_typers(general) == []


class TestReconnect:
    """Tests for resubscription after reconnect."""

    @pytest.mark.asyncio
    async def test_resubscribes_on_reconnect(
        self,
        session: ChannelSession,
        hub: LoopbackHub,
        transport: LoopbackTransport,
        store: MessageStore,
        general: ServerChannel,
    ) -> None:
        await session.activate(general)
        transport.drop_connection()
        assert hub.subscribers("srv1-general") == []

        await transport.restore_connection()

        assert hub.subscribers("srv1-general") == [transport]
        await hub.deliver(
            "srv1-general",
            frame(type="message", id="m9", content="back", author="b#1"),
        )
        assert store.count(general) == 1

    @pytest.mark.asyncio
    async def test_resubscribe_listeners_run_after_resubscribe(
        self,
        session: ChannelSession,
        hub: LoopbackHub,
        transport: LoopbackTransport,
        general: ServerChannel,
    ) -> None:
        seen: list[tuple[ServerChannel, int]] = []

        async def listener(key: ServerChannel) -> None:
            seen.append((key, len(hub.subscribers(key.topic))))

        session.add_resubscribe_listener(listener)
        await session.activate(general)
        transport.drop_connection()
        await transport.restore_connection()

        assert seen == [(general, 1)]

    @pytest.mark.asyncio
    async def test_reconnect_for_other_topic_is_ignored(
        self, session: ChannelSession, hub: LoopbackHub, general: ServerChannel
    ) -> None:
        await session.activate(general)

        await session._on_reconnect("srv1-random")

        assert hub.subscribers("srv1-random") == []
