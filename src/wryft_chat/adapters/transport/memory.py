"""In-process transport for tests, demos and offline runs.

A :class:`LoopbackHub` fans published payloads out to every transport
subscribed to the topic, the publisher included, the way the gateway
echoes broadcasts back to their sender. Payloads go through JSON so
handlers see the same text frames they would get off a socket.
"""

from __future__ import annotations

import contextlib
import json
from collections import defaultdict
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from ...interfaces.transport import FrameHandler, ReconnectListener

log = structlog.get_logger()


class LoopbackHub:
    """Topic registry shared by a group of loopback transports."""

    def __init__(self) -> None:
        self._subscribers: defaultdict[str, list[LoopbackTransport]] = defaultdict(list)
        self.published: list[tuple[str, dict[str, Any]]] = []

    def transport(self, name: str = "loopback") -> LoopbackTransport:
        """Create a transport attached to this hub."""
        return LoopbackTransport(self, name=name)

    def subscribers(self, topic: str) -> list[LoopbackTransport]:
        return list(self._subscribers.get(topic, ()))

    async def publish(self, topic: str, payload: Mapping[str, Any]) -> None:
        frame = json.dumps(dict(payload))
        self.published.append((topic, json.loads(frame)))
        await self.deliver(topic, frame)

    async def deliver(self, topic: str, frame: str | bytes) -> None:
        """Hand a raw frame to every subscriber of a topic, in subscription order."""
        for transport in self.subscribers(topic):
            await transport.receive(topic, frame)

    def _attach(self, topic: str, transport: LoopbackTransport) -> None:
        if transport not in self._subscribers[topic]:
            self._subscribers[topic].append(transport)

    def _detach(self, topic: str, transport: LoopbackTransport) -> None:
        subscribers = self._subscribers.get(topic)
        if not subscribers:
            return
        with contextlib.suppress(ValueError):
            subscribers.remove(transport)
        if not subscribers:
            del self._subscribers[topic]


class LoopbackTransport:
    """Transport implementation backed by a :class:`LoopbackHub`.

    ``drop_connection`` and ``restore_connection`` simulate a network
    outage: dropping loses every subscription, restoring tells the
    reconnect listeners which topics were lost.
    """

    def __init__(self, hub: LoopbackHub, name: str = "loopback") -> None:
        self._hub = hub
        self._name = name
        self._connected = False
        self._handlers: dict[str, FrameHandler] = {}
        self._lost_topics: list[str] = []
        self._reconnect_listeners: list[ReconnectListener] = []

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def topics(self) -> list[str]:
        return list(self._handlers)

    async def connect(self) -> None:
        self._connected = True
        log.debug("loopback_connected", transport=self._name)

    async def close(self) -> None:
        for topic in list(self._handlers):
            await self.unsubscribe(topic)
        self._lost_topics.clear()
        self._connected = False
        log.debug("loopback_closed", transport=self._name)

    async def subscribe(self, topic: str, handler: FrameHandler) -> None:
        self._handlers[topic] = handler
        self._hub._attach(topic, self)

    async def unsubscribe(self, topic: str) -> None:
        if self._handlers.pop(topic, None) is not None:
            self._hub._detach(topic, self)

    async def publish(self, topic: str, payload: Mapping[str, Any]) -> bool:
        if not self._connected:
            return False
        await self._hub.publish(topic, payload)
        return True

    def add_reconnect_listener(self, listener: ReconnectListener) -> None:
        if listener not in self._reconnect_listeners:
            self._reconnect_listeners.append(listener)

    def remove_reconnect_listener(self, listener: ReconnectListener) -> None:
        with contextlib.suppress(ValueError):
            self._reconnect_listeners.remove(listener)

    async def receive(self, topic: str, frame: str | bytes) -> None:
        handler = self._handlers.get(topic)
        if handler is not None and self._connected:
            await handler(frame)

    def drop_connection(self) -> None:
        """Lose the connection along with every subscription."""
        self._lost_topics = list(self._handlers)
        for topic in self._lost_topics:
            self._handlers.pop(topic, None)
            self._hub._detach(topic, self)
        self._connected = False
        log.info("loopback_connection_dropped", transport=self._name, topics=self._lost_topics)

    async def restore_connection(self) -> None:
        """Reconnect and notify listeners for each topic that was lost."""
        self._connected = True
        lost, self._lost_topics = self._lost_topics, []
        log.info("transport_reconnected", transport=self._name, topics=lost)
        for topic in lost:
            for listener in list(self._reconnect_listeners):
                await listener(topic)
