"""WebSocket transport: one gateway connection per subscribed topic.

The gateway is addressed as ``{url}?channel={topic}&user={username}``. Each
topic runs a receive loop in its own task that reconnects with exponential
backoff when the socket drops. After a successful reconnect the topic's
handler is dropped and the reconnect listeners are told, so the subscriber
has to subscribe again.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
from collections.abc import Callable, Mapping
from contextlib import AbstractAsyncContextManager
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

import structlog
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

if TYPE_CHECKING:
    from ...config.schema import GatewayConfig
    from ...interfaces.transport import FrameHandler, ReconnectListener

log = structlog.get_logger()

Connector = Callable[[str], AbstractAsyncContextManager[Any]]


class WebSocketTransport:
    """Publish/subscribe over the chat gateway's websocket endpoint.

    Example:
        transport = WebSocketTransport(config.gateway, username="alice")
        await transport.connect()
        await transport.subscribe("srv1-general", handle_frame)
        await transport.publish("srv1-general", {"type": "typing", ...})
        await transport.close()
    """

    def __init__(
        self,
        config: GatewayConfig,
        username: str,
        connector: Connector | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            config: Gateway URL and reconnect policy.
            username: Sent as the ``user`` query parameter.
            connector: Opens a websocket for a URL; defaults to
                ``websockets.connect``.
        """
        self._config = config
        self._username = username
        self._connector: Connector = connector or websockets.connect

        self._running = False
        self._handlers: dict[str, FrameHandler] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._sockets: dict[str, Any] = {}
        self._reconnect_listeners: list[ReconnectListener] = []

    @property
    def is_connected(self) -> bool:
        return self._running and bool(self._sockets)

    def url_for(self, topic: str) -> str:
        """Return the gateway URL for a topic."""
        query = urlencode({"channel": topic, "user": self._username})
        return f"{self._config.url}?{query}"

    def reconnect_delay(self, attempt: int) -> float:
        """Return the backoff before reconnect attempt ``attempt`` (0-based)."""
        return min(self._config.base_delay * (2**attempt), self._config.max_delay)

    async def connect(self) -> None:
        self._running = True
        log.debug("websocket_transport_started", url=self._config.url)

    async def close(self) -> None:
        self._running = False
        tasks = list(self._tasks.values())
        self._tasks.clear()
        self._handlers.clear()

        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task

        self._sockets.clear()
        log.debug("websocket_transport_closed")

    async def subscribe(self, topic: str, handler: FrameHandler) -> None:
        self._handlers[topic] = handler
        task = self._tasks.get(topic)
        if task is not None and not task.done():
            return

        self._tasks[topic] = asyncio.create_task(self._run(topic), name=f"ws_{topic}")
        log.info("websocket_subscribed", topic=topic)

    async def unsubscribe(self, topic: str) -> None:
        self._handlers.pop(topic, None)
        task = self._tasks.pop(topic, None)
        if task is None:
            return

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        self._sockets.pop(topic, None)
        log.info("websocket_unsubscribed", topic=topic)

    async def publish(self, topic: str, payload: Mapping[str, Any]) -> bool:
        ws = self._sockets.get(topic)
        if ws is None:
            log.debug("websocket_publish_not_connected", topic=topic)
            return False

        try:
            await ws.send(json.dumps(dict(payload)))
        except ConnectionClosed as e:
            log.warning("websocket_publish_failed", topic=topic, error=str(e))
            return False
        return True

    def add_reconnect_listener(self, listener: ReconnectListener) -> None:
        if listener not in self._reconnect_listeners:
            self._reconnect_listeners.append(listener)

    def remove_reconnect_listener(self, listener: ReconnectListener) -> None:
        with contextlib.suppress(ValueError):
            self._reconnect_listeners.remove(listener)

    async def _run(self, topic: str) -> None:
        """Receive loop for one topic, reconnecting until cancelled or exhausted."""
        url = self.url_for(topic)
        attempt = 0
        connected_before = False

        while self._running:
            try:
                async with self._connector(url) as ws:
                    self._sockets[topic] = ws
                    attempt = 0
                    log.info("websocket_connected", topic=topic, reconnect=connected_before)

                    if connected_before:
                        await self._notify_reconnected(topic)
                    connected_before = True

                    async for raw in ws:
                        await self._deliver(topic, raw)

                log.info("websocket_closed_by_server", topic=topic)
            except (OSError, WebSocketException) as e:
                log.warning("websocket_connection_error", topic=topic, error=str(e))
            finally:
                self._sockets.pop(topic, None)

            if not self._running:
                break
            if attempt >= self._config.max_attempts:
                log.error(
                    "websocket_reconnect_exhausted",
                    topic=topic,
                    attempts=self._config.max_attempts,
                )
                break

            delay = self.reconnect_delay(attempt)
            attempt += 1
            log.info(
                "websocket_reconnecting",
                topic=topic,
                delay=delay,
                attempt=attempt,
                max_attempts=self._config.max_attempts,
            )
            await asyncio.sleep(delay)

    async def _deliver(self, topic: str, raw: str | bytes) -> None:
        handler = self._handlers.get(topic)
        if handler is None:
            return
        try:
            await handler(raw)
        except Exception as e:
            # One bad frame must not end the receive loop
            log.exception("frame_handler_failed", topic=topic, error=str(e))

    async def _notify_reconnected(self, topic: str) -> None:
        # Subscriptions do not survive a reconnect
        self._handlers.pop(topic, None)
        log.info("transport_reconnected", topic=topic)

        for listener in list(self._reconnect_listeners):
            try:
                await listener(topic)
            except Exception as e:
                log.exception("reconnect_listener_failed", topic=topic, error=str(e))
