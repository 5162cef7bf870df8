"""Abstract interface for the real-time publish/subscribe transport."""

from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Protocol

# Receives one raw frame (JSON text as delivered by the wire)
FrameHandler = Callable[[str | bytes], Awaitable[None]]

# Receives the topic whose connection was re-established
ReconnectListener = Callable[[str], Awaitable[None]]


class Transport(Protocol):
    """Per-topic publish/subscribe primitive.

    Delivery is ordered per topic but not exactly-once: consumers must
    tolerate duplicate frames. Reconnection is owned by the transport; after
    it reconnects it calls every registered reconnect listener, and the
    subscriber is expected to subscribe again.
    """

    @property
    def is_connected(self) -> bool:
        """Return True while at least one subscription has a live connection."""
        ...

    async def connect(self) -> None:
        """
        Open the underlying connection.

        Raises:
            TransientNetworkError: If the transport cannot be started
        """
        ...

    async def close(self) -> None:
        """Release the connection and drop every subscription."""
        ...

    async def subscribe(self, topic: str, handler: FrameHandler) -> None:
        """
        Deliver frames published on ``topic`` to ``handler``.

        Subscribing again to the same topic replaces the handler.
        """
        ...

    async def unsubscribe(self, topic: str) -> None:
        """Stop delivering frames for ``topic``. Unknown topics are ignored."""
        ...

    async def publish(self, topic: str, payload: Mapping[str, Any]) -> bool:
        """
        Publish a JSON-shaped event.

        Returns:
            False if the topic has no live connection; never raises for that
        """
        ...

    def add_reconnect_listener(self, listener: ReconnectListener) -> None:
        """Register a callback fired after a connection is re-established."""
        ...

    def remove_reconnect_listener(self, listener: ReconnectListener) -> None:
        """Unregister a reconnect callback. Unknown listeners are ignored."""
        ...
