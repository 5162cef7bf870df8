"""Line-oriented terminal client.

This module implements the ChatClient that backs the ``wryft-chat``
command. It:
- Opens one channel through the ChatController
- Prints history and every inbound event as it is applied
- Sends each input line, with ``/edit``, ``/delete``, ``/retry`` and
  ``/quit`` commands
- Runs the typing expiry sweeper
- Handles graceful shutdown on signals (SIGTERM, SIGINT)
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
import sys
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

import structlog

from wryft_chat.core.controller import ChatController
from wryft_chat.core.mentions import render_mentions
from wryft_chat.models.events import (
    ChatEvent,
    MessageDeletedEvent,
    MessageEditedEvent,
    MessageEvent,
    TypingEvent,
)
from wryft_chat.utils.async_helpers import ChatError, with_timeout

if TYPE_CHECKING:
    from wryft_chat.adapters.rest.client import RestClient
    from wryft_chat.config.schema import ClientConfig
    from wryft_chat.interfaces.transport import Transport
    from wryft_chat.models.channel import ChannelKey
    from wryft_chat.models.message import Message

log = structlog.get_logger()

LineReader = Callable[[], Awaitable[str | None]]
Writer = Callable[[str], None]

HELP_TEXT = (
    "Commands: /edit <id> <text>, /delete <id>, /retry, /who, /quit. "
    "Any other line is sent as a message."
)


class ClientError(ChatError):
    """Base exception for terminal client errors."""


class StartupError(ClientError):
    """Failed to open the channel."""


async def read_stdin_line() -> str | None:
    """Read one line from stdin without blocking the event loop.

    Returns:
        The line without its newline, or None at end of input.
    """
    line = await asyncio.to_thread(sys.stdin.readline)
    if not line:
        return None
    return line.rstrip("\n")


def format_message(message: Message, highlight: bool = False) -> str:
    """Render a message as one terminal line.

    Mentions are shown in brackets; messages that mention the local user
    are prefixed with ``!``.
    """
    if message.deleted:
        return f"[{message.id}] {message.author}: (message deleted)"

    body = "".join(
        f"[{segment.text}]" if segment.is_mention else segment.text
        for segment in render_mentions(message.text)
    )
    suffix = " (edited)" if message.edited else ""
    marker = "! " if highlight else ""
    return f"{marker}[{message.id}] {message.author}: {body}{suffix}"


class ChatClient:
    """Terminal front end for a single channel.

    Example:
        client = await create_client(config, parse_channel_key("srv1/general"))
        await client.start()  # Blocks until /quit, end of input or a signal
    """

    DEFAULT_SHUTDOWN_TIMEOUT = 5

    def __init__(
        self,
        config: ClientConfig,
        channel_key: ChannelKey,
        rest: RestClient,
        transport: Transport,
        read_line: LineReader = read_stdin_line,
        write: Writer = print,
    ) -> None:
        """Initialize the client.

        Args:
            config: Client configuration
            channel_key: Channel to open
            rest: Persistence and roster backend; closed on shutdown
            transport: Real-time transport
            read_line: Returns the next input line, or None at end of input
            write: Output sink for rendered lines
        """
        self._config = config
        self._channel_key = channel_key
        self._rest = rest
        self._read_line = read_line
        self._write = write
        self._controller = ChatController(
            config,
            persistence=rest,
            transport=transport,
            roster=rest,
            on_event=self._on_event,
        )

        self._running = False
        self._shutdown_event: asyncio.Event | None = None
        self._sweeper_task: asyncio.Task[None] | None = None
        self._last_typing_text = ""

    @property
    def controller(self) -> ChatController:
        return self._controller

    @property
    def is_running(self) -> bool:
        """Return True if the client is currently running."""
        return self._running

    async def start(self) -> None:
        """Open the channel and process input until shutdown.

        Raises:
            StartupError: If the channel cannot be opened
        """
        if self._running:
            log.warning("client_already_running")
            return

        log.info("client_starting", channel=str(self._channel_key), user=self._config.user.identity)
        self._shutdown_event = asyncio.Event()

        try:
            await self._controller.open_channel(self._channel_key)
        except ChatError as e:
            log.exception("client_startup_failed", error=str(e))
            await self._cleanup()
            raise StartupError(f"Failed to open {self._channel_key}: {e}") from e

        self._running = True
        self._setup_signal_handlers()
        self._sweeper_task = asyncio.create_task(
            self._controller.typing.run_sweeper(self._config.typing.sweep_interval_ms / 1000),
            name="typing_sweeper",
        )

        self._write(f"Joined {self._channel_key} ({self._controller.connection_status()})")
        for message in self._controller.messages():
            self._write(format_message(message, self._controller.is_mention(message)))
        self._write(HELP_TEXT)
        log.info("client_started", history=len(self._controller.messages()))

        await self._run_until_shutdown()
        await self.stop()

    async def stop(self) -> None:
        """Release the channel and close the backend connections."""
        if not self._running:
            return

        log.info("client_stopping")
        if self._shutdown_event:
            self._shutdown_event.set()

        await self._cleanup()
        self._running = False
        log.info("client_stopped")

    async def handle_line(self, line: str) -> bool:
        """Execute one input line.

        Returns:
            False when the client should exit.
        """
        stripped = line.strip()
        if not stripped:
            return True

        command, _, rest = stripped.partition(" ")
        if command == "/quit":
            return False
        if command == "/edit":
            message_id, _, text = rest.strip().partition(" ")
            if not message_id or not text.strip():
                self._write("Usage: /edit <id> <text>")
                return True
            await self._run_command(self._controller.edit_message(message_id, text.strip()))
            return True
        if command == "/delete":
            message_id = rest.strip()
            if not message_id:
                self._write("Usage: /delete <id>")
                return True
            await self._run_command(self._controller.delete_message(message_id))
            return True
        if command == "/who":
            names = ", ".join(m.username for m in self._controller.members) or "(no roster)"
            self._write(f"Members: {names}")
            return True
        if command == "/retry":
            await self._send_composed()
            return True

        self._controller.composer.set_text(line)
        await self._send_composed()
        return True

    async def _send_composed(self) -> None:
        composer = self._controller.composer
        if composer.is_autocomplete_open:
            hints = " ".join(c.mention_text for c in composer.candidates)
            self._write(f"Mention suggestions: {hints}")
            composer.dismiss()

        text = composer.submit()
        if text is None:
            return

        try:
            await self._controller.send_message(text)
        except ChatError as e:
            composer.restore(text)
            log.warning("send_message_failed", error=str(e))
            self._write(f"Failed to send ({e}); type /retry to send it again")

    async def _run_command(self, command: Awaitable[bool]) -> None:
        try:
            delivered = await command
        except ChatError as e:
            log.warning("command_failed", error=str(e))
            self._write(f"Command failed: {e}")
            return
        if not delivered:
            self._write("Saved, but not broadcast: the connection is down")

    def _on_event(self, event: ChatEvent) -> None:
        key = self._controller.active_channel
        if key is None:
            return

        if isinstance(event, (MessageEvent, MessageEditedEvent, MessageDeletedEvent)):
            message = self._controller.store.find(key, event.id)
            if message is not None:
                self._write(format_message(message, self._controller.is_mention(message)))
        elif isinstance(event, TypingEvent):
            text = self._controller.typing_text()
            if text and text != self._last_typing_text:
                self._write(text)
            self._last_typing_text = text

    async def _input_loop(self) -> None:
        while True:
            line = await self._read_line()
            if line is None:
                log.info("input_closed")
                return
            if not await self.handle_line(line):
                return

    async def _run_until_shutdown(self) -> None:
        assert self._shutdown_event is not None
        input_task = asyncio.create_task(self._input_loop(), name="input_loop")
        shutdown_task = asyncio.create_task(self._shutdown_event.wait(), name="shutdown_wait")

        done, pending = await asyncio.wait(
            {input_task, shutdown_task},
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in pending:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        for task in done:
            task.result()

    async def _cleanup(self) -> None:
        """Clean up resources."""
        log.debug("cleaning_up_resources")

        if self._sweeper_task and not self._sweeper_task.done():
            self._sweeper_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper_task

        try:
            await with_timeout(
                self._controller.close(),
                self.DEFAULT_SHUTDOWN_TIMEOUT,
                "Timed out closing the channel",
            )
        except ChatError as e:
            log.warning("channel_close_error", error=str(e))

        await self._rest.aclose()

    def _setup_signal_handlers(self) -> None:
        """Set up signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._handle_signal, sig)
            except (NotImplementedError, RuntimeError):
                # Not supported outside the main thread or on some platforms
                continue
            log.debug("signal_handler_registered", signal=sig.name)

    def _handle_signal(self, sig: signal.Signals) -> None:
        log.info("received_signal", signal=sig.name)
        if self._shutdown_event:
            self._shutdown_event.set()


async def create_client(config: ClientConfig, channel_key: ChannelKey) -> ChatClient:
    """Factory function to create a ChatClient with its adapters.

    Args:
        config: Client configuration
        channel_key: Channel to open

    Returns:
        Configured ChatClient instance
    """
    # Imported here so the core does not load network libraries on import
    from wryft_chat.adapters.rest.client import RestClient
    from wryft_chat.adapters.transport.websocket import WebSocketTransport

    rest = RestClient(config.api, config.user, retry=config.retry, roster=config.roster)
    transport = WebSocketTransport(config.gateway, username=config.user.username)
    return ChatClient(config, channel_key, rest, transport)
