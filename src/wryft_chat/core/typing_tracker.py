"""Short-lived "user is typing" presence with automatic expiry.

Expiry is kept as data: each entry carries an ``expires_at`` instant on an
injectable clock, and queries drop expired entries before answering. A
sweeper coroutine is only needed to push change notifications to a UI, not
for correctness, and tests drive time through the clock alone.
"""

from __future__ import annotations

import asyncio
import dataclasses
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

import structlog

from wryft_chat.models.presence import TypingEntry

if TYPE_CHECKING:
    from wryft_chat.models.channel import ChannelKey

log = structlog.get_logger()

DEFAULT_TYPING_WINDOW = 3.0  # seconds

ChangeCallback = Callable[["ChannelKey"], None]


def typing_indicator_text(names: list[str]) -> str:
    """Render the typing line for a list of display names.

    0 names: empty string; 1: "<a> is typing…"; 2: "<a> and <b> are
    typing…"; 3 or more: "Several people are typing…".
    """
    if not names:
        return ""
    if len(names) == 1:
        return f"{names[0]} is typing…"
    if len(names) == 2:
        return f"{names[0]} and {names[1]} are typing…"
    return "Several people are typing…"


class TypingTracker:
    """Tracks who is typing, per channel, in order of arrival.

    State machine per (channel, user):
    - Idle -> Active on a ``typing`` event from anyone but the local user
    - Active -> Active on another ``typing`` event: the expiry is pushed
      back, the entry keeps its position and is never duplicated
    - Active -> Idle when the window elapses, or at once when that user's
      message arrives

    Example:
        tracker = TypingTracker(local_identity="alice#0001")
        tracker.record(key, "bob#0002")
        tracker.active_typers(key)  # ["bob"]
    """

    def __init__(
        self,
        local_identity: str,
        window: float = DEFAULT_TYPING_WINDOW,
        clock: Callable[[], float] = time.monotonic,
        on_change: ChangeCallback | None = None,
    ) -> None:
        """Initialize the tracker.

        Args:
            local_identity: ``username#discriminator`` of the local user;
                typing events from this identity are never recorded.
            window: Seconds an entry stays active after its latest event.
            clock: Monotonic clock returning seconds.
            on_change: Called with the channel key whenever its visible set
                of typers changes.
        """
        self._local_identity = local_identity
        self._window = window
        self._clock = clock
        self._on_change = on_change
        # Dicts preserve first-arrival order; refreshing keeps the slot
        self._entries: dict[ChannelKey, dict[str, TypingEntry]] = {}

    @property
    def window(self) -> float:
        """Return the active window in seconds."""
        return self._window

    def record(self, channel_key: ChannelKey, user_identity: str) -> bool:
        """Register a ``typing`` event.

        Returns:
            True if the user became newly visible as typing.
        """
        if user_identity == self._local_identity:
            return False

        self._prune(channel_key)
        entries = self._entries.setdefault(channel_key, {})
        expires_at = self._clock() + self._window

        existing = entries.get(user_identity)
        if existing is not None:
            entries[user_identity] = dataclasses.replace(existing, expires_at=expires_at)
            return False

        entries[user_identity] = TypingEntry(
            channel_key=channel_key,
            user_identity=user_identity,
            expires_at=expires_at,
        )
        log.debug("typing_started", channel=str(channel_key), user=user_identity)
        self._notify(channel_key)
        return True

    def clear(self, channel_key: ChannelKey, user_identity: str) -> bool:
        """Remove a user at once (their message superseded the typing state).

        Returns:
            True if the user was being shown as typing.
        """
        entries = self._entries.get(channel_key)
        if not entries or entries.pop(user_identity, None) is None:
            return False
        log.debug("typing_cleared", channel=str(channel_key), user=user_identity)
        self._notify(channel_key)
        return True

    def entries(self, channel_key: ChannelKey) -> list[TypingEntry]:
        """Return the live entries of a channel, in arrival order."""
        self._prune(channel_key)
        return list(self._entries.get(channel_key, {}).values())

    def active_typers(self, channel_key: ChannelKey) -> list[str]:
        """Return display names (discriminator stripped), in arrival order."""
        return [entry.display_name for entry in self.entries(channel_key)]

    def indicator_text(self, channel_key: ChannelKey) -> str:
        """Return the rendered typing line for a channel."""
        return typing_indicator_text(self.active_typers(channel_key))

    def expire(self) -> list[ChannelKey]:
        """Drop expired entries in every channel.

        Returns:
            Channels whose set of typers changed.
        """
        return [key for key in list(self._entries) if self._prune(key)]

    def reset(self, channel_key: ChannelKey) -> None:
        """Forget all typers of a channel (e.g. when it stops being viewed)."""
        if self._entries.pop(channel_key, None):
            self._notify(channel_key)

    async def run_sweeper(self, interval: float) -> None:
        """Expire entries every ``interval`` seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            self.expire()

    def _prune(self, channel_key: ChannelKey) -> bool:
        entries = self._entries.get(channel_key)
        if not entries:
            return False

        now = self._clock()
        expired = [identity for identity, entry in entries.items() if entry.is_expired(now)]
        for identity in expired:
            del entries[identity]
            log.debug("typing_expired", channel=str(channel_key), user=identity)

        if expired:
            self._notify(channel_key)
        return bool(expired)

    def _notify(self, channel_key: ChannelKey) -> None:
        if self._on_change is not None:
            self._on_change(channel_key)
