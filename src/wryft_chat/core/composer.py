"""Compose box state and the mention autocomplete keyboard contract.

The composer stores only the buffer, the cursor, the selection index and
whether the panel was dismissed. The active mention query and the
candidate list are recomputed from those and the roster on every access.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from enum import StrEnum

import structlog

from wryft_chat.core.mentions import (
    DEFAULT_MAX_MEMBER_CANDIDATES,
    insert_mention,
    rank_candidates,
)
from wryft_chat.models.mention import ComposeState, MemberCandidate, MentionCandidate, MentionQuery

log = structlog.get_logger()

RosterSource = Callable[[], Sequence[MemberCandidate]]


class Key(StrEnum):
    """Keys the autocomplete panel reacts to."""

    ARROW_UP = "ArrowUp"
    ARROW_DOWN = "ArrowDown"
    ENTER = "Enter"
    TAB = "Tab"
    ESCAPE = "Escape"


class Composer:
    """Editable compose buffer with mention autocomplete.

    Example:
        composer = Composer(lambda: members)
        composer.set_text("hi @al")
        composer.candidates          # [MemberCandidate(username="alice", ...)]
        composer.handle_key("Enter")  # buffer is now "hi @alice#0001 "
    """

    def __init__(
        self,
        roster: RosterSource,
        max_member_candidates: int = DEFAULT_MAX_MEMBER_CANDIDATES,
    ) -> None:
        """Initialize the composer.

        Args:
            roster: Returns the current member list when called.
            max_member_candidates: Cap on member suggestions.
        """
        self._roster = roster
        self._max_members = max_member_candidates
        self._state = ComposeState()
        self._dismissed = False

    @property
    def state(self) -> ComposeState:
        return self._state

    @property
    def text(self) -> str:
        return self._state.buffer

    @property
    def cursor(self) -> int:
        return self._state.cursor

    @property
    def mention_query(self) -> MentionQuery | None:
        """The active mention token, or None if absent or dismissed."""
        if self._dismissed:
            return None
        return self._state.mention_query

    @property
    def candidates(self) -> list[MentionCandidate]:
        query = self.mention_query
        if query is None:
            return []
        return rank_candidates(query.search, self._roster(), max_members=self._max_members)

    @property
    def is_autocomplete_open(self) -> bool:
        return bool(self.candidates)

    @property
    def selected_index(self) -> int:
        """Selection index clamped into the current candidate range."""
        count = len(self.candidates)
        if count == 0:
            return 0
        return self._state.selected_candidate_index % count

    @property
    def selected_candidate(self) -> MentionCandidate | None:
        candidates = self.candidates
        if not candidates:
            return None
        return candidates[self._state.selected_candidate_index % len(candidates)]

    def set_text(self, text: str, cursor: int | None = None) -> None:
        """Replace the buffer (a keystroke or paste); cursor defaults to the end."""
        position = len(text) if cursor is None else max(0, min(cursor, len(text)))
        # The selection survives edits; reads clamp it into the new candidate range
        self._state = ComposeState(
            buffer=text,
            cursor=position,
            selected_candidate_index=self._state.selected_candidate_index,
        )
        self._dismissed = False

    def move_cursor(self, cursor: int) -> None:
        """Move the caret without editing (a click or arrow-left/right)."""
        position = max(0, min(cursor, len(self._state.buffer)))
        self._state = ComposeState(
            buffer=self._state.buffer,
            cursor=position,
            selected_candidate_index=self._state.selected_candidate_index,
        )
        self._dismissed = False

    def handle_key(self, key: str) -> bool:
        """Apply a navigation key while the panel is open.

        Returns:
            True if the key was consumed by the autocomplete panel.
        """
        candidates = self.candidates
        if not candidates:
            return False

        count = len(candidates)
        current = self._state.selected_candidate_index % count

        if key == Key.ARROW_DOWN:
            self._select((current + 1) % count)
            return True
        if key == Key.ARROW_UP:
            self._select((current - 1 + count) % count)
            return True
        if key in (Key.ENTER, Key.TAB):
            self.select(candidates[current])
            return True
        if key == Key.ESCAPE:
            self.dismiss()
            return True
        return False

    def select(self, candidate: MentionCandidate) -> None:
        """Insert a candidate at the active mention anchor and close the panel."""
        query = self.mention_query
        if query is None:
            return

        buffer, cursor = insert_mention(self._state.buffer, self._state.cursor, query, candidate)
        self._state = ComposeState(buffer=buffer, cursor=cursor)
        # The caret now sits after a space, so no query is active until the next edit
        log.debug("mention_inserted", mention=candidate.mention_text)

    def dismiss(self) -> None:
        """Close the panel until the next edit or cursor move."""
        self._dismissed = True
        self._select(0)

    def submit(self) -> str | None:
        """Take the buffer for sending and clear it.

        Returns:
            The text to send, or None when the buffer is blank or the
            autocomplete panel is open (Enter selects a candidate then).
        """
        if self.is_autocomplete_open or not self._state.buffer.strip():
            return None

        text = self._state.buffer
        self.clear()
        return text

    def restore(self, text: str) -> None:
        """Put text back after a failed send so the user can retry."""
        self.set_text(text)

    def clear(self) -> None:
        self._state = ComposeState()
        self._dismissed = False

    def _select(self, index: int) -> None:
        self._state = ComposeState(
            buffer=self._state.buffer,
            cursor=self._state.cursor,
            selected_candidate_index=index,
        )
