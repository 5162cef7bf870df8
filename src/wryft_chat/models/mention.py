"""Data models for mention autocomplete and mention rendering."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from .message import join_identity


@dataclass(frozen=True)
class SpecialCandidate:
    """A built-in mention token such as ``@time``."""

    token: str
    description: str

    @property
    def username(self) -> str:
        """Special tokens are matched like usernames."""
        return self.token

    @property
    def mention_text(self) -> str:
        return f"@{self.token}"


@dataclass(frozen=True)
class MemberCandidate:
    """A roster member; also the record type supplied by the roster."""

    id: str
    username: str
    discriminator: str

    @property
    def mention_text(self) -> str:
        return f"@{join_identity(self.username, self.discriminator)}"


MentionCandidate = SpecialCandidate | MemberCandidate

SPECIAL_CANDIDATES: tuple[SpecialCandidate, ...] = (
    SpecialCandidate(
        token="time",
        description="Refer to a time dynamically in the viewer's time zone",
    ),
)


@dataclass(frozen=True)
class MentionQuery:
    """An in-progress ``@`` token found left of the cursor."""

    start_offset: int  # offset of the '@' (the mention anchor)
    search: str


@dataclass(frozen=True)
class ComposeState:
    """Snapshot of the compose box.

    ``mention_query`` is derived from ``buffer`` and ``cursor`` on every
    access and is never stored.
    """

    buffer: str = ""
    cursor: int = 0
    selected_candidate_index: int = 0

    @property
    def mention_query(self) -> MentionQuery | None:
        from ..core.mentions import detect_mention

        return detect_mention(self.buffer, self.cursor)


class SegmentKind(StrEnum):
    """Kinds of rendered text segments."""

    TEXT = "text"
    MENTION = "mention"


@dataclass(frozen=True)
class Segment:
    """A run of finalized message text."""

    kind: SegmentKind
    text: str
    username: str | None = None
    discriminator: str | None = None

    @property
    def is_mention(self) -> bool:
        return self.kind is SegmentKind.MENTION
