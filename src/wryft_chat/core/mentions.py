"""Mention detection, ranking, insertion and rendering.

Detection, ranking and insertion work on the compose buffer and are pure
functions of ``(buffer, cursor, roster)``. Rendering works on finalized
message text and is a lazy, restartable scan that never mutates its input.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Sequence

from wryft_chat.models.mention import (
    SPECIAL_CANDIDATES,
    MemberCandidate,
    MentionCandidate,
    MentionQuery,
    Segment,
    SegmentKind,
    SpecialCandidate,
)

DEFAULT_MAX_MEMBER_CANDIDATES = 5

# @username#1234 in committed text
MENTION_TOKEN_PATTERN = re.compile(r"@(\w+)#(\d{4})")


def detect_mention(buffer: str, cursor: int) -> MentionQuery | None:
    """Find the in-progress mention token left of the cursor.

    The nearest ``@`` before the cursor starts a mention when it sits at the
    start of the buffer or right after a space, and no space separates it
    from the cursor.

    Args:
        buffer: Compose buffer text.
        cursor: Caret offset; clamped into ``[0, len(buffer)]``.

    Returns:
        The query (anchor offset and search text), or None.

    Example:
        >>> detect_mention("hello @al", 9)
        MentionQuery(start_offset=6, search='al')
    """
    cursor = max(0, min(cursor, len(buffer)))
    before_cursor = buffer[:cursor]

    anchor = before_cursor.rfind("@")
    if anchor == -1:
        return None

    search = before_cursor[anchor + 1 :]
    if " " in search:
        return None

    if anchor == 0 or buffer[anchor - 1] == " ":
        return MentionQuery(start_offset=anchor, search=search)
    return None


def rank_candidates(
    search: str,
    members: Iterable[MemberCandidate],
    specials: Sequence[SpecialCandidate] = SPECIAL_CANDIDATES,
    max_members: int = DEFAULT_MAX_MEMBER_CANDIDATES,
) -> list[MentionCandidate]:
    """Build the autocomplete list for a search string.

    Specials come first in declared order, then at most ``max_members``
    members in roster order. Both are filtered by case-insensitive
    substring match on the username.
    """
    needle = search.lower()

    ranked: list[MentionCandidate] = [s for s in specials if needle in s.token.lower()]

    matched = 0
    for member in members:
        if matched >= max_members:
            break
        if needle in member.username.lower():
            ranked.append(member)
            matched += 1

    return ranked


def insert_mention(
    buffer: str,
    cursor: int,
    query: MentionQuery,
    candidate: MentionCandidate,
) -> tuple[str, int]:
    """Replace the span from the anchor to the cursor with a mention.

    The mention is followed by one space; text after the cursor is kept
    untouched.

    Returns:
        The new buffer and the new cursor offset (right after the space).
    """
    cursor = max(query.start_offset, min(cursor, len(buffer)))
    before = buffer[: query.start_offset]
    after = buffer[cursor:]
    inserted = f"{candidate.mention_text} "
    return f"{before}{inserted}{after}", len(before) + len(inserted)


def render_mentions(text: str) -> Iterator[Segment]:
    """Split committed text into plain and mention segments.

    Yields segments in order; concatenating their ``text`` reproduces the
    input exactly. Empty plain runs are not produced.

    Example:
        >>> [s.text for s in render_mentions("hey @bob#1234 check this")]
        ['hey ', '@bob#1234', ' check this']
    """
    last_end = 0
    for match in MENTION_TOKEN_PATTERN.finditer(text):
        if match.start() > last_end:
            yield Segment(kind=SegmentKind.TEXT, text=text[last_end : match.start()])
        yield Segment(
            kind=SegmentKind.MENTION,
            text=match.group(0),
            username=match.group(1),
            discriminator=match.group(2),
        )
        last_end = match.end()

    if last_end < len(text):
        yield Segment(kind=SegmentKind.TEXT, text=text[last_end:])


def mentions_user(text: str, username: str) -> bool:
    """Return True if the text mentions ``@username`` as a whole word."""
    if not username:
        return False
    return re.search(rf"@{re.escape(username)}(?!\w)", text) is not None
