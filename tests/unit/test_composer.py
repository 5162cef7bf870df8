"""Tests for the compose buffer and autocomplete keyboard contract."""

import pytest

from wryft_chat.core.composer import Composer, Key
from wryft_chat.models.mention import MemberCandidate, MentionQuery


@pytest.fixture
def roster(members: list[MemberCandidate]) -> list[MemberCandidate]:
    """Mutable roster the composer reads on every access."""
    return list(members)


@pytest.fixture
def composer(roster: list[MemberCandidate]) -> Composer:
    return Composer(lambda: roster)


class TestAutocompletePanel:
    """Tests for opening and closing the candidate panel."""

    def test_panel_opens_on_mention(self, composer: Composer) -> None:
        composer.set_text("hi @al")

        assert composer.mention_query == MentionQuery(start_offset=3, search="al")
        assert composer.is_autocomplete_open
        assert [c.username for c in composer.candidates] == [
            "alice",
            "Albert",
            "malak",
            "sally",
            "alfred",
        ]

    def test_panel_closed_without_mention(self, composer: Composer) -> None:
        composer.set_text("hello")

        assert composer.mention_query is None
        assert not composer.is_autocomplete_open
        assert composer.selected_candidate is None

    def test_panel_closed_when_nothing_matches(self, composer: Composer) -> None:
        composer.set_text("@zzz")

        assert composer.mention_query is not None
        assert not composer.is_autocomplete_open

    def test_cursor_move_toggles_panel(self, composer: Composer) -> None:
        """Clicking into and out of an @token re-evaluates the query."""
        composer.set_text("hello @al world")
        assert not composer.is_autocomplete_open

        composer.move_cursor(9)
        assert composer.mention_query == MentionQuery(start_offset=6, search="al")
        assert composer.is_autocomplete_open

        composer.move_cursor(2)
        assert not composer.is_autocomplete_open

    def test_escape_dismisses_until_next_edit(self, composer: Composer) -> None:
        composer.set_text("@al")

        assert composer.handle_key(Key.ESCAPE) is True
        assert not composer.is_autocomplete_open

        composer.set_text("@ali")
        assert composer.is_autocomplete_open

    def test_keys_ignored_when_panel_closed(self, composer: Composer) -> None:
        composer.set_text("plain text")

        for key in ("ArrowUp", "ArrowDown", "Enter", "Tab", "Escape"):
            assert composer.handle_key(key) is False
        assert composer.text == "plain text"

    def test_unknown_key_not_consumed(self, composer: Composer) -> None:
        composer.set_text("@al")
        assert composer.handle_key("a") is False


class TestKeyboardNavigation:
    """Tests for selection movement and wrap-around."""

    def test_arrow_down_moves_selection(self, composer: Composer) -> None:
        composer.set_text("@al")
        composer.handle_key("ArrowDown")

        assert composer.selected_index == 1
        assert composer.selected_candidate is not None
        assert composer.selected_candidate.username == "Albert"

    def test_arrow_up_wraps_to_last(self, composer: Composer) -> None:
        composer.set_text("@al")
        composer.handle_key("ArrowUp")

        assert composer.selected_index == 4

    def test_arrow_down_wraps_to_first(self, composer: Composer) -> None:
        composer.set_text("@al")
        for _ in range(5):
            composer.handle_key("ArrowDown")

        assert composer.selected_index == 0

    def test_selection_clamped_when_candidates_shrink(self, composer: Composer) -> None:
        """A stale index is reduced modulo the new candidate count."""
        composer.set_text("@")
        for _ in range(5):
            composer.handle_key("ArrowDown")
        assert composer.selected_index == 5

        composer.set_text("@al")
        assert composer.selected_index == 0
        assert composer.selected_candidate is not None

        composer.set_text("@alf")
        assert len(composer.candidates) == 1
        assert composer.selected_index == 0
        assert composer.selected_candidate is not None
        assert composer.selected_candidate.username == "alfred"

    def test_roster_shrinking_never_indexes_out_of_range(
        self, composer: Composer, roster: list[MemberCandidate]
    ) -> None:
        composer.set_text("@al")
        composer.handle_key("ArrowUp")
        del roster[2:]

        assert [c.username for c in composer.candidates] == ["alice"]
        assert composer.selected_candidate is not None
        assert composer.selected_candidate.username == "alice"


class TestSelection:
    """Tests for inserting the selected candidate."""

    def test_enter_inserts_selected_member(self, composer: Composer) -> None:
        composer.set_text("hi @al")
        composer.handle_key("Enter")

        assert composer.text == "hi @alice#0001 "
        assert composer.cursor == len(composer.text)
        assert not composer.is_autocomplete_open

    def test_tab_inserts_selected_member(self, composer: Composer) -> None:
        composer.set_text("hi @al")
        composer.handle_key("ArrowDown")
        composer.handle_key("Tab")

        assert composer.text == "hi @Albert#0003 "

    def test_special_inserted_without_discriminator(self, composer: Composer) -> None:
        composer.set_text("meet @ti")
        composer.handle_key("Enter")

        assert composer.text == "meet @time "

    def test_insertion_preserves_text_after_cursor(self, composer: Composer) -> None:
        composer.set_text("hi @bo see you", cursor=6)
        composer.handle_key("Enter")

        assert composer.text == "hi @bob#0002  see you"
        assert composer.cursor == len("hi @bob#0002 ")

    def test_selection_resets_after_insert(self, composer: Composer) -> None:
        composer.set_text("@al")
        composer.handle_key("ArrowDown")
        composer.handle_key("Enter")

        assert composer.state.selected_candidate_index == 0


class TestSubmit:
    """Tests for taking the buffer for sending."""

    def test_submit_returns_and_clears(self, composer: Composer) -> None:
        composer.set_text("hello there")

        assert composer.submit() == "hello there"
        assert composer.text == ""
        assert composer.cursor == 0

    def test_submit_refused_while_panel_open(self, composer: Composer) -> None:
        composer.set_text("hi @al")

        assert composer.submit() is None
        assert composer.text == "hi @al"

    def test_submit_allowed_after_dismiss(self, composer: Composer) -> None:
        composer.set_text("hi @al")
        composer.dismiss()

        assert composer.submit() == "hi @al"

    def test_submit_refused_when_blank(self, composer: Composer) -> None:
        composer.set_text("   ")
        assert composer.submit() is None

    def test_restore_after_failed_send(self, composer: Composer) -> None:
        composer.set_text("important")
        text = composer.submit()
        assert text is not None

        composer.restore(text)
        assert composer.text == "important"
        assert composer.cursor == len("important")
