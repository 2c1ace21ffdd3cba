"""
Unit tests for command history and recall.
"""

import pytest

from lineterm.session import CommandHistory


def committed(*lines: bytes, max_entries: int = 100) -> CommandHistory:
    history = CommandHistory(max_entries=max_entries)
    for line in lines:
        history.commit(line)
    return history


class TestCommit:
    """Tests for commit()."""

    def test_commit_appends_and_parks_cursor(self):
        history = committed(b"ls", b"help")

        assert history.lines() == [b"ls", b"help"]
        assert history.cursor == 2
        assert not history.navigating

    def test_fifo_eviction(self):
        """The oldest line goes first once max_entries is exceeded."""
        history = committed(b"one", b"two", b"three", max_entries=2)

        assert history.lines() == [b"two", b"three"]
        assert history.cursor == 2

    def test_commit_while_navigating_discards_placeholder(self):
        history = committed(b"ls", b"help")
        history.recall_up(b"half")

        history.commit(b"help")

        assert history.lines() == [b"ls", b"help", b"help"]
        assert not history.has_placeholder
        assert history.cursor == len(history) == 3

    def test_invalid_max_entries(self):
        with pytest.raises(ValueError):
            CommandHistory(max_entries=0)


class TestRecall:
    """Tests for recall_up() / recall_down()."""

    def test_up_on_empty_history(self):
        history = CommandHistory()

        assert history.recall_up(b"typed") is None
        assert history.cursor == 0
        assert len(history) == 0

    def test_up_saves_placeholder(self):
        history = committed(b"ls", b"help")

        assert history.recall_up(b"ec") == b"help"
        assert history.has_placeholder
        assert len(history) == 3
        assert history.cursor == 1
        assert history.lines() == [b"ls", b"help"]

    def test_up_stops_at_oldest(self):
        history = committed(b"ls", b"help")

        assert history.recall_up() == b"help"
        assert history.recall_up() == b"ls"
        assert history.recall_up() is None
        assert history.cursor == 0

    def test_down_returns_placeholder_and_removes_it(self):
        history = committed(b"ls", b"help")
        history.recall_up(b"ec")
        history.recall_up(b"help")

        assert history.recall_down() == b"help"
        assert history.recall_down() == b"ec"
        assert not history.has_placeholder
        assert history.cursor == len(history) == 2

    def test_down_at_end_is_noop(self):
        """Down without browsing returns None, however often."""
        history = committed(b"ls")

        for _ in range(3):
            assert history.recall_down() is None
        assert history.cursor == 1
        assert history.lines() == [b"ls"]

    def test_up_down_round_trip_restores_typed_line(self):
        history = committed(b"a", b"b", b"c")

        for _ in range(3):
            history.recall_up(b"draft")
        results = [history.recall_down() for _ in range(3)]

        assert results == [b"b", b"c", b"draft"]
        assert history.recall_down() is None

    def test_placeholder_not_counted_against_cap(self):
        history = committed(b"one", b"two", max_entries=2)

        history.recall_up(b"draft")

        assert len(history) == 3
        assert history.lines() == [b"one", b"two"]

    def test_iteration_skips_placeholder(self):
        history = committed(b"x")
        history.recall_up(b"draft")

        assert list(history) == [b"x"]
