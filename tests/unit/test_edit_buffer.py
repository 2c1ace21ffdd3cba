"""
Unit tests for the edit buffer.
"""

import pytest

from lineterm.errors import ResourceReleasedError
from lineterm.session import EditBuffer


class TestEditBuffer:
    """Tests for append/backspace/replace/take."""

    def test_append_until_full(self):
        """append() accepts exactly max_length bytes."""
        buf = EditBuffer(max_length=3)

        assert buf.append(ord("a"))
        assert buf.append(ord("b"))
        assert buf.append(ord("c"))
        assert buf.is_full
        assert not buf.append(ord("d"))
        assert bytes(buf) == b"abc"

    def test_backspace(self):
        buf = EditBuffer(max_length=8)
        buf.append(ord("h"))
        buf.append(ord("i"))

        assert buf.backspace()
        assert bytes(buf) == b"h"
        assert buf.backspace()
        assert not buf.backspace()
        assert len(buf) == 0

    def test_replace_truncates(self):
        """Recalled lines longer than the cap are cut to fit."""
        buf = EditBuffer(max_length=4)

        assert buf.replace(b"abcdef") == b"abcd"
        assert bytes(buf) == b"abcd"
        assert buf.replace(b"") == b""
        assert len(buf) == 0

    def test_take_clears(self):
        buf = EditBuffer(max_length=8)
        for byte in b"help":
            buf.append(byte)

        assert buf.take() == b"help"
        assert len(buf) == 0

    def test_invalid_max_length(self):
        with pytest.raises(ValueError):
            EditBuffer(max_length=0)


class TestEditBufferRelease:
    """Tests for release by the registry."""

    def test_operations_fail_after_release(self):
        buf = EditBuffer(max_length=8)
        buf.append(ord("x"))
        buf.release()

        assert buf.released
        assert len(buf) == 0
        with pytest.raises(ResourceReleasedError):
            buf.append(ord("y"))
        with pytest.raises(ResourceReleasedError):
            buf.backspace()
        with pytest.raises(ResourceReleasedError):
            buf.replace(b"z")
        with pytest.raises(ResourceReleasedError):
            buf.take()

    def test_release_twice_is_harmless(self):
        buf = EditBuffer(max_length=8)
        buf.release()
        buf.release()
        assert buf.released
        assert "released" in repr(buf)
