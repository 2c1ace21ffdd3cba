"""
Property-based tests for the line discipline.
"""

import pytest
from hypothesis import assume, given, settings
from hypothesis import strategies as st

from lineterm.config import OverflowPolicy
from lineterm.errors import LineOverflowError
from lineterm.session import Action, CommandHistory, EditBuffer, ParserState, ProtocolEngine

PRINTABLE = st.binary(min_size=0, max_size=200).map(
    lambda data: bytes(b for b in data if 0x20 <= b <= 0x7E)
)
LINES = st.lists(
    st.text(alphabet=st.characters(min_codepoint=0x21, max_codepoint=0x7E), min_size=1, max_size=20)
    .map(str.encode),
    min_size=1,
    max_size=10,
)


class RecordingTransport:

    def __init__(self):
        self.sent = bytearray()

    def write(self, data: bytes) -> int:
        self.sent += data
        return len(data)


def new_engine(max_length=1023, history=None, **kwargs):
    transport = RecordingTransport()
    engine = ProtocolEngine(
        transport=transport,
        prompt=b"> ",
        buffer=EditBuffer(max_length),
        history=history if history is not None else CommandHistory(100),
        **kwargs,
    )
    return engine, transport


@pytest.mark.property
class TestProtocolProperties:
    """Property-based tests for ProtocolEngine."""

    @given(PRINTABLE)
    @settings(max_examples=50, deadline=None)
    def test_printable_input_is_buffered_and_echoed(self, data):
        """Property: printable-only input is stored and echoed byte for byte."""
        engine, transport = new_engine()

        assert engine.feed(data) is Action.CONTINUE
        assert bytes(engine.buffer) == data
        assert bytes(transport.sent) == data

    @given(PRINTABLE, st.integers(min_value=0, max_value=255))
    @settings(max_examples=50, deadline=None)
    def test_escape_prefix_is_transparent(self, prefix, byte):
        """Property: ESC followed by X (X not '[' or ESC) acts like X alone."""
        assume(byte not in (0x1B, 0x5B))
        plain, plain_out = new_engine()
        escaped, escaped_out = new_engine()
        plain.feed(prefix)
        escaped.feed(prefix)

        plain_action = plain.process(byte)
        escaped.process(0x1B)
        escaped_action = escaped.process(byte)

        assert escaped_action is plain_action
        assert bytes(escaped.buffer) == bytes(plain.buffer)
        assert escaped_out == plain_out
        assert escaped.history.lines() == plain.history.lines()

    @given(LINES, PRINTABLE, st.data())
    @settings(max_examples=50, deadline=None)
    def test_up_then_down_restores_draft(self, lines, draft, data):
        """Property: k Up presses followed by k Down presses restore the draft."""
        history = CommandHistory(100)
        for line in lines:
            history.commit(line)
        engine, _ = new_engine(history=history)
        engine.feed(draft)
        presses = data.draw(st.integers(min_value=1, max_value=len(lines)))

        engine.feed(b"\x1b[A" * presses)
        assert bytes(engine.buffer) == lines[-presses]
        engine.feed(b"\x1b[B" * presses)

        assert bytes(engine.buffer) == draft
        assert not history.has_placeholder
        assert history.lines() == lines

    @given(st.binary(min_size=0, max_size=300), st.integers(min_value=1, max_value=16),
           st.sampled_from(list(OverflowPolicy)))
    @settings(max_examples=100, deadline=None)
    def test_arbitrary_bytes_keep_invariants(self, data, max_length, policy):
        """Property: any byte stream keeps buffer, state and history consistent."""
        engine, _ = new_engine(
            max_length=max_length,
            history=CommandHistory(5),
            overflow_policy=policy,
        )

        action = Action.CONTINUE
        for byte in data:
            action = engine.process(byte)
            history = engine.history

            assert len(engine.buffer) <= max_length
            assert isinstance(engine.state, ParserState)
            assert history.has_placeholder == (history.cursor < len(history))
            assert len(history.lines()) <= 5
            if action is not Action.CONTINUE:
                break

        if action is Action.ERROR:
            assert policy is OverflowPolicy.DISCONNECT
            assert isinstance(engine.error, LineOverflowError)
        else:
            assert engine.error is None

    @given(LINES)
    @settings(max_examples=30, deadline=None)
    def test_history_keeps_submitted_lines_in_order(self, lines):
        """Property: submitting lines appends them to history in order."""
        engine, _ = new_engine()

        engine.feed(b"\r".join(lines) + b"\r")

        assert engine.history.lines() == lines
        assert engine.lines_submitted == len(lines)
