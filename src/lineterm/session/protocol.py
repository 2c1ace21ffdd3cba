"""
=============================================================================
LINE DISCIPLINE: THE INPUT PROTOCOL STATE MACHINE
=============================================================================

A remote terminal sends us RAW KEYSTROKES, one byte at a time. There is no
"line" on the wire: we build it ourselves, echoing what the user types,
handling erase, and recognising arrow keys.

=============================================================================
WHAT A KEYSTROKE LOOKS LIKE ON THE WIRE
=============================================================================

    Key            Bytes                 Meaning here
    ───────────    ─────────────────     ────────────────────────────
    a..z, 0..9     0x61.., 0x30..        insert, echo
    Enter          0x0D and/or 0x0A      submit the line
    Backspace      0x08 or 0x7F          erase last character
    Ctrl+C         0x03                  close the session
    Ctrl+D         0x04                  close the session
    Up arrow       0x1B 0x5B 0x41        ESC [ A   recall older line
    Down arrow     0x1B 0x5B 0x42        ESC [ B   recall newer line
    Right arrow    0x1B 0x5B 0x43        ESC [ C   (reserved)
    Left arrow     0x1B 0x5B 0x44        ESC [ D   (reserved)

Arrow keys arrive as THREE bytes, possibly in three separate recv()
calls, so we need a state machine to remember how far into an escape
sequence we are.

=============================================================================
STATE MACHINE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │                 ESC                   '['                            │
    │    ┌────────┐ ───────► ┌─────────────┐ ──────► ┌──────────┐          │
    │    │ NORMAL │          │ ESCAPE_SEEN │         │ CSI_SEEN │          │
    │    └────────┘ ◄─────── └─────────────┘         └──────────┘          │
    │      ▲  ▲     other byte:                          │   │             │
    │      │  │     back to NORMAL and                   │   │ A/B/C/D:    │
    │      │  │     RE-PROCESS it there                  │   │ arrow key   │
    │      │  └──────────────────────────────────────────┘   │             │
    │      │        other byte: back to NORMAL, re-process   │             │
    │      └─────────────────────────────────────────────────┘             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The fallback re-dispatch matters: "ESC x" must behave exactly like "x"
alone, otherwise a stray ESC would eat the next keystroke.

Every call to process() returns an Action:

    CONTINUE   keep reading
    TERMINATE  the user asked to leave (Ctrl+C / Ctrl+D)
    ERROR      a write came up short, memory ran out, the line overflowed
               (disconnect policy), or the buffer was released under us;
               engine.error holds the cause and the session must end

=============================================================================
"""

import logging
from enum import Enum
from typing import Callable, Optional, Protocol

from ..config import OverflowPolicy
from ..errors import (
    AllocationError,
    LineOverflowError,
    LineTermError,
    ResourceReleasedError,
    TransportError,
)
from .edit_buffer import EditBuffer
from .history import CommandHistory


logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────────────────
# WIRE CONSTANTS
# ─────────────────────────────────────────────────────────────────────────

ETX = 0x03          # Ctrl+C
EOT = 0x04          # Ctrl+D
BS = 0x08           # Backspace
LF = 0x0A
CR = 0x0D
ESC = 0x1B
DEL = 0x7F
CSI_BRACKET = 0x5B  # '['

CRLF = b"\r\n"
ERASE = b"\b \b"          # back, overwrite with space, back again
CLEAR_LINE = b"\r\x1b[K"  # carriage return + erase to end of line


class ParserState(Enum):
    """Where we are inside a (possible) escape sequence."""
    NORMAL = "normal"
    ESCAPE_SEEN = "escape_seen"
    CSI_SEEN = "csi_seen"


class Action(Enum):
    """What the session loop should do after a byte."""
    CONTINUE = "continue"
    TERMINATE = "terminate"
    ERROR = "error"


class Arrow(Enum):
    """Final byte of an arrow-key CSI sequence."""
    UP = ord("A")
    DOWN = ord("B")
    RIGHT = ord("C")
    LEFT = ord("D")


class Transport(Protocol):
    """Anything that can write bytes: a Connection, or a fake in tests."""

    def write(self, data: bytes) -> int:
        """Write data, return the number of bytes actually written."""
        ...


Responder = Callable[[bytes, CommandHistory], Optional[str]]


def is_printable(byte: int) -> bool:
    """ASCII printable range, space through tilde."""
    return 0x20 <= byte <= 0x7E


def describe_byte(byte: int) -> str:
    """Human readable form for debug traces: 0x41 'A'."""
    if is_printable(byte):
        return f"0x{byte:02X} {chr(byte)!r}"
    return f"0x{byte:02X}"


class ProtocolEngine:
    """
    Per-session line discipline.

    Owns the FSM state and drives the edit buffer and history. All output
    goes through the transport; any short write ends the session.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    ProtocolEngine Usage                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   engine = ProtocolEngine(conn, prompt=b"> ",                       │
    │                           buffer=EditBuffer(80),                    │
    │                           history=CommandHistory(100))              │
    │                                                                      │
    │   engine.start()                 # sends the prompt                  │
    │   for byte in incoming:                                              │
    │       if engine.process(byte) is not Action.CONTINUE:               │
    │           break                                                      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Attributes:
        state: Current ParserState.
        error: The LineTermError behind the last Action.ERROR.
        lines_submitted: Count of non-empty lines submitted.
    """

    def __init__(
        self,
        transport: Transport,
        prompt: bytes,
        buffer: EditBuffer,
        history: CommandHistory,
        responder: Optional[Responder] = None,
        overflow_policy: OverflowPolicy = OverflowPolicy.DISCONNECT,
    ):
        self.transport = transport
        self.prompt = bytes(prompt)
        self.buffer = buffer
        self.history = history
        self.responder = responder
        self.overflow_policy = overflow_policy

        self.state = ParserState.NORMAL
        self.error: Optional[LineTermError] = None
        self.lines_submitted = 0

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def start(self) -> Action:
        """Send the initial prompt, before any input is read."""
        return self._guard(self._write, self.prompt)

    def process(self, byte: int) -> Action:
        """
        Consume one received byte.

        Args:
            byte: Integer 0-255.

        Returns:
            The Action for the session loop.
        """
        logger.debug(f"byte={describe_byte(byte)} state={self.state.name}")
        return self._guard(self._dispatch, byte)

    def feed(self, data: bytes) -> Action:
        """Process several bytes, stopping at the first non-CONTINUE."""
        for byte in data:
            action = self.process(byte)
            if action is not Action.CONTINUE:
                return action
        return Action.CONTINUE

    def _guard(self, func: Callable[..., Optional[Action]], arg) -> Action:
        """Run a step, turning session-fatal errors into Action.ERROR."""
        try:
            return func(arg) or Action.CONTINUE
        except MemoryError:
            self.error = AllocationError("out of memory")
        except (TransportError, AllocationError, LineOverflowError, ResourceReleasedError) as e:
            self.error = e
        logger.warning(f"Session error: {type(self.error).__name__}: {self.error}")
        return Action.ERROR

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def _dispatch(self, byte: int) -> Optional[Action]:
        if self.state is ParserState.ESCAPE_SEEN:
            if byte == CSI_BRACKET:
                self.state = ParserState.CSI_SEEN
                return Action.CONTINUE
            self.state = ParserState.NORMAL
            return self._normal(byte)

        if self.state is ParserState.CSI_SEEN:
            self.state = ParserState.NORMAL
            try:
                arrow = Arrow(byte)
            except ValueError:
                return self._normal(byte)
            self._arrow(arrow)
            return Action.CONTINUE

        return self._normal(byte)

    def _normal(self, byte: int) -> Optional[Action]:
        if byte in (ETX, EOT):
            return Action.TERMINATE

        if byte in (CR, LF):
            self._submit()
        elif byte == ESC:
            self.state = ParserState.ESCAPE_SEEN
        elif byte in (BS, DEL):
            if self.buffer.backspace():
                self._write(ERASE)
        elif is_printable(byte):
            return self._insert(byte)
        return Action.CONTINUE

    # =========================================================================
    # HANDLERS
    # =========================================================================

    def _insert(self, byte: int) -> Action:
        if not self.buffer.append(byte):
            if self.overflow_policy is OverflowPolicy.IGNORE:
                logger.debug(f"Line full ({self.buffer.max_length}), dropping byte")
                return Action.CONTINUE
            raise LineOverflowError(
                f"line exceeds {self.buffer.max_length} bytes",
                max_length=self.buffer.max_length,
            )
        self._write(bytes((byte,)))
        return Action.CONTINUE

    def _submit(self) -> None:
        self._write(CRLF)

        if len(self.buffer):
            line = bytes(self.buffer)
            if self.responder is not None:
                text = self.responder(line, self.history)
                if text:
                    self._write(format_response(text))
            self.history.commit(line)
            self.buffer.take()
            self.lines_submitted += 1

        self._write(self.prompt)

    def _arrow(self, arrow: Arrow) -> None:
        logger.debug(f"Arrow {arrow.name}")

        if arrow is Arrow.UP:
            line = self.history.recall_up(bytes(self.buffer))
        elif arrow is Arrow.DOWN:
            line = self.history.recall_down()
        else:
            # Left/Right: cursor movement within the line is not supported.
            return

        if line is None:
            return
        shown = self.buffer.replace(line)
        self._write(CLEAR_LINE + self.prompt + shown)

    # =========================================================================
    # OUTPUT
    # =========================================================================

    def _write(self, data: bytes) -> None:
        """
        Write all of data or fail.

        Raises:
            TransportError: On a short or failed write.
        """
        written = self.transport.write(data)
        if written < len(data):
            raise TransportError(
                f"short write: {written} of {len(data)} bytes",
                expected=len(data),
                written=written,
            )


def format_response(text: str) -> bytes:
    """
    Encode responder text for a terminal.

    Bare newlines become CRLF and the block always ends with CRLF.
    """
    body = text.replace("\r\n", "\n").replace("\n", "\r\n")
    if not body.endswith("\r\n"):
        body += "\r\n"
    return body.encode("utf-8", errors="replace")
