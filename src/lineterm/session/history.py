"""
=============================================================================
COMMAND HISTORY
=============================================================================

Per-session list of submitted lines plus a recall cursor, driven by the
Up/Down arrow keys.

=============================================================================
THE PLACEHOLDER SLOT
=============================================================================

When the user presses Up while typing, the half-typed line must not be
lost: pressing Down enough times should bring it back. We park it at the
tail of the list as a temporary "placeholder" entry.

    committed: ["ls", "help"]      cursor = 2 (== length, not navigating)
    buffer:    "ec"

    Up   → push "ec" as placeholder, cursor 2 → 1
           entries ["ls", "help", "ec"*]       returns "help"
    Up   → cursor 1 → 0                        returns "ls"
    Down → cursor 0 → 1                        returns "help"
    Down → cursor 1 → 2 == placeholder slot    returns "ec", pops it
           entries ["ls", "help"]              cursor = 2 == length

Invariant: a placeholder exists exactly when cursor < length. While it
exists the cursor never sits on it (Up always leaves the cursor at least
one below it), so Down can land on it but never past it. Down with
cursor == length is a no-op, however often it is pressed.

=============================================================================
BOUNDED SIZE
=============================================================================

max_entries caps the committed lines. A commit that overflows it evicts
the oldest line (FIFO). The placeholder is transient and does not count
toward the cap; eviction only happens in commit(), after the placeholder
has been discarded, so the cursor is simply reset to the new length.

=============================================================================
"""

import logging
from typing import Iterator, Optional

from ..errors import AllocationError


logger = logging.getLogger(__name__)


class CommandHistory:
    """
    Bounded command history with a recall cursor.

    Attributes:
        max_entries: Maximum committed lines kept.
    """

    def __init__(self, max_entries: int = 100):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self._entries: list[bytes] = []
        self._cursor = 0
        self._has_placeholder = False

    # =========================================================================
    # INSPECTION
    # =========================================================================

    def __len__(self) -> int:
        """Length including a pending placeholder, if any."""
        return len(self._entries)

    def __iter__(self) -> Iterator[bytes]:
        """Iterate committed lines only, oldest first."""
        return iter(self.lines())

    def lines(self) -> list[bytes]:
        """Committed lines, oldest first, without the placeholder."""
        if self._has_placeholder:
            return self._entries[:-1]
        return list(self._entries)

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def has_placeholder(self) -> bool:
        return self._has_placeholder

    @property
    def navigating(self) -> bool:
        """True while the user is browsing older entries."""
        return self._cursor < len(self._entries)

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def commit(self, line: bytes) -> None:
        """
        Append a submitted line and park the cursor at the end.

        If the user was browsing history, the placeholder holding their
        unfinished line is discarded first.

        Raises:
            AllocationError: If the list could not grow.
        """
        if self._cursor != len(self._entries):
            self._discard_placeholder()
            self._cursor = len(self._entries)

        try:
            self._entries.append(bytes(line))
        except MemoryError as e:
            raise AllocationError("cannot grow command history") from e

        while len(self._entries) > self.max_entries:
            evicted = self._entries.pop(0)
            logger.debug(f"History full, evicted {evicted!r}")

        self._cursor = len(self._entries)

    def recall_up(self, current: bytes = b"") -> Optional[bytes]:
        """
        Move to the previous (older) line.

        Args:
            current: The unsubmitted edit buffer, saved as placeholder
                     when leaving the end of the history.

        Returns:
            The recalled line, or None if already at the oldest entry.
        """
        if self._cursor == 0:
            return None

        if self._cursor == len(self._entries):
            try:
                self._entries.append(bytes(current))
            except MemoryError as e:
                raise AllocationError("cannot grow command history") from e
            self._has_placeholder = True

        self._cursor -= 1
        return self._entries[self._cursor]

    def recall_down(self) -> Optional[bytes]:
        """
        Move to the next (newer) line.

        Returns:
            The recalled line (the saved placeholder when stepping back
            onto it), or None if not browsing.
        """
        if self._cursor >= len(self._entries):
            return None

        self._cursor += 1
        if self._cursor >= len(self._entries):
            # Only reachable if the placeholder invariant was broken.
            self._cursor = len(self._entries)
            return None

        line = self._entries[self._cursor]
        if self._has_placeholder and self._cursor == len(self._entries) - 1:
            self._discard_placeholder()
        return line

    def _discard_placeholder(self) -> None:
        if self._has_placeholder:
            self._entries.pop()
            self._has_placeholder = False
