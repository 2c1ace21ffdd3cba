"""
=============================================================================
EDIT BUFFER
=============================================================================

The bytes of the line the user is currently typing.

The buffer is growable (a bytearray) but capped: once it holds
max_length bytes, append() refuses more input and the protocol engine
applies its overflow policy.

    ┌────────────────────────────────────────────────┐
    │  h │ e │ l │ p │   │   │ ... │   │   │   │   │
    └────────────────────────────────────────────────┘
      ▲                ▲                             ▲
      0             len(buf)                   max_length

The buffer is registered with the ResourceRegistry for the lifetime of
its session. During shutdown the registry sweep may release() it from
another thread while the session is still running, so every operation
takes a small lock and raises ResourceReleasedError afterwards.

=============================================================================
"""

import threading

from ..errors import AllocationError, ResourceReleasedError


class EditBuffer:
    """
    Capped, releasable line buffer.

    Usage:
        buf = EditBuffer(max_length=80)
        buf.append(ord("h"))
        buf.backspace()
        line = buf.take()   # contents, buffer is now empty
    """

    def __init__(self, max_length: int):
        if max_length < 1:
            raise ValueError("max_length must be >= 1")
        self.max_length = max_length
        self._data = bytearray()
        self._lock = threading.Lock()
        self._released = False

    def __len__(self) -> int:
        return len(self._data)

    def __bytes__(self) -> bytes:
        with self._lock:
            return bytes(self._data)

    def __repr__(self) -> str:
        state = "released" if self._released else f"{len(self._data)}/{self.max_length}"
        return f"EditBuffer({bytes(self._data)!r}, {state})"

    @property
    def is_full(self) -> bool:
        return len(self._data) >= self.max_length

    @property
    def released(self) -> bool:
        return self._released

    def _check(self) -> None:
        if self._released:
            raise ResourceReleasedError("edit buffer has been released")

    def append(self, byte: int) -> bool:
        """
        Append one byte.

        Returns:
            True if appended, False if the buffer is full.

        Raises:
            AllocationError: If the buffer could not grow.
            ResourceReleasedError: If the buffer was released.
        """
        with self._lock:
            self._check()
            if len(self._data) >= self.max_length:
                return False
            try:
                self._data.append(byte)
            except MemoryError as e:
                raise AllocationError("cannot grow edit buffer") from e
            return True

    def backspace(self) -> bool:
        """Remove the last byte. Returns False if the buffer was empty."""
        with self._lock:
            self._check()
            if not self._data:
                return False
            del self._data[-1]
            return True

    def replace(self, data: bytes) -> bytes:
        """
        Replace the whole contents (used by history recall).

        Input longer than max_length is truncated.

        Returns:
            The bytes actually stored.
        """
        with self._lock:
            self._check()
            try:
                self._data[:] = data[:self.max_length]
            except MemoryError as e:
                raise AllocationError("cannot grow edit buffer") from e
            return bytes(self._data)

    def take(self) -> bytes:
        """Return the contents and clear the buffer."""
        with self._lock:
            self._check()
            line = bytes(self._data)
            self._data.clear()
            return line

    def release(self) -> None:
        """
        Free the contents and refuse further use.

        Called by the registry (session exit or shutdown sweep).
        Calling it twice is harmless.
        """
        with self._lock:
            self._released = True
            self._data = bytearray()
