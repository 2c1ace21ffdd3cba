"""
=============================================================================
ERROR TYPES
=============================================================================

Every failure a session can hit maps to one of these exceptions. None of
them ever escapes to the server process: the session that raised it is
terminated and its resources are released.

    LineTermError
    ├── TransportError             short or failed send/receive
    ├── AllocationError            buffer or history could not grow
    ├── LineOverflowError          full line under the disconnect policy
    ├── ResourceReleasedError      edit buffer released by the shutdown sweep
    └── ProtocolPreconditionError  invalid session settings, never started

Unregistering an unknown registry handle is NOT an error: it is a no-op.

=============================================================================
"""


class LineTermError(Exception):
    """Base class for all lineterm errors."""


class TransportError(LineTermError):
    """
    A send or receive on the client transport failed or came up short.

    Attributes:
        expected: Number of bytes that should have been written.
        written: Number of bytes actually written.
    """

    def __init__(self, message: str, expected: int = 0, written: int = 0):
        super().__init__(message)
        self.expected = expected
        self.written = written


class AllocationError(LineTermError):
    """The edit buffer or the command history could not grow."""


class LineOverflowError(LineTermError):
    """
    A printable byte arrived while the line was full.

    Attributes:
        max_length: The line limit that was hit.
    """

    def __init__(self, message: str, max_length: int = 0):
        super().__init__(message)
        self.max_length = max_length


class ResourceReleasedError(LineTermError):
    """A registry-tracked resource was used after it was released."""


class ProtocolPreconditionError(LineTermError):
    """Session settings were invalid; the read loop never started."""
