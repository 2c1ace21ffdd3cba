"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module wraps one client socket with the small API a terminal session
needs: read ONE byte, write ALL of a byte string, close exactly once.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

TCP does NOT preserve message boundaries. A user typing "ls" and then
pressing the Up arrow may reach us as any of:

    recv() → b"ls\x1b[A"          (everything at once)
    recv() → b"l", b"s\x1b", b"[A" (split anywhere)

A line discipline must therefore be fed byte by byte and keep its own
state between bytes (see session/protocol.py). read_byte() gives exactly
that view of the stream.

=============================================================================
WHY recv(1)?
=============================================================================

Interactive terminals send a few bytes per keystroke, so a one-byte read
costs nothing noticeable and keeps the session loop trivial:

    while True:
        byte = conn.read_byte()     ← the ONLY blocking point
        if byte is None:            ← EOF, reset, or socket closed
            break
        engine.process(byte)

There is no read timeout: a silent peer keeps its session until it
disconnects or the server shuts down. The only way to wake a blocked
read_byte() from another thread is close(), which shuts the socket down
first (see below).

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──────► ACTIVE ──────► CLOSING ──────► CLOSED
     │                            ▲
     └────────────────────────────┘

=============================================================================
"""

import socket
import threading
import time
import logging
import uuid
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """
    Connection lifecycle states.

    Mostly for logging and debugging: the registry, not this state, is
    what guarantees a socket is closed exactly once.
    """
    NEW = "new"            # Just accepted, session not started yet
    ACTIVE = "active"      # A session is reading/writing
    CLOSING = "closing"    # Shutdown sequence in progress
    CLOSED = "closed"      # Socket released


@dataclass(eq=False)
class Connection:
    """
    Represents a client connection.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. BYTE READS                                                       │
    │     └── read_byte() → one byte, or None on EOF / error               │
    │                                                                      │
    │  2. FULL WRITES                                                      │
    │     └── write() → bytes written; fewer than asked means failure      │
    │                                                                      │
    │  3. SAFE CLOSE                                                       │
    │     └── callable from any thread, idempotent                         │
    │     └── shutdown(SHUT_RDWR) wakes a reader blocked in recv()         │
    │                                                                      │
    │  4. COUNTERS                                                         │
    │     └── bytes_received / bytes_sent for the session log              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    eq=False keeps identity semantics (and hashability): two connections
    are never "equal" just because their fields match.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Unique connection identifier (for logging).
        state: Current connection state.
        created_at: Timestamp when connection was accepted.
        bytes_received: Total bytes read.
        bytes_sent: Total bytes written.
    """

    # Required parameters
    socket: socket.socket
    address: tuple

    # Generated/default parameters
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    bytes_received: int = 0
    bytes_sent: int = 0

    _close_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self):
        """Put the socket in plain blocking mode with no timeout."""
        self.socket.settimeout(None)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def client_ip(self) -> str:
        """Get the client IP address."""
        return self.address[0]

    @property
    def client_port(self) -> int:
        """Get the client port."""
        return self.address[1]

    @property
    def age(self) -> float:
        """Get connection age in seconds."""
        return time.time() - self.created_at

    @property
    def closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # =========================================================================
    # READING
    # =========================================================================

    def read_byte(self) -> Optional[int]:
        """
        Block until one byte arrives.

        Returns:
            The byte as an int 0-255, or None if the peer disconnected,
            the connection was reset, or the socket was closed under us.
        """
        if self.state == ConnectionState.NEW:
            self.state = ConnectionState.ACTIVE

        try:
            data = self.socket.recv(1)
        except OSError as e:
            # ConnectionResetError, or EBADF after a sweep closed the socket
            logger.debug(f"[{self.id}] Receive failed: {e}")
            return None

        if not data:
            return None

        self.bytes_received += 1
        return data[0]

    # =========================================================================
    # WRITING
    # =========================================================================

    def write(self, data: bytes) -> int:
        """
        Send all of data.

        Uses sendall() so a partial send by the kernel is retried
        internally; if the peer goes away we report 0 bytes written and
        the caller treats it as a short write.

        Returns:
            len(data) on success, 0 if the connection is lost.
        """
        try:
            self.socket.sendall(data)
        except OSError as e:
            logger.warning(f"[{self.id}] Send failed: {e}")
            return 0

        self.bytes_sent += len(data)
        return len(data)

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection.

        Safe to call from any thread and more than once.

        ┌─────────────────────────────────────────────────────────────────┐
        │                    Close Sequence                                │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   1. shutdown(SHUT_RDWR)                                         │
        │        └── sends FIN, and makes a recv() blocked in another      │
        │            thread return immediately (close() alone does not)    │
        │                                                                  │
        │   2. close()                                                     │
        │        └── releases the file descriptor                          │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘
        """
        with self._close_lock:
            if self.state == ConnectionState.CLOSED:
                return
            self.state = ConnectionState.CLOSING

            try:
                self.socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass  # Peer already gone

            try:
                self.socket.close()
            except OSError as e:
                logger.warning(f"[{self.id}] Close failed: {e}")

            self.state = ConnectionState.CLOSED

        logger.debug(
            f"[{self.id}] Connection closed after {self.age:.1f}s "
            f"({self.bytes_received} bytes in, {self.bytes_sent} bytes out)"
        )
