"""
=============================================================================
RESOURCE REGISTRY
=============================================================================

Tracks every live client socket and every live edit buffer, so that each
one is released EXACTLY ONCE no matter how its session ends, even when
the shutdown sweep runs at the same moment.

=============================================================================
THE PROBLEM
=============================================================================

Each session runs in its own worker thread and owns one socket and one
edit buffer. Normally the session releases both on its way out. But:

    - a session can be stuck forever in recv() on a silent peer
    - the server can be told to shut down while sessions are running
    - a worker can die from an unexpected exception

So a process-wide list of "things still open" is needed, which the
shutdown path can sweep. Now two parties may try to release the same
socket: the session and the sweep. Releasing twice is a bug (closing a
file descriptor number that the OS may already have reused for another
client!).

=============================================================================
THE RULE: WHOEVER REMOVES THE ENTRY RELEASES IT
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   Session thread                     Shutdown thread                 │
    │   ──────────────                     ───────────────                 │
    │   release_socket(h)                  cleanup()                       │
    │     with lock:                         with lock:                    │
    │       entry = pop(h)  ◄── only one ──►   entries = pop all           │
    │     if entry: close   of these wins      close each                  │
    │                                                                      │
    │   The loser finds nothing to pop and does nothing.                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Entries are keyed by an integer HANDLE issued at registration, not by the
object itself: buffers (bytearrays) are not hashable, and comparing by
identity is exactly the fragile "pointer equality" we want to avoid.

=============================================================================
LOCKING
=============================================================================

One coarse lock guards both collections. Registry traffic is proportional
to the number of CONNECTIONS, not to the number of bytes, so contention is
negligible. The lock is never held across a blocking read or write; the
closers it calls (shutdown + close, buffer release) return immediately.

=============================================================================
SCOPED LEASES
=============================================================================

Sessions do not call register/release by hand. They hold a ResourceLease:

    with registry.lease_socket(conn) as lease:
        ...                  # any exit path, including exceptions
    # lease.release() ran: unregistered and closed (unless swept first)

=============================================================================
"""

import itertools
import logging
import socket
import threading
from typing import Any, Callable, Dict


logger = logging.getLogger(__name__)


Closer = Callable[[Any], None]

_MISSING = object()


def close_socket(sock: Any) -> None:
    """
    Default socket closer.

    Accepts a socket.socket, an integer file descriptor, or any object
    with a close() method (such as Connection, which shuts down itself).
    """
    if isinstance(sock, int):
        sock = socket.socket(fileno=sock)

    if isinstance(sock, socket.socket):
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Not connected any more
    sock.close()


def release_buffer(buf: Any) -> None:
    """
    Default buffer releaser.

    Uses the buffer's own release() (EditBuffer) or falls back to
    clear() (bytearray, list).
    """
    release = getattr(buf, "release", None)
    if release is not None:
        release()
    elif hasattr(buf, "clear"):
        buf.clear()


class _Kind:
    """One tracked collection: sockets or buffers."""

    def __init__(self, name: str, closer: Closer):
        self.name = name
        self.closer = closer
        self.entries: Dict[int, Any] = {}


class ResourceRegistry:
    """
    Thread-safe registry of sockets and buffers.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      ResourceRegistry API                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   h = registry.register_socket(conn)    # → handle                   │
    │   registry.unregister_socket(h)         # forget, caller owns it     │
    │   registry.release_socket(h)            # forget AND close           │
    │                                                                      │
    │   b = registry.register_buffer(buf)                                  │
    │   registry.unregister_buffer(b)                                      │
    │   registry.release_buffer(b)                                         │
    │                                                                      │
    │   registry.cleanup()                    # sweep: close everything    │
    │                                                                      │
    │   registry.lease_socket(conn)           # scoped, auto-release       │
    │   registry.lease_buffer(buf)                                         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Unregistering or releasing an unknown handle is a no-op and returns
    False.

    Args:
        socket_closer: Called once per released socket.
        buffer_releaser: Called once per released buffer.
    """

    def __init__(
        self,
        socket_closer: Closer = close_socket,
        buffer_releaser: Closer = release_buffer,
    ):
        self._lock = threading.Lock()
        self._handles = itertools.count(1)
        self._sockets = _Kind("socket", socket_closer)
        self._buffers = _Kind("buffer", buffer_releaser)
        self.sweeps = 0

    # =========================================================================
    # SOCKETS
    # =========================================================================

    def register_socket(self, sock: Any) -> int:
        """Track a socket. Returns its handle."""
        return self._register(self._sockets, sock)

    def unregister_socket(self, handle: int) -> bool:
        """
        Stop tracking a socket without closing it.

        Returns:
            True if the handle was present (the caller now owns the socket).
        """
        return self._unregister(self._sockets, handle) is not _MISSING

    def release_socket(self, handle: int) -> bool:
        """
        Unregister and close a socket.

        Returns:
            True if this call closed it, False if it was already gone.
        """
        return self._release(self._sockets, handle)

    # =========================================================================
    # BUFFERS
    # =========================================================================

    def register_buffer(self, buf: Any) -> int:
        """Track a buffer. Returns its handle."""
        return self._register(self._buffers, buf)

    def unregister_buffer(self, handle: int) -> bool:
        """Stop tracking a buffer without releasing it."""
        return self._unregister(self._buffers, handle) is not _MISSING

    def release_buffer(self, handle: int) -> bool:
        """Unregister and release a buffer."""
        return self._release(self._buffers, handle)

    # =========================================================================
    # SWEEP
    # =========================================================================

    def cleanup(self) -> int:
        """
        Close every socket and release every buffer still registered.

        Called once during server shutdown. Takes the lock for the whole
        sweep so no session can register or release halfway through.
        Running it on an empty registry, or twice in a row, does nothing.

        Returns:
            Number of resources released by this sweep.
        """
        with self._lock:
            self.sweeps += 1
            total = len(self._sockets.entries) + len(self._buffers.entries)
            if total == 0:
                return 0

            logger.info(
                f"Cleanup: closing {len(self._sockets.entries)} sockets, "
                f"releasing {len(self._buffers.entries)} buffers"
            )
            for kind in (self._sockets, self._buffers):
                for handle, resource in kind.entries.items():
                    logger.debug(f"Cleanup: {kind.name} #{handle}")
                    self._close(kind, handle, resource)
                kind.entries.clear()

        logger.info("Cleanup complete")
        return total

    # =========================================================================
    # LEASES
    # =========================================================================

    def lease_socket(self, sock: Any) -> "ResourceLease":
        """Register a socket and return a lease that releases it."""
        return ResourceLease(self, self._sockets, sock)

    def lease_buffer(self, buf: Any) -> "ResourceLease":
        """Register a buffer and return a lease that releases it."""
        return ResourceLease(self, self._buffers, buf)

    # =========================================================================
    # INTROSPECTION
    # =========================================================================

    @property
    def socket_count(self) -> int:
        with self._lock:
            return len(self._sockets.entries)

    @property
    def buffer_count(self) -> int:
        with self._lock:
            return len(self._buffers.entries)

    def contains_socket(self, handle: int) -> bool:
        with self._lock:
            return handle in self._sockets.entries

    def contains_buffer(self, handle: int) -> bool:
        with self._lock:
            return handle in self._buffers.entries

    @property
    def stats(self) -> dict:
        with self._lock:
            return {
                "sockets": len(self._sockets.entries),
                "buffers": len(self._buffers.entries),
                "sweeps": self.sweeps,
            }

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _register(self, kind: _Kind, resource: Any) -> int:
        with self._lock:
            handle = next(self._handles)
            kind.entries[handle] = resource
        logger.debug(f"Register: {kind.name} #{handle}")
        return handle

    def _unregister(self, kind: _Kind, handle: int) -> Any:
        with self._lock:
            resource = kind.entries.pop(handle, _MISSING)
        if resource is _MISSING:
            logger.debug(f"Unregister: {kind.name} #{handle} not registered")
        else:
            logger.debug(f"Unregister: {kind.name} #{handle}")
        return resource

    def _release(self, kind: _Kind, handle: int) -> bool:
        resource = self._unregister(kind, handle)
        if resource is _MISSING:
            return False
        self._close(kind, handle, resource)
        return True

    def _close(self, kind: _Kind, handle: int, resource: Any) -> None:
        try:
            kind.closer(resource)
        except Exception as e:
            # One broken resource must not stop the others from being released
            logger.warning(f"Failed to release {kind.name} #{handle}: {e}")


class ResourceLease:
    """
    Scoped ownership of one registered resource.

    Registers on creation, releases on release() or on leaving a with
    block. release() is idempotent, and a no-op if the shutdown sweep
    already released the resource.

    Attributes:
        handle: The registry handle.
        resource: The socket or buffer object.
        kind: "socket" or "buffer".
    """

    def __init__(self, registry: ResourceRegistry, kind: _Kind, resource: Any):
        self._registry = registry
        self._kind = kind
        self.resource = resource
        self.handle = registry._register(kind, resource)
        self._released = False

    @property
    def kind(self) -> str:
        return self._kind.name

    @property
    def active(self) -> bool:
        """True while the registry still tracks this resource."""
        with self._registry._lock:
            return self.handle in self._kind.entries

    def release(self) -> bool:
        """
        Release the resource if nobody else has.

        Returns:
            True if this call closed/freed it.
        """
        if self._released:
            return False
        self._released = True
        return self._registry._release(self._kind, self.handle)

    def __enter__(self) -> "ResourceLease":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False

    def __repr__(self) -> str:
        return f"ResourceLease({self.kind} #{self.handle}, released={self._released})"
