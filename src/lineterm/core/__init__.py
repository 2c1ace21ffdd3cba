"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The plumbing under the terminal sessions.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  • Listening socket, accept loop, SIGINT/SIGTERM handling           │
    └─────────────────────────────────────────────────────────────────────┘
                                    │ Connection
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                       RESOURCE REGISTRY                              │
    │  • Every live client socket and edit buffer, by integer handle      │
    │  • Exactly-once release, shutdown sweep                             │
    └─────────────────────────────────────────────────────────────────────┘
                                    │ lease
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          THREAD POOL                                 │
    │  • Bounded session workers, rejects when the queue is full          │
    └─────────────────────────────────────────────────────────────────────┘
                                    │ worker runs the session
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  • read_byte(), write(), close() from any thread                    │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState
from .registry import ResourceLease, ResourceRegistry, close_socket, release_buffer
from .thread_pool import ThreadPool

__all__ = [
    "SocketServer",      # Listening socket and accept loop
    "Connection",        # Client socket wrapper
    "ConnectionState",   # Connection lifecycle states
    "ResourceRegistry",  # Live sockets and buffers, shutdown sweep
    "ResourceLease",     # Scoped registration, releases on exit
    "close_socket",      # Default socket closer
    "release_buffer",    # Default buffer releaser
    "ThreadPool",        # Bounded session workers
]
