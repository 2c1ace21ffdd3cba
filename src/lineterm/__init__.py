"""
=============================================================================
LINETERM - Multi-Client Line-Oriented Terminal Server
=============================================================================

A TCP server for raw terminal clients (telnet, nc, PuTTY in raw mode).
Every client gets a prompt, a line editor with echo and backspace, and a
per-session command history browsed with the Up/Down arrow keys.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    lineterm/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m lineterm)
    ├── server.py            # TerminalServer: wires everything together
    ├── config.py            # ServerConfig, SessionSettings
    ├── commands.py          # CommandTable: default line responder
    ├── errors.py            # Exception hierarchy
    ├── core/                # Low-level components
    │   ├── socket_server.py # Listening socket, accept loop
    │   ├── connection.py    # Client socket wrapper
    │   ├── registry.py      # ResourceRegistry, ResourceLease
    │   └── thread_pool.py   # Bounded session workers
    └── session/             # Per-client state
        ├── session.py       # Session lifecycle
        ├── protocol.py      # Byte-level line discipline
        ├── edit_buffer.py   # Line being typed
        ├── history.py       # Command history
        └── session_log.py   # Structured session records

=============================================================================
QUICK START
=============================================================================

    from lineterm import TerminalServer, ServerConfig

    server = TerminalServer(ServerConfig(port=2323))

    @server.command("hello", summary="Say hello")
    def hello(request):
        return f"Hello, {' '.join(request.args) or 'world'}!"

    server.run()

    $ telnet localhost 2323
    > hello there
    Hello, there!
    >

=============================================================================
"""

__version__ = "1.0.0"
__author__ = "lineterm contributors"

from .config import OverflowPolicy, ServerConfig, SessionSettings
from .errors import (
    AllocationError,
    LineOverflowError,
    LineTermError,
    ProtocolPreconditionError,
    ResourceReleasedError,
    TransportError,
)
from .core import ResourceLease, ResourceRegistry
from .commands import CommandRequest, CommandTable
from .session import ExitReason, ProtocolEngine, Session
from .server import TerminalServer, create_server

__all__ = [
    "__version__",
    "TerminalServer",
    "create_server",
    "ServerConfig",
    "SessionSettings",
    "OverflowPolicy",
    "ResourceRegistry",
    "ResourceLease",
    "CommandTable",
    "CommandRequest",
    "Session",
    "ExitReason",
    "ProtocolEngine",
    "LineTermError",
    "TransportError",
    "AllocationError",
    "LineOverflowError",
    "ResourceReleasedError",
    "ProtocolPreconditionError",
]
