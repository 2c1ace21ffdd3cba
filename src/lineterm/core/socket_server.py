"""
=============================================================================
LISTENING SOCKET AND ACCEPT LOOP
=============================================================================

The "ears" of the terminal server: one listening TCP socket, and a loop
that accepts clients and hands each one off as a Connection.

=============================================================================
SOCKET LIFECYCLE (Server Side)
=============================================================================

    1. socket()    Create a TCP socket
    2. setsockopt  SO_REUSEADDR, so a restart doesn't hit "address in use"
                   while old connections sit in TIME_WAIT
    3. bind()      Reserve host:port (port 0 → the OS picks a free one)
    4. listen()    backlog = how many finished handshakes the kernel
                   queues for us before refusing
    5. accept()    Loop: one NEW socket per client
    6. close()     On shutdown

                    ┌───────────────────────┐
                    │   Listening Socket    │ ◄── Created once at startup
                    │                       │     Bound to 0.0.0.0:2323
                    └───────────┬───────────┘     Never sends/receives data
                                │ accept()
        ┌───────────────────────┼───────────────────────┐
        ▼                       ▼                       ▼
   ┌─────────┐            ┌─────────┐            ┌─────────┐
   │ Client  │            │ Client  │            │ Client  │
   │ socket  │            │ socket  │            │ socket  │
   └─────────┘            └─────────┘            └─────────┘
    one session each, on a pool worker

=============================================================================
STOPPING A BLOCKED accept()
=============================================================================

accept() blocks, and a flag set from another thread is not seen until it
returns. The listening socket therefore has a 1 second timeout: the loop
wakes up at least once a second, re-checks the stop flag, and goes back to
waiting. shutdown() just sets the flag, and the flag is never cleared, so
a shutdown() that arrives before start() still stops the server.

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


class SocketServer:
    """
    Low-level TCP acceptor.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer Internals                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    start(handler)                                                    │
    │        ├──► _create_socket()    SO_REUSEADDR, 1s accept timeout     │
    │        ├──► bind() / listen()                                        │
    │        ├──► _setup_signals()    SIGTERM/SIGINT → shutdown()          │
    │        └──► _accept_loop()      blocks here                          │
    │                 └──► handler(Connection(client_socket, address))     │
    │                                                                      │
    │    shutdown()        set the stop flag, the loop exits within ~1s    │
    │    _cleanup()        restore signal handlers, close the socket       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Usage:
        server = SocketServer(config)
        server.start(handle_connection)  # Blocks until shutdown
    """

    def __init__(self, config: ServerConfig):
        """
        Initialize the socket server.

        Args:
            config: Server configuration (host, port, backlog).

        Raises:
            ValueError: If backlog is less than 1.
        """
        if config.backlog < 1:
            raise ValueError(f"backlog must be >= 1, got {config.backlog}")

        self.config = config
        self._socket: Optional[socket.socket] = None
        self._running = False
        self._bound_address: Optional[Tuple[str, int]] = None
        self._listening = threading.Event()
        self._stop_requested = threading.Event()
        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        """Check if server is running."""
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """
        The bound address (IP, port).

        After bind() this is the real address, so port 0 in the config
        reports the port the OS picked.
        """
        if self._bound_address is not None:
            return self._bound_address
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        """Create and configure the listening socket."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Allow an immediate restart while old connections are in TIME_WAIT
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

        # Keystrokes are tiny; don't let Nagle hold echoes back
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        sock.settimeout(1.0)
        return sock

    def _setup_signals(self):
        """
        Install SIGTERM/SIGINT handlers that stop the accept loop.

        Python only allows signal handlers in the main thread; when the
        server runs in another thread (tests, embedding) the caller is
        responsible for calling shutdown().
        """
        if threading.current_thread() is not threading.main_thread():
            logger.debug("Not in main thread, signal handlers not installed")
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        """Restore original signal handlers."""
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, connection_handler: Callable[[Connection], None]):
        """
        Bind, listen and accept connections.

        This method BLOCKS until shutdown() is called.

        Args:
            connection_handler: Called in the accept thread with every new
                                Connection. Must not block for long.

        Raises:
            OSError: If the socket cannot be bound or put into listen mode.
        """
        if self._stop_requested.is_set():
            logger.info("Shutdown requested before start, not listening")
            return

        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
            self._socket.listen(self.config.backlog)
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        self._bound_address = self._socket.getsockname()[:2]
        self._running = True
        self._setup_signals()

        host, port = self.address
        logger.info(f"Server listening on {host}:{port}")
        self._listening.set()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: Callable[[Connection], None]):
        """
        Accept until shutdown.

        ┌─────────────────────────────────────────────────────────────────┐
        │                     Accept Loop Flow                             │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   until shutdown() is called:                                   │
        │       accept()          (1 s timeout → re-check the flag)        │
        │       Connection(...)   wrap the client socket                   │
        │       handler(conn)     register + submit to the pool            │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘
        """
        while not self._stop_requested.is_set():
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self._stop_requested.is_set():
                    logger.error(f"Accept error: {e}")
                break

            logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")
            conn = Connection(socket=client_socket, address=client_address)

            try:
                connection_handler(conn)
            except Exception as e:
                # A failing handler must not take the acceptor down
                logger.exception(f"[{conn.id}] Connection handler failed: {e}")
                conn.close()

    def shutdown(self):
        """
        Stop accepting.

        Safe from a signal handler or another thread, and idempotent. A
        call that lands before start() makes start() return at once.
        """
        if self._running and not self._stop_requested.is_set():
            logger.info("Shutting down socket server...")
        self._stop_requested.set()
        self._running = False

    def _cleanup(self):
        """Clean up resources on shutdown."""
        self._running = False
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass  # Already closed
            self._socket = None

        self._listening.clear()
        logger.info("Socket server stopped")

    def wait_until_listening(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is bound and listening (for tests)."""
        return self._listening.wait(timeout)

