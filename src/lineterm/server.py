"""
=============================================================================
TERMINAL SERVER
=============================================================================

Ties the pieces together: the acceptor, the resource registry, the worker
pool and the per-connection sessions.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Request of a client                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   SocketServer._accept_loop()                                        │
    │        │ Connection                                                  │
    │        ▼                                                             │
    │   TerminalServer._handle_connection()                                │
    │        ├── registry.lease_socket(conn)    socket is now tracked      │
    │        └── pool.submit(_run_session)                                 │
    │               ├── accepted → a worker runs Session.run()             │
    │               └── rejected → "Server busy" notice, lease released    │
    │                                                                      │
    │   Session.run()   (worker thread)                                    │
    │        └── prompt, read/echo/edit/submit ... until the client leaves │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SHUTDOWN ORDER
=============================================================================

    1. SocketServer stops accepting (signal handler or shutdown())
    2. registry.cleanup()   closes every client socket still open, which
                            wakes each session blocked in recv()
    3. pool.shutdown()      workers finish their (now ending) sessions

Sessions have no idle timeout, so step 2 is what makes step 3 finish.

=============================================================================
"""

import logging
from typing import Optional

from .commands import CommandTable
from .config import ServerConfig
from .core import Connection, ResourceLease, ResourceRegistry, SocketServer, ThreadPool
from .session import Responder, Session, SessionLogger


logger = logging.getLogger(__name__)


BUSY_NOTICE = b"Server busy, try again later.\r\n"


class TerminalServer:
    """
    Multi-client line-oriented terminal server.

    =========================================================================
    USAGE
    =========================================================================

        server = TerminalServer(ServerConfig(port=2323))

        @server.command("uptime", summary="Show server uptime")
        def uptime(request):
            return "up 3 days"

        server.run()     # blocks until SIGINT/SIGTERM or shutdown()

    =========================================================================
    COMPONENTS
    =========================================================================

    - ServerConfig: configuration, validated here (fail fast)
    - SocketServer: listening socket and accept loop
    - ResourceRegistry: every live socket and edit buffer
    - ThreadPool: bounded session workers (admission control)
    - Responder: turns submitted lines into response text
      (CommandTable unless another callable is given)

    =========================================================================
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        responder: Optional[Responder] = None,
        registry: Optional[ResourceRegistry] = None,
    ):
        """
        Initialize the server.

        Args:
            config: Server configuration. Uses defaults if not provided.
            responder: Response generator for submitted lines.
            registry: Resource registry (a fresh one if not provided).

        Raises:
            ValueError: If the configuration is invalid.
        """
        self.config = config or ServerConfig()
        self.config.validate()

        self.registry = registry if registry is not None else ResourceRegistry()
        self.responder = responder if responder is not None else CommandTable()

        self._settings = self.config.session_settings()
        self._session_logger = SessionLogger(log_format=self.config.log_format)
        self._socket_server = SocketServer(self.config)
        self._thread_pool = ThreadPool(
            min_workers=self.config.min_workers,
            max_workers=self.config.max_workers,
            queue_size=self.config.queue_size,
        )

        self._running = False
        self.connections_accepted = 0
        self.connections_rejected = 0

    def command(self, name: str, summary: str = ""):
        """
        Register a command keyword (decorator).

        Only available with the default CommandTable responder.
        """
        if not isinstance(self.responder, CommandTable):
            raise TypeError("command() requires a CommandTable responder")
        return self.responder.command(name, summary)

    # =========================================================================
    # RUNNING
    # =========================================================================

    def run(self, host: Optional[str] = None, port: Optional[int] = None):
        """
        Start the server (blocking).

        Args:
            host: Override config host.
            port: Override config port.

        Raises:
            OSError: If the listening socket cannot be bound.
        """
        if host:
            self.config.host = host
        if port is not None:
            self.config.port = port

        self._running = True
        self._setup_logging()
        self._thread_pool.start()

        logger.info(
            f"Starting terminal server on {self.config.host}:{self.config.port} "
            f"({self.config.min_workers}-{self.config.max_workers} workers, "
            f"queue {self.config.queue_size})"
        )

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self):
        """Stop accepting; run() then sweeps and returns. Thread-safe."""
        self._socket_server.shutdown()

    def wait_until_listening(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_listening(timeout)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> tuple:
        """Bound (host, port); the real port when configured with 0."""
        return self._socket_server.address

    @property
    def stats(self) -> dict:
        """Connection counters plus registry and pool stats."""
        return {
            "connections": {
                "accepted": self.connections_accepted,
                "rejected": self.connections_rejected,
            },
            "registry": self.registry.stats,
            "pool": self._thread_pool.stats,
        }

    def _setup_logging(self):
        """Configure logging based on config."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("lineterm").setLevel(level)

    def _shutdown(self):
        """
        Graceful shutdown.

        =====================================================================
        1. Stop accepting (already done when we get here)
        2. Sweep the registry: close sockets, release buffers
        3. Shutdown the thread pool
        =====================================================================
        """
        logger.info("Shutting down server...")
        self._running = False

        released = self.registry.cleanup()
        if released:
            logger.info(f"Released {released} resources left by running sessions")

        self._thread_pool.shutdown(wait=True, timeout=self.config.shutdown_timeout)
        logger.info("Server stopped")

    # =========================================================================
    # CONNECTIONS
    # =========================================================================

    def _handle_connection(self, conn: Connection):
        """
        Register a new connection and queue its session.

        Called by SocketServer in the accept thread, so it never blocks:
        a full pool means the connection is turned away at once.
        """
        lease = self.registry.lease_socket(conn)

        try:
            submitted = self._thread_pool.submit(self._run_session, args=(conn, lease))
        except RuntimeError:
            submitted = False  # Pool already shutting down

        if not submitted:
            logger.warning(f"[{conn.id}] Worker pool full, rejecting {conn.client_ip}")
            conn.write(BUSY_NOTICE)
            lease.release()
            self.connections_rejected += 1
            return

        self.connections_accepted += 1

    def _run_session(self, conn: Connection, lease: ResourceLease):
        """Run one session (worker thread)."""
        session = Session(
            conn,
            self.registry,
            settings=self._settings,
            responder=self.responder,
            socket_lease=lease,
            session_logger=self._session_logger,
        )
        session.run()


def create_server(config: Optional[ServerConfig] = None) -> TerminalServer:
    """
    Create a terminal server.

    Example:
        server = create_server(ServerConfig(port=2424))
        server.run()
    """
    return TerminalServer(config)
