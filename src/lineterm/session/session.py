"""
=============================================================================
SESSION
=============================================================================

One client, from the first prompt to the closed socket. Runs inside a
pool worker thread.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Session Lifecycle                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. socket lease (taken by the acceptor, or here)                   │
    │   2. settings.check()  ── bad settings → PRECONDITION_FAILED         │
    │   3. edit buffer + buffer lease, history, protocol engine            │
    │   4. engine.start()    ── sends the prompt                           │
    │   5. loop: read_byte() → engine.process(byte)                        │
    │        └── until EOF, Ctrl+C/Ctrl+D, or an error Action              │
    │   6. finally: release buffer lease, release socket lease,            │
    │               emit the session log record                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Step 6 runs on EVERY exit path. If the shutdown sweep already released a
resource, the matching lease release is a no-op, so nothing is ever
closed twice.

=============================================================================
"""

import logging
import time
from enum import Enum
from typing import Optional

from ..config import SessionSettings
from ..core.connection import Connection
from ..core.registry import ResourceLease, ResourceRegistry
from ..errors import (
    AllocationError,
    LineOverflowError,
    LineTermError,
    ProtocolPreconditionError,
    ResourceReleasedError,
    TransportError,
)
from .edit_buffer import EditBuffer
from .history import CommandHistory
from .protocol import Action, ProtocolEngine, Responder
from .session_log import SessionLog, SessionLogger


logger = logging.getLogger(__name__)


class ExitReason(Enum):
    """Why a session ended."""
    CLIENT_CLOSED = "client_closed"              # Ctrl+C / Ctrl+D
    DISCONNECTED = "disconnected"                # EOF, reset, or swept socket
    TRANSPORT_ERROR = "transport_error"          # Short write
    ALLOCATION_ERROR = "allocation_error"        # Buffer/history could not grow
    RESOURCE_RELEASED = "resource_released"      # Buffer swept mid-session
    LINE_OVERFLOW = "line_overflow"              # Full line, disconnect policy
    PRECONDITION_FAILED = "precondition_failed"  # Bad settings, never started
    INTERNAL_ERROR = "internal_error"            # Unexpected exception, re-raised


_ERROR_REASONS = {
    TransportError: ExitReason.TRANSPORT_ERROR,
    AllocationError: ExitReason.ALLOCATION_ERROR,
    ResourceReleasedError: ExitReason.RESOURCE_RELEASED,
    LineOverflowError: ExitReason.LINE_OVERFLOW,
}


class Session:
    """
    A single client session.

    Usage:
        session = Session(conn, registry, config.session_settings(),
                          responder=CommandTable())
        reason = session.run()   # blocks until the client is gone

    Args:
        connection: The accepted client connection.
        registry: Shared resource registry.
        settings: Protocol settings (prompt, limits, overflow policy).
        responder: Produces response text for submitted lines.
        socket_lease: Lease already taken by the acceptor. If omitted the
                      session registers the connection itself.
        session_logger: Where the end-of-session record goes.
    """

    def __init__(
        self,
        connection: Connection,
        registry: ResourceRegistry,
        settings: Optional[SessionSettings] = None,
        responder: Optional[Responder] = None,
        socket_lease: Optional[ResourceLease] = None,
        session_logger: Optional[SessionLogger] = None,
    ):
        self.connection = connection
        self.registry = registry
        self.settings = settings or SessionSettings()
        self.responder = responder
        self.session_logger = session_logger or SessionLogger()

        self._socket_lease = socket_lease
        self.engine: Optional[ProtocolEngine] = None
        self.exit_reason: Optional[ExitReason] = None

    @property
    def id(self) -> str:
        return self.connection.id

    def run(self) -> ExitReason:
        """
        Serve the client until the session ends.

        Never raises the lineterm error types; they become an ExitReason.
        Anything else propagates to the worker after the leases are
        released.
        """
        started = time.time()
        socket_lease = self._socket_lease or self.registry.lease_socket(self.connection)
        buffer_lease: Optional[ResourceLease] = None
        reason = ExitReason.DISCONNECTED

        logger.debug(f"[{self.id}] Session started for {self.connection.client_ip}")

        try:
            try:
                self.settings.check()
            except ProtocolPreconditionError as e:
                logger.warning(f"[{self.id}] Session not started: {e}")
                reason = ExitReason.PRECONDITION_FAILED
                return reason

            try:
                buffer = EditBuffer(self.settings.max_line_length)
                buffer_lease = self.registry.lease_buffer(buffer)
                history = CommandHistory(self.settings.history_size)
            except MemoryError:
                logger.warning(f"[{self.id}] Cannot allocate session state")
                reason = ExitReason.ALLOCATION_ERROR
                return reason

            self.engine = ProtocolEngine(
                transport=self.connection,
                prompt=self.settings.prompt,
                buffer=buffer,
                history=history,
                responder=self.responder,
                overflow_policy=self.settings.overflow_policy,
            )
            reason = self._serve(self.engine)
            return reason

        except Exception:
            reason = ExitReason.INTERNAL_ERROR
            raise

        finally:
            if buffer_lease is not None:
                buffer_lease.release()
            socket_lease.release()
            self.exit_reason = reason
            self.session_logger.emit(self._log_entry(reason, started))
            logger.debug(f"[{self.id}] Session ended: {reason.value}")

    def _serve(self, engine: ProtocolEngine) -> ExitReason:
        action = engine.start()

        while action is Action.CONTINUE:
            byte = self.connection.read_byte()
            if byte is None:
                return ExitReason.DISCONNECTED
            action = engine.process(byte)

        if action is Action.TERMINATE:
            return ExitReason.CLIENT_CLOSED
        return exit_reason_for(engine.error)

    def _log_entry(self, reason: ExitReason, started: float) -> SessionLog:
        return SessionLog(
            session_id=self.id,
            client_ip=str(self.connection.client_ip),
            client_port=int(self.connection.client_port),
            exit_reason=reason.value,
            lines_submitted=self.engine.lines_submitted if self.engine else 0,
            bytes_received=self.connection.bytes_received,
            bytes_sent=self.connection.bytes_sent,
            duration_ms=(time.time() - started) * 1000,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )


def exit_reason_for(error: Optional[LineTermError]) -> ExitReason:
    """Map the engine's error to an ExitReason."""
    for error_type, reason in _ERROR_REASONS.items():
        if isinstance(error, error_type):
            return reason
    return ExitReason.INTERNAL_ERROR
