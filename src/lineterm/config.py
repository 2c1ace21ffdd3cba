"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration management for the terminal server.

=============================================================================
TWO LEVELS OF CONFIGURATION
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION LAYERS                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ServerConfig (mutable, one per process)                           │
    │      └── network, worker pool, logging, session defaults            │
    │                     │                                                │
    │                     │ session_settings()                             │
    │                     ▼                                                │
    │   SessionSettings (frozen, handed to every session)                 │
    │      └── prompt, max line length, history size, overflow policy     │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

ServerConfig is validated once at startup and raises ValueError (fail
fast). SessionSettings is checked again by each session before its read
loop starts, because a session can also be built directly (tests, embedded
use) without going through ServerConfig. That check raises
ProtocolPreconditionError so the session can release its resources and
stop without ever reading a byte.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

   Priority (highest to lowest):

   1. Command-line arguments
      └── python -m lineterm --port 2424

   2. Environment variables
      └── LINETERM_PORT=2424 python -m lineterm

   3. Default values (in this dataclass)

=============================================================================
"""

import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import ProtocolPreconditionError


class OverflowPolicy(Enum):
    """
    What to do with a printable byte once the edit buffer is full.

    DISCONNECT ends the session with an error (the classic fixed-buffer
    behaviour). IGNORE drops the byte without echoing it.
    """
    DISCONNECT = "disconnect"
    IGNORE = "ignore"


@dataclass(frozen=True)
class SessionSettings:
    """
    Per-session protocol settings.

    Attributes:
        prompt: Bytes sent on connect and after every submitted line.
        max_line_length: Maximum number of bytes in the edit buffer.
        history_size: Maximum number of committed history entries.
        overflow_policy: Behaviour when the edit buffer is full.
    """
    prompt: bytes = b"> "
    max_line_length: int = 1023
    history_size: int = 100
    overflow_policy: OverflowPolicy = OverflowPolicy.DISCONNECT

    def check(self) -> None:
        """
        Verify the settings before a session starts.

        Raises:
            ProtocolPreconditionError: If any setting is unusable.
        """
        if not isinstance(self.prompt, (bytes, bytearray)) or not self.prompt:
            raise ProtocolPreconditionError("prompt must be a non-empty byte string")

        if self.max_line_length < 1:
            raise ProtocolPreconditionError(
                f"max_line_length must be >= 1, got {self.max_line_length}"
            )

        if self.history_size < 1:
            raise ProtocolPreconditionError(
                f"history_size must be >= 1, got {self.history_size}"
            )

        if not isinstance(self.overflow_policy, OverflowPolicy):
            raise ProtocolPreconditionError(
                f"unknown overflow policy: {self.overflow_policy!r}"
            )


@dataclass
class ServerConfig:
    """
    Configuration for the terminal server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog

    WORKER POOL (admission control)
    - min_workers, max_workers, queue_size, shutdown_timeout

    SESSION SETTINGS
    - prompt, max_line_length, history_size, overflow_policy

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """
    The IP address to bind to.
    - "0.0.0.0" - All network interfaces (remote terminals)
    - "127.0.0.1" - Localhost only (development, tests)
    """

    port: int = 2323
    """
    The port number to listen on.
    2323 is the customary unprivileged telnet port.
    """

    backlog: int = 5
    """
    Maximum number of queued connections in the kernel accept queue.
    """

    # ─────────────────────────────────────────────────────────────────────
    # WORKER POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    """Worker threads created at startup."""

    max_workers: int = 16
    """
    Maximum worker threads, which is also the maximum number of sessions
    served at the same time (one session occupies one worker).
    """

    queue_size: int = 16
    """
    Accepted connections allowed to wait for a free worker.
    Beyond this, new connections are told the server is busy and closed.
    """

    shutdown_timeout: float = 5.0
    """Seconds to wait for workers to finish during shutdown."""

    # ─────────────────────────────────────────────────────────────────────
    # SESSION SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    prompt: str = "> "
    """Prompt string sent on connect and after each submitted line."""

    max_line_length: int = 1023
    """Maximum bytes in one input line."""

    history_size: int = 100
    """Maximum remembered lines per session (oldest evicted first)."""

    overflow_policy: str = "disconnect"
    """'disconnect' or 'ignore' when a line is full."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """
    Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    DEBUG also traces every received byte.
    """

    log_format: str = "text"
    """
    Session log format: 'json' or 'text'.
    """

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        LINETERM_HOST          Server host (default: 0.0.0.0)
        LINETERM_PORT          Server port (default: 2323)
        LINETERM_BACKLOG       Listen backlog (default: 5)
        LINETERM_WORKERS       Max worker threads (default: 16)
        LINETERM_QUEUE_SIZE    Pending connections (default: 16)
        LINETERM_PROMPT        Prompt string (default: "> ")
        LINETERM_MAX_LINE      Max line length (default: 1023)
        LINETERM_HISTORY_SIZE  History entries (default: 100)
        LINETERM_OVERFLOW      disconnect | ignore (default: disconnect)
        LINETERM_LOG_LEVEL     Logging level (default: INFO)
        LINETERM_LOG_FORMAT    text | json (default: text)

        =====================================================================
        """
        max_workers = int(os.getenv("LINETERM_WORKERS", "16"))
        return cls(
            host=os.getenv("LINETERM_HOST", "0.0.0.0"),
            port=int(os.getenv("LINETERM_PORT", "2323")),
            backlog=int(os.getenv("LINETERM_BACKLOG", "5")),
            min_workers=min(4, max_workers),
            max_workers=max_workers,
            queue_size=int(os.getenv("LINETERM_QUEUE_SIZE", "16")),
            prompt=os.getenv("LINETERM_PROMPT", "> "),
            max_line_length=int(os.getenv("LINETERM_MAX_LINE", "1023")),
            history_size=int(os.getenv("LINETERM_HISTORY_SIZE", "100")),
            overflow_policy=os.getenv("LINETERM_OVERFLOW", "disconnect"),
            log_level=os.getenv("LINETERM_LOG_LEVEL", "INFO"),
            log_format=os.getenv("LINETERM_LOG_FORMAT", "text"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        =====================================================================
        FAIL-FAST PRINCIPLE
        =====================================================================

        We validate configuration at startup, not at first use.
        A bad prompt or line length would otherwise only show up when
        the first client connects.

        =====================================================================
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.min_workers < 1:
            raise ValueError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ValueError("max_workers must be >= min_workers")

        if self.queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        if not self.prompt:
            raise ValueError("prompt must not be empty")

        if self.max_line_length < 1:
            raise ValueError("max_line_length must be >= 1")

        if self.history_size < 1:
            raise ValueError("history_size must be >= 1")

        if self.overflow_policy not in {p.value for p in OverflowPolicy}:
            raise ValueError(
                f"overflow_policy must be one of "
                f"{sorted(p.value for p in OverflowPolicy)}"
            )

        if self.log_format not in ("text", "json"):
            raise ValueError("log_format must be 'text' or 'json'")

    def session_settings(self, prompt: Optional[str] = None) -> SessionSettings:
        """
        Build the frozen per-session settings from this config.

        Args:
            prompt: Optional prompt override.
        """
        return SessionSettings(
            prompt=(prompt or self.prompt).encode("utf-8"),
            max_line_length=self.max_line_length,
            history_size=self.history_size,
            overflow_policy=OverflowPolicy(self.overflow_policy),
        )


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# 1. ServerConfig: typed, env-aware, validated at startup
# 2. SessionSettings: immutable view handed to every session
# 3. OverflowPolicy: explicit behaviour for a full input line
# =============================================================================
