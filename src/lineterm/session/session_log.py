"""
=============================================================================
SESSION LOG
=============================================================================

One structured record per finished session: who connected, how long they
stayed, how much they typed, and why the session ended.

    TEXT FORMAT (default):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ 10.0.0.7:51812 [16/Oct/2026:10:55:36 +0000] a1b2c3d4 client_closed │
    │ lines=3 in=42 out=118 1520.33ms                                     │
    └─────────────────────────────────────────────────────────────────────┘

    JSON FORMAT (for log aggregators):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ {"session_id": "a1b2c3d4", "client_ip": "10.0.0.7",                │
    │  "client_port": 51812, "exit_reason": "client_closed",             │
    │  "lines_submitted": 3, "bytes_received": 42, "bytes_sent": 118,    │
    │  "duration_ms": 1520.33, "timestamp": "16/Oct/2026:10:55:36 +0000"} │
    └─────────────────────────────────────────────────────────────────────┘

The record never contains what the user typed.

=============================================================================
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional


# Namespaced so deployments can route session records on their own:
#   logging.getLogger("lineterm.sessions").addHandler(file_handler)
logger = logging.getLogger("lineterm.sessions")


@dataclass
class SessionLog:
    """
    Structured log entry for a session.

    Attributes:
        session_id: Connection id, shared with the debug log lines.
        client_ip: Peer address.
        client_port: Peer port.
        exit_reason: ExitReason value.
        lines_submitted: Non-empty lines the user entered.
        bytes_received: Bytes read from the client.
        bytes_sent: Bytes written to the client.
        duration_ms: Session lifetime.
        timestamp: When the session ended.
    """

    session_id: str
    client_ip: str
    client_port: int
    exit_reason: str
    lines_submitted: int
    bytes_received: int
    bytes_sent: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        return {
            "session_id": self.session_id,
            "client_ip": self.client_ip,
            "client_port": self.client_port,
            "exit_reason": self.exit_reason,
            "lines_submitted": self.lines_submitted,
            "bytes_received": self.bytes_received,
            "bytes_sent": self.bytes_sent,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp,
        }

    def to_text(self) -> str:
        return (
            f"{self.client_ip}:{self.client_port} [{self.timestamp}] "
            f"{self.session_id} {self.exit_reason} "
            f"lines={self.lines_submitted} in={self.bytes_received} "
            f"out={self.bytes_sent} {self.duration_ms:.2f}ms"
        )


class SessionLogger:
    """
    Emits SessionLog records to the "lineterm.sessions" logger.

    Usage:
        session_logger = SessionLogger(log_format="json")
        session_logger.emit(entry)
    """

    def __init__(self, log_format: str = "text", log_level: int = logging.INFO):
        if log_format not in ("text", "json"):
            raise ValueError("log_format must be 'text' or 'json'")
        self.log_format = log_format
        self.log_level = log_level

    def format(self, entry: SessionLog) -> str:
        if self.log_format == "json":
            return json.dumps(entry.to_dict())
        return entry.to_text()

    def emit(self, entry: Optional[SessionLog]) -> None:
        if entry is None:
            return
        logger.log(self.log_level, self.format(entry))


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# 1. SessionLog: one record per session, text or JSON
# 2. SessionLogger: formats and routes records to "lineterm.sessions"
# =============================================================================
