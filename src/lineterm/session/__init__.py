"""
=============================================================================
SESSION LAYER
=============================================================================

Everything that lives for exactly one client:

    session.py       Session: lifecycle, leases, read loop
    protocol.py      ProtocolEngine: the byte-level line discipline (FSM)
    edit_buffer.py   EditBuffer: the line being typed
    history.py       CommandHistory: submitted lines + recall cursor
    session_log.py   SessionLog: one structured record per session

=============================================================================
"""

from .edit_buffer import EditBuffer
from .history import CommandHistory
from .protocol import (
    Action,
    Arrow,
    ParserState,
    ProtocolEngine,
    Responder,
    Transport,
    format_response,
)
from .session import ExitReason, Session, exit_reason_for
from .session_log import SessionLog, SessionLogger

__all__ = [
    "EditBuffer",
    "CommandHistory",
    "Action",
    "Arrow",
    "ParserState",
    "ProtocolEngine",
    "Responder",
    "Transport",
    "format_response",
    "ExitReason",
    "Session",
    "exit_reason_for",
    "SessionLog",
    "SessionLogger",
]
