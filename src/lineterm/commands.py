"""
=============================================================================
COMMAND TABLE
=============================================================================

Turns a submitted line into the response text written back to the client.

The protocol engine does not know what any line means. When the user
presses Enter on a non-empty line it calls a *responder*:

    responder(line: bytes, history: CommandHistory) -> Optional[str]

and writes whatever text comes back. CommandTable is the default
responder: a keyword → handler table, registered with decorators.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        DISPATCH FLOW                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   b"history 5"                                                       │
    │        │  decode, split                                              │
    │        ▼                                                             │
    │   CommandRequest(name="history", args=["5"], history=<...>)          │
    │        │                                                             │
    │        ▼                                                             │
    │   ┌──────────────────────────────────────────┐                       │
    │   │ help     → show_help                      │                       │
    │   │ history  → show_history      ← MATCH      │                       │
    │   └──────────────────────────────────────────┘                       │
    │        │                                                             │
    │        ▼                                                             │
    │   "   1  ls\n   2  help"                                             │
    │                                                                      │
    │   No match → "Unknown command: <name>"                               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Responses are deterministic for a given keyword and history. Nothing here
executes anything on the host.

=============================================================================
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .session.history import CommandHistory


logger = logging.getLogger(__name__)


@dataclass
class CommandRequest:
    """
    A parsed input line.

    Attributes:
        line: The raw submitted bytes.
        name: First word, lowercased.
        args: Remaining words.
        history: The session's history (committed lines only are visible).
    """
    line: bytes
    name: str
    args: List[str] = field(default_factory=list)
    history: Optional[CommandHistory] = None

    @classmethod
    def parse(cls, line: bytes, history: Optional[CommandHistory] = None) -> "CommandRequest":
        words = line.decode("utf-8", errors="replace").split()
        name = words[0].lower() if words else ""
        return cls(line=line, name=name, args=words[1:], history=history)


CommandHandler = Callable[[CommandRequest], str]


@dataclass
class Command:
    """A registered keyword."""
    name: str
    handler: CommandHandler
    summary: str = ""


class CommandTable:
    """
    Keyword dispatch table used as the session responder.

    Usage:
        table = CommandTable()

        @table.command("uptime", summary="Show server uptime")
        def uptime(request):
            return "up 3 days"

        table(b"uptime", history)   # -> "up 3 days"
    """

    def __init__(self, builtins: bool = True):
        self._commands: Dict[str, Command] = {}
        if builtins:
            self.add_command("help", self._help, summary="List available commands")
            self.add_command("history", self._history, summary="Show previous lines")

    # =========================================================================
    # REGISTRATION
    # =========================================================================

    def add_command(self, name: str, handler: CommandHandler, summary: str = "") -> Command:
        """Register a handler for a keyword (case-insensitive)."""
        command = Command(name=name.lower(), handler=handler, summary=summary)
        self._commands[command.name] = command
        return command

    def command(self, name: str, summary: str = "") -> Callable[[CommandHandler], CommandHandler]:
        """Decorator form of add_command()."""
        def decorator(handler: CommandHandler) -> CommandHandler:
            self.add_command(name, handler, summary)
            return handler
        return decorator

    def commands(self) -> List[Command]:
        return sorted(self._commands.values(), key=lambda c: c.name)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def __call__(self, line: bytes, history: Optional[CommandHistory] = None) -> Optional[str]:
        request = CommandRequest.parse(line, history)
        if not request.name:
            return None

        command = self._commands.get(request.name)
        if command is None:
            return f"Unknown command: {request.name}"

        logger.debug(f"Dispatching {request.name!r} args={request.args}")
        return command.handler(request)

    # =========================================================================
    # BUILT-INS
    # =========================================================================

    def _help(self, request: CommandRequest) -> str:
        width = max(len(c.name) for c in self._commands.values())
        lines = ["Available commands:"]
        for command in self.commands():
            lines.append(f"  {command.name:<{width}}  {command.summary}".rstrip())
        return "\n".join(lines)

    def _history(self, request: CommandRequest) -> str:
        entries = request.history.lines() if request.history is not None else []
        if request.args:
            try:
                count = int(request.args[0])
            except ValueError:
                return f"history: not a number: {request.args[0]}"
            entries = entries[-count:] if count > 0 else []

        if not entries:
            return "(no history)"

        total = len(request.history.lines())
        start = total - len(entries) + 1
        return "\n".join(
            f"{number:4}  {entry.decode('utf-8', errors='replace')}"
            for number, entry in enumerate(entries, start=start)
        )
