"""
=============================================================================
LINETERM CLI ENTRY POINT
=============================================================================

    # Run with defaults (0.0.0.0:2323)
    python -m lineterm

    # Localhost only, custom port
    python -m lineterm --host 127.0.0.1 --port 2424

    # Eight concurrent sessions, short lines, drop overflowing input
    python -m lineterm --workers 8 --max-line 80 --overflow ignore

    # JSON session records, byte-level tracing
    python -m lineterm --log-format json --log-level DEBUG

Every option falls back to its LINETERM_* environment variable, then to
the built-in default (see config.py).

Exit status: 0 after a clean shutdown, 1 if the configuration is invalid
or the port cannot be bound.

=============================================================================
"""

import argparse
import sys
from typing import Optional, Sequence

from . import __version__
from .config import OverflowPolicy, ServerConfig
from .server import TerminalServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="lineterm",
        description="Multi-client line-oriented terminal server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m lineterm                          # Run with defaults
  python -m lineterm --port 2424              # Custom port
  python -m lineterm --host 127.0.0.1         # Localhost only
  python -m lineterm --workers 8              # 8 concurrent sessions
  python -m lineterm --overflow ignore        # Drop input past the limit
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: 0.0.0.0)"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Port to listen on (default: 2323, 0 picks a free port)"
    )

    parser.add_argument(
        "--backlog",
        type=int,
        default=None,
        help="Listen backlog (default: 5)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # CAPACITY ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=None,
        help="Maximum concurrent sessions (default: 16)"
    )

    parser.add_argument(
        "--queue-size",
        type=int,
        default=None,
        help="Connections allowed to wait for a worker (default: 16)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # SESSION ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--prompt",
        default=None,
        help='Prompt string (default: "> ")'
    )

    parser.add_argument(
        "--max-line",
        type=int,
        default=None,
        help="Maximum input line length in bytes (default: 1023)"
    )

    parser.add_argument(
        "--history-size",
        type=int,
        default=None,
        help="Lines remembered per session (default: 100)"
    )

    parser.add_argument(
        "--overflow",
        choices=[p.value for p in OverflowPolicy],
        default=None,
        help="What to do when a line is full (default: disconnect)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        default=None,
        help="Session record format (default: text)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"lineterm {__version__}"
    )

    return parser


def build_config(args: argparse.Namespace) -> ServerConfig:
    """
    Environment first, then command-line overrides.

    Raises:
        ValueError: If an environment variable is not a valid number.
    """
    config = ServerConfig.from_env()

    overrides = {
        "host": args.host,
        "port": args.port,
        "backlog": args.backlog,
        "queue_size": args.queue_size,
        "prompt": args.prompt,
        "max_line_length": args.max_line,
        "history_size": args.history_size,
        "overflow_policy": args.overflow,
        "log_level": args.log_level,
        "log_format": args.log_format,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)

    if args.workers is not None:
        config.max_workers = args.workers
        config.min_workers = max(1, min(config.min_workers, args.workers))

    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Process exit status.
    """
    args = build_parser().parse_args(argv)

    try:
        config = build_config(args)
        server = TerminalServer(config)
    except ValueError as e:
        print(f"lineterm: invalid configuration: {e}", file=sys.stderr)
        return 1

    try:
        server.run()
    except OSError as e:
        print(f"lineterm: cannot listen on {config.host}:{config.port}: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
