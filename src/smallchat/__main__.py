"""
=============================================================================
SMALLCHAT CLI ENTRY POINT
=============================================================================

    # Run with defaults (0.0.0.0:7711)
    python -m smallchat

    # Custom port
    python -m smallchat --port 9000

    # Reassemble lines split across TCP reads
    python -m smallchat --line-mode

    # Verbose diagnostics
    python -m smallchat --log-level DEBUG

Defaults come from the environment (SMALLCHAT_HOST, SMALLCHAT_PORT,
SMALLCHAT_MAX_CLIENTS, SMALLCHAT_LOG_LEVEL); flags override them.

=============================================================================
"""

import argparse
import sys

from . import __version__
from .config import ChatConfig, LOG_LEVELS
from .errors import ChatServerError
from .server import ChatServer, setup_console


def build_parser(defaults: ChatConfig) -> argparse.ArgumentParser:
    """Build the argument parser, seeding defaults from `defaults`."""
    parser = argparse.ArgumentParser(
        prog="smallchat",
        description="Multi-client TCP chat relay",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m smallchat                   # Run with defaults
  python -m smallchat --port 9000       # Custom port
  python -m smallchat --host 127.0.0.1  # Local connections only
  python -m smallchat --line-mode       # Buffer until newline
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=defaults.host,
        help=f"Host to bind to (default: {defaults.host})"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=defaults.port,
        help=f"Port to listen on (default: {defaults.port})"
    )

    # ─────────────────────────────────────────────────────────────────────
    # CAPACITY AND FRAMING
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--max-clients", "-m",
        type=int,
        default=defaults.max_clients,
        help=f"Maximum connected clients (default: {defaults.max_clients})"
    )

    parser.add_argument(
        "--line-mode",
        action="store_true",
        default=defaults.line_mode,
        help="Buffer input until a newline instead of relaying each read"
    )

    # ─────────────────────────────────────────────────────────────────────
    # META ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=LOG_LEVELS,
        type=str.upper,
        default=defaults.log_level.upper(),
        help=f"Logging level (default: {defaults.log_level.upper()})"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"smallchat {__version__}"
    )

    return parser


def main(argv=None) -> int:
    """Parse arguments, build the server and run it until interrupted."""
    try:
        defaults = ChatConfig.from_env()
    except ValueError as e:
        print(f"Error: invalid environment: {e}", file=sys.stderr)
        return 1

    args = build_parser(defaults).parse_args(argv)

    config = ChatConfig(
        host=args.host,
        port=args.port,
        max_clients=args.max_clients,
        line_mode=args.line_mode,
        log_level=args.log_level,
    )

    setup_console()

    try:
        server = ChatServer(config)
        server.run()
    except (ChatServerError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
