"""
=============================================================================
CHAT SERVER CONFIGURATION
=============================================================================

Centralized configuration for the chat relay.

=============================================================================
WHERE VALUES COME FROM
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m smallchat --port 9000                           │
    │                                                                      │
    │   2. Environment variables (read by the CLI only)                   │
    │      └── SMALLCHAT_PORT=9000 python -m smallchat                   │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Embedding code (and the tests) builds a ChatConfig directly and never
touches the environment.

=============================================================================
THE 255-BYTE LIMITS
=============================================================================

The wire protocol is deliberately tiny. A client read is at most
`read_size` bytes, and every outbound chat line (timestamp included) is cut
at `max_line` bytes. Longer input is not rejected, it is simply truncated.

=============================================================================
"""

import os
from dataclasses import dataclass


DEFAULT_PORT = 7711

WELCOME_MESSAGE = "Welcome to Simple Chat! Use /nick <nick> to set your nick.\n"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ChatConfig:
    """
    Configuration for the chat server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog

    CAPACITY AND FRAMING
    - max_clients, read_size, max_line, line_mode

    EVENT LOOP
    - poll_timeout

    PRESENTATION
    - welcome, log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """
    The IP address to bind to. All interfaces by default.
    """

    port: int = DEFAULT_PORT
    """
    The TCP port to listen on. 0 asks the OS for any free port.
    """

    backlog: int = 511
    """
    Maximum number of connections queued by the kernel before accept().
    """

    # ─────────────────────────────────────────────────────────────────────
    # CAPACITY AND FRAMING
    # ─────────────────────────────────────────────────────────────────────

    max_clients: int = 1000
    """
    Maximum number of simultaneously connected clients.
    Extra connections are accepted and immediately closed.
    """

    read_size: int = 255
    """
    Bytes requested from the socket per readiness event.
    """

    max_line: int = 255
    """
    Maximum length in bytes of any formatted outbound chat line.
    """

    line_mode: bool = False
    """
    False: every read is handled as one complete message (a message split
           by TCP is relayed in pieces).
    True:  bytes are buffered per client until a newline arrives.
    """

    # ─────────────────────────────────────────────────────────────────────
    # EVENT LOOP
    # ─────────────────────────────────────────────────────────────────────

    poll_timeout: float = 1.0
    """
    Ceiling in seconds for one readiness wait. Also bounds how long
    shutdown() takes to be noticed.
    """

    # ─────────────────────────────────────────────────────────────────────
    # PRESENTATION
    # ─────────────────────────────────────────────────────────────────────

    welcome: str = WELCOME_MESSAGE
    """
    Banner sent to every client right after it connects.
    """

    log_level: str = "INFO"
    """
    Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
    """

    @classmethod
    def from_env(cls) -> "ChatConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        SMALLCHAT_HOST          Bind address (default: 0.0.0.0)
        SMALLCHAT_PORT          Listening port (default: 7711)
        SMALLCHAT_MAX_CLIENTS   Connection ceiling (default: 1000)
        SMALLCHAT_LOG_LEVEL     Logging level (default: INFO)

        =====================================================================
        """
        return cls(
            host=os.getenv("SMALLCHAT_HOST", "0.0.0.0"),
            port=int(os.getenv("SMALLCHAT_PORT", str(DEFAULT_PORT))),
            max_clients=int(os.getenv("SMALLCHAT_MAX_CLIENTS", "1000")),
            log_level=os.getenv("SMALLCHAT_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Called once by ChatServer.__init__ so a bad value fails at startup,
        before any socket is created.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.max_clients < 1:
            raise ValueError("max_clients must be >= 1")

        if self.read_size < 1:
            raise ValueError("read_size must be >= 1")

        if self.max_line < 1:
            raise ValueError("max_line must be >= 1")

        if self.poll_timeout <= 0:
            raise ValueError("poll_timeout must be > 0")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {self.log_level}")


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# 1. Type-safe configuration with dataclass
# 2. Environment variable support for the CLI
# 3. Validation at startup (fail-fast)
# 4. Defaults match the classic smallchat: port 7711, 255-byte lines,
#    one-second select() ceiling
# =============================================================================
