"""
=============================================================================
SMALLCHAT - A Tiny Multi-Client TCP Chat Relay
=============================================================================

Clients connect with telnet or netcat, type lines, and everybody else sees
them. A handful of slash commands round it off.

=============================================================================
PROJECT OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       SMALLCHAT ARCHITECTURE                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. ONE THREAD, MANY SOCKETS                                        │
    │      - select() over the listener and every client                   │
    │      - bounded wait so the loop always wakes up                      │
    │                                                                      │
    │   2. CONNECTION TABLE                                                │
    │      - clients keyed by descriptor                                   │
    │      - ascending order for /list and broadcasts                      │
    │                                                                      │
    │   3. CHAT PROTOCOL                                                   │
    │      - plain lines are broadcast as "[HH:MM:SS] nick> text"          │
    │      - /nick, /list, /dm                                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    smallchat/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m smallchat)
    ├── server.py            # ChatServer orchestrator
    ├── config.py            # ChatConfig dataclass
    ├── errors.py            # Exception hierarchy
    ├── core/                # Networking plumbing
    │   ├── connection.py    # One client: socket, nickname, buffer
    │   ├── table.py         # ConnectionTable registry
    │   ├── socket_server.py # Listening socket + accept
    │   └── dispatcher.py    # select() readiness wait
    └── chat/                # Chat protocol
        ├── broadcast.py     # Timestamped fan-out
        └── commands.py      # /nick, /list, /dm

=============================================================================
QUICK START
=============================================================================

    from smallchat import ChatServer, ChatConfig

    server = ChatServer(ChatConfig(port=7711))
    server.run()

    # in other terminals
    $ nc localhost 7711
    Welcome to Simple Chat! Use /nick <nick> to set your nick.
    /nick alice
    hello everyone

=============================================================================
"""

__version__ = "1.0.0"

from .server import ChatServer, create_server
from .config import ChatConfig
from .errors import ChatServerError, ListenerError, DispatchError, CapacityExceeded

__all__ = [
    "ChatServer",
    "create_server",
    "ChatConfig",
    "ChatServerError",
    "ListenerError",
    "DispatchError",
    "CapacityExceeded",
    "__version__",
]
