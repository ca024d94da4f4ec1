"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking plumbing under the chat protocol.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                           LISTENER                                   │
    │  • Creates, binds and listens on the TCP endpoint                   │
    │  • Accepts clients (retrying interrupted accepts)                   │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ new client sockets
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                       CONNECTION TABLE                               │
    │  • identifier (descriptor) → Connection                             │
    │  • bounded capacity, ascending iteration, highest live id           │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ interest set
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          DISPATCHER                                  │
    │  • select() over listener + clients with a bounded wait             │
    │  • reports which of them are readable                               │
    └─────────────────────────────────────────────────────────────────────┘

Everything runs on one thread. There are no locks because nothing is
shared between threads.
"""

from .connection import Connection, default_nickname
from .table import ConnectionTable
from .socket_server import Listener, prepare_client
from .dispatcher import Dispatcher, Readiness

__all__ = [
    "Connection",        # One chat client: socket, nickname, buffer
    "default_nickname",  # "user:<fd>"
    "ConnectionTable",   # Registry of live clients
    "Listener",          # Listening socket + accept
    "prepare_client",    # Non-blocking + TCP_NODELAY for client sockets
    "Dispatcher",        # Readiness wait
    "Readiness",         # Result of one wait
]
