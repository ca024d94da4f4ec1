"""
Exception hierarchy for the chat server.

    ChatServerError
    ├── ListenerError      create/bind/listen failed        (fatal)
    ├── DispatchError      select() itself failed           (fatal)
    └── CapacityExceeded   table slot invariant violated    (programming error)

Per-connection problems (EOF, reset, short writes) are never raised out of
the server loop; they only tear down the offending connection.
"""


class ChatServerError(Exception):
    """Base class for errors raised by the chat server."""


class ListenerError(ChatServerError):
    """The listening endpoint could not be created."""

    def __init__(self, host: str, port: int, reason: str):
        self.host = host
        self.port = port
        self.reason = reason
        super().__init__(f"Failed to listen on {host}:{port}: {reason}")


class DispatchError(ChatServerError):
    """The readiness primitive failed (not a timeout)."""


class CapacityExceeded(ChatServerError):
    """An identifier could not be registered in the connection table."""
