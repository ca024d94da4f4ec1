"""
=============================================================================
LISTENING ENDPOINT
=============================================================================

This module owns the server's listening socket: creating it, binding it,
and accepting clients from it. Everything else (reading, broadcasting,
commands) happens elsewhere; this is only the front door.

=============================================================================
SOCKET LIFECYCLE (Server Side)
=============================================================================

    1. socket()    Create a TCP socket
    2. bind()      Associate it with HOST:PORT
    3. listen()    Let the kernel queue incoming connections
    4. accept()    Take one queued connection, get a NEW socket for it
    5. close()     Release the listening socket

                    ┌───────────────────────┐
                    │   Listening Socket    │ ◄── Created once at startup
                    │                       │     Bound to 0.0.0.0:7711
                    └───────────┬───────────┘     Never carries chat data
                                │
        ┌───────────────────────┼───────────────────────┐
        ▼                       ▼                       ▼
    ┌───────────┐         ┌───────────┐         ┌───────────┐
    │ Client    │         │ Client    │         │ Client    │
    │ fd=4      │         │ fd=5      │         │ fd=7      │
    └───────────┘         └───────────┘         └───────────┘

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR (listening socket):
    Restarting the server right away would otherwise fail with
    "Address already in use" while old sockets sit in TIME_WAIT.

O_NONBLOCK (listening and client sockets):
    The event loop must never stall on one socket. A non-blocking
    accept()/recv()/send() returns immediately with an error instead.

TCP_NODELAY (client sockets):
    Chat lines are small. Without this, Nagle's algorithm may hold them
    back waiting for more data to coalesce.

=============================================================================
"""

import socket
import logging
from typing import Optional, Tuple

from ..config import ChatConfig
from ..errors import ListenerError


logger = logging.getLogger(__name__)


class Listener:
    """
    The server's listening TCP socket.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Listener Internals                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    start()           Create, bind, listen                            │
    │        │                                                             │
    │        ├──► _create_socket()  socket() + SO_REUSEADDR + O_NONBLOCK  │
    │        ├──► bind()            HOST:PORT                              │
    │        └──► listen()          backlog                                │
    │                                                                      │
    │    accept()          One client, or None on failure                  │
    │        │                                                             │
    │        ├──► retry on EINTR                                           │
    │        └──► prepare_client()  O_NONBLOCK + TCP_NODELAY               │
    │                                                                      │
    │    close()           Release the socket                              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Usage:
        listener = Listener(config)
        listener.start()
        accepted = listener.accept()
        if accepted:
            client_socket, address = accepted
    """

    def __init__(self, config: ChatConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None

    @property
    def listening_socket(self) -> Optional[socket.socket]:
        """The underlying listening socket (None until start())."""
        return self._socket

    @property
    def is_listening(self) -> bool:
        return self._socket is not None

    @property
    def address(self) -> Tuple[str, int]:
        """
        The bound (host, port). With port 0 in the config this reports the
        port the OS actually picked.
        """
        if self._socket is None:
            return (self.config.host, self.config.port)
        host, port = self._socket.getsockname()[:2]
        return (host, port)

    def fileno(self) -> int:
        """Descriptor of the listening socket (select() accepts objects with fileno())."""
        return self._socket.fileno()

    def _create_socket(self) -> socket.socket:
        """Create and configure the listening socket."""
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)

        # Best effort: a failure here only means a slower restart.
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        except OSError:
            pass

        # A readable listener can still have nothing to accept (the peer
        # may have reset in between), so accept() must not block.
        sock.setblocking(False)

        return sock

    def start(self):
        """
        Create, bind and listen.

        Raises:
            ListenerError: Any step failed. The server cannot run without
                           its listening socket, so this is fatal.
        """
        if self._socket is not None:
            return

        try:
            sock = self._create_socket()
        except OSError as e:
            raise ListenerError(self.config.host, self.config.port, str(e)) from e

        try:
            sock.bind((self.config.host, self.config.port))
            sock.listen(self.config.backlog)
        except OSError as e:
            sock.close()
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            raise ListenerError(self.config.host, self.config.port, str(e)) from e

        self._socket = sock
        host, port = self.address
        logger.info(f"Listening on {host}:{port}")

    def accept(self) -> Optional[Tuple[socket.socket, Tuple[str, int]]]:
        """
        Accept one pending connection.

        An interrupted accept() is retried. Any other failure is logged and
        reported as None: a failed accept never stops the server.

        Returns:
            (client_socket, client_address) ready for the event loop, or
            None if nothing could be accepted.
        """
        while True:
            try:
                client_socket, client_address = self._socket.accept()
            except InterruptedError:
                continue  # Try again
            except BlockingIOError:
                # Readiness was reported, but the connection is already gone
                logger.debug("Accept would block, nothing pending")
                return None
            except OSError as e:
                logger.warning(f"Accept error: {e}")
                return None
            break

        prepare_client(client_socket)
        return client_socket, client_address

    def close(self):
        """Close the listening socket."""
        if self._socket is None:
            return
        try:
            self._socket.close()
        except OSError:
            pass  # Already closed
        self._socket = None
        logger.info("Listener closed")


def prepare_client(sock: socket.socket):
    """
    Put an accepted client socket in non-blocking, no-delay mode.

    TCP_NODELAY is best effort, the same as in the classic smallchat.
    """
    sock.setblocking(False)
    try:
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
    except OSError:
        pass
