"""
=============================================================================
READINESS DISPATCHER
=============================================================================

One thread, many sockets. Instead of a thread per client, the server asks
the kernel "which of these sockets has something for me?" and only touches
those.

=============================================================================
ONE ITERATION
=============================================================================

    ┌─────────────────────────────────────────────────────────────────┐
    │                      Dispatcher.wait()                           │
    ├─────────────────────────────────────────────────────────────────┤
    │                                                                  │
    │   1. Sync the selector with the table                            │
    │          ├── new clients      → register                         │
    │          └── removed clients  → unregister                       │
    │                                                                  │
    │   2. selector.select(timeout=poll_timeout)                       │
    │          │                                                       │
    │          ├── nothing ready  → Readiness() (empty, not an error)  │
    │          ├── select failed  → DispatchError (fatal)              │
    │          └── something ready                                     │
    │                                                                  │
    │   3. Readiness(listener_ready, ready_ids ascending)              │
    │                                                                  │
    └─────────────────────────────────────────────────────────────────┘

The connection table is the source of truth. Every wait reconciles the
selector with it, so a client registered or removed while handling one
batch is picked up (or forgotten) by the next wait. A registration is tied
to the socket object, not just the descriptor number: when the OS reuses a
number for a new client, the stale registration is replaced.

selectors.DefaultSelector picks epoll/kqueue where available, which has no
FD_SETSIZE ceiling. A client whose descriptor is 1024 or above is watched
like any other.

The timeout keeps the loop ticking even when nobody talks. That is what
lets shutdown() be noticed, and it is where periodic work would go.

=============================================================================
"""

import logging
import selectors
from dataclasses import dataclass, field
from typing import List, Optional

from ..errors import DispatchError
from .socket_server import Listener
from .table import ConnectionTable


logger = logging.getLogger(__name__)


@dataclass
class Readiness:
    """
    Result of one readiness wait.

    Attributes:
        listener_ready: A new connection is waiting to be accepted.
        ready_ids: Identifiers of readable clients, ascending.
    """

    listener_ready: bool = False
    ready_ids: List[int] = field(default_factory=list)

    @property
    def is_timeout(self) -> bool:
        """True when the wait ended without any ready socket."""
        return not self.listener_ready and not self.ready_ids


class Dispatcher:
    """
    Waits for readiness on the listener and all registered clients.

    Usage:
        dispatcher = Dispatcher(listener, table, timeout=1.0)
        while running:
            ready = dispatcher.wait()
            if ready.listener_ready:
                ...accept...
            for identifier in ready.ready_ids:
                ...read...
        dispatcher.close()
    """

    def __init__(self, listener: Listener, table: ConnectionTable, timeout: float = 1.0):
        self.listener = listener
        self.table = table
        self.timeout = timeout
        self._selector: Optional[selectors.BaseSelector] = None

    def wait(self) -> Readiness:
        """
        Block until something is readable or the timeout expires.

        Raises:
            DispatchError: Registering a descriptor or the wait itself
                           failed. This is not retried.
        """
        try:
            selector = self._sync()
            events = selector.select(self.timeout)
        except (OSError, ValueError) as e:
            logger.critical(f"select() error: {e}")
            raise DispatchError(f"select() error: {e}") from e

        if not events:
            return Readiness()

        listener_ready = False
        ready_ids = []
        for key, _ in events:
            if key.data is None:
                listener_ready = True
            else:
                ready_ids.append(key.fd)

        ready_ids.sort()
        return Readiness(listener_ready=listener_ready, ready_ids=ready_ids)

    def close(self):
        """Release the selector. A later wait() starts a fresh one."""
        if self._selector is not None:
            self._selector.close()
            self._selector = None

    def _sync(self) -> selectors.BaseSelector:
        """Make the selector watch exactly the listener and the live clients."""
        if self._selector is None:
            self._selector = selectors.DefaultSelector()
            # data=None marks the listener
            self._selector.register(self.listener.fileno(), selectors.EVENT_READ, None)

        selector = self._selector

        for key in list(selector.get_map().values()):
            if key.data is None:
                continue
            if self.table.get(key.fd) is not key.data:
                selector.unregister(key.fd)

        for conn in self.table:
            key = selector.get_map().get(conn.identifier)
            if key is None:
                selector.register(conn.identifier, selectors.EVENT_READ, conn)

        return selector
