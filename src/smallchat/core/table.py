"""
=============================================================================
CONNECTION TABLE
=============================================================================

The registry of every connected client, keyed by socket descriptor.

=============================================================================
WHY TRACK THE HIGHEST IDENTIFIER?
=============================================================================

The classic select()-based chat server keeps clients in an array indexed
by descriptor number and remembers the highest slot in use, so loops can
stop early instead of scanning the whole array:

    slot:    0    1    2    3    4    5    6    7   ...  999
           ┌────┬────┬────┬────┬────┬────┬────┬────┬───┬────┐
           │    │    │    │ c3 │    │ c5 │    │    │   │    │
           └────┴────┴────┴────┴────┴────┴────┴────┴───┴────┘
                                       ▲
                                    max_id = 5

Here the slots live in a dict instead of a fixed array, so descriptor
numbers are not tied to capacity: `capacity` limits how MANY clients are
live, not how large their descriptors may be. `max_id` is still kept
because iteration walks identifiers in ascending order up to it, and that
order is the order of /list output and of broadcast delivery.

When the client holding `max_id` leaves, the table scans downward from the
old maximum to find the new one (or -1 when empty):

    remove(5)  →  scan 4, 3  →  max_id = 3

=============================================================================
"""

import socket
import logging
from typing import Callable, Dict, Iterator, Optional, Tuple

from ..errors import CapacityExceeded
from .connection import Connection


logger = logging.getLogger(__name__)


class ConnectionTable:
    """
    Bounded identifier → Connection mapping.

    Invariant: every identifier in the table refers to an open socket.
    remove() closes the socket of the entry it drops, exactly once.

    Usage:
        table = ConnectionTable(capacity=1000)
        conn = table.register(sock.fileno(), sock)
        table.lookup_by_nickname("alice")
        table.remove(conn.identifier)
    """

    def __init__(self, capacity: int = 1000):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")

        self.capacity = capacity
        self._slots: Dict[int, Connection] = {}
        self._max_id = -1

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def count(self) -> int:
        """Number of live connections."""
        return len(self._slots)

    @property
    def max_id(self) -> int:
        """Highest live identifier, or -1 when the table is empty."""
        return self._max_id

    @property
    def is_full(self) -> bool:
        return len(self._slots) >= self.capacity

    def __len__(self) -> int:
        return len(self._slots)

    def __contains__(self, identifier: int) -> bool:
        return identifier in self._slots

    def get(self, identifier: int) -> Optional[Connection]:
        """Return the connection registered under `identifier`, if any."""
        return self._slots.get(identifier)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def register(
        self,
        identifier: int,
        sock: socket.socket,
        address: Optional[Tuple[str, int]] = None,
    ) -> Connection:
        """
        Create and store a connection for `identifier`.

        The new connection gets the default nickname "user:<identifier>".

        Raises:
            CapacityExceeded: The identifier is negative, already taken,
                              or the table is full.
        """
        if identifier < 0:
            raise CapacityExceeded(f"Invalid identifier: {identifier}")
        if identifier in self._slots:
            raise CapacityExceeded(f"Identifier {identifier} already registered")
        if self.is_full:
            raise CapacityExceeded(
                f"Connection table full ({self.capacity} clients)"
            )

        conn = Connection(socket=sock, identifier=identifier, address=address)
        self._slots[identifier] = conn

        if identifier > self._max_id:
            self._max_id = identifier

        logger.debug(f"Registered fd={identifier} ({self.count}/{self.capacity})")
        return conn

    def remove(self, identifier: int) -> Optional[Connection]:
        """
        Drop `identifier` from the table and close its socket.

        Returns:
            The removed connection, or None if nothing was registered.
        """
        conn = self._slots.pop(identifier, None)
        if conn is None:
            return None

        conn.close()

        if identifier == self._max_id:
            self._max_id = self._scan_down(identifier - 1)

        logger.debug(f"Removed fd={identifier}, max_id now {self._max_id}")
        return conn

    def close_all(self):
        """Remove every connection, closing each socket."""
        for identifier in list(self._slots):
            self.remove(identifier)

    def _scan_down(self, start: int) -> int:
        """Find the highest live identifier at or below `start`."""
        if not self._slots:
            return -1
        for identifier in range(start, -1, -1):
            if identifier in self._slots:
                return identifier
        return -1

    # =========================================================================
    # QUERIES
    # =========================================================================

    def __iter__(self) -> Iterator[Connection]:
        """Live connections in ascending identifier order."""
        for identifier in sorted(self._slots):
            if identifier > self._max_id:
                break
            yield self._slots[identifier]

    def for_each_live(self, fn: Callable[[Connection], None]):
        """Call `fn` for every live connection, lowest identifier first."""
        for conn in list(self):
            fn(conn)

    def lookup_by_nickname(self, name: str) -> Optional[Connection]:
        """
        First connection whose nickname equals `name` exactly
        (case-sensitive), scanning identifiers in ascending order.
        """
        for conn in self:
            if conn.nickname == name:
                return conn
        return None

    def nicknames(self):
        """Nicknames of all live connections, in ascending identifier order."""
        return [conn.nickname for conn in self]
