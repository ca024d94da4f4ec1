"""
=============================================================================
BROADCASTER
=============================================================================

Fan-out: one message in, one write per other client out.

    sender fd=5 says "hi"
            │
            ▼
    "[14:03:27] carol> hi\n"
            │
      ┌─────┼──────────────┬──────────────┐
      ▼     ✗              ▼              ▼
    fd=4   fd=5 (sender)  fd=7           fd=9

Every write is a single send() straight into the kernel socket buffer.
There is no per-client queue: a client that stops reading eventually gets
short writes, and nobody notices. That keeps the server trivially simple at
the price of delivery guarantees.
"""

import time
import logging
from typing import Callable

from ..core.table import ConnectionTable


logger = logging.getLogger(__name__)

# Matches no descriptor, so broadcast_except(EXCLUDE_NONE, ...) reaches everyone.
EXCLUDE_NONE = -1


def timestamp(clock: Callable[[], time.struct_time] = time.localtime) -> str:
    """Current local time as "[HH:MM:SS]"."""
    return time.strftime("[%H:%M:%S]", clock())


def truncate(data: bytes, limit: int) -> bytes:
    """Cut `data` to at most `limit` bytes."""
    return data if len(data) <= limit else data[:limit]


class Broadcaster:
    """
    Sends timestamped lines to every live connection but one.

    Args:
        table: Where the recipients come from.
        max_line: Byte limit for the formatted line (timestamp included).
        clock: Returns the struct_time to stamp with. Tests pass a fixed one.
    """

    def __init__(
        self,
        table: ConnectionTable,
        max_line: int = 255,
        clock: Callable[[], time.struct_time] = time.localtime,
    ):
        self.table = table
        self.max_line = max_line
        self.clock = clock

    def format(self, text: bytes) -> bytes:
        """Build "<timestamp> <text>", truncated to max_line bytes."""
        line = timestamp(self.clock).encode("ascii") + b" " + text
        return truncate(line, self.max_line)

    def broadcast_except(self, excluded_id: int, text: bytes) -> int:
        """
        Send `text` (with timestamp) to everyone except `excluded_id`.

        Recipients are visited in ascending identifier order.

        Returns:
            Number of connections written to.
        """
        line = self.format(text)
        recipients = 0

        for conn in self.table:
            if conn.identifier == excluded_id:
                continue
            conn.send(line)
            recipients += 1

        logger.debug(f"Broadcast {len(line)} bytes to {recipients} clients")
        return recipients

    def broadcast(self, text: bytes) -> int:
        """Send `text` to every live connection."""
        return self.broadcast_except(EXCLUDE_NONE, text)
