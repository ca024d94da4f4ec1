"""
=============================================================================
CLIENT CONNECTION
=============================================================================

This module wraps one accepted client socket with the little bit of state a
chat session needs: the descriptor it is keyed by, a nickname, and an
optional inbound buffer.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

    Client sends:
        send("hello\n")
        send("world\n")

    Server might receive ANY of these:
        recv() → "hello\nworld\n"   (both combined)
        recv() → "hel"              (partial)
        recv() → "lo\nworld\n"      (rest of first + second)

The server supports two policies for this:

    RAW CHUNKS (default)
        Every recv() is one message. A line split by TCP is relayed as
        two messages. Cheap and simple, and what clients of the classic
        smallchat expect.

    LINE MODE
        Bytes accumulate in `_buffer` until a newline is seen. Only
        complete lines come out of feed().

=============================================================================
NON-BLOCKING I/O
=============================================================================

Client sockets are switched to non-blocking mode as soon as they are
wrapped. The event loop only calls recv() on sockets that select() reported
readable, so a read normally succeeds immediately. Writes are a single
send(): if the kernel buffer is full the rest is dropped. There is no
outbound queue and no retry.

=============================================================================
"""

import socket
import time
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple


logger = logging.getLogger(__name__)


@dataclass
class Connection:
    """
    Represents a connected chat client.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    Connection Responsibilities                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  1. IDENTITY                                                         │
    │     └── `identifier` is the socket descriptor, the table key         │
    │     └── `nickname` starts as "user:<identifier>"                     │
    │                                                                      │
    │  2. READING                                                          │
    │     └── read() does one bounded recv()                               │
    │     └── feed() splits buffered bytes into lines (line mode)          │
    │                                                                      │
    │  3. BEST-EFFORT WRITING                                              │
    │     └── send() writes once, never raises, never retries             │
    │                                                                      │
    │  4. CLOSING EXACTLY ONCE                                             │
    │     └── close() is idempotent                                        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Attributes:
        socket: The client socket.
        identifier: Descriptor number the table uses as key.
        address: Client's (ip, port) tuple, if known.
        nickname: Display name, freely changeable with /nick.
        connected_at: Timestamp when the connection was registered.
    """

    socket: socket.socket
    identifier: int
    address: Optional[Tuple[str, int]] = None
    nickname: str = ""
    connected_at: float = field(default_factory=time.time)

    _buffer: bytearray = field(default_factory=bytearray, repr=False)
    _closed: bool = field(default=False, repr=False)

    def __post_init__(self):
        if not self.nickname:
            self.nickname = default_nickname(self.identifier)

    @property
    def closed(self) -> bool:
        """True once close() has run."""
        return self._closed

    @property
    def pending(self) -> int:
        """Number of buffered bytes still waiting for a newline."""
        return len(self._buffer)

    # =========================================================================
    # READING
    # =========================================================================

    def read(self, size: int) -> bytes:
        """
        Read at most `size` bytes with a single recv().

        Returns:
            The bytes received. Empty bytes mean the peer closed the
            connection.

        Raises:
            BlockingIOError: Nothing to read after all (spurious wakeup).
            OSError: The connection failed (reset, aborted, ...).
        """
        return self.socket.recv(size)

    def feed(self, data: bytes, max_line: int) -> List[bytes]:
        """
        Buffer `data` and return every complete line now available.

        Each returned line keeps its trailing newline. A buffer that grows
        to `max_line` bytes without a newline is flushed as one line, so a
        client can never make the buffer grow without bound.
        """
        self._buffer.extend(data)
        lines = []

        while True:
            newline = self._buffer.find(b"\n")
            if newline == -1 or newline >= max_line:
                if len(self._buffer) >= max_line:
                    lines.append(bytes(self._buffer[:max_line]))
                    del self._buffer[:max_line]
                    continue
                break
            lines.append(bytes(self._buffer[:newline + 1]))
            del self._buffer[:newline + 1]

        return lines

    # =========================================================================
    # WRITING
    # =========================================================================

    def send(self, data: bytes) -> int:
        """
        Write `data` with one send() call.

        Short writes and errors are not retried or reported to the caller
        beyond the return value; a dead peer is discovered by the next
        read instead.

        Returns:
            Number of bytes the kernel accepted (0 on error).
        """
        if self._closed:
            return 0
        try:
            return self.socket.send(data)
        except OSError as e:
            logger.debug(f"[fd={self.identifier}] Send failed: {e}")
            return 0

    def send_text(self, text: str) -> int:
        """Encode `text` as UTF-8 and send it."""
        return self.send(text.encode("utf-8"))

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the socket. Safe to call more than once; only the first call
        touches the socket.
        """
        if self._closed:
            return
        self._closed = True
        self._buffer.clear()

        try:
            self.socket.close()
        except OSError:
            pass  # Already gone

        logger.debug(f"[fd={self.identifier}] Connection closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False  # Don't suppress exceptions


def default_nickname(identifier: int) -> str:
    """The nickname a client has before it uses /nick."""
    return f"user:{identifier}"
