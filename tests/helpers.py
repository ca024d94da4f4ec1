"""
Socket reading helpers shared by the tests.
"""

import socket
import time
from typing import List


def read_all(sock: socket.socket, timeout: float = 0.2) -> bytes:
    """Read everything that arrives on `sock` until it stays quiet for `timeout`."""
    sock.settimeout(timeout)
    chunks = []
    while True:
        try:
            chunk = sock.recv(4096)
        except socket.timeout:
            break
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)


def read_lines(sock: socket.socket, count: int, timeout: float = 2.0) -> List[bytes]:
    """Read until `count` newline-terminated lines arrived (or timeout)."""
    sock.settimeout(timeout)
    data = b""
    deadline = time.monotonic() + timeout
    while data.count(b"\n") < count and time.monotonic() < deadline:
        try:
            chunk = sock.recv(4096)
        except socket.timeout:
            break
        if not chunk:
            break
        data += chunk
    return data.splitlines(keepends=True)
