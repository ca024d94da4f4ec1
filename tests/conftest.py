"""
pytest configuration and fixtures.
"""

import socket
import threading
import time
from typing import Callable, Generator, List, Tuple
import pytest

# Add src (package) and tests (helpers) to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from smallchat import ChatServer, ChatConfig
from smallchat.core import Connection, ConnectionTable, prepare_client
from helpers import read_lines


@pytest.fixture
def fixed_clock() -> Callable[[], time.struct_time]:
    """A clock frozen at 14:03:27 local time."""
    frozen = time.struct_time((2024, 5, 17, 14, 3, 27, 4, 138, -1))
    return lambda: frozen


@pytest.fixture
def table() -> ConnectionTable:
    """An empty connection table."""
    return ConnectionTable(capacity=16)


@pytest.fixture
def socket_pair() -> Generator[Callable[[], Tuple[socket.socket, socket.socket]], None, None]:
    """
    Factory for connected (server_side, client_side) socket pairs.

    The server side is prepared the way accepted clients are (non-blocking).
    Every socket is closed at teardown.
    """
    created = []

    def make() -> Tuple[socket.socket, socket.socket]:
        server_side, client_side = socket.socketpair()
        prepare_client(server_side)
        client_side.settimeout(2.0)
        created.extend([server_side, client_side])
        return server_side, client_side

    yield make

    for sock in created:
        try:
            sock.close()
        except OSError:
            pass


@pytest.fixture
def add_client(table: ConnectionTable, socket_pair):
    """
    Register a socket pair in `table`.

    add_client(identifier) -> (Connection, client_socket)
    """

    def add(identifier: int) -> Tuple[Connection, socket.socket]:
        server_side, client_side = socket_pair()
        conn = table.register(identifier, server_side)
        return conn, client_side

    return add


@pytest.fixture
def config() -> ChatConfig:
    """Test server configuration on an OS-assigned port."""
    return ChatConfig(
        host="127.0.0.1",
        port=0,
        poll_timeout=0.05,
        log_level="WARNING",
    )


class ServerThread:
    """Runs a ChatServer loop in a background thread."""

    def __init__(self, server: ChatServer):
        self.server = server
        self._thread: threading.Thread = None
        self._clients: List[socket.socket] = []

    @property
    def address(self) -> Tuple[str, int]:
        return self.server.address

    def start(self):
        """Bind, then loop in a daemon thread."""
        self.server.start()
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        for _ in range(50):  # 5 seconds max
            if self.server.is_running:
                return
            time.sleep(0.1)

        raise RuntimeError("Server failed to start")

    def connect(self, read_welcome: bool = True) -> socket.socket:
        """Open a client connection, by default consuming the welcome line."""
        client = socket.create_connection(self.address, timeout=2.0)
        self._clients.append(client)
        if read_welcome:
            read_lines(client, 1)
        return client

    def wait_for_clients(self, count: int, timeout: float = 2.0):
        """Block until the server has registered `count` clients."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if self.server.table.count == count:
                return
            time.sleep(0.02)
        raise AssertionError(
            f"expected {count} clients, server has {self.server.table.count}"
        )

    def stop(self):
        for client in self._clients:
            try:
                client.close()
            except OSError:
                pass

        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)


@pytest.fixture
def chat_server(config: ChatConfig) -> Generator[ServerThread, None, None]:
    """A running chat server with a fixed clock."""
    frozen = time.struct_time((2024, 5, 17, 14, 3, 27, 4, 138, -1))
    server = ChatServer(config, clock=lambda: frozen)

    runner = ServerThread(server)
    runner.start()

    yield runner

    runner.stop()
