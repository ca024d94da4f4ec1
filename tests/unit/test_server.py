"""
Unit tests for ChatServer, driving the loop one iteration at a time.
"""

import logging
import os
import socket

import pytest

from smallchat import ChatServer, ChatConfig
from smallchat.errors import DispatchError, ListenerError
from helpers import read_all, read_lines


def pump(server: ChatServer, until, attempts: int = 40):
    """Run serve_once() until `until()` is true."""
    for _ in range(attempts):
        server.serve_once()
        if until():
            return
    raise AssertionError("condition never reached")


def pump_and_read(server: ChatServer, client: socket.socket, attempts: int = 40) -> bytes:
    """Run serve_once() until something arrives on `client`; return it."""
    for _ in range(attempts):
        server.serve_once()
        data = read_all(client, 0.02)
        if data:
            return data + read_all(client, 0.02)
    return b""


@pytest.fixture
def server(config, fixed_clock):
    with ChatServer(config, clock=fixed_clock) as server:
        yield server


@pytest.fixture
def high_descriptors():
    """Occupy every descriptor below 1030 so new sockets land above 1024."""
    resource = pytest.importorskip("resource")
    soft, hard = resource.getrlimit(resource.RLIMIT_NOFILE)
    wanted = 1100
    if hard != resource.RLIM_INFINITY and hard < wanted:
        pytest.skip("descriptor limit too low to open 1100 files")
    if soft != resource.RLIM_INFINITY and soft < wanted:
        resource.setrlimit(resource.RLIMIT_NOFILE, (wanted, hard))

    base = os.open(os.devnull, os.O_RDONLY)
    fillers = [base]
    try:
        while fillers[-1] < 1030:
            fillers.append(os.dup(base))
        yield
    finally:
        for fd in fillers:
            os.close(fd)
        resource.setrlimit(resource.RLIMIT_NOFILE, (soft, hard))


@pytest.fixture
def connect(server):
    """Connect a TCP client and let the server accept it."""
    clients = []

    def make() -> socket.socket:
        expected = server.table.count + 1
        client = socket.create_connection(server.address, timeout=2.0)
        clients.append(client)
        pump(server, lambda: server.table.count == expected)
        return client

    yield make

    for client in clients:
        client.close()


class TestLifecycle:
    """Tests for construction, start and close."""

    def test_invalid_config_fails_fast(self):
        with pytest.raises(ValueError):
            ChatServer(ChatConfig(port=-5))

    def test_address_after_start(self, server):
        host, port = server.address

        assert host == "127.0.0.1"
        assert port > 0

    def test_two_independent_instances(self, config):
        """Servers share no state."""
        with ChatServer(config) as first, ChatServer(config) as second:
            assert first.address != second.address
            assert first.table is not second.table

    def test_listener_error_propagates(self, server):
        host, port = server.address
        clash = ChatServer(ChatConfig(host=host, port=port))

        with pytest.raises(ListenerError):
            clash.start()

    def test_idle_iteration(self, server):
        """A timeout with nothing ready is a quiet no-op."""
        idle_calls = []
        server.on_idle = lambda: idle_calls.append(True)

        ready = server.serve_once()

        assert ready.is_timeout
        assert idle_calls == [True]

    def test_close_disconnects_everyone(self, server, connect):
        client = connect()
        read_all(client)

        server.close()

        assert server.table.count == 0
        assert client.recv(16) == b""
        assert server.wait_for_shutdown(0)

    def test_dispatch_error_escapes(self, server, connect):
        connect()
        conn = next(iter(server.table))
        conn.socket.close()  # Invalidate the descriptor behind the table's back

        with pytest.raises(DispatchError):
            server.serve_once()


class TestAcceptPath:
    """Tests for accepting clients."""

    def test_welcome_and_default_nick(self, server, connect, caplog):
        with caplog.at_level(logging.INFO, logger="smallchat.console"):
            client = connect()

        lines = read_lines(client, 1)
        conn = next(iter(server.table))

        assert lines == [b"Welcome to Simple Chat! Use /nick <nick> to set your nick.\n"]
        assert conn.nickname == f"user:{conn.identifier}"
        assert f"Connected client fd={conn.identifier}" in caplog.text

    def test_full_server_refuses(self, fixed_clock):
        config = ChatConfig(host="127.0.0.1", port=0, poll_timeout=0.05, max_clients=1)
        with ChatServer(config, clock=fixed_clock) as server:
            first = socket.create_connection(server.address, timeout=2.0)
            pump(server, lambda: server.table.count == 1)
            second = socket.create_connection(server.address, timeout=2.0)
            try:
                for _ in range(20):
                    server.serve_once()

                assert server.table.count == 1
                assert second.recv(16) == b""  # Closed without a welcome
            finally:
                first.close()
                second.close()


class TestReadPath:
    """Tests for reading, routing and disconnecting."""

    def test_chat_broadcast_to_others(self, server, connect, caplog):
        alice, bob, carol = connect(), connect(), connect()
        for client in (alice, bob, carol):
            read_all(client)

        carol.sendall(b"/nick carol\n")
        pump(server, lambda: "carol" in server.table.nicknames())

        with caplog.at_level(logging.INFO, logger="smallchat.console"):
            carol.sendall(b"hi\n")
            received = pump_and_read(server, alice)

        assert received == b"[14:03:27] carol> hi\n"
        assert read_all(bob) == b"[14:03:27] carol> hi\n"
        assert read_all(carol) == b""
        assert "carol> hi" in caplog.text

    def test_command_routed(self, server, connect):
        client = connect()
        read_all(client)

        client.sendall(b"/whatever\n")

        assert pump_and_read(server, client) == b"Unsupported command\n"

    def test_list_through_server(self, server, connect):
        first, second = connect(), connect()
        read_all(first)
        read_all(second)

        second.sendall(b"/nick bob\n")
        pump(server, lambda: "bob" in server.table.nicknames())
        first.sendall(b"/list\n")
        listing = pump_and_read(server, first)

        expected = "".join(f"{nick}\n" for nick in server.table.nicknames())
        assert "bob" in server.table.nicknames()
        assert listing == f"{expected}Number of connected users: 2\n".encode()

    def test_dm_through_server(self, server, connect):
        sender, target, bystander = connect(), connect(), connect()
        for client in (sender, target, bystander):
            read_all(client)

        target.sendall(b"/nick bob\n")
        sender.sendall(b"/nick alice\n")
        pump(server, lambda: {"alice", "bob"} <= set(server.table.nicknames()))
        sender.sendall(b"/dm bob hello world\r\n")

        assert pump_and_read(server, target) == b"DM from alice: hello world\n"
        assert read_all(sender) == b""
        assert read_all(bystander) == b""

    def test_disconnect_removes_client(self, server, connect, caplog):
        client = connect()
        other = connect()
        read_all(other)
        client.sendall(b"/nick leaving\n")
        pump(server, lambda: "leaving" in server.table.nicknames())

        with caplog.at_level(logging.INFO, logger="smallchat.console"):
            client.close()
            pump(server, lambda: server.table.count == 1)

        assert "Disconnected client fd=" in caplog.text
        assert "nick=leaving" in caplog.text

    def test_raw_chunks_not_reassembled(self, server, connect):
        """Default policy: each read is relayed on its own."""
        sender, receiver = connect(), connect()
        read_all(receiver)
        sender.sendall(b"/nick sam\n")
        pump(server, lambda: "sam" in server.table.nicknames())

        sender.sendall(b"hel")
        first = pump_and_read(server, receiver)
        sender.sendall(b"lo\n")
        second = pump_and_read(server, receiver)

        assert first == b"[14:03:27] sam> hel"
        assert second == b"[14:03:27] sam> lo\n"

    def test_chat_line_truncated(self, server, connect):
        sender, receiver = connect(), connect()
        read_all(receiver)

        sender.sendall(b"y" * 255)

        assert len(pump_and_read(server, receiver)) == 255

    def test_announce_reaches_everyone(self, server, connect):
        """announce() runs between iterations, on the loop's own thread."""
        clients = [connect(), connect(), connect()]
        for client in clients:
            read_all(client)

        assert server.announce("maintenance at noon\n") == 3
        server.serve_once()

        for client in clients:
            assert read_all(client) == b"[14:03:27] maintenance at noon\n"


class TestLineMode:
    """Tests for the optional line reassembly policy."""

    @pytest.fixture
    def server(self, config, fixed_clock):
        config.line_mode = True
        with ChatServer(config, clock=fixed_clock) as server:
            yield server

    def test_split_line_reassembled(self, server, connect):
        sender, receiver = connect(), connect()
        read_all(receiver)
        sender.sendall(b"/nick sam\n")
        pump(server, lambda: "sam" in server.table.nicknames())
        sam = server.table.lookup_by_nickname("sam")

        sender.sendall(b"hel")
        pump(server, lambda: sam.pending == 3)
        assert read_all(receiver) == b""

        sender.sendall(b"lo\n")

        assert pump_and_read(server, receiver) == b"[14:03:27] sam> hello\n"
        assert sam.pending == 0

    def test_two_lines_one_read(self, server, connect):
        sender, receiver = connect(), connect()
        read_all(receiver)

        sender.sendall(b"/nick dora\nhey\n")

        assert pump_and_read(server, receiver) == b"[14:03:27] dora> hey\n"


class TestHighDescriptors:
    """Clients whose descriptors are beyond what select() could watch."""

    def test_client_above_1024_is_served(self, high_descriptors, config, fixed_clock):
        with ChatServer(config, clock=fixed_clock) as server:
            client = socket.create_connection(server.address, timeout=2.0)
            try:
                pump(server, lambda: server.table.count == 1)
                conn = next(iter(server.table))
                assert conn.identifier >= 1024
                assert read_lines(client, 1) == [
                    b"Welcome to Simple Chat! Use /nick <nick> to set your nick.\n"
                ]

                client.sendall(b"/whatever\n")

                assert pump_and_read(server, client) == b"Unsupported command\n"
            finally:
                client.close()
