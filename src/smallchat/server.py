"""
=============================================================================
CHAT SERVER
=============================================================================

The orchestrator: owns the listening socket, the connection table and the
event loop, and routes every readiness event to the right action.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CHAT SERVER ARCHITECTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │                        ┌─────────────────┐                          │
    │                        │   ChatServer    │                          │
    │                        │  (Orchestrator) │                          │
    │                        └────────┬────────┘                          │
    │                                 │                                    │
    │            ┌────────────────────┼────────────────────┐              │
    │            ▼                    ▼                    ▼              │
    │    ┌──────────────┐    ┌──────────────┐    ┌──────────────┐        │
    │    │   Listener   │    │  Dispatcher  │    │ConnectionTable│       │
    │    │   (accept)   │    │  (select)    │    │  (clients)   │        │
    │    └──────────────┘    └──────────────┘    └──────┬───────┘        │
    │                                                    │                │
    │                              ┌─────────────────────┤                │
    │                              ▼                     ▼                │
    │                     ┌────────────────┐   ┌──────────────────┐      │
    │                     │  Broadcaster   │   │ CommandProcessor │      │
    │                     │   (fan-out)    │   │  (/nick /list…)  │      │
    │                     └────────────────┘   └──────────────────┘      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
ONE LOOP ITERATION
=============================================================================

    1. WAIT
       └── Dispatcher.wait(): listener + clients, at most poll_timeout

    2. ACCEPT (listener readable)
       └── accept → register → welcome line → "Connected client fd=N"

    3. READ (each readable client)
       └── one recv() of up to read_size bytes
       └── 0 bytes or error → remove client, "Disconnected client ..."
       └── otherwise every unit of work goes to handle_line()

    4. ROUTE
       └── "/..." → CommandProcessor
       └── else   → "<nick>> <line>" to the console, then broadcast

Everything happens on the calling thread. No locks are needed because the
loop is the only code that touches the table. shutdown() is the one method
meant to be called from elsewhere; it only flips a flag.

=============================================================================
"""

import sys
import time
import signal
import logging
import threading
from typing import Callable, Optional, Tuple

from .config import ChatConfig
from .core import Connection, ConnectionTable, Dispatcher, Listener, Readiness
from .chat import Broadcaster, CommandProcessor, is_command, truncate


logger = logging.getLogger(__name__)

# Operator-facing output: connects, disconnects and every chat line
console = logging.getLogger("smallchat.console")


class ChatServer:
    """
    Single-threaded multi-client chat relay.

    =========================================================================
    USAGE
    =========================================================================

        # Run until Ctrl+C
        server = ChatServer(ChatConfig(port=7711))
        server.run()

        # Drive the loop by hand (tests, embedding)
        with ChatServer(ChatConfig(port=0)) as server:
            host, port = server.address
            server.serve_once()

    Each instance owns all of its state, so several servers can live in
    one process.

    =========================================================================
    """

    def __init__(
        self,
        config: Optional[ChatConfig] = None,
        clock: Callable[[], time.struct_time] = time.localtime,
    ):
        """
        Args:
            config: Server configuration. Defaults to ChatConfig().
            clock: Source of local time for broadcast timestamps.
        """
        self.config = config or ChatConfig()
        self.config.validate()  # Fail-fast on invalid config

        # ─────────────────────────────────────────────────────────────────
        # CORE COMPONENTS
        # ─────────────────────────────────────────────────────────────────

        self._listener = Listener(self.config)
        self._table = ConnectionTable(capacity=self.config.max_clients)
        self._dispatcher = Dispatcher(
            self._listener, self._table, timeout=self.config.poll_timeout
        )

        # ─────────────────────────────────────────────────────────────────
        # PROTOCOL COMPONENTS
        # ─────────────────────────────────────────────────────────────────

        self._broadcaster = Broadcaster(
            self._table, max_line=self.config.max_line, clock=clock
        )
        self._commands = CommandProcessor(self._table)

        # ─────────────────────────────────────────────────────────────────
        # RUNTIME STATE
        # ─────────────────────────────────────────────────────────────────

        self._running = False
        self._stopped = threading.Event()
        self._original_handlers: dict = {}

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    @property
    def table(self) -> ConnectionTable:
        return self._table

    @property
    def broadcaster(self) -> Broadcaster:
        return self._broadcaster

    @property
    def commands(self) -> CommandProcessor:
        """The command processor, e.g. to register extra commands."""
        return self._commands

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port); meaningful after start()."""
        return self._listener.address

    @property
    def is_running(self) -> bool:
        return self._running

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    def start(self):
        """
        Create the listening socket without entering the loop.

        Raises:
            ListenerError: The endpoint could not be created (fatal).
        """
        self._listener.start()
        self._stopped.clear()

    def run(self):
        """
        Start the server and loop until shutdown() or SIGINT/SIGTERM.

        Raises:
            ListenerError: The endpoint could not be created.
            DispatchError: select() failed. The loop is not restarted.
        """
        self._setup_logging()
        self.start()
        self._running = True
        self._setup_signals()

        host, port = self.address
        console.info(f"Chat server listening on {host}:{port} (max {self.config.max_clients} clients)")

        try:
            while self._running:
                self.serve_once()
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self.close()

    def serve_once(self) -> Readiness:
        """
        Run exactly one loop iteration: wait, then accept and read.

        Returns:
            What the dispatcher reported.
        """
        ready = self._dispatcher.wait()

        if ready.is_timeout:
            self.on_idle()
            return ready

        if ready.listener_ready:
            self._accept_client()

        for identifier in ready.ready_ids:
            self._read_client(identifier)

        return ready

    def on_idle(self):
        """Called when a wait times out with nothing ready. Does nothing."""

    def shutdown(self):
        """
        Ask the loop to stop. Safe to call from any thread or a signal
        handler; the loop notices within one poll_timeout.
        """
        logger.info("Shutting down chat server...")
        self._running = False

    def close(self):
        """Disconnect every client and release the listening socket."""
        self._running = False
        self._restore_signals()
        self._table.close_all()
        self._dispatcher.close()
        self._listener.close()
        self._stopped.set()
        logger.info("Chat server stopped")

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until close() has run.

        Returns:
            True if the server stopped, False on timeout.
        """
        return self._stopped.wait(timeout)

    def __enter__(self) -> "ChatServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _setup_logging(self):
        """Configure logging based on config."""
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        # Configure root logger (no-op if the application already did)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        logging.getLogger("smallchat").setLevel(level)

        # The chat transcript stays visible even when diagnostics are quiet
        console.setLevel(logging.INFO)

    def _setup_signals(self):
        """
        Turn SIGINT/SIGTERM into a graceful shutdown.

        Python only allows installing handlers from the main thread; a
        server running in a worker thread is stopped with shutdown().
        """
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, initiating shutdown...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        """Restore original signal handlers."""
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # =========================================================================
    # ACCEPT PATH
    # =========================================================================

    def _accept_client(self) -> Optional[Connection]:
        """Accept one pending client, register it and greet it."""
        accepted = self._listener.accept()
        if accepted is None:
            return None

        client_socket, client_address = accepted

        if self._table.is_full:
            logger.warning(
                f"Refusing {client_address[0]}:{client_address[1]}: "
                f"{self.config.max_clients} clients already connected"
            )
            client_socket.close()
            return None

        conn = self._table.register(client_socket.fileno(), client_socket, client_address)
        conn.send_text(self.config.welcome)
        console.info(f"Connected client fd={conn.identifier}")
        return conn

    # =========================================================================
    # READ PATH
    # =========================================================================

    def _read_client(self, identifier: int):
        """Read once from a readable client and handle what arrived."""
        conn = self._table.get(identifier)
        if conn is None:
            return

        try:
            data = conn.read(self.config.read_size)
        except BlockingIOError:
            return  # Spurious wakeup, nothing to read after all
        except OSError as e:
            logger.debug(f"[fd={identifier}] Read error: {e}")
            data = b""

        if not data:
            self._disconnect(conn)
            return

        if self.config.line_mode:
            units = conn.feed(data, self.config.max_line)
        else:
            units = [data]

        for unit in units:
            self.handle_line(conn, unit)

    def _disconnect(self, conn: Connection):
        console.info(f"Disconnected client fd={conn.identifier}, nick={conn.nickname}")
        self._table.remove(conn.identifier)

    # =========================================================================
    # ROUTING
    # =========================================================================

    def handle_line(self, conn: Connection, line: bytes):
        """Route one unit of client input to a command or to the chat."""
        if is_command(line):
            self._commands.process(conn, line)
        else:
            self._chat(conn, line)

    def _chat(self, conn: Connection, line: bytes):
        """Relay a plain chat line as "<nick>> <line>" to everyone else."""
        text = truncate(conn.nickname.encode("utf-8") + b"> " + line, self.config.max_line)
        console.info(text.decode("utf-8", errors="replace").rstrip("\r\n"))
        self._broadcaster.broadcast_except(conn.identifier, text)

    def announce(self, text: str) -> int:
        """
        Broadcast a server message to every connected client.

        Must be called on the loop thread (from a handler, between
        serve_once() calls, or before run()). The table is not locked, and
        the loop mutates it while serving.
        """
        return self._broadcaster.broadcast(text.encode("utf-8"))


def setup_console(stream=None):
    """
    Print console events as bare lines on stdout, without the timestamped
    diagnostic format. Used by the CLI; embedding applications may route
    the "smallchat.console" logger however they like instead.
    """
    if console.handlers:
        return
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    console.addHandler(handler)
    console.propagate = False


def create_server(config: Optional[ChatConfig] = None) -> ChatServer:
    """
    Factory for ChatServer instances.

    Example:
        server = create_server(ChatConfig(port=9000))
        server.run()
    """
    return ChatServer(config)


# =============================================================================
# MODULE SUMMARY
# =============================================================================
#
# 1. Component wiring: config, listener, table, dispatcher, protocol
# 2. Event flow: wait → accept → read → command or broadcast
# 3. Teardown: disconnect clients, close listener, restore signals
#
# KEY DESIGN DECISIONS:
# - One thread and select(), no thread per client
# - Best-effort writes, no outbound queues
# - Raw-chunk reads by default, optional line reassembly
# =============================================================================
