"""
=============================================================================
COMMAND PROCESSOR
=============================================================================

Lines that start with "/" are commands, not chat.

    ┌──────────────────┬─────────────┬─────────────────────────────────────┐
    │ Command          │ Argument    │ Effect                              │
    ├──────────────────┼─────────────┼─────────────────────────────────────┤
    │ /nick name       │ required    │ rename the sender                   │
    │ /list            │ none        │ nickname list + user count          │
    │ /dm nick message │ two parts   │ private line, or "User not found"   │
    │ anything else    │             │ "Unsupported command"               │
    └──────────────────┴─────────────┴─────────────────────────────────────┘

=============================================================================
PARSING
=============================================================================

    "/dm bob hello world\r\n"
        │
        ├── cut at first "\r", then at first "\n"
        │       "/dm bob hello world"
        │
        ├── split at first space
        │       command  = "/dm"
        │       argument = "bob hello world"
        │
        └── /dm splits its argument again
                target  = "bob"
                message = "hello world"

A malformed /dm (no target or no message) is dropped with only a server
side diagnostic, while every other malformed command answers
"Unsupported command". Clients of the classic smallchat rely on exactly
this behaviour, so it is kept as is.

=============================================================================
"""

import logging
from typing import Callable, Dict, Optional, Tuple

from ..core.connection import Connection
from ..core.table import ConnectionTable


logger = logging.getLogger(__name__)

# Operator-facing output (connects, disconnects, chat lines, diagnostics)
console = logging.getLogger("smallchat.console")

COMMAND_MARKER = b"/"

UNSUPPORTED_COMMAND = "Unsupported command\n"
USER_NOT_FOUND = "User not found\n"
DM_USAGE = "Error: The format is /dm <nickname> <message>"

CommandHandler = Callable[[Connection, Optional[str]], None]


def is_command(line: bytes) -> bool:
    """True if `line` should go to the command processor."""
    return line.startswith(COMMAND_MARKER)


def parse_command(line: bytes) -> Tuple[str, Optional[str]]:
    """
    Split a raw command line into (command, argument).

    The line is cut at its first carriage return and then at its first
    line feed. `argument` is None when the line holds no space at all, and
    may be an empty string for "/nick " style input.
    """
    text = line.decode("utf-8", errors="replace")

    for terminator in ("\r", "\n"):
        cut = text.find(terminator)
        if cut != -1:
            text = text[:cut]

    command, space, argument = text.partition(" ")
    return command, (argument if space else None)


def split_direct_message(argument: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """
    Split a /dm argument into (target_nickname, message).

    Leading spaces before the target are skipped. The message is the
    unparsed remainder after the first space following the target. Either
    part is None when missing or empty.
    """
    if argument is None:
        return None, None

    target, _, message = argument.lstrip(" ").partition(" ")
    return (target or None), (message or None)


class CommandProcessor:
    """
    Executes slash commands on behalf of one connection.

    Commands are looked up by exact name in a small registry, so adding one
    is a single register() call:

        processor = CommandProcessor(table)
        processor.register("/me", handle_me)
        processor.process(conn, b"/nick alice\\n")
    """

    def __init__(self, table: ConnectionTable):
        self.table = table
        self._commands: Dict[str, CommandHandler] = {
            "/nick": self.nick,
            "/list": self.list_users,
            "/dm": self.direct_message,
        }

    def register(self, name: str, handler: CommandHandler):
        """Add or replace the handler for `name` (including the leading "/")."""
        self._commands[name] = handler

    @property
    def commands(self):
        """Names of every registered command."""
        return sorted(self._commands)

    def process(self, conn: Connection, line: bytes):
        """Parse `line` and run the matching command for `conn`."""
        command, argument = parse_command(line)
        handler = self._commands.get(command)

        logger.debug(f"[fd={conn.identifier}] command {command!r} argument {argument!r}")

        if handler is None:
            self.unsupported(conn)
            return

        handler(conn, argument)

    # =========================================================================
    # COMMANDS
    # =========================================================================

    def nick(self, conn: Connection, argument: Optional[str]):
        """
        /nick <name>: change the sender's nickname.

        Any non-empty text is accepted, duplicates included. Without a
        name the command is unsupported.
        """
        if not argument:
            self.unsupported(conn)
            return

        logger.info(f"[fd={conn.identifier}] {conn.nickname} is now {argument}")
        conn.nickname = argument

    def list_users(self, conn: Connection, argument: Optional[str] = None):
        """
        /list: one nickname per line, then the number of connected users.
        """
        listing = "".join(f"{nickname}\n" for nickname in self.table.nicknames())
        conn.send_text(listing)
        conn.send_text(f"Number of connected users: {self.table.count}\n")

    def direct_message(self, conn: Connection, argument: Optional[str]):
        """
        /dm <nickname> <message>: deliver a line to one user only.

        The first connection (lowest identifier) holding the nickname gets
        the message as "DM from <sender>: <message>\\n". The trailing newline
        is added here (classic smallchat sends none), so a DM arrives as a
        complete line like every other reply. Missing parts drop the
        command silently.
        """
        target_nickname, message = split_direct_message(argument)

        if target_nickname is None or message is None:
            console.info(DM_USAGE)
            return

        target = self.table.lookup_by_nickname(target_nickname)
        if target is None:
            conn.send_text(USER_NOT_FOUND)
            return

        target.send_text(f"DM from {conn.nickname}: {message}\n")

    def unsupported(self, conn: Connection, argument: Optional[str] = None):
        """Tell the client its command was not understood."""
        conn.send_text(UNSUPPORTED_COMMAND)
