"""
Chat protocol: slash commands and timestamped fan-out.
"""

from .broadcast import Broadcaster, EXCLUDE_NONE, timestamp, truncate
from .commands import (
    CommandProcessor,
    COMMAND_MARKER,
    UNSUPPORTED_COMMAND,
    USER_NOT_FOUND,
    is_command,
    parse_command,
    split_direct_message,
)

__all__ = [
    "Broadcaster",
    "EXCLUDE_NONE",
    "timestamp",
    "truncate",
    "CommandProcessor",
    "COMMAND_MARKER",
    "UNSUPPORTED_COMMAND",
    "USER_NOT_FOUND",
    "is_command",
    "parse_command",
    "split_direct_message",
]
