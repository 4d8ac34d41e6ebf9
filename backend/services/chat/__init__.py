"""Ride chat stream service."""

from .stream import (
    append_message,
    can_read_history,
    get_history,
    has_older_messages,
    load_backlog,
    load_messages,
)

__all__ = [
    "append_message",
    "can_read_history",
    "get_history",
    "has_older_messages",
    "load_backlog",
    "load_messages",
]
