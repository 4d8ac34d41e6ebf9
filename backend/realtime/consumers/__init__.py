"""Realtime consumers for WebSocket communication."""

from .base import BaseConsumer
from .chat_consumer import RideChatConsumer

__all__ = [
    "BaseConsumer",
    "RideChatConsumer",
]
