"""
Real-time sync module.

Keeps a live server-sent event stream to the store and relays its
change notifications.
"""

from .connection import (
    ConnectionState,
    EventStreamConnection,
    PushChannel,
    StreamEvent,
)

__all__ = [
    "ConnectionState",
    "EventStreamConnection",
    "PushChannel",
    "StreamEvent",
]
