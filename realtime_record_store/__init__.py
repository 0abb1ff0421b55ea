"""
Realtime Record Store

Async client for a hierarchical, real-time synchronized record store
exposed over REST (point reads and writes) and server-sent events
(live change notification).

Provides:
- A live event stream with put/patch/close/error notifications
- Ordered range queries over composite ``{type}!{id}`` keys
- 20-character identifiers that sort by creation time

Usage:

    >>> from realtime_record_store import RecordStore, StoreConfig
    >>> config = StoreConfig.from_environment()
    >>> async with RecordStore(config) as store:
    ...     store.on("update", lambda record: print(record["type"], record["id"]))
    ...     await store.connect()
    ...     await store.create_record("chat", {"text": "hello"})
    ...     recent = await store.list_in_time_window(limit=20)
"""

from .config import DeleteMode, StoreConfig
from .exceptions import (
    ConfigurationError,
    IdSpaceExhaustedError,
    MalformedKeyError,
    RecordStoreError,
    RequestError,
    StreamConnectionError,
    StreamError,
)
from .id_utils import (
    ID_ALPHABET,
    ID_LENGTH,
    IdGenerator,
    composite_key,
    decode_time,
    encode_time,
    split_composite_key,
)
from .notifications import NotificationHub
from .logging_utils import configure_structured_logging
from .records import MAX_LIMIT, format_record, format_records, range_query
from .store import RecordStore
from .sync import ConnectionState, EventStreamConnection, StreamEvent
from .transport import RestClient, SSEChannel

__all__ = [
    # Facade
    "RecordStore",
    "StoreConfig",
    "DeleteMode",
    # Components
    "EventStreamConnection",
    "ConnectionState",
    "StreamEvent",
    "NotificationHub",
    "IdGenerator",
    "RestClient",
    "SSEChannel",
    # Keys and records
    "ID_ALPHABET",
    "ID_LENGTH",
    "MAX_LIMIT",
    "composite_key",
    "split_composite_key",
    "encode_time",
    "decode_time",
    "format_record",
    "format_records",
    "range_query",
    # Exceptions
    "RecordStoreError",
    "ConfigurationError",
    "RequestError",
    "StreamConnectionError",
    "StreamError",
    "MalformedKeyError",
    "IdSpaceExhaustedError",
    # Logging
    "configure_structured_logging",
]

__version__ = "0.1.0"
