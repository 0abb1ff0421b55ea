"""
Record store facade.

Combines point requests, the live event stream and identifier generation
into the interface applications use: typed records in, typed records out.
"""

from __future__ import annotations

import logging
from typing import Any

from .config import DeleteMode, StoreConfig
from .exceptions import MalformedKeyError
from .id_utils import IdGenerator, composite_key, now_millis
from .notifications import Handler, NotificationHub
from .records import MAX_LIMIT, format_record, format_records, priority_first, range_query
from .sync.connection import EventStreamConnection, StreamEvent
from .transport.rest import RestClient
from .transport.sse import SSEChannel

logger = logging.getLogger(__name__)

# Written on connect; its server timestamp gives the clock skew
CLOCK_SYNC_TYPE = "meta"
CLOCK_SYNC_ID = "lastConnect"

# Connection notifications passed through unchanged
_RELAYED_EVENTS = ("put", "patch", "close", "error")


class RecordStore:
    """Typed access to a real-time record store.

    Records are dicts holding the stored value plus ``type`` and ``id``.
    They are kept under the composite key ``{type}!{id}``.

    Notifications (``on``/``off``):
        connect: None, once the event stream is open
        update: formatted record for every remote put except the snapshot
        put / patch: raw StreamEvent from the connection
        close: {"reason": str}
        error: StreamError or MalformedKeyError

    Example:
        >>> config = StoreConfig(base_url="https://example.firebaseio.com/rooms/lobby")
        >>> async with RecordStore(config) as store:
        ...     store.on("update", print)
        ...     await store.connect()
        ...     await store.create_record("chat", {"text": "hi"})
        ...     history = await store.list_in_time_window(limit=50)
    """

    def __init__(
        self,
        config: StoreConfig,
        rest: RestClient | None = None,
        connection: EventStreamConnection | None = None,
        id_generator: IdGenerator | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            config: Store configuration
            rest: Point-request client; built from config when omitted
            connection: Event stream connection; built from config when omitted
            id_generator: Generator for new record ids
        """
        self.config = config
        self.rest = rest or RestClient(
            config.base_url,
            timeout=config.request_timeout,
            headers=config.headers,
        )
        self.connection = connection or EventStreamConnection(
            config.stream_url,
            channel_factory=self._open_channel,
            clear_on_reset=config.clear_on_reset,
        )
        self.id_generator = id_generator or IdGenerator()
        # Range bounds are minted separately so queries don't touch the
        # state of the generator used for new records
        self._bound_generator = IdGenerator()
        self.hub = NotificationHub()
        self.clock_skew = 0
        self._live = False

        self.connection.on("close", self._on_close)
        for event_name in _RELAYED_EVENTS:
            self.connection.on(event_name, self._relay(event_name))
        self.connection.on("put", self._on_put)

    def _open_channel(self, url: str, params: dict[str, str]) -> SSEChannel:
        # Shares the REST client's session, created lazily inside the loop
        return SSEChannel(self.rest.session, url, params)

    async def __aenter__(self) -> RecordStore:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the stream if open and release the HTTP session."""
        if self.connection.is_open:
            self.close("client")
        await self.rest.close()

    # Notifications

    def on(self, event_name: str, handler: Handler) -> Handler:
        return self.hub.on(event_name, handler)

    def off(self, event_name: str, handler: Handler) -> None:
        self.hub.off(event_name, handler)

    def _relay(self, event_name: str) -> Handler:
        def relay(payload: Any) -> None:
            self.hub.emit(event_name, payload)

        return relay

    def _on_put(self, event: StreamEvent) -> None:
        if event.is_snapshot:
            return
        key = event.path[1:]
        try:
            record = format_record(key, event.data)
        except MalformedKeyError as e:
            logger.warning(f"Ignoring update with malformed key {key!r}")
            self.hub.emit("error", e)
            return
        self.hub.emit("update", record)

    def _on_close(self, payload: dict[str, Any]) -> None:
        self._live = False

    # Connection

    @property
    def live(self) -> bool:
        """True between a successful connect() and the next close."""
        return self._live

    async def connect(self, sync_clock: bool = True) -> None:
        """Connect the event stream and emit "connect".

        Args:
            sync_clock: Measure the clock skew against the server first

        Raises:
            RequestError: If the clock sync write fails
            StreamConnectionError: If the stream fails before opening
        """
        if sync_clock:
            await self.sync_clock()
        await self.connection.connect()
        self._live = True
        logger.info(f"Record store live: {self.config.base_url}")
        self.hub.emit("connect", None)

    def close(self, reason: str | None = None) -> None:
        self.connection.close(reason)

    async def sync_clock(self) -> int:
        """Write the connect marker and derive the server clock skew.

        Returns:
            The skew in milliseconds (server minus local)
        """
        before = now_millis()
        record = await self.write(CLOCK_SYNC_TYPE, CLOCK_SYNC_ID, before)
        timestamp = record.get("timestamp")
        if isinstance(timestamp, int):
            self.clock_skew = timestamp - now_millis()
            logger.debug(f"Clock skew: {self.clock_skew}ms")
        else:
            logger.warning(f"Clock sync response has no timestamp: {record!r}")
        return self.clock_skew

    def server_time(self, local_ms: int | None = None) -> int:
        """Estimated server time for a local time (default: now)."""
        if local_ms is None:
            local_ms = now_millis()
        return local_ms + self.clock_skew

    def make_id(self, time_ms: int | None = None) -> str:
        """Mint a record id for ``time_ms`` (default: estimated server time)."""
        if time_ms is None:
            time_ms = self.server_time()
        return self.id_generator.generate(time_ms)

    # Writes

    async def write(self, record_type: str, record_id: str, value: Any) -> dict[str, Any]:
        """Store ``value`` under ``{type}!{id}`` with a server timestamp.

        Returns:
            The stored record with ``type`` and ``id`` merged in
        """
        key = composite_key(record_type, record_id)
        result = await self.rest.put(key, value)
        return format_record(key, result)

    async def create_record(self, record_type: str, value: Any) -> dict[str, Any]:
        """Write ``value`` under a freshly minted id."""
        return await self.write(record_type, self.make_id(), value)

    async def delete(self, record_type: str, record_id: str) -> dict[str, Any] | None:
        """Remove a record according to ``config.delete_mode``.

        WRITE_EMPTY writes an empty value and returns the resulting record;
        REMOTE_DELETE issues an HTTP DELETE and returns None.
        """
        if self.config.delete_mode is DeleteMode.REMOTE_DELETE:
            await self.rest.delete(composite_key(record_type, record_id))
            return None
        return await self.write(record_type, record_id, None)

    # Queries

    async def list_after_cursor(
        self,
        cursor: str | None = None,
        priority_type: str | None = None,
    ) -> list[dict[str, Any]]:
        """All records whose key sorts at or after ``cursor``.

        Args:
            cursor: startAt key (default: ``config.room_cursor``)
            priority_type: Type listed first (default: ``config.priority_type``)

        Returns:
            Records in key order, with ``priority_type`` records moved first
        """
        query = range_query(
            start_at=cursor if cursor is not None else self.config.room_cursor,
            limit_to_last=MAX_LIMIT,
        )
        records = format_records(await self.rest.get("", query))
        return priority_first(records, priority_type or self.config.priority_type)

    async def list_in_time_window(
        self,
        start_time: int = 0,
        end_time: int | None = None,
        limit: int = 0,
        record_type: str | None = None,
    ) -> list[dict[str, Any]]:
        """Records of one type created between two server times, inclusive.

        Args:
            start_time: Window start in ms (default: epoch)
            end_time: Window end in ms (default: estimated server time)
            limit: Keep only the newest ``limit`` records; <= 0 means no limit
            record_type: Record type (default: ``config.history_type``)
        """
        record_type = record_type or self.config.history_type
        if end_time is None:
            end_time = self.server_time()

        # One millisecond of slack on each side: the random id suffix makes
        # exact boundary ids unpredictable
        start_id = self._bound_generator.generate(max(0, start_time - 1))
        end_id = self._bound_generator.generate(end_time + 1)

        query = range_query(
            start_at=composite_key(record_type, start_id),
            end_at=composite_key(record_type, end_id),
            limit_to_last=limit if limit > 0 else MAX_LIMIT,
            export=True,
        )
        return format_records(await self.rest.get("", query))
