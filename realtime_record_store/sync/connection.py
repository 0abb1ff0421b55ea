"""
Live event stream connection.

Owns one push channel at a time and re-emits the store's change events
through a NotificationHub. Failures before the channel opens fail
``connect()``; anything after that is an "error" or "close" notification.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Protocol

import aiohttp

from ..exceptions import StreamConnectionError, StreamError
from ..logging_utils import StoreLoggerAdapter
from ..notifications import Handler, NotificationHub
from ..records import quote
from ..transport.sse import SSEChannel, SSEMessage

logger = logging.getLogger(__name__)

# Change events relayed from the store
STREAM_EVENTS = ("put", "patch")
# Events by which the store ends the stream
REMOTE_CLOSE_EVENTS = ("cancel", "auth_revoked")

RESET_REASON = "reset"
RECONNECT_REASON = "reconnect"

# Only the newest record is requested so the initial snapshot stays small
STREAM_QUERY = {"orderBy": quote("timestamp"), "limitToLast": "1"}


class ConnectionState(Enum):
    """Lifecycle of an EventStreamConnection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


@dataclass(frozen=True)
class StreamEvent:
    """A decoded change notification from the store."""

    name: str
    path: str
    data: Any = None

    @property
    def is_snapshot(self) -> bool:
        """True for the initial put of the whole tree sent on connect."""
        return self.path == "/"

    @classmethod
    def from_payload(cls, name: str, payload: str) -> StreamEvent:
        """Decode a ``{"path": ..., "data": ...}`` JSON payload.

        Raises:
            ValueError: If the payload is not JSON or has no string path
        """
        decoded = json.loads(payload)
        if not isinstance(decoded, dict) or not isinstance(decoded.get("path"), str):
            raise ValueError(f"{name} payload has no path: {payload[:200]!r}")
        return cls(name=name, path=decoded["path"], data=decoded.get("data"))


class PushChannel(Protocol):
    """What the connection needs from a push channel (see SSEChannel)."""

    on_open: Callable[[], None] | None
    on_error: Callable[[Exception], None] | None

    def add_event_listener(self, event_name: str, callback: Callable[[SSEMessage], Any]) -> None: ...

    def open(self) -> None: ...

    def close(self) -> None: ...


ChannelFactory = Callable[[str, dict[str, str]], PushChannel]


class EventStreamConnection:
    """Connection to the store's event stream.

    Notifications:
        put / patch: StreamEvent for every change under the stream URL
        close: {"reason": str}; "reset" when the stream ended unexpectedly
        error: StreamError for failures after the stream opened

    Every channel is tagged with a generation number. Callbacks from a
    channel that has since been replaced are ignored, so a slow teardown
    of an old channel cannot affect the current one.

    Example:
        >>> conn = EventStreamConnection("https://example.firebaseio.com/room.json")
        >>> conn.on("put", lambda event: print(event.path, event.data))
        >>> await conn.connect()
        >>> conn.close("done")
    """

    def __init__(
        self,
        stream_url: str,
        session: aiohttp.ClientSession | None = None,
        channel_factory: ChannelFactory | None = None,
        clear_on_reset: bool = False,
        hub: NotificationHub | None = None,
    ) -> None:
        """Initialize the connection.

        Args:
            stream_url: Full URL of the stream endpoint (``{base}.json``)
            session: aiohttp session used by the default SSE channel
            channel_factory: Builds a channel from (url, query params);
                defaults to SSEChannel on ``session``
            clear_on_reset: Forget the channel when it closes unexpectedly.
                Off by default, which keeps the channel referenced so a
                later close() still tears it down.
            hub: Hub to emit on; a private one is created when omitted
        """
        self.stream_url = stream_url
        self.clear_on_reset = clear_on_reset
        self.hub = hub or NotificationHub()
        self._session = session
        self._channel_factory = channel_factory or self._default_channel
        self._channel: PushChannel | None = None
        self._opened: asyncio.Future[None] | None = None
        self._generation = 0
        self._state = ConnectionState.DISCONNECTED
        self.close_reason: str | None = None
        self._log = StoreLoggerAdapter(logger, {"stream_url": stream_url})

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        """Whether a channel is currently referenced."""
        return self._channel is not None

    def on(self, event_name: str, handler: Handler) -> Handler:
        return self.hub.on(event_name, handler)

    def off(self, event_name: str, handler: Handler) -> None:
        self.hub.off(event_name, handler)

    def _default_channel(self, url: str, params: dict[str, str]) -> PushChannel:
        if self._session is None:
            raise StreamConnectionError(url, RuntimeError("no aiohttp session for the event stream"))
        return SSEChannel(self._session, url, params)

    async def connect(self) -> None:
        """Open the event stream and wait until the server accepts it.

        A channel that is still open is closed first (reason "reconnect").

        Raises:
            StreamConnectionError: If the channel fails before opening
        """
        if self._channel is not None:
            self._log.warning("Reconnecting with open event stream")
            self.close(RECONNECT_REASON)

        self._generation += 1
        generation = self._generation
        opened: asyncio.Future[None] = asyncio.get_running_loop().create_future()

        channel = self._channel_factory(self.stream_url, dict(STREAM_QUERY))
        for event_name in STREAM_EVENTS:
            channel.add_event_listener(event_name, partial(self._on_event, generation, event_name))
        for reason in REMOTE_CLOSE_EVENTS:
            channel.add_event_listener(reason, partial(self._on_remote_close, generation, reason))
        channel.add_event_listener("close", partial(self._on_unexpected_close, generation))
        channel.on_open = partial(self._on_open, generation, opened)
        channel.on_error = partial(self._on_error, generation, opened)

        self._channel = channel
        self._opened = opened
        self._state = ConnectionState.CONNECTING
        self.close_reason = None
        channel.open()

        await opened

    def close(self, reason: str | None = None) -> None:
        """Tear down the channel and emit "close" with ``reason``.

        Without an open channel this only logs a warning.
        """
        if self._channel is None:
            self._log.warning("Attempt to close event stream that isn't open")
            return
        channel = self._channel
        self._channel = None
        channel.close()
        if self._opened is not None and not self._opened.done():
            self._opened.set_exception(
                StreamConnectionError(self.stream_url, RuntimeError(f"closed before open: {reason}"))
            )
        self._state = ConnectionState.CLOSED
        self.close_reason = reason
        self._log.info(f"Event stream closed: {reason}")
        self.hub.emit("close", {"reason": reason})

    def _is_current(self, generation: int, what: str) -> bool:
        if generation != self._generation:
            self._log.debug(f"Ignoring {what} from stale channel {generation} (current {self._generation})")
            return False
        return True

    def _on_open(self, generation: int, opened: asyncio.Future[None]) -> None:
        if not self._is_current(generation, "open"):
            return
        self._state = ConnectionState.CONNECTED
        self._log.info("Event stream connected")
        if not opened.done():
            opened.set_result(None)

    def _on_error(self, generation: int, opened: asyncio.Future[None], error: Exception) -> None:
        if not opened.done():
            # Before the first open: fail connect() for this generation only
            if generation == self._generation and self._channel is not None:
                channel = self._channel
                self._channel = None
                channel.close()
                self._state = ConnectionState.DISCONNECTED
            opened.set_exception(StreamConnectionError(self.stream_url, error))
            return
        if not self._is_current(generation, "error"):
            return
        stream_error = StreamError(f"Event stream error: {error}", self.stream_url, error)
        self._log.error(stream_error.message, exc_info=stream_error)
        self.hub.emit("error", stream_error)

    def _on_event(self, generation: int, event_name: str, message: SSEMessage) -> None:
        if not self._is_current(generation, event_name):
            return
        try:
            event = StreamEvent.from_payload(event_name, message.data)
        except ValueError as e:
            stream_error = StreamError(f"Undecodable {event_name} event", self.stream_url, e)
            self._log.warning(f"{stream_error.message}: {e}", exc_info=stream_error)
            self.hub.emit("error", stream_error)
            return
        self.hub.emit(event_name, event)

    def _on_remote_close(self, generation: int, reason: str, message: SSEMessage) -> None:
        if not self._is_current(generation, reason):
            return
        self._log.warning(f"Event stream closed by remote because: {reason}")
        self.close(reason)

    def _on_unexpected_close(self, generation: int, message: SSEMessage) -> None:
        if not self._is_current(generation, "close"):
            return
        self._log.warning(f"Event stream unexpectedly closed: {message}")
        self._state = ConnectionState.CLOSED
        self.close_reason = RESET_REASON
        if self.clear_on_reset:
            self._channel = None
        self.hub.emit("close", {"reason": RESET_REASON, "event": message})
