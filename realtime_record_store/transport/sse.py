"""
Server-Sent Events push channel.

A minimal EventSource equivalent on top of aiohttp: one long-lived GET,
``event:``/``data:`` frames dispatched to named listeners, and open/error
lifecycle callbacks. There is no automatic reconnect; callers decide.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
from collections.abc import AsyncIterator, Callable, Mapping
from dataclasses import dataclass
from typing import Any

import aiohttp

from ..exceptions import StreamError

logger = logging.getLogger(__name__)

# Synthetic event dispatched when the server ends the stream on its own
CLOSE_EVENT = "close"


@dataclass(frozen=True)
class SSEMessage:
    """One dispatched SSE frame."""

    event: str
    data: str
    id: str | None = None


class SSEParser:
    """Incremental parser for the ``text/event-stream`` format.

    Feed decoded text in arbitrary chunks; complete frames come back as
    SSEMessage objects. Comment lines (``:``) and unknown fields are ignored.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._event = ""
        self._data: list[str] = []
        self._id: str | None = None
        self._has_fields = False

    def feed(self, text: str) -> list[SSEMessage]:
        self._buffer += text
        messages: list[SSEMessage] = []
        while True:
            line, sep, rest = self._split_line(self._buffer)
            if not sep:
                break
            self._buffer = rest
            message = self._process_line(line)
            if message is not None:
                messages.append(message)
        return messages

    @staticmethod
    def _split_line(buffer: str) -> tuple[str, str, str]:
        for i, char in enumerate(buffer):
            if char == "\n":
                return buffer[:i], "\n", buffer[i + 1 :]
            if char == "\r":
                # A trailing \r may be the first half of \r\n
                if i + 1 == len(buffer):
                    return buffer, "", ""
                if buffer[i + 1] == "\n":
                    return buffer[:i], "\r\n", buffer[i + 2 :]
                return buffer[:i], "\r", buffer[i + 1 :]
        return buffer, "", ""

    def _process_line(self, line: str) -> SSEMessage | None:
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._event = value
            self._has_fields = True
        elif field == "data":
            self._data.append(value)
            self._has_fields = True
        elif field == "id":
            self._id = value
        return None

    def _dispatch(self) -> SSEMessage | None:
        if not self._has_fields:
            return None
        message = SSEMessage(event=self._event or "message", data="\n".join(self._data), id=self._id)
        self._event = ""
        self._data = []
        self._has_fields = False
        return message


async def iter_sse_messages(content: aiohttp.StreamReader) -> AsyncIterator[SSEMessage]:
    """Parse an aiohttp response body into SSE messages as they arrive.

    Raises StreamError if the body is not valid UTF-8.
    """
    parser = SSEParser()
    decoder = codecs.getincrementaldecoder("utf-8")()
    async for chunk in content.iter_any():
        try:
            text = decoder.decode(chunk)
        except UnicodeDecodeError as e:
            raise StreamError("Event stream is not valid UTF-8", cause=e) from e
        for message in parser.feed(text):
            yield message


class SSEChannel:
    """Long-lived GET delivering named server events.

    Lifecycle:
    - ``open()`` starts the request in a background task
    - ``on_open`` fires once the server answers 200
    - each frame is passed to the listeners registered for its event name
    - ``on_error`` fires on a non-200 answer, a transport failure or a body
      that is not valid UTF-8
    - the server ending the stream dispatches a synthetic ``close`` event
    - ``close()`` cancels the task; nothing is dispatched afterwards
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        url: str,
        params: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        self.url = url
        self.params = dict(params or {})
        self.headers = dict(headers or {})
        self._session = session
        self._listeners: dict[str, list[Callable[[SSEMessage], Any]]] = {}
        self._task: asyncio.Task[None] | None = None
        self._closed = False
        self.opened = False

        self.on_open: Callable[[], None] | None = None
        self.on_error: Callable[[Exception], None] | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def add_event_listener(self, event_name: str, callback: Callable[[SSEMessage], Any]) -> None:
        self._listeners.setdefault(event_name, []).append(callback)

    def open(self) -> None:
        """Start receiving events. Must be called from a running event loop."""
        if self._task is not None:
            raise RuntimeError("SSE channel already opened")
        self._task = asyncio.create_task(self._run())

    def close(self) -> None:
        """Stop the channel without dispatching anything further."""
        self._closed = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _run(self) -> None:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache", **self.headers}
        # No total timeout: the stream is expected to stay open indefinitely
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=30)

        try:
            async with self._session.get(
                self.url, params=self.params, headers=headers, timeout=timeout
            ) as response:
                if response.status != 200:
                    raise StreamError(
                        f"Event stream request failed with status {response.status}",
                        endpoint=self.url,
                    )
                self.opened = True
                if self.on_open is not None and not self._closed:
                    self.on_open()

                async for message in iter_sse_messages(response.content):
                    if self._closed:
                        return
                    self._dispatch(message)
        except (aiohttp.ClientError, asyncio.TimeoutError, StreamError) as e:
            if self._closed:
                return
            logger.debug(f"SSE channel {self.url} failed: {e}")
            if self.on_error is not None:
                self.on_error(e)
            return

        if not self._closed:
            logger.debug(f"SSE channel {self.url} ended by server")
            self._dispatch(SSEMessage(event=CLOSE_EVENT, data=""))

    def _dispatch(self, message: SSEMessage) -> None:
        listeners = self._listeners.get(message.event)
        if not listeners:
            logger.debug(f"No listener for SSE event {message.event!r}")
            return
        for callback in list(listeners):
            callback(message)
