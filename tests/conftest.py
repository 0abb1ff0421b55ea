"""
Shared test configuration and fixtures.

Provides a fake push channel that tests drive by hand, and a factory that
records every channel an EventStreamConnection creates.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock

import pytest

from realtime_record_store.config import StoreConfig
from realtime_record_store.transport.rest import RestClient
from realtime_record_store.transport.sse import SSEMessage

BASE_URL = "https://example.test/rooms/lobby"


class FakeChannel:
    """Push channel stand-in.

    ``mode`` decides what happens on open(): "open" fires on_open on the
    next loop iteration, "error" fires on_error instead, "manual" does nothing.
    """

    def __init__(self, url: str, params: dict[str, str], mode: str = "open") -> None:
        self.url = url
        self.params = params
        self.mode = mode
        self.listeners: dict[str, list[Callable[[SSEMessage], Any]]] = {}
        self.on_open: Callable[[], None] | None = None
        self.on_error: Callable[[Exception], None] | None = None
        self.open_calls = 0
        self.closed = False

    def add_event_listener(self, event_name: str, callback: Callable[[SSEMessage], Any]) -> None:
        self.listeners.setdefault(event_name, []).append(callback)

    def open(self) -> None:
        self.open_calls += 1
        loop = asyncio.get_running_loop()
        if self.mode == "open":
            loop.call_soon(self._auto_open)
        elif self.mode == "error":
            loop.call_soon(self.fire_error, ConnectionRefusedError("refused"))

    def close(self) -> None:
        self.closed = True

    def _auto_open(self) -> None:
        if not self.closed:
            self.fire_open()

    # Drivers

    def fire_open(self) -> None:
        assert self.on_open is not None
        self.on_open()

    def fire_error(self, error: Exception) -> None:
        assert self.on_error is not None
        self.on_error(error)

    def fire(self, event_name: str, data: str = "") -> None:
        for callback in list(self.listeners.get(event_name, [])):
            callback(SSEMessage(event=event_name, data=data))

    def fire_json(self, event_name: str, path: str, data: Any) -> None:
        self.fire(event_name, json.dumps({"path": path, "data": data}))


class ChannelFactory:
    """Creates FakeChannels and remembers them in order."""

    def __init__(self) -> None:
        self.channels: list[FakeChannel] = []
        self.mode = "open"

    def __call__(self, url: str, params: dict[str, str]) -> FakeChannel:
        channel = FakeChannel(url, params, mode=self.mode)
        self.channels.append(channel)
        return channel

    @property
    def last(self) -> FakeChannel:
        return self.channels[-1]


class FixedRandom:
    """Random source whose randrange always returns the same digit."""

    def __init__(self, digit: int) -> None:
        self.digit = digit

    def randrange(self, *args: Any, **kwargs: Any) -> int:
        return self.digit


class Recorder:
    """Collects notification payloads per event name."""

    def __init__(self) -> None:
        self.events: dict[str, list[Any]] = {}

    def handler(self, event_name: str) -> Callable[[Any], None]:
        def record(payload: Any) -> None:
            self.events.setdefault(event_name, []).append(payload)

        return record

    def attach(self, target: Any, *event_names: str) -> Recorder:
        for event_name in event_names:
            target.on(event_name, self.handler(event_name))
        return self

    def __getitem__(self, event_name: str) -> list[Any]:
        return self.events.get(event_name, [])


@pytest.fixture
def channel_factory() -> ChannelFactory:
    return ChannelFactory()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def config() -> StoreConfig:
    return StoreConfig(base_url=BASE_URL)


@pytest.fixture
def rest() -> AsyncMock:
    """REST client mock; writes echo back a stored record."""
    mock = AsyncMock(spec=RestClient)

    async def put(path: str, value: Any) -> dict[str, Any]:
        return {"timestamp": 1_500_000_000_000, "value": value}

    mock.put.side_effect = put
    mock.get.return_value = None
    mock.delete.return_value = None
    return mock


@pytest.fixture
def fixed_rng() -> type[FixedRandom]:
    """Factory for random sources that always draw the given digit."""
    return FixedRandom
