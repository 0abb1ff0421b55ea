"""
Client configuration.

Configuration can be built directly, from environment variables, or from
the ``store`` section of a YAML settings file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigurationError

DEFAULT_REQUEST_TIMEOUT = 30.0  # seconds


class DeleteMode(Enum):
    """How RecordStore.delete removes a record.

    WRITE_EMPTY: PUT the composite key with an empty value and a fresh
        server timestamp. Listeners see the removal as a regular put.
    REMOTE_DELETE: Issue an HTTP DELETE on the composite key.
    """

    WRITE_EMPTY = "write_empty"
    REMOTE_DELETE = "remote_delete"


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class StoreConfig:
    """Configuration for a RecordStore.

    Environment Variables:
        REALTIME_STORE_URL: Base URL of the store path (required)
        REALTIME_STORE_HISTORY_TYPE: Record type for time window queries (default: chat)
        REALTIME_STORE_PRIORITY_TYPE: Type listed first by cursor queries (default: participant)
        REALTIME_STORE_ROOM_CURSOR: Default cursor for cursor queries (default: chat~)
        REALTIME_STORE_REQUEST_TIMEOUT: Point request timeout in seconds (default: 30)
        REALTIME_STORE_CLEAR_ON_RESET: Drop the stream handle on unexpected close (default: false)
        REALTIME_STORE_DELETE_MODE: write_empty or remote_delete (default: write_empty)

    Attributes:
        base_url: Store URL without the ``.json`` suffix; trailing slashes are dropped
        history_type: Record type read by time window queries
        priority_type: Record type placed first in cursor query results
        room_cursor: Default ``startAt`` key for cursor queries
        request_timeout: Total timeout for each point request (seconds)
        clear_on_reset: Forget the stream handle when it closes unexpectedly
        delete_mode: How records are deleted
        headers: Extra headers sent with every request
    """

    base_url: str
    history_type: str = "chat"
    priority_type: str | None = "participant"
    room_cursor: str = "chat~"
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    clear_on_reset: bool = False
    delete_mode: DeleteMode = DeleteMode.WRITE_EMPTY
    headers: dict[str, str] = field(default_factory=dict)

    # Additional options
    options: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.base_url:
            raise ConfigurationError("base_url", "a store URL is required")
        self.base_url = self.base_url.rstrip("/")
        if isinstance(self.delete_mode, str):
            self.delete_mode = _parse_delete_mode(self.delete_mode)
        if self.request_timeout <= 0:
            raise ConfigurationError("request_timeout", "must be positive")

    @property
    def stream_url(self) -> str:
        """URL of the push channel endpoint."""
        return f"{self.base_url}.json"

    @classmethod
    def from_environment(cls, base_url: str | None = None) -> StoreConfig:
        """Create configuration from environment variables.

        Args:
            base_url: Overrides REALTIME_STORE_URL when given

        Returns:
            StoreConfig populated from environment variables

        Raises:
            ConfigurationError: If no URL is configured or a value is invalid
        """
        url = base_url or os.environ.get("REALTIME_STORE_URL")
        if not url:
            raise ConfigurationError("base_url", "REALTIME_STORE_URL environment variable not set")

        timeout_str = os.environ.get("REALTIME_STORE_REQUEST_TIMEOUT")
        try:
            timeout = float(timeout_str) if timeout_str else DEFAULT_REQUEST_TIMEOUT
        except ValueError:
            raise ConfigurationError("request_timeout", f"not a number: {timeout_str!r}") from None

        return cls(
            base_url=url,
            history_type=os.environ.get("REALTIME_STORE_HISTORY_TYPE", "chat"),
            priority_type=os.environ.get("REALTIME_STORE_PRIORITY_TYPE", "participant") or None,
            room_cursor=os.environ.get("REALTIME_STORE_ROOM_CURSOR", "chat~"),
            request_timeout=timeout,
            clear_on_reset=_parse_bool(os.environ.get("REALTIME_STORE_CLEAR_ON_RESET", "false")),
            delete_mode=_parse_delete_mode(os.environ.get("REALTIME_STORE_DELETE_MODE", "write_empty")),
        )

    @classmethod
    def from_file(cls, path: Path | str) -> StoreConfig:
        """Load configuration from the ``store`` section of a YAML file.

        ```yaml
        store:
          base_url: "https://example.firebaseio.com/rooms/lobby"
          history_type: chat
          priority_type: participant
          request_timeout: 10
          delete_mode: remote_delete
        ```
        """
        path = Path(path)
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigurationError("path", f"cannot read {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError("path", f"invalid YAML in {path}: {e}") from e

        section = data.get("store")
        if not isinstance(section, dict):
            raise ConfigurationError("store", f"missing 'store' section in {path}")

        known = {
            "base_url",
            "history_type",
            "priority_type",
            "room_cursor",
            "request_timeout",
            "clear_on_reset",
            "delete_mode",
            "headers",
        }
        if not section.get("base_url"):
            raise ConfigurationError("base_url", f"no base_url in {path}")
        kwargs = {key: value for key, value in section.items() if key in known}
        options = {key: value for key, value in section.items() if key not in known}
        return cls(**kwargs, options=options)


def _parse_delete_mode(value: str) -> DeleteMode:
    try:
        return DeleteMode(value.lower())
    except ValueError:
        raise ConfigurationError("delete_mode", f"unknown mode {value!r}") from None
