"""
Custom exceptions for the realtime record store client.

Every failure a caller can observe is one of these exceptions, either
raised from an awaited operation or delivered as the payload of an
"error" notification on the live connection.
"""

from __future__ import annotations

from typing import Any


class RecordStoreError(Exception):
    """Base exception for all record store errors."""

    kind = "RECORD_STORE_ERROR"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(RecordStoreError):
    """Raised when the client configuration is missing or invalid."""

    kind = "CONFIGURATION_ERROR"

    def __init__(self, field: str, reason: str):
        super().__init__(
            f"Invalid configuration for {field}: {reason}",
            {"field": field, "reason": reason},
        )
        self.field = field
        self.reason = reason


class RequestError(RecordStoreError):
    """Raised when a point request does not come back with HTTP 200.

    Transport failures (DNS, refused connection, ...) are reported the same
    way with ``status`` set to None and the original exception as ``cause``.
    """

    kind = "REQUEST_ERROR"

    def __init__(
        self,
        method: str,
        url: str,
        status: int | None = None,
        response_text: str | None = None,
        cause: Exception | None = None,
    ):
        details: dict[str, Any] = {"method": method, "url": url}
        if status is not None:
            details["status"] = status
        if response_text:
            details["response"] = response_text
        if cause:
            details["cause"] = str(cause)
        message = f"{method} {url} failed"
        if status is not None:
            message += f" with status {status}"
        elif cause:
            message += f": {cause}"
        super().__init__(message, details)
        self.method = method
        self.url = url
        self.status = status
        self.response_text = response_text
        self.cause = cause


class StreamConnectionError(RecordStoreError):
    """Raised by connect() when the push channel fails before it opens."""

    kind = "CONNECTION_ERROR"

    def __init__(self, endpoint: str, cause: Exception | None = None):
        details = {"endpoint": endpoint}
        if cause:
            details["cause"] = str(cause)
        super().__init__(f"Event stream connection failed to {endpoint}", details)
        self.endpoint = endpoint
        self.cause = cause


class StreamError(RecordStoreError):
    """Failure on an already open push channel.

    Delivered as the payload of an "error" notification, never raised
    out of the channel.
    """

    kind = "STREAM_ERROR"

    def __init__(self, message: str, endpoint: str | None = None, cause: Exception | None = None):
        details: dict = {}
        if endpoint:
            details["endpoint"] = endpoint
        if cause:
            details["cause"] = str(cause)
        super().__init__(message, details)
        self.endpoint = endpoint
        self.cause = cause


class MalformedKeyError(RecordStoreError):
    """Raised when a key does not have the ``<type>!<id>`` shape."""

    kind = "MALFORMED_KEY"

    def __init__(self, key: str, reason: str = "expected <type>!<id>"):
        super().__init__(f"Malformed record key {key!r}: {reason}", {"key": key, "reason": reason})
        self.key = key
        self.reason = reason


class IdSpaceExhaustedError(RecordStoreError):
    """Identifier invariant violation.

    Raised when a timestamp does not fit the 8-character prefix, when the
    12-character suffix overflows within a single millisecond, or when a
    generated identifier does not have the fixed length. None of these
    should happen in practice.
    """

    kind = "ID_SPACE_EXHAUSTED"

    def __init__(self, reason: str, time_ms: int | None = None):
        details: dict[str, Any] = {"reason": reason}
        if time_ms is not None:
            details["time_ms"] = time_ms
        super().__init__(f"Identifier space exhausted: {reason}", details)
        self.reason = reason
        self.time_ms = time_ms
