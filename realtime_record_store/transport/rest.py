"""
REST point-request client.

Wraps an aiohttp session with the store's URL conventions:
- every path ends in ``.json``
- writes carry a server-assigned timestamp next to the value
- anything but HTTP 200 is a RequestError
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any

import aiohttp

from ..config import DEFAULT_REQUEST_TIMEOUT
from ..exceptions import RequestError
from ..records import write_body

logger = logging.getLogger(__name__)


class RestClient:
    """Async client for point reads and writes.

    The client creates its own aiohttp session on first use unless one is
    passed in; only a session it created is closed by :meth:`close`.

    Example:
        >>> async with RestClient("https://example.firebaseio.com/room") as rest:
        ...     record = await rest.put("chat!0001", {"text": "hi"})
    """

    def __init__(
        self,
        base_url: str,
        session: aiohttp.ClientSession | None = None,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        """Initialize the REST client.

        Args:
            base_url: Store URL; trailing slashes are dropped
            session: Existing aiohttp session to share
            timeout: Total timeout per request (seconds)
            headers: Extra headers for every request
        """
        self.base_url = base_url.rstrip("/")
        self.headers = dict(headers or {})
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def session(self) -> aiohttp.ClientSession:
        """The aiohttp session, created lazily."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self.headers)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the session if this client created it."""
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> RestClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def make_url(self, path: str | Sequence[str] = "") -> str:
        """Build ``{base_url}/{path}.json``.

        ``path`` may be a string or a list of segments; leading and
        trailing slashes are ignored.
        """
        if not isinstance(path, str):
            path = "/".join(path)
        path = path.strip("/")
        return f"{self.base_url}/{path}.json"

    async def get(self, path: str | Sequence[str] = "", query: Mapping[str, str] | None = None) -> Any:
        """Read ``path`` with optional query parameters."""
        return await self.request("GET", self.make_url(path), params=query)

    async def put(self, path: str | Sequence[str], value: Any) -> Any:
        return await self._update("PUT", path, value)

    async def patch(self, path: str | Sequence[str], value: Any) -> Any:
        return await self._update("PATCH", path, value)

    async def post(self, path: str | Sequence[str], value: Any) -> Any:
        return await self._update("POST", path, value)

    async def delete(self, path: str | Sequence[str]) -> Any:
        return await self._update("DELETE", path, None)

    async def _update(self, method: str, path: str | Sequence[str], value: Any) -> Any:
        url = self.make_url(path)
        if method == "DELETE":
            if value is not None:
                raise ValueError("No value expected for delete()")
            return await self.request(method, url)
        return await self.request(method, url, body=write_body(value))

    async def request(
        self,
        method: str,
        url: str,
        body: Any = None,
        params: Mapping[str, str] | None = None,
    ) -> Any:
        """Send one request and decode the JSON response.

        Args:
            method: HTTP method
            url: Absolute URL
            body: JSON-serializable body, or None for no body
            params: Query parameters

        Returns:
            The decoded JSON response (None for an empty body)

        Raises:
            RequestError: On a non-200 status, transport failure or invalid JSON
        """
        data = json.dumps(body) if body is not None else None
        headers = {"Content-Type": "application/json"} if data is not None else None
        logger.debug(f"{method} {url} params={dict(params or {})}")

        try:
            async with self.session.request(
                method,
                url,
                data=data,
                params=params,
                headers=headers,
                timeout=self._timeout,
            ) as response:
                text = await response.text()
                status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RequestError(method, url, cause=e) from e

        if status != 200:
            logger.warning(f"{method} {url} returned {status}")
            raise RequestError(method, url, status=status, response_text=text)

        if not text:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise RequestError(method, url, status=status, response_text=text, cause=e) from e
