"""Record formatting and range query parameters.

The store returns records as flat ``{key: value}`` objects where the key
is the composite ``{type}!{id}``. Callers get dicts with ``type`` and
``id`` merged back in.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import Any

from .id_utils import split_composite_key

# Largest limit the store accepts: 2**31 - 1. The store only sorts
# query results when a limit is present.
MAX_LIMIT = 2147483647

SERVER_TIMESTAMP = {".sv": "timestamp"}


def format_record(key: str, value: Any) -> dict[str, Any]:
    """Split ``key`` into type and id and merge them into ``value``.

    Non-mapping values (including None for a removed record) are wrapped
    as ``{"value": value}``.

    Raises:
        MalformedKeyError: If the key is not ``{type}!{id}``.
    """
    record_type, record_id = split_composite_key(key)
    if isinstance(value, Mapping):
        record = dict(value)
    else:
        record = {"value": value}
    record["id"] = record_id
    record["type"] = record_type
    return record


def format_records(records: Mapping[str, Any] | None) -> list[dict[str, Any]]:
    """Format every entry of a ``{key: value}`` response, keeping its order."""
    if records is None:
        return []
    return [format_record(key, value) for key, value in records.items()]


def priority_first(records: Iterable[dict[str, Any]], priority_type: str | None) -> list[dict[str, Any]]:
    """Stable partition: records of ``priority_type`` first, order kept otherwise."""
    records = list(records)
    if not priority_type:
        return records
    first = [r for r in records if r.get("type") == priority_type]
    rest = [r for r in records if r.get("type") != priority_type]
    return first + rest


def quote(value: str) -> str:
    """Quote a string literal the way the store expects in query parameters."""
    return json.dumps(value)


def range_query(
    *,
    order_by: str = "$key",
    start_at: str | None = None,
    end_at: str | None = None,
    limit_to_last: int = MAX_LIMIT,
    export: bool = False,
) -> dict[str, str]:
    """Build range query parameters.

    String bounds are quoted. A limit is always present, defaulting to
    MAX_LIMIT, because results are otherwise unordered.
    """
    if limit_to_last <= 0:
        limit_to_last = MAX_LIMIT
    params: dict[str, str] = {}
    if export:
        params["format"] = "export"
    params["orderBy"] = quote(order_by)
    if start_at is not None:
        params["startAt"] = quote(start_at)
    if end_at is not None:
        params["endAt"] = quote(end_at)
    params["limitToLast"] = str(min(limit_to_last, MAX_LIMIT))
    return params


def write_body(value: Any) -> dict[str, Any]:
    """Body for a write: the value plus a server-assigned timestamp."""
    return {"timestamp": SERVER_TIMESTAMP, "value": value}
