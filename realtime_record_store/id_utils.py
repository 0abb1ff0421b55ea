"""Identifier and composite key utilities.

Centralizes the key format knowledge so callers never need to construct
or parse record keys directly.

Record keys: {type}!{id}
Identifiers: 8 time characters + 12 suffix characters, all drawn from
ID_ALPHABET, whose order matches ASCII order so that identifiers sort
lexicographically by creation time.
"""

from __future__ import annotations

import random
import time

from .exceptions import IdSpaceExhaustedError, MalformedKeyError

ID_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz~"
KEY_SEPARATOR = "!"

TIME_LENGTH = 8
SUFFIX_LENGTH = 12
ID_LENGTH = TIME_LENGTH + SUFFIX_LENGTH

_BASE = len(ID_ALPHABET)
MAX_TIME = _BASE**TIME_LENGTH - 1


def now_millis() -> int:
    """Local wall clock in milliseconds since the epoch."""
    return int(time.time() * 1000)


def encode_time(time_ms: int) -> str:
    """Encode a millisecond timestamp as the 8-character id prefix.

    Raises IdSpaceExhaustedError if the timestamp is outside [0, 64**8).
    """
    if time_ms < 0:
        raise IdSpaceExhaustedError("timestamp is negative", time_ms)

    chars: list[str] = []
    remaining = time_ms
    for _ in range(TIME_LENGTH):
        chars.append(ID_ALPHABET[remaining % _BASE])
        remaining //= _BASE
    if remaining != 0:
        raise IdSpaceExhaustedError("timestamp does not fit in the time prefix", time_ms)
    return "".join(reversed(chars))


def decode_time(identifier: str) -> int:
    """Recover the millisecond timestamp from an identifier's prefix.

    Raises ValueError on characters outside the alphabet or a short id.
    """
    if len(identifier) < TIME_LENGTH:
        raise ValueError(f"Identifier too short: {identifier!r}")
    value = 0
    for char in identifier[:TIME_LENGTH]:
        digit = ID_ALPHABET.find(char)
        if digit < 0:
            raise ValueError(f"Invalid identifier character {char!r} in {identifier!r}")
        value = value * _BASE + digit
    return value


class IdGenerator:
    """Generator of 20-character time-sortable identifiers.

    Identifiers minted at different milliseconds sort by time. Within one
    millisecond the random suffix of the previous id is incremented as a
    base-64 counter, so ids from the same generator are strictly increasing
    in call order even when the clock does not move.

    Each instance keeps its own state; create one per minting component.

    Example:
        >>> gen = IdGenerator()
        >>> a = gen.generate(1000)
        >>> b = gen.generate(1000)
        >>> a < b and a[:8] == b[:8]
        True
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        """Initialize the generator.

        Args:
            rng: Random source for new suffixes. Defaults to SystemRandom.
        """
        self._rng = rng or random.SystemRandom()
        # None until the first id is minted
        self.last_time: int | None = None
        self.last_suffix: list[int] = [0] * SUFFIX_LENGTH

    def reset(self) -> None:
        """Forget the previous timestamp and suffix."""
        self.last_time = None
        self.last_suffix = [0] * SUFFIX_LENGTH

    def generate(self, now_ms: int | None = None) -> str:
        """Mint an identifier for ``now_ms`` (default: local wall clock)."""
        if now_ms is None:
            now_ms = now_millis()

        prefix = encode_time(now_ms)

        if now_ms == self.last_time:
            self._increment_suffix(now_ms)
        else:
            self.last_suffix = [self._rng.randrange(_BASE) for _ in range(SUFFIX_LENGTH)]
            self.last_time = now_ms

        identifier = prefix + "".join(ID_ALPHABET[digit] for digit in self.last_suffix)
        if len(identifier) != ID_LENGTH:
            raise IdSpaceExhaustedError(f"identifier length is {len(identifier)}", now_ms)
        return identifier

    def _increment_suffix(self, now_ms: int) -> None:
        """Add one to the suffix, treating it as a big-endian base-64 number."""
        suffix = self.last_suffix
        i = SUFFIX_LENGTH - 1
        while i >= 0 and suffix[i] == _BASE - 1:
            i -= 1
        if i < 0:
            raise IdSpaceExhaustedError("suffix overflow within one millisecond", now_ms)
        suffix[i] += 1
        for j in range(i + 1, SUFFIX_LENGTH):
            suffix[j] = 0


def composite_key(record_type: str, record_id: str) -> str:
    """Build the store key ``{type}!{id}``.

    Raises MalformedKeyError if the type is empty or contains the separator.
    """
    if not record_type or KEY_SEPARATOR in record_type:
        raise MalformedKeyError(
            f"{record_type}{KEY_SEPARATOR}{record_id}",
            f"type must be non-empty and must not contain {KEY_SEPARATOR!r}",
        )
    return f"{record_type}{KEY_SEPARATOR}{record_id}"


def split_composite_key(key: str) -> tuple[str, str]:
    """Split a store key on its first separator into ``(type, id)``.

    Raises MalformedKeyError when either part is missing.
    """
    record_type, sep, record_id = key.partition(KEY_SEPARATOR)
    if not sep or not record_type or not record_id:
        raise MalformedKeyError(key)
    return record_type, record_id
