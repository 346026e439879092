"""In-memory expiring key caches."""

from __future__ import annotations

import time
from collections import OrderedDict
from typing import Callable, Iterator

__all__ = ["ExpiringKeys"]


class ExpiringKeys:
    """Remember keys for ``ttl_s`` seconds, oldest evicted first past ``max_keys``.

    Expiry is lazy: lookups ignore stale entries, and :meth:`sweep` drops them.
    """

    def __init__(
        self,
        ttl_s: float,
        *,
        max_keys: int = 2048,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = float(max(ttl_s, 0.0))
        self.max_keys = max(1, int(max_keys))
        self._clock = clock
        self._seen: "OrderedDict[str, tuple[float, str]]" = OrderedDict()

    def add(self, key: str, value: str = "") -> None:
        self._seen[key] = (self._clock() + self.ttl, value)
        self._seen.move_to_end(key)
        while len(self._seen) > self.max_keys:
            self._seen.popitem(last=False)

    def get(self, key: str) -> str | None:
        entry = self._seen.get(key)
        if entry is None or entry[0] <= self._clock():
            return None
        return entry[1]

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    def discard(self, key: str) -> None:
        self._seen.pop(key, None)

    def find_value(self, value: str) -> str | None:
        """Return the first live key stored with ``value``."""

        now = self._clock()
        for key, (expires_at, stored) in self._seen.items():
            if stored == value and expires_at > now:
                return key
        return None

    def sweep(self) -> int:
        """Drop expired entries and return how many were removed."""

        now = self._clock()
        expired = [key for key, (expires_at, _) in self._seen.items() if expires_at <= now]
        for key in expired:
            self._seen.pop(key, None)
        return len(expired)

    def __len__(self) -> int:
        return len(self._seen)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._seen))
