"""Expiring key set used to remember recently seen files."""

from __future__ import annotations

import time
from typing import Callable, Dict, Iterable


class ExpiringKeySet:
    """Set of string keys that silently drop out after a fixed time-to-live.

    Entries are not renewed on lookup; re-adding a key restarts its timer.
    Expired keys are purged whenever keys are added or the set is sized, so
    keys that are never looked up again do not accumulate.
    """

    def __init__(self, ttl_seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._expiry: Dict[str, float] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    def add(self, key: str) -> None:
        self.purge()
        self._expiry[key] = self._clock() + self._ttl

    def update(self, keys: Iterable[str]) -> None:
        self.purge()
        deadline = self._clock() + self._ttl
        for key in keys:
            self._expiry[key] = deadline

    def discard(self, key: str) -> None:
        self._expiry.pop(key, None)

    def clear(self) -> None:
        self._expiry.clear()

    def purge(self) -> None:
        """Drop every expired key."""
        now = self._clock()
        for key in [key for key, deadline in self._expiry.items() if deadline <= now]:
            del self._expiry[key]

    def __contains__(self, key: object) -> bool:
        deadline = self._expiry.get(key)  # type: ignore[arg-type]
        if deadline is None:
            return False
        if deadline <= self._clock():
            del self._expiry[key]  # type: ignore[arg-type]
            return False
        return True

    def __len__(self) -> int:
        self.purge()
        return len(self._expiry)


__all__ = ["ExpiringKeySet"]
