"""Keyed request counters backing the rate limiter.

Each key owns one fixed window: ``{count, reset_at_ms}``. A window opens on the
first observation of a key (that call counts as request #1) and is replaced by
a fresh one once ``now >= reset_at_ms``. While a window is live, calls are
admitted until ``count`` reaches the policy maximum; further calls are denied
and leave the entry untouched so it can be reported in response headers.

``RateLimitStore`` is the seam for swapping in a shared external store; the
in-memory implementation below is process-local and forgets everything on
restart, which makes it unsuitable for multi-instance deployments.

Thread-safety: the event loop is single threaded, but each key still gets its
own ``asyncio.Lock`` so an implementation that awaits between read and write
(e.g. a remote store) keeps the same per-key atomicity. Independent keys never
share a lock on the hot path.
"""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Dict, Optional


@dataclass
class CounterEntry:
    key: str
    count: int
    reset_at_ms: int


@dataclass
class CounterCheck:
    allowed: bool
    entry: CounterEntry


class RateLimitStore(ABC):
    """Interface the rate limiter depends on."""

    @abstractmethod
    def get(self, key: str) -> Optional[CounterEntry]:
        ...

    @abstractmethod
    async def upsert_and_check(self, key: str, now_ms: int, window_ms: int, max_requests: int) -> CounterCheck:
        ...

    @abstractmethod
    def sweep(self, now_ms: int) -> int:
        """Drop expired entries; returns how many were removed."""

    @abstractmethod
    def clear(self) -> None:
        ...

    @abstractmethod
    def __len__(self) -> int:
        ...


@dataclass
class _Slot:
    entry: Optional[CounterEntry] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class InMemoryRateLimitStore(RateLimitStore):
    def __init__(self) -> None:
        self._slots: Dict[str, _Slot] = {}

    def get(self, key: str) -> Optional[CounterEntry]:
        slot = self._slots.get(key)
        if slot is None or slot.entry is None:
            return None
        return replace(slot.entry)

    async def upsert_and_check(self, key: str, now_ms: int, window_ms: int, max_requests: int) -> CounterCheck:
        # setdefault has no await point, so two coroutines always see the same slot
        slot = self._slots.setdefault(key, _Slot())
        async with slot.lock:
            entry = slot.entry
            if entry is None or now_ms >= entry.reset_at_ms:
                entry = CounterEntry(key=key, count=1, reset_at_ms=now_ms + window_ms)
                slot.entry = entry
                return CounterCheck(allowed=True, entry=replace(entry))
            if entry.count < max_requests:
                entry.count += 1
                return CounterCheck(allowed=True, entry=replace(entry))
            return CounterCheck(allowed=False, entry=replace(entry))

    def sweep(self, now_ms: int) -> int:
        removed = 0
        for key, slot in list(self._slots.items()):
            if slot.lock.locked():
                continue
            if slot.entry is None or slot.entry.reset_at_ms <= now_ms:
                del self._slots[key]
                removed += 1
        return removed

    def clear(self) -> None:
        self._slots.clear()

    def __len__(self) -> int:
        return len(self._slots)


__all__ = ["CounterEntry", "CounterCheck", "RateLimitStore", "InMemoryRateLimitStore"]
