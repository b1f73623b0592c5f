"""Periodic eviction of expired rate-limit counters."""
from __future__ import annotations

import asyncio
from typing import Callable, Optional

from app.config import RATE_LIMIT_SWEEP
from app.governance.store import RateLimitStore
from app.utils import get_logger
from app.utils.time import now_ms

logger = get_logger(__name__)


class CounterSweeper:
    def __init__(
        self,
        store: RateLimitStore,
        *,
        interval_seconds: Optional[float] = None,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.interval_seconds = float(interval_seconds or RATE_LIMIT_SWEEP["interval_seconds"])
        self._clock = clock
        self._task: asyncio.Task | None = None

    def run_once(self) -> int:
        removed = self.store.sweep(self._clock())
        if removed:
            logger.info("Expired rate limit counters swept", removed=removed, remaining=len(self.store))
        return removed

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:  # pragma: no cover
            return
        self._task = asyncio.get_running_loop().create_task(self._loop(), name="rate-limit-sweeper")
        logger.info("Rate limit sweeper started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Rate limit sweeper stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                self.run_once()
            except Exception as e:
                logger.error("Rate limit sweep failed", error=str(e), exc_info=True)


__all__ = ["CounterSweeper"]
