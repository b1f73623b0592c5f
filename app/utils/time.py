"""Time utilities (UTC now, epoch milliseconds)."""
from __future__ import annotations
import time
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_ms() -> int:
    """Wall-clock epoch milliseconds; rate-limit windows are expressed in this unit."""
    return int(time.time() * 1000)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)

__all__ = ["utc_now", "now_ms", "as_utc"]
