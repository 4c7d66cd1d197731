from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

from src.hedgebot.core.models.market import Bar

# =========================================================
# UTC helpers
# =========================================================

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def utc(dt: Any) -> datetime:
    """Coerce to a timezone-aware UTC datetime."""
    if isinstance(dt, datetime):
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    raise TypeError(f"Expected datetime, got {type(dt)}")


def ts_ms_to_dt(ts_ms: int) -> datetime:
    return datetime.fromtimestamp(int(ts_ms) / 1000.0, tz=timezone.utc)


def interval_to_timedelta(interval: str) -> timedelta:
    """'1m','5m','15m','1h','4h','1d' -> timedelta."""
    s = str(interval or "").strip().lower()
    if not s:
        return timedelta(hours=1)
    try:
        if s.endswith("m"):
            return timedelta(minutes=int(s[:-1]))
        if s.endswith("h"):
            return timedelta(hours=int(s[:-1]))
        if s.endswith("d"):
            return timedelta(days=int(s[:-1]))
    except ValueError:
        return timedelta(hours=1)
    return timedelta(hours=1)


def floor_time(ts: datetime, interval: str) -> datetime:
    ts = utc(ts)
    step = interval_to_timedelta(interval).total_seconds()
    if step <= 0:
        return ts
    off = (ts - _EPOCH).total_seconds()
    return _EPOCH + timedelta(seconds=int(off // step) * step)


def seconds_until_next_boundary(now: datetime, interval: str = "1h") -> float:
    """Time left until the next interval boundary (e.g. top of the next hour)."""
    now = utc(now)
    nxt = floor_time(now, interval) + interval_to_timedelta(interval)
    return max(0.0, (nxt - now).total_seconds())


# =========================================================
# bar selection
# =========================================================

def last_closed_bar(bars: Sequence[Bar], now: datetime) -> Bar | None:
    """
    Most recent bar whose close_time is not in the future.

    Starts from the second-to-last bar (the last one is usually still forming)
    and walks backwards while close_time > now.
    """
    if not bars:
        return None
    now = utc(now)
    idx = len(bars) - 2 if len(bars) >= 2 else len(bars) - 1
    while idx > 0 and utc(bars[idx].close_time) > now:
        idx -= 1
    return bars[idx]
