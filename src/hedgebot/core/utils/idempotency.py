from __future__ import annotations
import hashlib
from datetime import datetime

from src.hedgebot.core.utils.candles import floor_time


def make_cycle_id(*parts: str, max_len: int = 32) -> str:
    raw = "|".join(p for p in parts if p is not None and p != "")
    h = hashlib.sha256(raw.encode("utf-8")).hexdigest()
    return h[:max_len]


def period_cycle_id(symbol: str, now: datetime, interval: str = "1h") -> str:
    """Same value for every call inside one interval period (e.g. one clock hour)."""
    return make_cycle_id(symbol, interval, floor_time(now, interval).isoformat())
