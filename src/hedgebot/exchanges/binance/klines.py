# src/hedgebot/exchanges/binance/klines.py
from __future__ import annotations

import logging
import time
from typing import Any

import requests

from src.hedgebot.core.errors import InsufficientDataError
from src.hedgebot.core.models.market import Bar
from src.hedgebot.core.models.position import normalize_symbol
from src.hedgebot.core.utils.candles import ts_ms_to_dt
from src.hedgebot.exchanges.base.feed import PriceFeed
from src.hedgebot.exchanges.binance.ws import KlineStream

SPOT_BASE_URL = "https://api.binance.com"
MAX_LIMIT = 1000

log = logging.getLogger("src.hedgebot.exchanges.binance.klines")


def parse_kline_row(row: list[Any]) -> Bar:
    """[openTime, o, h, l, c, v, closeTime, ...] -> Bar."""
    return Bar(
        time=ts_ms_to_dt(row[0]),
        open=float(row[1]),
        high=float(row[2]),
        low=float(row[3]),
        close=float(row[4]),
        volume=float(row[5]),
        close_time=ts_ms_to_dt(row[6]),
    )


class BinanceKlinesFeed(PriceFeed):
    """
    Public Binance klines (no keys). Bitget symbols are accepted as-is (BTCUSDT_UMCBL -> BTCUSDT).
    """

    name = "binance"

    def __init__(
        self,
        *,
        base_url: str = SPOT_BASE_URL,
        timeout: float = 10.0,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = float(timeout)
        self.max_retries = max(1, int(max_retries))
        self.backoff_base = float(backoff_base)
        self.sess = session or requests.Session()

    def _fetch(self, params: dict[str, Any]) -> list:
        url = f"{self.base_url}/api/v3/klines"
        last_err: Exception | None = None
        for attempt in range(1, self.max_retries + 1):
            try:
                r = self.sess.get(url, params=params, timeout=self.timeout)
                if r.status_code == 429 or r.status_code >= 500:
                    raise requests.HTTPError(f"HTTP {r.status_code}")
                r.raise_for_status()
                return r.json()
            except requests.RequestException as e:
                last_err = e
                sleep = self.backoff_base * attempt
                log.warning(
                    "Binance klines error %s %s, retry %d/%d, sleep %.1fs | %r",
                    params.get("symbol"), params.get("interval"), attempt, self.max_retries, sleep, e,
                )
                time.sleep(sleep)
        raise RuntimeError(f"Binance klines failed after {self.max_retries} retries: {last_err!r}")

    def get_candles(self, symbol: str, interval: str, limit: int) -> list[Bar]:
        sym = normalize_symbol(symbol)
        remaining = int(limit)
        end_time: int | None = None
        chunks: list[list[Bar]] = []

        # Binance caps one request at 1000 rows; page backwards for larger windows.
        while remaining > 0:
            params: dict[str, Any] = {"symbol": sym, "interval": interval, "limit": min(remaining, MAX_LIMIT)}
            if end_time is not None:
                params["endTime"] = end_time
            rows = self._fetch(params)
            if not rows:
                break
            bars = [parse_kline_row(r) for r in rows]
            chunks.append(bars)
            remaining -= len(bars)
            if len(rows) < params["limit"]:
                break
            end_time = int(rows[0][0]) - 1

        out: list[Bar] = []
        for chunk in reversed(chunks):
            out.extend(chunk)
        return out

    def get_price(self, symbol: str) -> float:
        bars = self.get_candles(symbol, "1m", 1)
        if not bars:
            raise InsufficientDataError(f"No 1m bar for {symbol}")
        price = bars[-1].close
        if price <= 0:
            raise InsufficientDataError(f"Invalid price for {symbol}: {price}")
        return price

    def subscribe(self, symbol: str, interval: str) -> KlineStream:
        stream = KlineStream(symbol=normalize_symbol(symbol), interval=interval)
        stream.start()
        return stream
