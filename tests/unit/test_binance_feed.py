"""Binance klines REST feed and closed-bar WebSocket stream."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from src.hedgebot.core.errors import InsufficientDataError
from src.hedgebot.exchanges.binance import klines as klines_mod
from src.hedgebot.exchanges.binance.klines import BinanceKlinesFeed, parse_kline_row
from src.hedgebot.exchanges.binance.ws import KlineStream, parse_kline_event

H = 3_600_000


def _row(i: int, close: float = 100.0) -> list:
    t = 1_700_000_000_000 + i * H
    return [t, "99", "101", "98", str(close), "12.5", t + H - 1, "0", 10, "0", "0", "0"]


class FakeResp:
    def __init__(self, payload, status_code=200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self):
        pass

    def json(self):
        return self.payload


class FakeSession:
    def __init__(self, pages):
        self.pages = list(pages)
        self.params: list[dict] = []

    def get(self, url, params=None, timeout=None):
        self.params.append(dict(params))
        return FakeResp(self.pages.pop(0))


def test_parse_kline_row():
    bar = parse_kline_row(_row(0, close=100.5))

    assert bar.close == 100.5 and bar.high == 101.0 and bar.volume == 12.5
    assert bar.time == datetime.fromtimestamp(1_700_000_000, tz=timezone.utc)
    assert bar.close_time > bar.time


def test_get_candles_normalizes_symbol():
    sess = FakeSession([[_row(0), _row(1)]])
    feed = BinanceKlinesFeed(session=sess)

    bars = feed.get_candles("BTCUSDT_UMCBL", "1h", 2)

    assert len(bars) == 2
    assert sess.params[0] == {"symbol": "BTCUSDT", "interval": "1h", "limit": 2}


def test_get_candles_pages_backwards_over_the_row_cap(monkeypatch):
    monkeypatch.setattr(klines_mod, "MAX_LIMIT", 3)
    newest = [_row(i) for i in (3, 4, 5)]
    older = [_row(i) for i in (1, 2)]
    sess = FakeSession([newest, older])

    bars = BinanceKlinesFeed(session=sess).get_candles("BTCUSDT", "1h", 5)

    assert [b.time for b in bars] == sorted(b.time for b in bars)
    assert len(bars) == 5
    assert sess.params[1]["endTime"] == newest[0][0] - 1


def test_get_price_is_last_1m_close():
    sess = FakeSession([[_row(0, close=123.4)]])

    assert BinanceKlinesFeed(session=sess).get_price("ETHUSDT") == 123.4
    assert sess.params[0]["interval"] == "1m"


def test_get_price_without_data_raises():
    with pytest.raises(InsufficientDataError):
        BinanceKlinesFeed(session=FakeSession([[]])).get_price("ETHUSDT")


def _event(closed: bool, close: str = "100.0") -> dict:
    return {
        "e": "kline",
        "s": "BTCUSDT",
        "k": {"t": 1_700_000_000_000, "T": 1_700_000_059_999, "o": "99", "h": "101", "l": "98",
              "c": close, "v": "3", "x": closed},
    }


def test_parse_kline_event_only_closed_bars():
    assert parse_kline_event(_event(False)) is None
    assert parse_kline_event({"e": "trade"}) is None
    assert parse_kline_event(_event(True, "100.7")).close == 100.7


def test_stream_iterates_closed_bars_until_stopped():
    stream = KlineStream(symbol="btcusdt", interval="1m")
    assert stream.url.endswith("/btcusdt@kline_1m")

    stream._handle(json.dumps(_event(False)))
    stream._handle(json.dumps(_event(True, "101")))
    stream._handle(json.dumps({"stream": "btcusdt@kline_1m", "data": _event(True, "102")}))
    stream._handle("not json")
    stream.stop()

    assert [b.close for b in stream] == [101.0, 102.0]
