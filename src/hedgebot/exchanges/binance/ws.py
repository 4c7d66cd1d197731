# src/hedgebot/exchanges/binance/ws.py
from __future__ import annotations

import json
import logging
import queue
import threading
import time
from typing import Iterator

import websocket

from src.hedgebot.core.models.market import Bar
from src.hedgebot.core.utils.candles import ts_ms_to_dt

log = logging.getLogger("src.hedgebot.exchanges.binance.ws")

WS_BASE = "wss://stream.binance.com:9443/ws"

_SENTINEL = object()


def parse_kline_event(raw: dict) -> Bar | None:
    """Kline event -> Bar, only for closed bars (k.x == true)."""
    if raw.get("e") != "kline":
        return None
    k = raw.get("k") or {}
    if not bool(k.get("x")):
        return None
    return Bar(
        time=ts_ms_to_dt(k["t"]),
        open=float(k["o"]),
        high=float(k["h"]),
        low=float(k["l"]),
        close=float(k["c"]),
        volume=float(k["v"]),
        close_time=ts_ms_to_dt(k["T"]),
    )


class KlineStream(threading.Thread):
    """
    Closed-bar stream for one symbol/interval.

    Iterate it to receive Bars; reconnects on drop until stop().
    """

    def __init__(self, *, symbol: str, interval: str, base_url: str = WS_BASE, max_queue: int = 1000):
        super().__init__(daemon=True, name=f"KlineStream-{symbol}-{interval}")
        self.symbol = symbol.upper()
        self.interval = interval
        self.url = f"{base_url.rstrip('/')}/{symbol.lower()}@kline_{interval}"
        self._ws: websocket.WebSocketApp | None = None
        self._stop_evt = threading.Event()
        self._bars: queue.Queue = queue.Queue(maxsize=max_queue)
        self.connected = threading.Event()

    def run(self):
        log.info("[%s] connecting -> %s", self.name, self.url)

        def _on_open(_ws):
            self.connected.set()
            log.info("[%s] WS CONNECTED", self.name)

        def _on_close(_ws, *_a):
            self.connected.clear()
            log.warning("[%s] WS CLOSED", self.name)

        def _on_error(_ws, err):
            log.error("[%s] WS ERROR: %s", self.name, err)

        while not self._stop_evt.is_set():
            try:
                self._ws = websocket.WebSocketApp(
                    self.url,
                    on_open=_on_open,
                    on_message=lambda ws, msg: self._handle(msg),
                    on_error=_on_error,
                    on_close=_on_close,
                )
                self._ws.run_forever(ping_interval=20, ping_timeout=10)
            except Exception:
                self.connected.clear()
                log.exception("[%s] WS exception", self.name)

            for _ in range(10):
                if self._stop_evt.is_set():
                    break
                time.sleep(0.2)

        self._bars.put(_SENTINEL)

    def stop(self):
        self._stop_evt.set()
        self.connected.clear()
        if self._ws is not None:
            try:
                self._ws.close()
            except Exception:
                log.debug("[%s] close failed", self.name, exc_info=True)
        if not self.is_alive():
            self._bars.put(_SENTINEL)

    def _handle(self, msg: str):
        try:
            data = json.loads(msg)
        except ValueError:
            return
        payload = data.get("data") if isinstance(data, dict) and "stream" in data else data
        if not isinstance(payload, dict):
            return
        bar = parse_kline_event(payload)
        if bar is None:
            return
        try:
            self._bars.put_nowait(bar)
        except queue.Full:
            log.warning("[%s] bar queue full, dropping %s", self.name, bar.time)

    def __iter__(self) -> Iterator[Bar]:
        while True:
            item = self._bars.get()
            if item is _SENTINEL:
                return
            yield item
