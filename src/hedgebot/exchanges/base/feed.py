# src/hedgebot/exchanges/base/feed.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterator, Protocol

from src.hedgebot.core.models.market import Bar


class BarStream(Protocol):
    def __iter__(self) -> Iterator[Bar]:
        ...

    def stop(self) -> None:
        ...


class PriceFeed(ABC):
    """Market data source: OHLCV bars, last price, live closed-bar stream."""

    name: str

    @abstractmethod
    def get_candles(self, symbol: str, interval: str, limit: int) -> list[Bar]:
        """Time-ascending bars; the last one may still be forming."""
        ...

    @abstractmethod
    def get_price(self, symbol: str) -> float:
        ...

    @abstractmethod
    def subscribe(self, symbol: str, interval: str) -> BarStream:
        ...
