from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True, frozen=True)
class Bar:
    time: datetime
    open: float
    high: float
    low: float
    close: float
    volume: float
    close_time: datetime

    @property
    def is_green(self) -> bool:
        return self.close > self.open

    @property
    def is_red(self) -> bool:
        return self.close < self.open

    @property
    def is_doji(self) -> bool:
        return self.close == self.open

    @property
    def range_pct(self) -> float:
        return (self.high - self.low) / self.close * 100.0 if self.close else 0.0


@dataclass(slots=True)
class ContractSpec:
    """Contract metadata as reported by the exchange (0.0 = unknown)."""
    symbol: str
    price_tick: float = 0.0
    size_step: float = 0.0
    min_trade_size: float = 0.0


@dataclass(slots=True)
class MarketMeta:
    price_tick: float = 0.01
    size_step: float = 0.0001
    min_lot_size: float = 0.001

    @property
    def price_decimals(self) -> int:
        return decimals_from_step(self.price_tick)


@dataclass(slots=True)
class LotSize:
    size: float
    capital: float
    actual_capital: float = 0.0
    notional: float = 0.0
    capital_too_low: bool = False
    min_capital_required: float | None = None


def decimals_from_step(step: float) -> int:
    if not step:
        return 4
    s = format(step, "f").rstrip("0")
    if "." not in s:
        return 0
    return len(s.split(".")[1])
