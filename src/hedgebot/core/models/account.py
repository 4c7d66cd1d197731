from __future__ import annotations

from dataclasses import dataclass

from .enums import Side


@dataclass(slots=True)
class AccountSnapshot:
    equity: float
    available: float
    margin_coin: str = "USDT"


@dataclass(slots=True)
class PositionMetrics:
    side: Side
    entry_price: float
    current_price: float
    size: float
    notional: float
    margin_used: float
    price_change_pct: float
    roi_pct: float
    unrealized_pnl: float


@dataclass(slots=True)
class AccountStatus:
    equity: float
    available: float
    total_margin_used: float
    free_margin: float
    margin_level: float
    total_unrealized_pnl: float
    leverage: int
    long: PositionMetrics | None = None
    short: PositionMetrics | None = None
    config_capital: float | None = None
