from __future__ import annotations
from dataclasses import dataclass, replace
from .enums import Side

_MARGIN_SUFFIXES = ("_UMCBL", "_CMCBL", "_DMCBL")


def normalize_symbol(symbol: str) -> str:
    """BTCUSDT_UMCBL / btcusdt -> BTCUSDT (margin-mode suffix stripped, upper-case)."""
    s = str(symbol or "").strip().upper()
    for suffix in _MARGIN_SUFFIXES:
        if s.endswith(suffix):
            return s[: -len(suffix)]
    return s


@dataclass(slots=True)
class Position:
    symbol: str
    side: Side
    entry_price: float
    size: float
    leverage: int

    def is_valid(self) -> bool:
        return self.size > 0 and self.entry_price > 0

    # ---------------- PnL helpers ----------------

    def price_change_pct(self, price: float) -> float:
        """Favorable price move in percent (positive = in profit)."""
        if self.side is Side.LONG:
            return (price - self.entry_price) / self.entry_price * 100.0
        return (self.entry_price - price) / self.entry_price * 100.0

    def roi_pct(self, price: float) -> float:
        return self.price_change_pct(price) * self.leverage

    @property
    def notional(self) -> float:
        return self.size * self.entry_price

    @property
    def margin(self) -> float:
        return self.notional / self.leverage if self.leverage > 0 else self.notional

    def unrealized_pnl(self, price: float) -> float:
        return self.roi_pct(price) / 100.0 * self.margin

    # ---------------- mutations (return new objects) ----------------

    def reduced(self, closed_size: float) -> "Position":
        """Partial close: size shrinks, entry price unchanged."""
        return replace(self, size=max(0.0, self.size - closed_size))

    def increased(self, add_size: float, price: float) -> "Position":
        """Scale-in: entry price becomes the size-weighted average."""
        total = self.size + add_size
        avg = (self.size * self.entry_price + add_size * price) / total if total > 0 else price
        return replace(self, size=total, entry_price=avg)
