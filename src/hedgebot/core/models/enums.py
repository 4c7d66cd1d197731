from __future__ import annotations
from enum import Enum

class Side(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def hold_side(self) -> str:
        """Exchange-facing holdSide ('long' / 'short')."""
        return self.value.lower()

    @property
    def opposite(self) -> "Side":
        return Side.SHORT if self is Side.LONG else Side.LONG

    @classmethod
    def parse(cls, raw: object) -> "Side | None":
        s = str(raw or "").strip().lower()
        if s in ("long", "open_long", "buy"):
            return cls.LONG
        if s in ("short", "open_short", "sell"):
            return cls.SHORT
        return None

class TrendState(str, Enum):
    UNCLEAR = "unclear"
    UPTREND = "uptrend"
    DOWNTREND = "downtrend"

class OrderSide(str, Enum):
    OPEN_LONG = "open_long"
    OPEN_SHORT = "open_short"
    CLOSE_LONG = "close_long"
    CLOSE_SHORT = "close_short"

    @classmethod
    def open_for(cls, side: Side) -> "OrderSide":
        return cls.OPEN_LONG if side is Side.LONG else cls.OPEN_SHORT

    @classmethod
    def close_for(cls, side: Side) -> "OrderSide":
        return cls.CLOSE_LONG if side is Side.LONG else cls.CLOSE_SHORT
