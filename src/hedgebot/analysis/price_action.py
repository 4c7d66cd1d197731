# src/hedgebot/analysis/price_action.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Sequence

from src.hedgebot.core.models.market import Bar

SR_TOLERANCE = 0.005
SR_MIN_TOUCHES = 3


@dataclass(slots=True)
class Pattern:
    type: str
    signal: str
    strength: str


@dataclass(slots=True)
class SwingPoint:
    index: int
    price: float


@dataclass(slots=True)
class Level:
    price: float
    touches: int = 1


@dataclass(slots=True)
class Structure:
    trend: str
    structure: str
    strength: str = ""


@dataclass(slots=True)
class PriceAction:
    patterns: list[Pattern] = field(default_factory=list)
    swing_highs: list[SwingPoint] = field(default_factory=list)
    swing_lows: list[SwingPoint] = field(default_factory=list)
    support: list[Level] = field(default_factory=list)
    resistance: list[Level] = field(default_factory=list)
    structure: Structure | None = None


def detect_patterns(bars: Sequence[Bar]) -> list[Pattern]:
    recent = list(bars[-5:])
    out: list[Pattern] = []
    for prev, cur in zip(recent, recent[1:]):
        body = abs(cur.close - cur.open)
        rng = cur.high - cur.low
        upper = cur.high - max(cur.open, cur.close)
        lower = min(cur.open, cur.close) - cur.low

        if body > 0:
            if lower > body * 2 and upper < body * 0.3:
                out.append(Pattern("Hammer", "Bullish Reversal", "Medium"))
            if upper > body * 2 and lower < body * 0.3:
                out.append(Pattern("Shooting Star", "Bearish Reversal", "Medium"))
        if body < rng * 0.1:
            out.append(Pattern("Doji", "Indecision", "Low"))

        if not prev.is_green and cur.is_green and cur.close > prev.open and cur.open < prev.close:
            out.append(Pattern("Bullish Engulfing", "Bullish Reversal", "Strong"))
        if prev.is_green and not cur.is_green and cur.close < prev.open and cur.open > prev.close:
            out.append(Pattern("Bearish Engulfing", "Bearish Reversal", "Strong"))
    return out


def swing_points(bars: Sequence[Bar], keep: int = 5) -> tuple[list[SwingPoint], list[SwingPoint]]:
    """Fractal swings: a high/low beating two bars on each side."""
    highs: list[SwingPoint] = []
    lows: list[SwingPoint] = []
    for i in range(2, len(bars) - 2):
        window = (bars[i - 2], bars[i - 1], bars[i + 1], bars[i + 2])
        cur = bars[i]
        if all(cur.high > b.high for b in window):
            highs.append(SwingPoint(i, cur.high))
        if all(cur.low < b.low for b in window):
            lows.append(SwingPoint(i, cur.low))
    return highs[-keep:], lows[-keep:]


def support_resistance(bars: Sequence[Bar]) -> tuple[list[Level], list[Level]]:
    if len(bars) < 10:
        return [], []
    levels: list[Level] = []
    for price in [b.high for b in bars] + [b.low for b in bars]:
        for lvl in levels:
            if abs(price - lvl.price) / lvl.price < SR_TOLERANCE:
                lvl.touches += 1
                break
        else:
            levels.append(Level(price))

    significant = sorted((lv for lv in levels if lv.touches >= SR_MIN_TOUCHES), key=lambda lv: -lv.touches)[:10]
    px = bars[-1].close
    support = sorted((lv for lv in significant if lv.price < px), key=lambda lv: -lv.price)[:3]
    resistance = sorted((lv for lv in significant if lv.price > px), key=lambda lv: lv.price)[:3]
    return support, resistance


def trend_structure(highs: Sequence[SwingPoint], lows: Sequence[SwingPoint]) -> Structure:
    if len(highs) < 2 or len(lows) < 2:
        return Structure("Unknown", "Insufficient data")
    hh = highs[-1].price > highs[-2].price
    lh = highs[-1].price < highs[-2].price
    hl = lows[-1].price > lows[-2].price
    ll = lows[-1].price < lows[-2].price
    if hh and hl:
        return Structure("Uptrend", "Higher Highs & Higher Lows", "Strong")
    if lh and ll:
        return Structure("Downtrend", "Lower Highs & Lower Lows", "Strong")
    if lh and hl:
        return Structure("Consolidation", "Narrowing Range", "Medium")
    return Structure("Mixed", "Unclear", "Weak")


def analyze(bars: Sequence[Bar]) -> PriceAction | None:
    if len(bars) < 10:
        return None
    recent = list(bars[-50:])
    highs, lows = swing_points(recent)
    support, resistance = support_resistance(recent)
    return PriceAction(
        patterns=detect_patterns(recent),
        swing_highs=highs,
        swing_lows=lows,
        support=support,
        resistance=resistance,
        structure=trend_structure(highs, lows),
    )


def analyze_all(frames: Mapping[str, Sequence[Bar]]) -> dict[str, PriceAction]:
    out: dict[str, PriceAction] = {}
    for tf, bars in frames.items():
        pa = analyze(bars)
        if pa is not None:
            out[tf] = pa
    return out
