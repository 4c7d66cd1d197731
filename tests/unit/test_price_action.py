"""Candlestick patterns, swings, levels and structure."""

from __future__ import annotations

from datetime import timedelta

from fakes import T0
from src.hedgebot.analysis.price_action import (
    SwingPoint,
    analyze,
    detect_patterns,
    support_resistance,
    swing_points,
    trend_structure,
)
from src.hedgebot.core.models.market import Bar


def bar(i, o, h, l, c):
    t = T0 + timedelta(hours=i)
    return Bar(t, o, h, l, c, 1.0, t + timedelta(hours=1))


def test_hammer_and_bullish_engulfing():
    bars = [
        bar(0, 105, 106, 99, 100),     # red
        bar(1, 99, 107, 98.5, 106),    # engulfs previous body
        bar(2, 100, 100.6, 96, 100.5), # long lower wick
    ]
    types = {p.type for p in detect_patterns(bars)}

    assert "Bullish Engulfing" in types
    assert "Hammer" in types


def test_doji_pattern():
    bars = [bar(0, 100, 101, 99, 100.5), bar(1, 100, 102, 98, 100.1)]
    assert "Doji" in {p.type for p in detect_patterns(bars)}


def test_swing_points_need_two_bars_each_side():
    highs = [100, 101, 105, 101, 97, 99, 100]
    bars = [bar(i, h - 1, h, h - 2, h - 0.5) for i, h in enumerate(highs)]

    sh, sl = swing_points(bars)

    assert [s.index for s in sh] == [2]
    assert [s.index for s in sl] == [4]


def test_structure_labels():
    up = trend_structure([SwingPoint(1, 100), SwingPoint(5, 110)], [SwingPoint(3, 90), SwingPoint(7, 95)])
    down = trend_structure([SwingPoint(1, 110), SwingPoint(5, 100)], [SwingPoint(3, 95), SwingPoint(7, 90)])
    squeeze = trend_structure([SwingPoint(1, 110), SwingPoint(5, 105)], [SwingPoint(3, 90), SwingPoint(7, 95)])

    assert up.trend == "Uptrend"
    assert down.trend == "Downtrend"
    assert squeeze.trend == "Consolidation"
    assert trend_structure([], []).trend == "Unknown"


def test_support_resistance_clusters_repeated_touches():
    bars = []
    for i in range(12):
        # lows repeatedly near 95, highs repeatedly near 105
        bars.append(bar(i, 100, 105 + (i % 3) * 0.1, 95 - (i % 3) * 0.1, 100))

    support, resistance = support_resistance(bars)

    assert support and support[0].price < 100
    assert resistance and resistance[0].price > 100
    assert support[0].touches >= 3


def test_analyze_requires_ten_bars():
    bars = [bar(i, 100, 101, 99, 100) for i in range(9)]
    assert analyze(bars) is None
    bars.append(bar(9, 100, 101, 99, 100))
    assert analyze(bars) is not None
