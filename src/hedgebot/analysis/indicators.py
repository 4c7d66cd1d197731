# src/hedgebot/analysis/indicators.py
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Mapping, Sequence

import pandas as pd
import ta

from src.hedgebot.core.models.market import Bar

log = logging.getLogger("src.hedgebot.analysis.indicators")

MIN_BARS = 50


@dataclass(slots=True)
class IndicatorSnapshot:
    price: float
    ema20: float | None = None
    ema50: float | None = None
    ema200: float | None = None
    rsi: float | None = None
    atr: float | None = None
    atr_pct: float | None = None
    bb_upper: float | None = None
    bb_middle: float | None = None
    bb_lower: float | None = None
    adx: float | None = None


def bars_to_frame(bars: Sequence[Bar]) -> pd.DataFrame:
    df = pd.DataFrame(
        {
            "time": [b.time for b in bars],
            "open": [b.open for b in bars],
            "high": [b.high for b in bars],
            "low": [b.low for b in bars],
            "close": [b.close for b in bars],
            "volume": [b.volume for b in bars],
        }
    )
    return df.set_index("time")


def _last(series: pd.Series) -> float | None:
    if series is None or series.empty:
        return None
    v = series.iloc[-1]
    if v is None or (isinstance(v, float) and math.isnan(v)):
        return None
    return float(v)


def compute_indicators(bars: Sequence[Bar]) -> IndicatorSnapshot | None:
    """Latest EMA20/50/200, RSI14, ATR14, BB(20,2), ADX14; None under MIN_BARS."""
    if len(bars) < MIN_BARS:
        return None

    df = bars_to_frame(bars)
    close, high, low = df["close"], df["high"], df["low"]
    price = float(close.iloc[-1])

    ema200_window = min(200, len(df) - 1)
    bb = ta.volatility.BollingerBands(close, window=20, window_dev=2)
    atr = _last(ta.volatility.AverageTrueRange(high, low, close, window=14).average_true_range())

    return IndicatorSnapshot(
        price=price,
        ema20=_last(ta.trend.EMAIndicator(close, window=20).ema_indicator()),
        ema50=_last(ta.trend.EMAIndicator(close, window=50).ema_indicator()),
        ema200=_last(ta.trend.EMAIndicator(close, window=ema200_window).ema_indicator()),
        rsi=_last(ta.momentum.RSIIndicator(close, window=14).rsi()),
        atr=atr,
        atr_pct=(atr / price * 100.0) if atr and price else None,
        bb_upper=_last(bb.bollinger_hband()),
        bb_middle=_last(bb.bollinger_mavg()),
        bb_lower=_last(bb.bollinger_lband()),
        adx=_last(ta.trend.ADXIndicator(high, low, close, window=14).adx()),
    )


def compute_all(frames: Mapping[str, Sequence[Bar]]) -> dict[str, IndicatorSnapshot]:
    out: dict[str, IndicatorSnapshot] = {}
    for tf, bars in frames.items():
        try:
            snap = compute_indicators(bars)
        except Exception as e:
            log.warning("[INDICATORS] %s failed: %s", tf, e)
            continue
        if snap is not None:
            out[tf] = snap
    return out
