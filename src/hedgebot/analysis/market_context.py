# src/hedgebot/analysis/market_context.py
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Sequence

from src.hedgebot.analysis.indicators import IndicatorSnapshot, compute_all
from src.hedgebot.analysis.price_action import PriceAction, analyze_all
from src.hedgebot.core.models.account import AccountStatus
from src.hedgebot.core.models.market import Bar
from src.hedgebot.core.models.position import normalize_symbol
from src.hedgebot.exchanges.base.feed import PriceFeed

log = logging.getLogger("src.hedgebot.analysis.market_context")

# timeframe -> bars (5m/15m: 1 day, 1h: 1 week, 4h: 15 days, 1d: 2 months)
TIMEFRAMES: dict[str, int] = {
    "5m": 288,
    "15m": 288,
    "1h": 168,
    "4h": 90,
    "1d": 60,
}


@dataclass(slots=True)
class MarketContext:
    symbol: str
    frames: dict[str, list[Bar]]
    indicators: dict[str, IndicatorSnapshot] = field(default_factory=dict)
    price_action: dict[str, PriceAction] = field(default_factory=dict)

    @property
    def price(self) -> float:
        bars = self.frames.get("5m") or next((b for b in self.frames.values() if b), [])
        return bars[-1].close if bars else 0.0


def fetch_timeframes(feed: PriceFeed, symbol: str, timeframes: dict[str, int] | None = None) -> dict[str, list[Bar]]:
    """All timeframes requested together and awaited jointly."""
    tfs = dict(timeframes or TIMEFRAMES)
    with ThreadPoolExecutor(max_workers=len(tfs), thread_name_prefix="klines") as pool:
        futures = {tf: pool.submit(feed.get_candles, symbol, tf, limit) for tf, limit in tfs.items()}
        return {tf: fut.result() for tf, fut in futures.items()}


def build_market_context(feed: PriceFeed, symbol: str) -> MarketContext:
    sym = normalize_symbol(symbol)
    frames = fetch_timeframes(feed, sym)
    return MarketContext(
        symbol=sym,
        frames=frames,
        indicators=compute_all(frames),
        price_action=analyze_all(frames),
    )


def _fmt(v: float | None, decimals: int) -> str:
    return "n/a" if v is None else f"{v:.{decimals}f}"


def format_market_context(
    ctx: MarketContext,
    *,
    account: AccountStatus | None = None,
    history: str = "",
    price_decimals: int = 2,
    recent_bars: int = 12,
) -> str:
    d = price_decimals
    lines: list[str] = [f"=== MARKET ANALYSIS - {ctx.symbol} ===", ""]
    bars_5m: Sequence[Bar] = ctx.frames.get("5m") or []
    lines.append(f"Current price: {ctx.price:.{d}f} USDT")
    if bars_5m:
        lines.append(f"Time: {bars_5m[-1].time.isoformat()}")
    lines.append("")

    if account is not None:
        lines += ["=" * 60, "ACCOUNT & POSITIONS", "=" * 60]
        lines.append(f"Equity: {account.equity:.4f} | Available: {account.available:.4f}")
        lines.append(
            f"Margin used: {account.total_margin_used:.4f} | Free margin: {account.free_margin:.4f} "
            f"| Margin level: {account.margin_level:.2f}%"
        )
        lines.append(f"Unrealized PnL: {account.total_unrealized_pnl:+.4f} | Leverage: {account.leverage}x")
        for m in (account.long, account.short):
            if m is None:
                continue
            lines.append(
                f"{m.side.value}: entry={m.entry_price:.{d}f} size={m.size} roi={m.roi_pct:+.2f}% "
                f"margin={m.margin_used:.4f} pnl={m.unrealized_pnl:+.4f}"
            )
        if account.long is None and account.short is None:
            lines.append("No open positions")
        lines.append("")

    if history:
        lines += [history, ""]

    for tf, ind in ctx.indicators.items():
        lines.append(f"--- Indicators {tf} ---")
        lines.append(
            f"EMA20={_fmt(ind.ema20, d)} EMA50={_fmt(ind.ema50, d)} EMA200={_fmt(ind.ema200, d)} "
            f"RSI={_fmt(ind.rsi, 2)} ADX={_fmt(ind.adx, 2)}"
        )
        lines.append(
            f"ATR={_fmt(ind.atr, d)} ({_fmt(ind.atr_pct, 2)}%) "
            f"BB=[{_fmt(ind.bb_lower, d)} / {_fmt(ind.bb_middle, d)} / {_fmt(ind.bb_upper, d)}]"
        )

    for tf, pa in ctx.price_action.items():
        lines.append(f"--- Price action {tf} ---")
        if pa.structure is not None:
            lines.append(f"Structure: {pa.structure.trend} ({pa.structure.structure})")
        if pa.patterns:
            lines.append("Patterns: " + ", ".join(f"{p.type} [{p.signal}]" for p in pa.patterns))
        if pa.support:
            lines.append("Support: " + ", ".join(f"{lv.price:.{d}f}x{lv.touches}" for lv in pa.support))
        if pa.resistance:
            lines.append("Resistance: " + ", ".join(f"{lv.price:.{d}f}x{lv.touches}" for lv in pa.resistance))

    if bars_5m:
        lines += ["", f"--- Last {recent_bars} bars 5m (O/H/L/C/V) ---"]
        for b in bars_5m[-recent_bars:]:
            lines.append(
                f"{b.time.strftime('%H:%M')} {b.open:.{d}f}/{b.high:.{d}f}/{b.low:.{d}f}/{b.close:.{d}f}/{b.volume:.2f}"
            )

    return "\n".join(lines)
