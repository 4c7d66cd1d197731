# src/hedgebot/core/strategy/range_controller.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence

from src.hedgebot.core.errors import CapitalTooLowError, InsufficientDataError
from src.hedgebot.core.market.meta import MarketMetaCache, configure_leverage
from src.hedgebot.core.models.enums import OrderSide, Side
from src.hedgebot.core.models.market import Bar
from src.hedgebot.core.models.position import Position, normalize_symbol
from src.hedgebot.core.risk.policy import RangePolicy
from src.hedgebot.core.risk.reallocation import CapitalReallocator
from src.hedgebot.core.strategy.base import CycleStrategy
from src.hedgebot.core.utils.candles import last_closed_bar
from src.hedgebot.core.utils.idempotency import period_cycle_id
from src.hedgebot.exchanges.base.feed import PriceFeed
from src.hedgebot.exchanges.base.gateway import ExecutionGateway

log = logging.getLogger("src.hedgebot.core.strategy.range_controller")

MIN_CAPITAL = 1.0


@dataclass(slots=True)
class RangeStats:
    average_pct: float
    min_pct: float
    max_pct: float
    bars: int


def average_range(bars: Sequence[Bar]) -> RangeStats:
    ranges = [b.range_pct for b in bars if b.close > 0]
    if not ranges:
        raise InsufficientDataError("no bars with a positive close")
    return RangeStats(
        average_pct=sum(ranges) / len(ranges),
        min_pct=min(ranges),
        max_pct=max(ranges),
        bars=len(ranges),
    )


def signal_from_bar(bar: Bar) -> Side | None:
    """Mean reversion: red bar -> long, green bar -> short, doji -> nothing."""
    if bar.is_doji:
        return None
    return Side.LONG if bar.is_red else Side.SHORT


def take_profit_price(side: Side, entry: float, average_pct: float) -> float:
    if side is Side.LONG:
        return entry * (1.0 + average_pct / 100.0)
    return entry * (1.0 - average_pct / 100.0)


class RangeController(CycleStrategy):
    """
    Single-position, boundary-aligned variant.

    Once per period: average bar range over a trailing window -> direction from the last
    CLOSED bar -> close any existing position -> open with take-profit at the average range.
    No stop-loss.
    """
    strategy_id = "range"

    def __init__(
        self,
        *,
        gateway: ExecutionGateway,
        feed: PriceFeed,
        meta: MarketMetaCache,
        reallocator: Optional[CapitalReallocator] = None,
        symbol: str,
        margin_coin: str = "USDT",
        leverage: int = 10,
        policy: Optional[RangePolicy] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        sleep: Callable[[float], None] = time.sleep,
        settle_sec: float = 2.0,
    ):
        super().__init__(symbol=symbol, margin_coin=margin_coin)
        self.gateway = gateway
        self.feed = feed
        self.meta = meta
        self.reallocator = reallocator
        self.leverage = int(leverage)
        self.policy = policy or RangePolicy()
        self._clock = clock
        self._sleep = sleep
        self.settle_sec = float(settle_sec)

        self.last_cycle_id: Optional[str] = None
        self.last_stats: Optional[RangeStats] = None

    @property
    def feed_symbol(self) -> str:
        return normalize_symbol(self.symbol)

    def on_start(self) -> None:
        self.meta.load()
        configure_leverage(
            self.gateway, symbol=self.symbol, margin_coin=self.margin_coin, leverage=self.leverage,
        )
        log.info(
            "[RANGE] start %s lev=%dx capital=%.4f window=%d x %s",
            self.symbol, self.leverage, self.policy.capital, self.policy.window, self.policy.interval,
        )

    # ------------------------------------------------------------------

    def run_cycle(self) -> None:
        now = self._clock()
        cycle_id = period_cycle_id(self.feed_symbol, now, self.policy.interval)
        if cycle_id == self.last_cycle_id:
            log.info("[RANGE] %s already processed this %s period, skip", self.feed_symbol, self.policy.interval)
            return

        bars = self.feed.get_candles(self.feed_symbol, self.policy.interval, self.policy.window)
        if len(bars) < self.policy.min_window:
            raise InsufficientDataError(
                f"need at least {self.policy.min_window} bars, got {len(bars)}"
            )
        if len(bars) < self.policy.window:
            log.warning("[RANGE] only %d of %d bars available", len(bars), self.policy.window)

        stats = average_range(bars)
        self.last_stats = stats
        log.info(
            "[RANGE] avg range %.4f%% over %d bars (min %.4f%% max %.4f%%) -> roi target %.4f%% at %dx",
            stats.average_pct, stats.bars, stats.min_pct, stats.max_pct,
            stats.average_pct * self.leverage, self.leverage,
        )

        bar = last_closed_bar(bars, now)
        if bar is None:
            raise InsufficientDataError("no closed bar")
        log.info(
            "[RANGE] bar %s O=%s H=%s L=%s C=%s",
            bar.time.isoformat(), bar.open, bar.high, bar.low, bar.close,
        )

        side = signal_from_bar(bar)
        if side is None:
            log.info("[RANGE] doji bar (open == close), no trade")
            self.last_cycle_id = cycle_id
            return

        log.info("[RANGE] %s bar -> %s", "green" if bar.is_green else "red", side.value)

        self.close_existing()
        price = float(self.feed.get_price(self.feed_symbol))
        if price <= 0:
            raise InsufficientDataError(f"invalid price for {self.feed_symbol}: {price}")
        self.open_position(side, price, stats.average_pct)

        self.last_cycle_id = cycle_id

    # ------------------------------------------------------------------

    def current_position(self) -> Optional[Position]:
        positions = self.gateway.get_position(symbol=self.symbol, margin_coin=self.margin_coin)
        return next((p for p in positions or [] if p.is_valid()), None)

    def close_existing(self) -> Optional[Position]:
        pos = self.current_position()
        if pos is None:
            return None
        log.info("[RANGE] closing existing %s %s size=%s first", self.symbol, pos.side.value, pos.size)
        self.gateway.close_position(
            symbol=self.symbol, margin_coin=self.margin_coin, hold_side=pos.side, size=pos.size,
        )
        if self.settle_sec > 0:
            self._sleep(self.settle_sec)
        return pos

    def open_position(self, side: Side, price: float, average_pct: float) -> dict:
        capital = self.policy.capital
        if capital < MIN_CAPITAL:
            log.warning("[RANGE] capital %.4f < %.1f, raised to %.1f", capital, MIN_CAPITAL, MIN_CAPITAL)
            capital = MIN_CAPITAL

        lot = self.meta.lot_size(price, capital, self.leverage)
        if lot.capital_too_low:
            raise CapitalTooLowError(
                f"capital {capital:.4f} below minimum lot (need >= {lot.min_capital_required:.4f})",
                min_capital_required=lot.min_capital_required,
            )
        if self.reallocator is not None:
            lot = self.reallocator.fund(
                lot=lot, price=price, leverage=self.leverage, meta=self.meta, symbol=self.symbol,
            )

        tp = self.meta.round_price(take_profit_price(side, price, average_pct))
        log.info(
            "[RANGE] open %s %s entry~%s size=%s capital=%.4f TP=%s (range %.4f%%, roi target %.4f%%)",
            self.symbol, side.value, price, lot.size, lot.actual_capital or lot.capital,
            tp, average_pct, average_pct * self.leverage,
        )
        return self.gateway.place_order(
            symbol=self.symbol,
            margin_coin=self.margin_coin,
            size=lot.size,
            side=OrderSide.open_for(side),
            order_type="market",
            preset_take_profit=tp,
        )
