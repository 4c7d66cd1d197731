# src/hedgebot/core/strategy/hedge_controller.py
from __future__ import annotations

import logging
from typing import Callable, Optional

from src.hedgebot.analysis.market_context import build_market_context, format_market_context
from src.hedgebot.analysis.trend_classifier import TrendAnalysis, TrendClassifier
from src.hedgebot.core.errors import CapitalTooLowError, InsufficientDataError
from src.hedgebot.core.market.meta import MarketMetaCache, configure_leverage
from src.hedgebot.core.models.account import AccountStatus
from src.hedgebot.core.models.enums import OrderSide, Side, TrendState
from src.hedgebot.core.models.market import LotSize
from src.hedgebot.core.models.position import Position, normalize_symbol
from src.hedgebot.core.position.tracker import PositionTracker
from src.hedgebot.core.risk.account_status import compute_account_status, log_account_status
from src.hedgebot.core.risk.policy import HedgePolicy
from src.hedgebot.core.risk.reallocation import CapitalReallocator
from src.hedgebot.core.strategy.base import CycleStrategy
from src.hedgebot.core.utils.rounding import floor_to_step
from src.hedgebot.exchanges.base.feed import PriceFeed
from src.hedgebot.exchanges.base.gateway import ExecutionGateway

log = logging.getLogger("src.hedgebot.core.strategy.hedge_controller")

ContextBuilder = Callable[["HedgeController", float], str]


def default_context(ctl: "HedgeController", price: float) -> str:
    """Multi-timeframe snapshot + account status + previous analyses, as classifier prompt text."""
    ctx = build_market_context(ctl.feed, ctl.symbol)
    try:
        status = ctl.account_status(price)
    except Exception as e:
        log.warning("[HEDGE] account status unavailable for context: %s", e)
        status = None
    history = getattr(ctl.classifier, "render_history", lambda: "")()
    return format_market_context(
        ctx,
        account=status,
        history=history,
        price_decimals=ctl.meta.load().price_decimals,
    )


class HedgeController(CycleStrategy):
    """
    Trend-driven long/short hedge on one symbol.

    Cycle order:
      1) refresh positions
      2) current price
      3) classify trend (failure keeps the previous trend)
      4) closure rule (profit threshold in unclear, opposite side in a trend)
      5) open/hold rule
      6) unclear -> make sure both sides exist (last)
    """
    strategy_id = "hedge"

    def __init__(
        self,
        *,
        gateway: ExecutionGateway,
        feed: PriceFeed,
        tracker: PositionTracker,
        meta: MarketMetaCache,
        reallocator: CapitalReallocator,
        classifier: Optional[TrendClassifier] = None,
        symbol: str,
        margin_coin: str = "USDT",
        product_type: str = "umcbl",
        leverage: int = 10,
        capital: float = 0.0,
        policy: Optional[HedgePolicy] = None,
        context_builder: Optional[ContextBuilder] = None,
    ):
        super().__init__(symbol=symbol, margin_coin=margin_coin)
        self.gateway = gateway
        self.feed = feed
        self.tracker = tracker
        self.meta = meta
        self.reallocator = reallocator
        self.classifier = classifier
        self.product_type = product_type
        self.leverage = int(leverage)
        self.capital = float(capital or 0.0)
        self.policy = policy or HedgePolicy()
        self.context_builder = context_builder or default_context

        # process memory: restart begins at unclear
        self.trend: TrendState = TrendState.UNCLEAR
        self.last_analysis: Optional[TrendAnalysis] = None
        self.last_price: float = 0.0
        self.suggestions = None  # SuggestionExecutor, attached by the runner when enabled

    @property
    def feed_symbol(self) -> str:
        return normalize_symbol(self.symbol)

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------

    def on_start(self) -> None:
        self.meta.load()
        configure_leverage(
            self.gateway, symbol=self.symbol, margin_coin=self.margin_coin, leverage=self.leverage,
        )
        log.info(
            "[HEDGE] start %s lev=%dx capital=%s threshold=%.2f%%",
            self.symbol, self.leverage, self.capital or "equity", self.policy.profit_threshold_pct,
        )

    def run_cycle(self) -> None:
        self.tracker.refresh()

        price = self.current_price()
        self.update_trend(price)

        self.apply_closure_rule(price)
        self.apply_open_rule(price)

        if self.policy.apply_ai_suggestions and self.suggestions is not None and self.last_analysis:
            self.suggestions.execute(self.last_analysis.suggestions, price)

        if self.trend is TrendState.UNCLEAR:
            self.ensure_hedge(price)

        try:
            log_account_status(self.account_status(price), coin=self.margin_coin)
        except Exception as e:
            log.warning("[HEDGE] account status unavailable: %s", e)

    # ------------------------------------------------------------------
    # inputs
    # ------------------------------------------------------------------

    def current_price(self) -> float:
        price = float(self.feed.get_price(self.feed_symbol))
        if price <= 0:
            raise InsufficientDataError(f"invalid price for {self.feed_symbol}: {price}")
        self.last_price = price
        log.info("[HEDGE] %s price=%s", self.feed_symbol, price)
        return price

    def update_trend(self, price: float) -> TrendState:
        if self.classifier is None:
            return self.trend

        try:
            analysis = self.classifier.classify(self.context_builder(self, price))
        except Exception as e:
            log.warning("[HEDGE] trend classification failed: %s", e)
            analysis = None

        if analysis is None:
            log.warning("[HEDGE] no fresh trend, keeping %s", self.trend.value)
            return self.trend

        if analysis.trend is not self.trend:
            log.info("[HEDGE] trend %s -> %s (%s)", self.trend.value, analysis.trend.value, analysis.confidence)
        self.trend = analysis.trend
        self.last_analysis = analysis
        return self.trend

    def capital_per_side(self) -> float:
        acc = self.gateway.get_account(
            product_type=self.product_type, margin_coin=self.margin_coin, symbol=self.symbol,
        )
        if acc.equity <= 0:
            raise InsufficientDataError(f"non-positive equity: {acc.equity}")
        if self.capital > 0:
            return min(self.capital / 2.0, acc.equity)
        return acc.equity / 2.0

    def account_status(self, price: float) -> AccountStatus:
        acc = self.gateway.get_account(
            product_type=self.product_type, margin_coin=self.margin_coin, symbol=self.symbol,
        )
        return compute_account_status(
            acc,
            price=price,
            long=self.tracker.long,
            short=self.tracker.short,
            leverage=self.leverage,
            config_capital=self.capital or None,
        )

    # ------------------------------------------------------------------
    # rules
    # ------------------------------------------------------------------

    def apply_closure_rule(self, price: float) -> None:
        if self.trend is TrendState.UPTREND:
            if self.tracker.has(Side.SHORT):
                self.close_position(Side.SHORT, reason="uptrend")
            return

        if self.trend is TrendState.DOWNTREND:
            if self.tracker.has(Side.LONG):
                self.close_position(Side.LONG, reason="downtrend")
            return

        threshold = self.policy.profit_threshold_pct
        for side in (Side.LONG, Side.SHORT):
            pos = self.tracker.get(side)
            if pos is None:
                continue
            roi = pos.roi_pct(price)
            log.info(
                "[HEDGE] %s %s entry=%.6f px=%.6f change=%+.4f%% roi=%+.2f%% (threshold %.2f%%)",
                self.symbol, side.value, pos.entry_price, price, pos.price_change_pct(price), roi, threshold,
            )
            if roi >= threshold:
                self.close_position(side, reason=f"roi {roi:.2f}% >= {threshold:.2f}%")

    def apply_open_rule(self, price: float) -> None:
        if self.trend is TrendState.UNCLEAR:
            return
        side = Side.LONG if self.trend is TrendState.UPTREND else Side.SHORT
        if self.tracker.has(side):
            log.info("[HEDGE] %s: holding %s", self.trend.value, side.value)
            return
        self.open_position(side, price)

    def ensure_hedge(self, price: float) -> None:
        for side in (Side.LONG, Side.SHORT):
            if not self.tracker.has(side):
                log.info("[HEDGE] unclear: %s missing, opening", side.value)
                self.open_position(side, price)

    # ------------------------------------------------------------------
    # execution
    # ------------------------------------------------------------------

    def open_position(self, side: Side, price: float, capital: Optional[float] = None) -> Optional[Position]:
        if self.tracker.has(side):
            log.warning("[HEDGE] %s %s already open, skipping open", self.symbol, side.value)
            return None

        configure_leverage(
            self.gateway, symbol=self.symbol, margin_coin=self.margin_coin, leverage=self.leverage,
        )
        if capital is None:
            capital = self.capital_per_side()
        lot = self.meta.lot_size(price, capital, self.leverage)
        if lot.capital_too_low:
            raise CapitalTooLowError(
                f"{side.value}: capital {capital:.4f} below minimum lot "
                f"(need >= {lot.min_capital_required:.4f} {self.margin_coin})",
                min_capital_required=lot.min_capital_required,
            )

        lot = self._fund(lot, price)

        log.info(
            "[HEDGE] open %s %s size=%s entry~%.6f capital=%.4f",
            self.symbol, side.value, lot.size, price, lot.actual_capital or lot.capital,
        )
        self.gateway.place_order(
            symbol=self.symbol,
            margin_coin=self.margin_coin,
            size=lot.size,
            side=OrderSide.open_for(side),
            order_type="market",
        )
        pos = Position(symbol=self.symbol, side=side, entry_price=price, size=lot.size, leverage=self.leverage)
        self.tracker.record_open(pos)
        return pos

    def close_position(self, side: Side, *, reason: str = "") -> bool:
        pos = self.tracker.get(side)
        if pos is None:
            return False
        log.info("[HEDGE] close %s %s size=%s (%s)", self.symbol, side.value, pos.size, reason or "manual")
        self.gateway.close_position(
            symbol=self.symbol, margin_coin=self.margin_coin, hold_side=side, size=pos.size,
        )
        self.tracker.record_close(side)
        return True

    def add_to_position(self, side: Side, capital: float, price: float) -> Position:
        pos = self.tracker.get(side)
        if pos is None:
            raise ValueError(f"no {side.value} position to add to")
        lot = self.meta.lot_size(price, capital, self.leverage)
        if lot.capital_too_low:
            raise CapitalTooLowError(
                f"add {capital:.4f} below minimum lot", min_capital_required=lot.min_capital_required,
            )
        lot = self._fund(lot, price)

        self.gateway.place_order(
            symbol=self.symbol,
            margin_coin=self.margin_coin,
            size=lot.size,
            side=OrderSide.open_for(side),
            order_type="market",
        )
        updated = pos.increased(lot.size, price)
        self.tracker.record_update(updated)
        log.info(
            "[HEDGE] added %s to %s %s -> size=%s avg_entry=%.6f",
            lot.size, self.symbol, side.value, updated.size, updated.entry_price,
        )
        return updated

    def partial_close(self, side: Side, pct: float) -> Position | None:
        pos = self.tracker.get(side)
        if pos is None:
            raise ValueError(f"no {side.value} position to reduce")
        if not 0 < pct < 100:
            raise ValueError(f"partial close percentage must be in (0, 100): {pct}")

        remaining = pos.margin * (1.0 - pct / 100.0)
        floor = self.reallocator.policy.min_viable_margin
        if remaining < floor:
            raise ValueError(f"remaining margin {remaining:.4f} would be below {floor:.4f}")

        close_size = floor_to_step(pos.size * pct / 100.0, self.meta.load().size_step)
        if close_size <= 0:
            raise ValueError(f"close size rounds to zero ({pct:.2f}% of {pos.size})")

        self.gateway.close_position(
            symbol=self.symbol, margin_coin=self.margin_coin, hold_side=side, size=close_size,
        )
        updated = pos.reduced(close_size)
        self.tracker.record_update(updated)
        log.info(
            "[HEDGE] partial close %.2f%% of %s %s (size %s, remaining %s)",
            pct, self.symbol, side.value, close_size, updated.size,
        )
        return self.tracker.get(side)

    def _fund(self, lot: LotSize, price: float) -> LotSize:
        # our own legs are never drained to pay for this symbol
        legs = [(p.symbol, p.side) for p in self.tracker.positions()]
        return self.reallocator.fund(
            lot=lot, price=price, leverage=self.leverage, meta=self.meta, symbol=self.symbol, exclude=legs,
        )
