# src/hedgebot/core/risk/reallocation.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterable

from src.hedgebot.core.errors import CapitalTooLowError, InsufficientMarginError
from src.hedgebot.core.market.meta import MarketMetaCache
from src.hedgebot.core.models.enums import Side
from src.hedgebot.core.models.market import LotSize
from src.hedgebot.core.models.position import Position, normalize_symbol
from src.hedgebot.core.risk.policy import ReallocationPolicy
from src.hedgebot.core.utils.rounding import as_float_clean, round_to_step
from src.hedgebot.exchanges.base.feed import PriceFeed
from src.hedgebot.exchanges.base.gateway import ExecutionGateway

log = logging.getLogger("src.hedgebot.core.risk.reallocation")

# (symbol, side) legs that must not be drained
Exclusions = Iterable[tuple[str, Side]]


def _leg_keys(exclude: Exclusions | None) -> set[tuple[str, Side]]:
    return {(normalize_symbol(sym), side) for sym, side in (exclude or ())}


@dataclass(slots=True)
class RankedPosition:
    position: Position
    price: float
    margin: float
    unrealized_pnl: float


class CapitalReallocator:
    """
    Frees margin by draining the least-profitable open position account-wide.

      - ranks every open position (all symbols) by unrealized PnL ascending
      - touches ONLY the head of that ranking, once per call
      - partial close unless the remainder would be below min_viable_margin
      - legs passed in `exclude` are never ranked (e.g. the other half of a hedge)
    """

    def __init__(
        self,
        *,
        gateway: ExecutionGateway,
        feed: PriceFeed,
        margin_coin: str = "USDT",
        product_type: str = "umcbl",
        policy: ReallocationPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.gateway = gateway
        self.feed = feed
        self.margin_coin = margin_coin
        self.product_type = product_type
        self.policy = policy or ReallocationPolicy()
        self._sleep = sleep
        self._steps: dict[str, float] = {}

    # ------------------------------------------------------------------
    # ranking
    # ------------------------------------------------------------------

    def _price_for(self, symbol: str, cache: dict[str, float | None]) -> float | None:
        key = normalize_symbol(symbol)
        if key not in cache:
            try:
                cache[key] = self.feed.get_price(key)
            except Exception as e:
                log.warning("[REALLOC] no price for %s: %s", key, e)
                cache[key] = None
        return cache[key]

    def rank_positions(self, exclude: Exclusions | None = None) -> list[RankedPosition]:
        skip = _leg_keys(exclude)
        positions = [
            p for p in self.gateway.get_all_positions(product_type=self.product_type, margin_coin=self.margin_coin)
            if p.is_valid() and (normalize_symbol(p.symbol), p.side) not in skip
        ]
        prices: dict[str, float | None] = {}
        ranked: list[RankedPosition] = []
        for pos in positions:
            price = self._price_for(pos.symbol, prices)
            if not price or price <= 0:
                # unknown price -> treat as flat
                price = pos.entry_price
            ranked.append(
                RankedPosition(
                    position=pos,
                    price=price,
                    margin=pos.margin,
                    unrealized_pnl=pos.unrealized_pnl(price),
                )
            )
        ranked.sort(key=lambda r: r.unrealized_pnl)
        return ranked

    # ------------------------------------------------------------------
    # drain
    # ------------------------------------------------------------------

    def free_up_capital(self, required: float, *, exclude: Exclusions | None = None) -> float:
        """
        Free at least `required` margin (plus buffer) from the weakest position.

        Returns the margin released (<= that position's margin). Gateway errors on the
        close itself propagate.
        """
        if required <= 0:
            return 0.0

        ranked = self.rank_positions(exclude)
        if not ranked:
            log.info("[REALLOC] no open positions to reduce")
            return 0.0

        log.info("[REALLOC] %d position(s) ranked by unrealized PnL:", len(ranked))
        for i, r in enumerate(ranked, 1):
            log.info(
                "  %d. %s %s | PnL=%+.4f | margin=%.4f | px=%.6f",
                i, r.position.symbol, r.position.side.value, r.unrealized_pnl, r.margin, r.price,
            )

        target = ranked[0]
        pos = target.position
        if target.margin <= 0:
            return 0.0

        needed = required * (1.0 + self.policy.buffer_pct / 100.0)
        pct = needed / target.margin * 100.0

        if pct >= 100.0:
            log.info(
                "[REALLOC] full close %s %s (need %.4f of %.4f margin)",
                pos.symbol, pos.side.value, needed, target.margin,
            )
            self._close(pos, pos.size)
            return target.margin

        # round up so the cut still covers `needed`
        close_size = self._to_step(pos.symbol, pos.size * pct / 100.0)
        remaining = target.margin * (1.0 - close_size / pos.size)
        if close_size >= pos.size or remaining < self.policy.min_viable_margin:
            log.info(
                "[REALLOC] remainder %.4f < %.4f after %.2f%% cut, closing %s %s fully",
                max(remaining, 0.0), self.policy.min_viable_margin, pct, pos.symbol, pos.side.value,
            )
            self._close(pos, pos.size)
            return target.margin

        log.info(
            "[REALLOC] partial close %.2f%% of %s %s (size %s of %s, remaining margin %.4f)",
            pct, pos.symbol, pos.side.value, close_size, pos.size, remaining,
        )
        self._close(pos, close_size)
        return target.margin * close_size / pos.size

    def _size_step(self, symbol: str) -> float:
        key = normalize_symbol(symbol)
        if key not in self._steps:
            step = 0.0
            try:
                contract = self.gateway.get_contract(symbol=key, product_type=self.product_type)
                if contract is not None:
                    step = contract.size_step
            except Exception as e:
                log.warning("[REALLOC] no contract for %s: %s (size not rounded)", key, e)
            self._steps[key] = step
        return self._steps[key]

    def _to_step(self, symbol: str, size: float) -> float:
        step = self._size_step(symbol)
        if not step:
            return size
        return as_float_clean(round_to_step(size, step, rounding="up"))

    def _close(self, pos: Position, size: float) -> None:
        self.gateway.close_position(
            symbol=pos.symbol, margin_coin=self.margin_coin, hold_side=pos.side, size=size,
        )
        if self.policy.settle_sec > 0:
            self._sleep(self.policy.settle_sec)

    # ------------------------------------------------------------------
    # caller flow
    # ------------------------------------------------------------------

    def available_margin(self, symbol: str | None = None) -> float:
        acc = self.gateway.get_account(product_type=self.product_type, margin_coin=self.margin_coin, symbol=symbol)
        return acc.available

    def fund(
        self,
        *,
        lot: LotSize,
        price: float,
        leverage: int,
        meta: MarketMetaCache,
        symbol: str | None = None,
        exclude: Exclusions | None = None,
    ) -> LotSize:
        """
        Make sure `lot` can be margined. Drains one position if short, then re-checks the
        real availability; still short -> shrink capital to a fraction of what is available.
        """
        required = lot.actual_capital or lot.capital
        available = self.available_margin(symbol)
        if available >= required:
            return lot

        shortfall = required - available
        log.info(
            "[REALLOC] insufficient margin: need %.4f, have %.4f (short %.4f)",
            required, available, shortfall,
        )
        freed = self.free_up_capital(shortfall, exclude=exclude)
        if freed < shortfall:
            raise InsufficientMarginError(
                f"could only free {freed:.4f} of {shortfall:.4f} {self.margin_coin}",
                required=required,
                available=available + freed,
            )

        available = self.available_margin(symbol)
        if available >= required:
            return lot

        capital = max(self.policy.min_capital, available * self.policy.capital_shrink_ratio)
        log.warning(
            "[REALLOC] still short after freeing (need %.4f, have %.4f) -> capital %.4f",
            required, available, capital,
        )
        resized = meta.lot_size(price, capital, leverage)
        if resized.capital_too_low:
            raise CapitalTooLowError(
                f"capital {capital:.4f} below minimum lot",
                min_capital_required=resized.min_capital_required,
            )
        return resized
