# src/hedgebot/core/market/meta.py
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

from src.hedgebot.core.models.enums import Side
from src.hedgebot.core.models.market import LotSize, MarketMeta
from src.hedgebot.core.utils.rounding import floor_to_step, round_to_tick
from src.hedgebot.exchanges.base.gateway import ExecutionGateway

log = logging.getLogger("src.hedgebot.core.market.meta")

DEFAULT_PRICE_TICK = 0.01
DEFAULT_SIZE_STEP = 0.0001
DEFAULT_MIN_LOT = 0.001


class MarketMetaCache:
    """
    Contract meta (tick / step / min lot) for one symbol.

    Loaded lazily on first use, then cached for the process lifetime.
    Explicitly configured tick/step override what the exchange reports.
    """

    def __init__(
        self,
        gateway: ExecutionGateway,
        *,
        symbol: str,
        product_type: str = "umcbl",
        price_tick: float = 0.0,
        size_step: float = 0.0,
    ):
        self.gateway = gateway
        self.symbol = symbol
        self.product_type = product_type
        self._cfg_tick = float(price_tick or 0.0)
        self._cfg_step = float(size_step or 0.0)
        self._meta: MarketMeta | None = None

    @property
    def loaded(self) -> bool:
        return self._meta is not None

    def load(self) -> MarketMeta:
        if self._meta is not None:
            return self._meta

        tick, step, min_lot = self._cfg_tick, self._cfg_step, 0.0
        try:
            contract = self.gateway.get_contract(symbol=self.symbol, product_type=self.product_type)
            if contract is None:
                raise LookupError(f"contract {self.symbol!r} not found")
            tick = tick or contract.price_tick
            step = step or contract.size_step
            min_lot = contract.min_trade_size or step
        except Exception as e:
            log.warning("[META] contract spec unavailable for %s: %s (using defaults)", self.symbol, e)

        self._meta = MarketMeta(
            price_tick=tick if tick > 0 else DEFAULT_PRICE_TICK,
            size_step=step if step > 0 else DEFAULT_SIZE_STEP,
            min_lot_size=min_lot if min_lot > 0 else DEFAULT_MIN_LOT,
        )
        log.info(
            "[META] %s tick=%s step=%s min_lot=%s",
            self.symbol, self._meta.price_tick, self._meta.size_step, self._meta.min_lot_size,
        )
        return self._meta

    # ------------------------------------------------------------------

    def lot_size(self, price: float, capital: float, leverage: int) -> LotSize:
        """
        capital (margin) * leverage / price, rounded down to the size step.
        Below the minimum lot -> capital_too_low with the margin that would be needed.
        """
        if price <= 0:
            raise ValueError(f"invalid entry price: {price}")
        if capital <= 0:
            raise ValueError(f"invalid capital: {capital}")

        meta = self.load()
        size = floor_to_step(capital * leverage / price, meta.size_step)

        if size < meta.min_lot_size:
            min_capital = meta.min_lot_size * price / leverage
            return LotSize(
                size=meta.min_lot_size,
                capital=capital,
                capital_too_low=True,
                min_capital_required=min_capital,
            )

        notional = size * price
        return LotSize(
            size=size,
            capital=capital,
            actual_capital=notional / leverage,
            notional=notional,
        )

    def round_price(self, price: float) -> float:
        return round_to_tick(price, self.load().price_tick)


def configure_leverage(
    gateway: ExecutionGateway,
    *,
    symbol: str,
    margin_coin: str,
    leverage: int,
    margin_mode: str = "crossed",
) -> None:
    """Crossed margin (tolerated if already set), then leverage on both sides concurrently."""
    try:
        gateway.set_margin_mode(symbol=symbol, margin_coin=margin_coin, mode=margin_mode)
    except Exception as e:
        log.warning("[LEVERAGE] set margin mode %s: %s (probably already set)", margin_mode, e)

    def _set(side: Side) -> None:
        try:
            gateway.set_leverage(symbol=symbol, margin_coin=margin_coin, leverage=leverage, hold_side=side)
        except Exception as e:
            log.warning("[LEVERAGE] set leverage %s %s: %s", side.hold_side, symbol, e)

    with ThreadPoolExecutor(max_workers=2, thread_name_prefix="leverage") as pool:
        list(pool.map(_set, (Side.LONG, Side.SHORT)))
    log.info("[LEVERAGE] %s %dx (%s)", symbol, leverage, margin_mode)
