# src/hedgebot/core/position/tracker.py
from __future__ import annotations

import logging

from src.hedgebot.core.models.enums import Side
from src.hedgebot.core.models.position import Position, normalize_symbol
from src.hedgebot.exchanges.base.gateway import ExecutionGateway


class PositionTracker:
    """
    In-memory mirror of the bot's long and short position on ONE symbol.

    Responsibilities:
      ✔ full resync from the gateway (refresh)
      ✔ at most one position per side
      ✔ keep previous state when the gateway query fails
      ✖ NO persistence
    """

    def __init__(
        self,
        *,
        gateway: ExecutionGateway,
        symbol: str,
        margin_coin: str = "USDT",
        product_type: str = "umcbl",
        logger: logging.Logger | None = None,
    ) -> None:
        self.gateway = gateway
        self.symbol = symbol
        self.margin_coin = margin_coin
        self.product_type = product_type
        self.logger = logger or logging.getLogger("src.hedgebot.core.position.tracker")

        self._slots: dict[Side, Position | None] = {Side.LONG: None, Side.SHORT: None}

    # ------------------------------------------------------------
    @property
    def long(self) -> Position | None:
        return self._slots[Side.LONG]

    @property
    def short(self) -> Position | None:
        return self._slots[Side.SHORT]

    def get(self, side: Side) -> Position | None:
        return self._slots[side]

    def has(self, side: Side) -> bool:
        return self._slots[side] is not None

    def positions(self) -> list[Position]:
        return [p for p in self._slots.values() if p is not None]

    # ------------------------------------------------------------
    def refresh(self) -> bool:
        """
        Resync both slots from the gateway.

        Returns True on success. On a query error the previous state is kept.
        """
        try:
            positions = self.gateway.get_all_positions(
                product_type=self.product_type, margin_coin=self.margin_coin,
            )
        except Exception as e:
            self.logger.warning("[POSITIONS] refresh failed, keeping previous state: %s", e)
            return False

        want = normalize_symbol(self.symbol)
        fresh: dict[Side, Position | None] = {Side.LONG: None, Side.SHORT: None}
        for pos in positions or []:
            if normalize_symbol(pos.symbol) != want:
                continue
            if not pos.is_valid():
                continue
            if fresh[pos.side] is not None:
                self.logger.warning("[POSITIONS] duplicate %s slot for %s, keeping first", pos.side.value, want)
                continue
            fresh[pos.side] = pos

        self._slots = fresh
        for side, pos in fresh.items():
            if pos is not None:
                self.logger.info(
                    "[POSITIONS] %s %s entry=%.6f size=%s lev=%dx",
                    want, side.value, pos.entry_price, pos.size, pos.leverage,
                )
        if not any(fresh.values()):
            self.logger.info("[POSITIONS] %s no open positions", want)
        return True

    # ------------------------------------------------------------
    # local updates after confirmed orders
    # ------------------------------------------------------------

    def record_open(self, position: Position) -> None:
        if self._slots[position.side] is not None:
            raise RuntimeError(f"{position.side.value} slot already occupied for {self.symbol}")
        self._slots[position.side] = position

    def record_close(self, side: Side) -> None:
        self._slots[side] = None

    def record_update(self, position: Position) -> None:
        """Partial close / scale-in on an existing slot."""
        if self._slots[position.side] is None:
            raise RuntimeError(f"no {position.side.value} position to update for {self.symbol}")
        self._slots[position.side] = position if position.is_valid() else None
