# src/hedgebot/exchanges/base/gateway.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from src.hedgebot.core.models.account import AccountSnapshot
from src.hedgebot.core.models.enums import OrderSide, Side
from src.hedgebot.core.models.market import ContractSpec
from src.hedgebot.core.models.position import Position


class ExecutionGateway(ABC):
    """
    Order / account gateway for one futures venue.

    Implementations:
      • normalize every payload into Position / AccountSnapshot / ContractSpec
      • raise on transport or venue errors (the caller decides what is fatal)
      • keep NO strategy state
    """

    name: str

    # ---- trading ----

    @abstractmethod
    def place_order(
        self,
        *,
        symbol: str,
        margin_coin: str,
        size: float,
        side: OrderSide,
        order_type: str = "market",
        preset_take_profit: float | None = None,
        preset_stop_loss: float | None = None,
    ) -> dict[str, Any]:
        ...

    @abstractmethod
    def close_position(self, *, symbol: str, margin_coin: str, hold_side: Side, size: float) -> dict[str, Any]:
        ...

    # ---- account config ----

    @abstractmethod
    def set_leverage(self, *, symbol: str, margin_coin: str, leverage: int, hold_side: Side) -> None:
        ...

    @abstractmethod
    def set_margin_mode(self, *, symbol: str, margin_coin: str, mode: str = "crossed") -> None:
        ...

    # ---- state ----

    @abstractmethod
    def get_account(self, *, product_type: str, margin_coin: str, symbol: str | None = None) -> AccountSnapshot:
        ...

    @abstractmethod
    def get_all_positions(self, *, product_type: str, margin_coin: str) -> list[Position]:
        ...

    @abstractmethod
    def get_position(self, *, symbol: str, margin_coin: str) -> list[Position]:
        ...

    @abstractmethod
    def get_contract(self, *, symbol: str, product_type: str) -> ContractSpec | None:
        ...
