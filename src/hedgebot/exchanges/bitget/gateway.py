# src/hedgebot/exchanges/bitget/gateway.py
from __future__ import annotations

import logging
import os
from typing import Any

from src.hedgebot.core.models.account import AccountSnapshot
from src.hedgebot.core.models.enums import OrderSide, Side
from src.hedgebot.core.models.market import ContractSpec
from src.hedgebot.core.models.position import Position, normalize_symbol
from src.hedgebot.exchanges.base.gateway import ExecutionGateway
from src.hedgebot.exchanges.bitget.normalize import (
    norm_account,
    norm_contract,
    norm_positions,
)
from src.hedgebot.exchanges.bitget.rest import BitgetAPIError, BitgetMixREST

log = logging.getLogger("src.hedgebot.exchanges.bitget.gateway")


def _fmt_num(v: float) -> str:
    # avoid 0.30000000000000004 in order bodies
    return format(float(v), ".8f").rstrip("0").rstrip(".") or "0"


class BitgetGateway(ExecutionGateway):
    """
    Bitget USDT-M futures gateway (hedge mode).
    Everything leaving this class is normalized.
    """

    name = "bitget"

    def __init__(self, rest: BitgetMixREST, *, default_leverage: int = 10):
        self.rest = rest
        self.default_leverage = int(default_leverage)

    @classmethod
    def from_env(cls, *, default_leverage: int = 10) -> "BitgetGateway":
        key = os.environ.get("BITGET_API_KEY", "")
        sec = os.environ.get("BITGET_API_SECRET", "")
        if not key or not sec:
            raise RuntimeError("Missing Bitget credentials (BITGET_API_KEY / BITGET_API_SECRET)")
        return cls(
            BitgetMixREST(key, sec, os.environ.get("BITGET_PASSPHRASE", "")),
            default_leverage=default_leverage,
        )

    # ---------------- trading ----------------

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
        res = self.rest.place_order(
            symbol=symbol,
            margin_coin=margin_coin,
            size=_fmt_num(size),
            side=OrderSide(side).value,
            order_type=order_type,
            preset_take_profit=_fmt_num(preset_take_profit) if preset_take_profit else None,
            preset_stop_loss=_fmt_num(preset_stop_loss) if preset_stop_loss else None,
        )
        return res if isinstance(res, dict) else {"data": res}

    def close_position(self, *, symbol: str, margin_coin: str, hold_side: Side, size: float) -> dict[str, Any]:
        try:
            res = self.rest.close_position(
                symbol=symbol,
                margin_coin=margin_coin,
                hold_side=hold_side.hold_side,
                size=_fmt_num(size),
            )
        except BitgetAPIError as e:
            if not e.is_not_found:
                raise
            log.warning("close-position unavailable (%s), falling back to market close order", e.code)
            return self.place_order(
                symbol=symbol,
                margin_coin=margin_coin,
                size=size,
                side=OrderSide.close_for(hold_side),
            )
        return res if isinstance(res, dict) else {"data": res}

    # ---------------- account config ----------------

    def set_leverage(self, *, symbol: str, margin_coin: str, leverage: int, hold_side: Side) -> None:
        self.rest.set_leverage(
            symbol=symbol, margin_coin=margin_coin, leverage=int(leverage), hold_side=hold_side.hold_side,
        )

    def set_margin_mode(self, *, symbol: str, margin_coin: str, mode: str = "crossed") -> None:
        self.rest.set_margin_mode(symbol=symbol, margin_coin=margin_coin, margin_mode=mode)

    # ---------------- state ----------------

    def get_account(self, *, product_type: str, margin_coin: str, symbol: str | None = None) -> AccountSnapshot:
        return norm_account(
            self.rest.accounts(product_type=product_type, margin_coin=margin_coin),
            margin_coin=margin_coin,
        )

    def get_all_positions(self, *, product_type: str, margin_coin: str) -> list[Position]:
        return norm_positions(
            self.rest.all_positions(product_type=product_type, margin_coin=margin_coin),
            default_leverage=self.default_leverage,
        )

    def get_position(self, *, symbol: str, margin_coin: str) -> list[Position]:
        return norm_positions(
            self.rest.single_position(symbol=symbol, margin_coin=margin_coin),
            default_leverage=self.default_leverage,
        )

    def get_contract(self, *, symbol: str, product_type: str) -> ContractSpec | None:
        want = normalize_symbol(symbol)
        tried: list[str] = []
        for pt in (product_type, "umcbl", "cmcbl", "dmcbl"):
            if not pt or pt in tried:
                continue
            tried.append(pt)
            try:
                contracts = self.rest.contracts(product_type=pt)
            except BitgetAPIError as e:
                log.debug("contracts(%s) failed: %s", pt, e)
                continue
            for raw in contracts or []:
                if normalize_symbol(str(raw.get("symbol", ""))) == want:
                    return norm_contract(raw)
        return None
