# src/hedgebot/exchanges/bitget/normalize.py
from __future__ import annotations

from typing import Any, Iterable

from src.hedgebot.core.models.account import AccountSnapshot
from src.hedgebot.core.models.enums import Side
from src.hedgebot.core.models.market import ContractSpec
from src.hedgebot.core.models.position import Position, normalize_symbol

# Bitget has renamed these fields between API versions; first non-empty wins.
SIZE_KEYS = ("total", "holdSize", "size", "quantity")
ENTRY_KEYS = ("averageOpenPrice", "openPriceAvg", "entryPrice", "avgEntryPrice")
SIDE_KEYS = ("holdSide", "side", "direction")
EQUITY_KEYS = ("equity", "accountEquity", "usdtEquity", "availableEquity", "availableBalance", "available")
AVAILABLE_KEYS = ("available", "availableBalance", "crossedMaxAvailable", "availableEquity")
PRICE_TICK_KEYS = ("priceTick", "priceStep", "minPriceChange")
SIZE_STEP_KEYS = ("quantityTick", "sizeTick", "sizeMultiplier", "minTradeNum")
MIN_SIZE_KEYS = ("minTradeNum", "minSize")


def _first_float(raw: dict, keys: Iterable[str], default: float = 0.0, *, skip_zero: bool = True) -> float:
    for k in keys:
        v = raw.get(k)
        if v in (None, ""):
            continue
        try:
            f = float(v)
        except (TypeError, ValueError):
            continue
        if f != 0.0 or not skip_zero:
            return f
    return default


def _first_str(raw: dict, keys: Iterable[str]) -> str:
    for k in keys:
        v = raw.get(k)
        if v not in (None, ""):
            return str(v)
    return ""


def norm_position(raw: dict, *, default_leverage: int) -> Position | None:
    """Raw Bitget position -> Position, or None if it is empty/invalid."""
    if not isinstance(raw, dict):
        return None
    side = Side.parse(_first_str(raw, SIDE_KEYS))
    if side is None:
        return None
    try:
        lev = int(float(raw.get("leverage") or 0)) or int(default_leverage)
    except (TypeError, ValueError):
        lev = int(default_leverage)
    pos = Position(
        symbol=normalize_symbol(str(raw.get("symbol", ""))),
        side=side,
        entry_price=_first_float(raw, ENTRY_KEYS),
        size=_first_float(raw, SIZE_KEYS),
        leverage=lev,
    )
    if not pos.symbol or not pos.is_valid():
        return None
    return pos


def norm_positions(payload: Any, *, default_leverage: int) -> list[Position]:
    """Accepts a list, a single dict, or None (Bitget returns all three shapes)."""
    if payload is None:
        return []
    items = payload if isinstance(payload, list) else [payload]
    out: list[Position] = []
    for it in items:
        pos = norm_position(it, default_leverage=default_leverage)
        if pos is not None:
            out.append(pos)
    return out


def norm_account(payload: Any, *, margin_coin: str) -> AccountSnapshot:
    raw: dict = {}
    if isinstance(payload, list):
        coin = margin_coin.upper()
        raw = next((a for a in payload if str(a.get("marginCoin", "")).upper() == coin), None) or (
            payload[0] if payload else {}
        )
    elif isinstance(payload, dict):
        raw = payload
    equity = _first_float(raw, EQUITY_KEYS)
    # a reported 0 means fully used, not missing
    available = _first_float(raw, AVAILABLE_KEYS, default=equity, skip_zero=False)
    return AccountSnapshot(equity=equity, available=available, margin_coin=margin_coin.upper())


def norm_contract(raw: dict) -> ContractSpec:
    tick = _first_float(raw, PRICE_TICK_KEYS)
    if tick <= 0:
        # v2 reports precision as pricePlace (+ priceEndStep)
        place = raw.get("pricePlace")
        if place not in (None, ""):
            end_step = _first_float(raw, ("priceEndStep",), default=1.0)
            tick = end_step * 10 ** (-int(place))
    step = _first_float(raw, SIZE_STEP_KEYS)
    if step <= 0 and raw.get("volumePlace") not in (None, ""):
        step = 10 ** (-int(raw["volumePlace"]))
    return ContractSpec(
        symbol=normalize_symbol(str(raw.get("symbol", ""))),
        price_tick=tick,
        size_step=step,
        min_trade_size=_first_float(raw, MIN_SIZE_KEYS, default=step),
    )
