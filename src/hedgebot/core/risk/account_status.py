# src/hedgebot/core/risk/account_status.py
from __future__ import annotations

import logging

from src.hedgebot.core.models.account import AccountSnapshot, AccountStatus, PositionMetrics
from src.hedgebot.core.models.position import Position

log = logging.getLogger("src.hedgebot.core.risk.account_status")


def position_metrics(pos: Position, price: float) -> PositionMetrics:
    return PositionMetrics(
        side=pos.side,
        entry_price=pos.entry_price,
        current_price=price,
        size=pos.size,
        notional=pos.notional,
        margin_used=pos.margin,
        price_change_pct=pos.price_change_pct(price),
        roi_pct=pos.roi_pct(price),
        unrealized_pnl=pos.unrealized_pnl(price),
    )


def compute_account_status(
    account: AccountSnapshot,
    *,
    price: float,
    long: Position | None,
    short: Position | None,
    leverage: int,
    config_capital: float | None = None,
) -> AccountStatus:
    lm = position_metrics(long, price) if long else None
    sm = position_metrics(short, price) if short else None
    used = sum(m.margin_used for m in (lm, sm) if m)
    upnl = sum(m.unrealized_pnl for m in (lm, sm) if m)
    return AccountStatus(
        equity=account.equity,
        available=account.available,
        total_margin_used=used,
        free_margin=account.equity - used,
        margin_level=(account.equity / used * 100.0) if used > 0 else 0.0,
        total_unrealized_pnl=upnl,
        leverage=int(leverage),
        long=lm,
        short=sm,
        config_capital=config_capital,
    )


def log_account_status(st: AccountStatus, *, coin: str = "USDT") -> None:
    log.info(
        "[ACCOUNT] equity=%.4f available=%.4f used=%.4f free=%.4f level=%.2f%% uPnL=%+.4f %s",
        st.equity, st.available, st.total_margin_used, st.free_margin, st.margin_level,
        st.total_unrealized_pnl, coin,
    )
    for m in (st.long, st.short):
        if m is None:
            continue
        log.info(
            "[ACCOUNT]   %s entry=%.6f px=%.6f roi=%+.2f%% margin=%.4f",
            m.side.value, m.entry_price, m.current_price, m.roi_pct, m.margin_used,
        )
