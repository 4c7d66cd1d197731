# src/hedgebot/core/strategy/suggestions.py
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from src.hedgebot.analysis.trend_classifier import Suggestion
from src.hedgebot.core.models.enums import Side

if TYPE_CHECKING:
    from src.hedgebot.core.strategy.hedge_controller import HedgeController

log = logging.getLogger("src.hedgebot.core.strategy.suggestions")

ADVISORY_ACTIONS = ("hold", "increase_caution", "reduce_margin")

# margin difference (quote units) under which a rebalance is a no-op
REBALANCE_TOLERANCE = 0.01


def _split_action(action: str) -> tuple[str, Side | None]:
    a = (action or "").strip().lower()
    for suffix, side in (("_long", Side.LONG), ("_short", Side.SHORT)):
        if a.endswith(suffix):
            return a[: -len(suffix)], side
    return a, None


class SuggestionExecutor:
    """
    Executes classifier suggestions against the hedge controller, one at a time.

    Each suggestion is isolated: a failing one is logged and the rest still run.
    """

    def __init__(self, controller: "HedgeController"):
        self.ctl = controller

    @property
    def min_capital(self) -> float:
        return self.ctl.policy.min_suggestion_capital

    def execute(self, suggestions: Iterable[Suggestion], price: float) -> int:
        done = 0
        for s in suggestions or []:
            try:
                if self.apply(s, price):
                    done += 1
            except Exception as e:
                log.error("[AI-ACTION] %s failed: %s", s.action, e)
        return done

    def apply(self, s: Suggestion, price: float) -> bool:
        verb, side = _split_action(s.action)
        log.info("[AI-ACTION] %s (%s) %s", s.action, s.priority, s.reason)

        if s.action in ADVISORY_ACTIONS or side is None:
            if s.action not in ADVISORY_ACTIONS:
                log.warning("[AI-ACTION] unknown action %r, ignored", s.action)
            return False

        if verb == "open":
            if self.ctl.tracker.has(side):
                log.info("[AI-ACTION] %s already open, skip", side.value)
                return False
            capital = s.capital if s.capital and s.capital >= self.min_capital else None
            return self.ctl.open_position(side, price, capital=capital) is not None

        if verb == "close":
            return self.ctl.close_position(side, reason="ai suggestion")

        if verb == "add_to":
            return self._add(side, s.capital or 0.0, price)

        if verb == "partial_close":
            pct = s.percentage or 0.0
            self.ctl.partial_close(side, pct)
            return True

        if verb == "rebalance":
            return self._rebalance(side, s.target_size or 0.0, price)

        log.warning("[AI-ACTION] unknown action %r, ignored", s.action)
        return False

    # ------------------------------------------------------------------

    def _add(self, side: Side, capital: float, price: float) -> bool:
        pos = self.ctl.tracker.get(side)
        if pos is None:
            log.info("[AI-ACTION] add_to: no %s position, skip", side.value)
            return False
        if capital < self.min_capital:
            raise ValueError(f"add capital {capital} < {self.min_capital}")
        if pos.margin < self.min_capital:
            raise ValueError(f"existing {side.value} margin {pos.margin:.4f} < {self.min_capital}")

        status = self.ctl.account_status(price)
        if status.free_margin < capital:
            raise ValueError(f"free margin {status.free_margin:.4f} < requested {capital:.4f}")

        self.ctl.add_to_position(side, capital, price)
        return True

    def _rebalance(self, side: Side, target_margin: float, price: float) -> bool:
        if target_margin < self.min_capital:
            raise ValueError(f"rebalance target {target_margin} < {self.min_capital}")

        pos = self.ctl.tracker.get(side)
        if pos is None:
            return self.ctl.open_position(side, price, capital=target_margin) is not None

        current = pos.margin
        log.info("[AI-ACTION] rebalance %s margin %.4f -> %.4f", side.value, current, target_margin)
        if abs(current - target_margin) < REBALANCE_TOLERANCE:
            return False

        if target_margin > current:
            self.ctl.add_to_position(side, target_margin - current, price)
        else:
            self.ctl.partial_close(side, (current - target_margin) / current * 100.0)
        return True
