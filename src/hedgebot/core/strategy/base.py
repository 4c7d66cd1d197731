# src/hedgebot/core/strategy/base.py
from __future__ import annotations

from abc import ABC, abstractmethod


class CycleStrategy(ABC):
    """
    Base interface for a scheduled trading controller.

    Strategy:
      • runs one decision cycle per scheduler tick
      • keeps its state in explicit fields (no module globals)
      • lets exceptions escape run_cycle(): the scheduler owns error isolation
    """
    # --- identity ---
    strategy_id: str = "base"

    def __init__(self, *, symbol: str, margin_coin: str = "USDT"):
        self.symbol = symbol
        self.margin_coin = margin_coin

    # ------------------------------------------------------------------
    # lifecycle hooks (optional)
    # ------------------------------------------------------------------

    def on_start(self) -> None:
        """Called once before the first cycle."""
        pass

    def on_stop(self) -> None:
        """Called once after the scheduler loop exits."""
        pass

    # ------------------------------------------------------------------
    # cycle
    # ------------------------------------------------------------------

    @abstractmethod
    def run_cycle(self) -> None:
        """
        One full decision cycle.

        IMPORTANT:
          • must not overlap with another cycle
          • orders issued here must complete (or fail) before returning
        """
        raise NotImplementedError
