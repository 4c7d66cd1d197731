# src/hedgebot/core/engine/scheduler.py
from __future__ import annotations

import logging
import signal
import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from src.hedgebot.core.utils.candles import seconds_until_next_boundary
from src.hedgebot.exchanges.base.feed import BarStream

log = logging.getLogger("src.hedgebot.core.engine.scheduler")

DEFAULT_ERROR_BACKOFF_SEC = 300.0
SMC_ERROR_BACKOFF_SEC = 60.0


class CycleScheduler:
    """
    Drives one cycle function until stopped.

      - fixed interval: run, then wait interval_sec
      - aligned: wait until the next `align` boundary (e.g. top of the hour), then run
      - any cycle exception is logged and followed by error_backoff_sec, then an
        immediate retry (aligned mode does not wait for the next boundary)
      - stop flag checked at the top of the loop; a running cycle is never interrupted
    """

    def __init__(
        self,
        cycle_fn: Callable[[], None],
        *,
        interval_sec: Optional[float] = None,
        align: Optional[str] = None,
        error_backoff_sec: float = DEFAULT_ERROR_BACKOFF_SEC,
        run_immediately: bool = True,
        stop_event: Optional[threading.Event] = None,
        wait: Optional[Callable[[float], object]] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        name: str = "cycle",
    ):
        if (interval_sec is None) == (align is None):
            raise ValueError("exactly one of interval_sec / align is required")
        if interval_sec is not None and interval_sec <= 0:
            raise ValueError(f"interval_sec must be > 0: {interval_sec}")

        self.cycle_fn = cycle_fn
        self.interval_sec = interval_sec
        self.align = align
        self.error_backoff_sec = float(error_backoff_sec)
        self.run_immediately = bool(run_immediately)
        self.stop_event = stop_event or threading.Event()
        # interruptible sleep: stop() wakes it
        self._wait = wait or self.stop_event.wait
        self._clock = clock
        self.name = name

        self.cycles = 0
        self.failures = 0

    # ------------------------------------------------------------------

    @property
    def stopped(self) -> bool:
        return self.stop_event.is_set()

    def stop(self) -> None:
        self.stop_event.set()

    def install_signal_handlers(self, on_signal: Optional[Callable[[], None]] = None) -> None:
        def _sig_handler(signum, _frame):
            log.warning("Signal %s -> stopping %s after the current cycle", signum, self.name)
            self.stop()
            if on_signal is not None:
                on_signal()

        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                signal.signal(sig, _sig_handler)
            except ValueError:
                # not the main thread
                log.debug("cannot install handler for %s", sig)

    # ------------------------------------------------------------------

    def next_delay(self) -> float:
        if self.align is not None:
            return seconds_until_next_boundary(self._clock(), self.align)
        return float(self.interval_sec)

    def run_once(self) -> bool:
        """One guarded cycle. Returns False when it failed."""
        self.cycles += 1
        try:
            self.cycle_fn()
            return True
        except Exception:
            self.failures += 1
            log.exception("[%s] cycle #%d failed", self.name, self.cycles)
            return False

    def run(self) -> None:
        log.info(
            "[%s] scheduler start (%s, error back-off %.0fs)",
            self.name,
            f"every {self.interval_sec:.0f}s" if self.align is None else f"aligned to {self.align}",
            self.error_backoff_sec,
        )
        first = True
        retry = False
        while not self.stopped:
            if self.align is not None and not retry and not (first and self.run_immediately):
                delay = self.next_delay()
                log.info("[%s] next cycle in %.1fs", self.name, delay)
                self._wait(delay)
                if self.stopped:
                    break
            first = False

            ok = self.run_once()
            retry = not ok
            if self.stopped:
                break

            if not ok:
                log.info("[%s] retry in %.0fs", self.name, self.error_backoff_sec)
                self._wait(self.error_backoff_sec)
            elif self.align is None:
                self._wait(self.interval_sec)

        log.info("[%s] scheduler stopped after %d cycle(s), %d failed", self.name, self.cycles, self.failures)

    def run_on_bars(self, stream: BarStream) -> None:
        """
        One cycle per closed bar from `stream` instead of clock alignment.
        A failed cycle backs off and retries before the next bar is taken.
        """
        log.info("[%s] bar-driven scheduler start (error back-off %.0fs)", self.name, self.error_backoff_sec)
        try:
            for bar in stream:
                if self.stopped:
                    break
                log.info("[%s] bar closed at %s", self.name, bar.close_time.isoformat())
                while not self.run_once() and not self.stopped:
                    log.info("[%s] retry in %.0fs", self.name, self.error_backoff_sec)
                    self._wait(self.error_backoff_sec)
                    if self.stopped:
                        break
                if self.stopped:
                    break
        finally:
            stream.stop()
        log.info("[%s] scheduler stopped after %d cycle(s), %d failed", self.name, self.cycles, self.failures)
