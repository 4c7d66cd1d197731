"""Hedge lifecycle: trend-driven closure/open rules, hedge invariant and reallocation hand-off."""

from __future__ import annotations

import pytest

from conftest import SYMBOL
from fakes import FakeClassifier
from src.hedgebot.analysis.trend_classifier import Suggestion, TrendAnalysis
from src.hedgebot.core.errors import CapitalTooLowError, InsufficientMarginError
from src.hedgebot.core.models.enums import OrderSide, Side, TrendState
from src.hedgebot.core.models.position import Position
from src.hedgebot.core.risk.policy import HedgePolicy
from src.hedgebot.core.strategy.hedge_controller import HedgeController
from src.hedgebot.core.strategy.suggestions import SuggestionExecutor


def _controller(gateway, feed, tracker, meta, reallocator, *results, **kw):
    return HedgeController(
        gateway=gateway,
        feed=feed,
        tracker=tracker,
        meta=meta,
        reallocator=reallocator,
        classifier=FakeClassifier(*results),
        symbol=SYMBOL,
        leverage=10,
        context_builder=lambda ctl, price: f"price={price}",
        **kw,
    )


def _orders(gateway):
    return [(OrderSide(c["side"]), c["size"]) for c in gateway.calls_named("place_order")]


def _closes(gateway):
    return [(c["hold_side"], c["size"]) for c in gateway.calls_named("close_position")]


def test_unclear_with_no_positions_opens_both_sides_from_half_equity(gateway, feed, tracker, meta, reallocator):
    ctl = _controller(gateway, feed, tracker, meta, reallocator, TrendState.UNCLEAR)

    ctl.run_cycle()

    assert _orders(gateway) == [(OrderSide.OPEN_LONG, 50.0), (OrderSide.OPEN_SHORT, 50.0)]
    assert tracker.long is not None and tracker.short is not None
    assert tracker.long.entry_price == 100.0
    assert tracker.long.margin == pytest.approx(500.0)


def test_uptrend_closes_short_immediately_and_holds_long(gateway, feed, tracker, meta, reallocator):
    gateway.positions = [
        Position("BTCUSDT", Side.LONG, 100.0, 1.0, 10),
        Position("BTCUSDT", Side.SHORT, 100.0, 1.0, 10),
    ]
    feed.prices["BTCUSDT"] = 105.0
    ctl = _controller(gateway, feed, tracker, meta, reallocator, TrendState.UPTREND)

    ctl.run_cycle()

    assert _closes(gateway) == [(Side.SHORT, 1.0)]
    assert _orders(gateway) == []
    assert tracker.long is not None
    assert tracker.short is None


def test_uptrend_without_long_opens_only_long(gateway, feed, tracker, meta, reallocator):
    ctl = _controller(gateway, feed, tracker, meta, reallocator, TrendState.UPTREND)

    ctl.run_cycle()

    assert _orders(gateway) == [(OrderSide.OPEN_LONG, 50.0)]
    assert tracker.short is None


def test_downtrend_closes_long_and_opens_short(gateway, feed, tracker, meta, reallocator):
    gateway.positions = [Position("BTCUSDT", Side.LONG, 90.0, 1.0, 10)]
    ctl = _controller(gateway, feed, tracker, meta, reallocator, TrendState.DOWNTREND)

    ctl.run_cycle()

    # long is deep in profit but the trend rule still closes it
    assert _closes(gateway) == [(Side.LONG, 1.0)]
    assert _orders(gateway) == [(OrderSide.OPEN_SHORT, 50.0)]
    assert tracker.long is None and tracker.short is not None


def test_roi_exactly_at_threshold_closes_and_reopens(gateway, feed, tracker, meta, reallocator):
    gateway.positions = [
        Position("BTCUSDT", Side.LONG, 100.0, 1.0, 10),
        Position("BTCUSDT", Side.SHORT, 100.0, 1.0, 10),
    ]
    feed.prices["BTCUSDT"] = 100.5
    gateway.prices["BTCUSDT"] = 100.5
    ctl = _controller(gateway, feed, tracker, meta, reallocator, TrendState.UNCLEAR)

    assert Position("BTCUSDT", Side.LONG, 100.0, 1.0, 10).roi_pct(100.5) == pytest.approx(5.0)

    ctl.run_cycle()

    assert _closes(gateway) == [(Side.LONG, 1.0)]
    assert [o for o, _ in _orders(gateway)] == [OrderSide.OPEN_LONG]
    assert tracker.long.entry_price == 100.5
    assert tracker.short.entry_price == 100.0


def test_roi_below_threshold_keeps_both_sides(gateway, feed, tracker, meta, reallocator):
    gateway.positions = [
        Position("BTCUSDT", Side.LONG, 100.0, 1.0, 10),
        Position("BTCUSDT", Side.SHORT, 100.0, 1.0, 10),
    ]
    feed.prices["BTCUSDT"] = 100.49
    ctl = _controller(gateway, feed, tracker, meta, reallocator, TrendState.UNCLEAR)

    ctl.run_cycle()

    assert _closes(gateway) == []
    assert _orders(gateway) == []


def test_both_sides_past_threshold_close_and_both_reopen(gateway, feed, tracker, meta, reallocator):
    gateway.positions = [
        Position("BTCUSDT", Side.LONG, 90.0, 1.0, 10),
        Position("BTCUSDT", Side.SHORT, 110.0, 1.0, 10),
    ]
    ctl = _controller(gateway, feed, tracker, meta, reallocator, TrendState.UNCLEAR)

    ctl.run_cycle()

    assert sorted(s.value for s, _ in _closes(gateway)) == ["LONG", "SHORT"]
    assert [o for o, _ in _orders(gateway)] == [OrderSide.OPEN_LONG, OrderSide.OPEN_SHORT]
    assert tracker.long.entry_price == 100.0 and tracker.short.entry_price == 100.0


def test_classifier_failure_keeps_previous_trend(gateway, feed, tracker, meta, reallocator):
    ctl = _controller(
        gateway, feed, tracker, meta, reallocator,
        TrendState.UPTREND, None, RuntimeError("model down"),
    )

    ctl.run_cycle()
    assert ctl.trend is TrendState.UPTREND
    ctl.run_cycle()
    assert ctl.trend is TrendState.UPTREND
    ctl.run_cycle()
    assert ctl.trend is TrendState.UPTREND

    # only one long ever opened, no short in a carried-forward uptrend
    assert _orders(gateway) == [(OrderSide.OPEN_LONG, 50.0)]


def test_classifier_failure_does_not_abort_cycle(gateway, feed, tracker, meta, reallocator):
    ctl = _controller(gateway, feed, tracker, meta, reallocator, None)

    ctl.run_cycle()

    assert ctl.trend is TrendState.UNCLEAR
    assert tracker.long is not None and tracker.short is not None


def test_trend_is_classified_before_closure_rule(gateway, feed, tracker, meta, reallocator):
    gateway.positions = [
        Position("BTCUSDT", Side.LONG, 100.0, 1.0, 10),
        Position("BTCUSDT", Side.SHORT, 100.0, 1.0, 10),
    ]
    ctl = _controller(gateway, feed, tracker, meta, reallocator, TrendState.DOWNTREND)
    ctl.trend = TrendState.UPTREND

    ctl.run_cycle()

    assert _closes(gateway) == [(Side.LONG, 1.0)]


def test_open_is_refused_when_side_is_occupied(gateway, feed, tracker, meta, reallocator):
    gateway.positions = [Position("BTCUSDT", Side.LONG, 100.0, 1.0, 10)]
    tracker.refresh()
    ctl = _controller(gateway, feed, tracker, meta, reallocator)

    assert ctl.open_position(Side.LONG, 100.0) is None
    assert gateway.calls_named("place_order") == []


def test_hedge_invariant_holds_across_cycles(gateway, feed, tracker, meta, reallocator):
    ctl = _controller(gateway, feed, tracker, meta, reallocator, *([TrendState.UNCLEAR] * 3))

    for _ in range(3):
        ctl.run_cycle()
        assert len([p for p in gateway.positions if p.side is Side.LONG]) == 1
        assert len([p for p in gateway.positions if p.side is Side.SHORT]) == 1

    assert len(gateway.calls_named("place_order")) == 2


def test_gateway_error_on_open_aborts_cycle(gateway, feed, tracker, meta, reallocator):
    gateway.fail["place_order"] = RuntimeError("exchange down")
    ctl = _controller(gateway, feed, tracker, meta, reallocator, TrendState.UNCLEAR)

    with pytest.raises(RuntimeError, match="exchange down"):
        ctl.run_cycle()
    assert tracker.positions() == []


def test_capital_per_side_is_capped_by_equity(gateway, feed, tracker, meta, reallocator):
    assert _controller(gateway, feed, tracker, meta, reallocator, capital=100.0).capital_per_side() == 50.0
    assert _controller(gateway, feed, tracker, meta, reallocator, capital=5000.0).capital_per_side() == 1000.0
    assert _controller(gateway, feed, tracker, meta, reallocator).capital_per_side() == 500.0


def test_capital_too_low_raises(gateway, feed, tracker, meta, reallocator):
    gateway.equity = gateway.available = 0.01
    ctl = _controller(gateway, feed, tracker, meta, reallocator, TrendState.UNCLEAR)

    with pytest.raises(CapitalTooLowError):
        ctl.run_cycle()
    assert gateway.calls_named("place_order") == []


def test_open_drains_weakest_foreign_position_when_margin_is_short(gateway, feed, tracker, meta, reallocator):
    gateway.positions = [Position("ETHUSDT", Side.LONG, 200.0, 10.0, 10)]
    gateway.available = 450.0
    feed.prices["ETHUSDT"] = 190.0
    ctl = _controller(gateway, feed, tracker, meta, reallocator, TrendState.UPTREND, capital=1000.0)

    ctl.run_cycle()

    (eth_close,) = gateway.calls_named("close_position")
    assert eth_close["symbol"] == "ETHUSDT"
    assert eth_close["size"] == pytest.approx(10.0 * 55.0 / 200.0)
    assert _orders(gateway) == [(OrderSide.OPEN_LONG, 50.0)]


def test_hedge_leg_is_never_drained_to_fund_the_other_leg(gateway, feed, tracker, meta, reallocator):
    gateway.positions = [Position("BTCUSDT", Side.LONG, 100.0, 0.55, 10)]
    gateway.available = 0.01
    ctl = _controller(gateway, feed, tracker, meta, reallocator, TrendState.UNCLEAR, capital=10.0)

    with pytest.raises(InsufficientMarginError):
        ctl.run_cycle()

    assert gateway.calls_named("close_position") == []
    assert gateway.calls_named("place_order") == []
    assert tracker.long is not None


def test_missing_leg_is_funded_from_a_foreign_position_even_when_own_leg_is_weaker(
    gateway, feed, tracker, meta, reallocator,
):
    # own long: roi -90.9%, pnl -5.5; foreign ETH long: pnl -1.0
    gateway.positions = [
        Position("BTCUSDT", Side.LONG, 110.0, 0.55, 10),
        Position("ETHUSDT", Side.LONG, 200.0, 1.0, 10),
    ]
    gateway.available = 0.01
    feed.prices["ETHUSDT"] = 199.0
    ctl = _controller(gateway, feed, tracker, meta, reallocator, TrendState.UNCLEAR, capital=10.0)

    ctl.run_cycle()

    (close,) = gateway.calls_named("close_position")
    assert close["symbol"] == "ETHUSDT"
    assert close["size"] == pytest.approx(4.99 * 1.1 / 20.0)
    assert _orders(gateway) == [(OrderSide.OPEN_SHORT, 0.5)]
    assert tracker.long is not None and tracker.short is not None


def test_fully_used_account_triggers_reallocation(gateway, feed, tracker, meta, reallocator):
    gateway.positions = [Position("ETHUSDT", Side.LONG, 200.0, 1.0, 10)]
    gateway.available = 0.0
    feed.prices["ETHUSDT"] = 190.0
    ctl = _controller(gateway, feed, tracker, meta, reallocator, TrendState.UPTREND, capital=10.0)

    ctl.run_cycle()

    (close,) = gateway.calls_named("close_position")
    assert close["symbol"] == "ETHUSDT"
    assert close["size"] == pytest.approx(5.5 / 20.0)
    assert _orders(gateway) == [(OrderSide.OPEN_LONG, 0.5)]
    assert gateway.available >= 0.0


def test_account_status_reports_both_sides(gateway, feed, tracker, meta, reallocator):
    gateway.positions = [
        Position("BTCUSDT", Side.LONG, 100.0, 1.0, 10),
        Position("BTCUSDT", Side.SHORT, 100.0, 1.0, 10),
    ]
    tracker.refresh()
    ctl = _controller(gateway, feed, tracker, meta, reallocator)

    st = ctl.account_status(101.0)

    assert st.total_margin_used == pytest.approx(20.0)
    assert st.long.roi_pct == pytest.approx(10.0)
    assert st.short.roi_pct == pytest.approx(-10.0)
    assert st.total_unrealized_pnl == pytest.approx(0.0)
    assert st.margin_level == pytest.approx(1000.0 / 20.0 * 100.0)


# ---------------------------------------------------------------------------
# AI suggestions
# ---------------------------------------------------------------------------

def _analysis(*suggestions):
    return TrendAnalysis(trend=TrendState.UNCLEAR, reason="range", suggestions=list(suggestions))


def test_suggestions_are_ignored_unless_enabled(gateway, feed, tracker, meta, reallocator):
    gateway.positions = [
        Position("BTCUSDT", Side.LONG, 100.0, 1.0, 10),
        Position("BTCUSDT", Side.SHORT, 100.0, 1.0, 10),
    ]
    ctl = _controller(gateway, feed, tracker, meta, reallocator, _analysis(Suggestion("close_long")))
    ctl.suggestions = SuggestionExecutor(ctl)

    ctl.run_cycle()

    assert gateway.calls_named("close_position") == []


def test_enabled_suggestions_run_isolated_then_hedge_is_restored(gateway, feed, tracker, meta, reallocator):
    gateway.positions = [
        Position("BTCUSDT", Side.LONG, 100.0, 2.0, 10),
        Position("BTCUSDT", Side.SHORT, 100.0, 2.0, 10),
    ]
    ctl = _controller(
        gateway, feed, tracker, meta, reallocator,
        _analysis(
            Suggestion("add_to_short", capital=0.5),
            Suggestion("partial_close_long", percentage=50.0),
            Suggestion("close_short"),
        ),
        policy=HedgePolicy(apply_ai_suggestions=True),
    )
    ctl.suggestions = SuggestionExecutor(ctl)

    ctl.run_cycle()

    assert _closes(gateway) == [(Side.LONG, 1.0), (Side.SHORT, 2.0)]
    assert tracker.long.size == 1.0
    assert tracker.long.entry_price == 100.0
    assert _orders(gateway) == [(OrderSide.OPEN_SHORT, 50.0)]


def test_rebalance_adds_margin_and_averages_entry(gateway, feed, tracker, meta, reallocator):
    gateway.positions = [Position("BTCUSDT", Side.LONG, 100.0, 2.0, 10)]
    tracker.refresh()
    ctl = _controller(gateway, feed, tracker, meta, reallocator)

    assert SuggestionExecutor(ctl).apply(Suggestion("rebalance_long", target_size=30.0), 100.0)

    assert _orders(gateway) == [(OrderSide.OPEN_LONG, 1.0)]
    assert tracker.long.size == pytest.approx(3.0)
    assert tracker.long.margin == pytest.approx(30.0)


def test_partial_close_refuses_to_leave_dust(gateway, feed, tracker, meta, reallocator):
    gateway.positions = [Position("BTCUSDT", Side.LONG, 100.0, 0.15, 10)]
    tracker.refresh()
    ctl = _controller(gateway, feed, tracker, meta, reallocator)

    with pytest.raises(ValueError):
        ctl.partial_close(Side.LONG, 50.0)
    assert gateway.calls_named("close_position") == []
