"""Position tracker resync, filtering and failure retention."""

from __future__ import annotations

import pytest

from fakes import FakeGateway
from src.hedgebot.core.models.enums import Side
from src.hedgebot.core.models.position import Position, normalize_symbol
from src.hedgebot.core.position import PositionTracker


def test_normalize_symbol_strips_margin_suffix():
    assert normalize_symbol("btcusdt_umcbl") == "BTCUSDT"
    assert normalize_symbol("ETHUSD_DMCBL") == "ETHUSD"
    assert normalize_symbol(" solusdt ") == "SOLUSDT"


def test_refresh_keeps_only_own_symbol_and_valid_positions():
    gw = FakeGateway(positions=[
        Position("BTCUSDT_UMCBL", Side.LONG, 100.0, 1.0, 10),
        Position("ETHUSDT", Side.SHORT, 50.0, 1.0, 10),
        Position("BTCUSDT", Side.SHORT, 0.0, 1.0, 10),
    ])
    t = PositionTracker(gateway=gw, symbol="BTCUSDT_UMCBL")

    assert t.refresh() is True
    assert t.long.symbol == "BTCUSDT_UMCBL"
    assert t.short is None


def test_refresh_keeps_first_of_duplicate_side():
    gw = FakeGateway(positions=[
        Position("BTCUSDT", Side.LONG, 100.0, 1.0, 10),
        Position("BTCUSDT", Side.LONG, 200.0, 2.0, 10),
    ])
    t = PositionTracker(gateway=gw, symbol="BTCUSDT")

    t.refresh()

    assert t.long.entry_price == 100.0
    assert len(t.positions()) == 1


def test_refresh_is_a_full_resync():
    gw = FakeGateway(positions=[Position("BTCUSDT", Side.LONG, 100.0, 1.0, 10)])
    t = PositionTracker(gateway=gw, symbol="BTCUSDT")
    t.refresh()

    gw.positions = []
    t.refresh()

    assert t.positions() == []


def test_refresh_error_retains_previous_state():
    gw = FakeGateway(positions=[Position("BTCUSDT", Side.SHORT, 100.0, 1.0, 10)])
    t = PositionTracker(gateway=gw, symbol="BTCUSDT")
    t.refresh()

    gw.fail["get_all_positions"] = RuntimeError("timeout")

    assert t.refresh() is False
    assert t.short is not None


def test_record_open_refuses_occupied_side():
    t = PositionTracker(gateway=FakeGateway(), symbol="BTCUSDT")
    t.record_open(Position("BTCUSDT", Side.LONG, 100.0, 1.0, 10))

    with pytest.raises(RuntimeError):
        t.record_open(Position("BTCUSDT", Side.LONG, 101.0, 1.0, 10))


def test_record_update_clears_emptied_slot():
    t = PositionTracker(gateway=FakeGateway(), symbol="BTCUSDT")
    pos = Position("BTCUSDT", Side.SHORT, 100.0, 1.0, 10)
    t.record_open(pos)

    t.record_update(pos.reduced(0.4))
    assert t.short.size == pytest.approx(0.6)
    assert t.short.entry_price == 100.0

    t.record_update(pos.reduced(1.0))
    assert not t.has(Side.SHORT)
