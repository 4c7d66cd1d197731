from __future__ import annotations

import pytest

from fakes import FakeFeed, FakeGateway
from src.hedgebot.core.market.meta import MarketMetaCache
from src.hedgebot.core.models.market import ContractSpec
from src.hedgebot.core.position.tracker import PositionTracker
from src.hedgebot.core.risk.policy import ReallocationPolicy
from src.hedgebot.core.risk.reallocation import CapitalReallocator

SYMBOL = "BTCUSDT_UMCBL"


@pytest.fixture
def contract():
    return ContractSpec(symbol="BTCUSDT", price_tick=0.01, size_step=0.001, min_trade_size=0.001)


@pytest.fixture
def gateway(contract):
    return FakeGateway(equity=1000.0, contract=contract, prices={"BTCUSDT": 100.0})


@pytest.fixture
def feed():
    return FakeFeed(prices={"BTCUSDT": 100.0})


@pytest.fixture
def meta(gateway):
    return MarketMetaCache(gateway, symbol=SYMBOL)


@pytest.fixture
def tracker(gateway):
    return PositionTracker(gateway=gateway, symbol=SYMBOL)


@pytest.fixture
def reallocator(gateway, feed):
    return CapitalReallocator(
        gateway=gateway,
        feed=feed,
        policy=ReallocationPolicy(settle_sec=0.0),
    )
