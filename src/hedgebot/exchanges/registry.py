from __future__ import annotations
from src.hedgebot.exchanges.base.feed import PriceFeed
from src.hedgebot.exchanges.base.gateway import ExecutionGateway
from src.hedgebot.exchanges.binance.klines import BinanceKlinesFeed
from src.hedgebot.exchanges.bitget.gateway import BitgetGateway
from src.hedgebot.exchanges.bitget.rest import BitgetMixREST


def build_gateway(
    name: str,
    *,
    api_key: str,
    api_secret: str,
    passphrase: str = "",
    default_leverage: int = 10,
) -> ExecutionGateway:
    name = name.lower()
    if name == "bitget":
        return BitgetGateway(BitgetMixREST(api_key, api_secret, passphrase), default_leverage=default_leverage)
    raise ValueError(f"Unknown exchange: {name}")


def build_feed(name: str = "binance") -> PriceFeed:
    name = name.lower()
    if name == "binance":
        return BinanceKlinesFeed()
    raise ValueError(f"Unknown price feed: {name}")
