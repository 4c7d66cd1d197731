# src/hedgebot/run_range_bot.py
from __future__ import annotations

import argparse
import logging
from typing import Any, Dict, Optional, Sequence

from dotenv import load_dotenv

from src.hedgebot.core.engine.scheduler import DEFAULT_ERROR_BACKOFF_SEC, CycleScheduler
from src.hedgebot.core.market.meta import MarketMetaCache
from src.hedgebot.core.risk.policy import RangePolicy, ReallocationPolicy, _as_bool
from src.hedgebot.core.risk.reallocation import CapitalReallocator
from src.hedgebot.core.strategy.range_controller import RangeController
from src.hedgebot.core.utils.settings import load_config, pick, require_credentials, setup_logging
from src.hedgebot.exchanges.registry import build_feed, build_gateway

log = logging.getLogger("src.hedgebot.run_range_bot")

DEFAULT_CONFIG = "config/range_bot.yaml"


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Hourly range mean-reversion bot with take-profit (Bitget USDT-M)")
    ap.add_argument("--config", help="YAML config (default: $RANGE_BOT_CONFIG or config/range_bot.yaml)")
    ap.add_argument("--key")
    ap.add_argument("--secret")
    ap.add_argument("--passphrase")
    ap.add_argument("--symbol")
    ap.add_argument("--margin-coin", dest="margin_coin")
    ap.add_argument("--capital", type=float, help="margin per trade (min 1)")
    ap.add_argument("--leverage", type=int)
    ap.add_argument("--price-tick", type=float, dest="price_tick")
    ap.add_argument("--size-step", type=float, dest="size_step")
    ap.add_argument(
        "--stream", action="store_const", const=True, default=None,
        help="run one cycle per closed bar from the kline stream instead of the wall clock",
    )
    ap.add_argument("--log-level", dest="log_level")
    return ap


def resolve_settings(args: argparse.Namespace, cfg: Dict[str, Any], env=None) -> Dict[str, Any]:
    return {
        "symbol": pick(args.symbol, "RANGE_SYMBOL", cfg, "symbol", "BTCUSDT_UMCBL", env=env),
        "margin_coin": pick(args.margin_coin, "RANGE_MARGIN_COIN", cfg, "margin_coin", "USDT", env=env),
        "capital": pick(args.capital, "RANGE_CAPITAL", cfg, "capital", 10.0, float, env=env),
        "leverage": pick(args.leverage, "RANGE_LEVERAGE", cfg, "leverage", 10, int, env=env),
        "price_tick": pick(args.price_tick, "RANGE_PRICE_TICK", cfg, "price_tick", 0.0, float, env=env),
        "size_step": pick(args.size_step, "RANGE_SIZE_STEP", cfg, "size_step", 0.0, float, env=env),
        "stream": pick(args.stream, "RANGE_STREAM", cfg, "stream", False, lambda v: _as_bool(v, False), env=env),
        "error_backoff_sec": pick(None, None, cfg, "error_backoff_sec", DEFAULT_ERROR_BACKOFF_SEC, float, env=env),
        "log_level": pick(args.log_level, "LOG_LEVEL", cfg, "log_level", "INFO", env=env),
    }


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    load_dotenv(override=False)

    cfg = load_config(args.config, env_var="RANGE_BOT_CONFIG", default_path=DEFAULT_CONFIG)
    s = resolve_settings(args, cfg)
    setup_logging(s["log_level"])

    creds = require_credentials(key=args.key, secret=args.secret, passphrase=args.passphrase)

    log.info("=== RANGE BOT START ===")
    log.info("Config: %s", cfg.get("_path"))

    gateway = build_gateway(
        "bitget",
        api_key=creds.api_key,
        api_secret=creds.api_secret,
        passphrase=creds.passphrase,
        default_leverage=s["leverage"],
    )
    feed = build_feed("binance")

    policy = RangePolicy.from_dict(cfg.get("range"))
    policy.capital = s["capital"]

    controller = RangeController(
        gateway=gateway,
        feed=feed,
        meta=MarketMetaCache(gateway, symbol=s["symbol"], price_tick=s["price_tick"], size_step=s["size_step"]),
        reallocator=CapitalReallocator(
            gateway=gateway,
            feed=feed,
            margin_coin=s["margin_coin"],
            policy=ReallocationPolicy.from_dict(cfg.get("reallocation")),
        ),
        symbol=s["symbol"],
        margin_coin=s["margin_coin"],
        leverage=s["leverage"],
        policy=policy,
    )

    scheduler = CycleScheduler(
        controller.run_cycle,
        align=policy.interval,
        error_backoff_sec=s["error_backoff_sec"],
        name="RANGE",
    )
    stream = feed.subscribe(controller.feed_symbol, policy.interval) if s["stream"] else None
    scheduler.install_signal_handlers(on_signal=stream.stop if stream is not None else None)

    controller.on_start()
    try:
        if stream is not None:
            scheduler.run_on_bars(stream)
        else:
            scheduler.run()
    finally:
        controller.on_stop()
        log.info("=== RANGE BOT STOP ===")


if __name__ == "__main__":
    main()
