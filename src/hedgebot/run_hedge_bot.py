# src/hedgebot/run_hedge_bot.py
from __future__ import annotations

import argparse
import logging
from typing import Any, Dict, Optional, Sequence

from dotenv import load_dotenv

from src.hedgebot.analysis.trend_classifier import DEFAULT_MODEL, GeminiTrendClassifier
from src.hedgebot.core.engine.scheduler import DEFAULT_ERROR_BACKOFF_SEC, CycleScheduler
from src.hedgebot.core.market.meta import MarketMetaCache
from src.hedgebot.core.position.tracker import PositionTracker
from src.hedgebot.core.risk.policy import HedgePolicy, ReallocationPolicy, _as_bool
from src.hedgebot.core.risk.reallocation import CapitalReallocator
from src.hedgebot.core.strategy.hedge_controller import HedgeController
from src.hedgebot.core.strategy.suggestions import SuggestionExecutor
from src.hedgebot.core.utils.settings import load_config, pick, require_credentials, setup_logging
from src.hedgebot.exchanges.registry import build_feed, build_gateway

log = logging.getLogger("src.hedgebot.run_hedge_bot")

DEFAULT_CONFIG = "config/hedge_bot.yaml"


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Trend-driven long/short hedge bot (Bitget USDT-M)")
    ap.add_argument("--config", help="YAML config (default: $HEDGE_BOT_CONFIG or config/hedge_bot.yaml)")
    ap.add_argument("--key")
    ap.add_argument("--secret")
    ap.add_argument("--passphrase")
    ap.add_argument("--symbol")
    ap.add_argument("--margin-coin", dest="margin_coin")
    ap.add_argument("--capital", type=float, help="total margin for both sides (0 = account equity)")
    ap.add_argument("--leverage", type=int)
    ap.add_argument("--interval", type=float, dest="interval_minutes", help="minutes between cycles")
    ap.add_argument("--price-tick", type=float, dest="price_tick")
    ap.add_argument("--size-step", type=float, dest="size_step")
    ap.add_argument("--model", dest="gemini_model")
    ap.add_argument("--apply-ai-suggestions", action="store_const", const=True, default=None)
    ap.add_argument("--log-level", dest="log_level")
    return ap


def resolve_settings(args: argparse.Namespace, cfg: Dict[str, Any], env=None) -> Dict[str, Any]:
    def flag(v):
        return _as_bool(v, False)

    return {
        "symbol": pick(args.symbol, "HEDGE_SYMBOL", cfg, "symbol", "BTCUSDT_UMCBL", env=env),
        "margin_coin": pick(args.margin_coin, "HEDGE_MARGIN_COIN", cfg, "margin_coin", "USDT", env=env),
        "capital": pick(args.capital, "HEDGE_CAPITAL", cfg, "capital", 0.0, float, env=env),
        "leverage": pick(args.leverage, "HEDGE_LEVERAGE", cfg, "leverage", 10, int, env=env),
        "interval_minutes": pick(args.interval_minutes, "HEDGE_INTERVAL_MINUTES", cfg, "interval_minutes", 5.0, float, env=env),
        "price_tick": pick(args.price_tick, "HEDGE_PRICE_TICK", cfg, "price_tick", 0.0, float, env=env),
        "size_step": pick(args.size_step, "HEDGE_SIZE_STEP", cfg, "size_step", 0.0, float, env=env),
        "gemini_model": pick(args.gemini_model, "GEMINI_MODEL", cfg, "gemini_model", DEFAULT_MODEL, env=env),
        "apply_ai_suggestions": pick(
            args.apply_ai_suggestions, "HEDGE_APPLY_AI_SUGGESTIONS", cfg, "apply_ai_suggestions", False, flag, env=env,
        ),
        "error_backoff_sec": pick(None, None, cfg, "error_backoff_sec", DEFAULT_ERROR_BACKOFF_SEC, float, env=env),
        "log_level": pick(args.log_level, "LOG_LEVEL", cfg, "log_level", "INFO", env=env),
    }


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    load_dotenv(override=False)

    cfg = load_config(args.config, env_var="HEDGE_BOT_CONFIG", default_path=DEFAULT_CONFIG)
    s = resolve_settings(args, cfg)
    setup_logging(s["log_level"])

    creds = require_credentials(key=args.key, secret=args.secret, passphrase=args.passphrase)

    log.info("=== HEDGE BOT START ===")
    log.info("Config: %s", cfg.get("_path"))
    log.info(
        "symbol=%s capital=%s lev=%dx interval=%.1fmin ai_suggestions=%s",
        s["symbol"], s["capital"] or "equity", s["leverage"], s["interval_minutes"], s["apply_ai_suggestions"],
    )

    gateway = build_gateway(
        "bitget",
        api_key=creds.api_key,
        api_secret=creds.api_secret,
        passphrase=creds.passphrase,
        default_leverage=s["leverage"],
    )
    feed = build_feed("binance")

    hedge_policy = HedgePolicy.from_dict(cfg.get("hedge"))
    hedge_policy.apply_ai_suggestions = bool(s["apply_ai_suggestions"])

    meta = MarketMetaCache(gateway, symbol=s["symbol"], price_tick=s["price_tick"], size_step=s["size_step"])
    controller = HedgeController(
        gateway=gateway,
        feed=feed,
        tracker=PositionTracker(gateway=gateway, symbol=s["symbol"], margin_coin=s["margin_coin"]),
        meta=meta,
        reallocator=CapitalReallocator(
            gateway=gateway,
            feed=feed,
            margin_coin=s["margin_coin"],
            policy=ReallocationPolicy.from_dict(cfg.get("reallocation")),
        ),
        classifier=GeminiTrendClassifier(model=s["gemini_model"]),
        symbol=s["symbol"],
        margin_coin=s["margin_coin"],
        leverage=s["leverage"],
        capital=s["capital"],
        policy=hedge_policy,
    )
    if hedge_policy.apply_ai_suggestions:
        controller.suggestions = SuggestionExecutor(controller)

    scheduler = CycleScheduler(
        controller.run_cycle,
        interval_sec=s["interval_minutes"] * 60.0,
        error_backoff_sec=s["error_backoff_sec"],
        name="HEDGE",
    )
    scheduler.install_signal_handlers()

    controller.on_start()
    try:
        scheduler.run()
    finally:
        controller.on_stop()
        log.info("=== HEDGE BOT STOP ===")


if __name__ == "__main__":
    main()
