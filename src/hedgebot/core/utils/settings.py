# src/hedgebot/core/utils/settings.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

import yaml

from src.hedgebot.core.errors import ConfigError

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or os.environ.get("LOG_LEVEL", "INFO")).upper(),
        format=LOG_FORMAT,
    )


def _load_yaml(path: Path) -> Dict[str, Any]:
    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ConfigError("Config root must be a mapping (dict).")
    return data


def load_config(cli_path: Optional[str], *, env_var: str, default_path: str) -> Dict[str, Any]:
    """--config > $env_var > default_path. A missing file is fatal."""
    path = Path(cli_path or os.environ.get(env_var) or default_path)
    if not path.exists():
        raise ConfigError(f"Config not found: {path} (pass --config or set {env_var})")
    cfg = _load_yaml(path)
    cfg["_path"] = str(path)
    return cfg


def pick(
    cli_value: Any,
    env_name: Optional[str],
    cfg: Mapping[str, Any],
    key: str,
    default: Any,
    cast: Callable[[Any], Any] = str,
    env: Optional[Mapping[str, str]] = None,
) -> Any:
    """CLI flag > environment variable > YAML > default."""
    env = os.environ if env is None else env
    if cli_value is not None:
        return cast(cli_value)
    if env_name and env.get(env_name) not in (None, ""):
        return cast(env[env_name])
    if cfg.get(key) is not None:
        return cast(cfg[key])
    return default


@dataclass(slots=True)
class Credentials:
    api_key: str
    api_secret: str
    passphrase: str = ""


def require_credentials(
    *,
    key: Optional[str] = None,
    secret: Optional[str] = None,
    passphrase: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Credentials:
    env = os.environ if env is None else env
    api_key = key or env.get("BITGET_API_KEY", "")
    api_secret = secret or env.get("BITGET_API_SECRET", "")
    if not api_key or not api_secret:
        raise ConfigError("BITGET_API_KEY and BITGET_API_SECRET are required (env or --key/--secret)")
    return Credentials(
        api_key=api_key,
        api_secret=api_secret,
        passphrase=passphrase or env.get("BITGET_PASSPHRASE", ""),
    )
