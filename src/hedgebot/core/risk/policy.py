# src/hedgebot/core/risk/policy.py
from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Dict


def _as_bool(x: Any, default: bool) -> bool:
    if x is None:
        return default
    if isinstance(x, bool):
        return x
    if isinstance(x, (int, float)):
        return bool(x)
    s = str(x).strip().lower()
    if s in ("1", "true", "yes", "y", "on"):
        return True
    if s in ("0", "false", "no", "n", "off"):
        return False
    return default


def _as_float(x: Any, default: float) -> float:
    if x in (None, ""):
        return default
    try:
        return float(x)
    except (TypeError, ValueError):
        return default


def _coerce(cls, d: Dict[str, Any] | None):
    """Build a policy dataclass from a loose mapping; unknown keys are ignored, bad values fall back."""
    d = dict(d or {})
    default = cls()
    kwargs: Dict[str, Any] = {}
    for f in fields(cls):
        if f.name not in d:
            continue
        cur = getattr(default, f.name)
        if isinstance(cur, bool):
            kwargs[f.name] = _as_bool(d[f.name], cur)
        elif isinstance(cur, int):
            kwargs[f.name] = int(_as_float(d[f.name], cur))
        elif isinstance(cur, float):
            kwargs[f.name] = _as_float(d[f.name], cur)
        else:
            kwargs[f.name] = d[f.name] if d[f.name] is not None else cur
    return cls(**kwargs)


@dataclass(slots=True)
class HedgePolicy:
    # close a side under the hedge rule when leveraged ROI >= this (inclusive)
    profit_threshold_pct: float = 5.0
    # execute classifier suggestions (add/partial/rebalance...) after the trend rules
    apply_ai_suggestions: bool = False
    min_suggestion_capital: float = 1.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any] | None) -> "HedgePolicy":
        return _coerce(cls, d)


@dataclass(slots=True)
class ReallocationPolicy:
    # extra margin requested on top of the shortfall
    buffer_pct: float = 10.0
    # a partial close may never leave less margin than this
    min_viable_margin: float = 1.0
    # when still short after freeing, capital = available * ratio
    capital_shrink_ratio: float = 0.9
    min_capital: float = 1.0
    # pause after a close so the venue settles margin
    settle_sec: float = 2.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any] | None) -> "ReallocationPolicy":
        return _coerce(cls, d)


@dataclass(slots=True)
class RangePolicy:
    interval: str = "1h"
    window: int = 720
    min_window: int = 24
    capital: float = 10.0

    @classmethod
    def from_dict(cls, d: Dict[str, Any] | None) -> "RangePolicy":
        return _coerce(cls, d)
