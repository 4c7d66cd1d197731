from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_DOWN, ROUND_FLOOR, ROUND_HALF_UP, ROUND_UP, Decimal


def round_to_step(value: object, step: object, *, rounding="down") -> Decimal:
    """Round `value` to an exchange `step` using a chosen rounding mode.

    `rounding` may be either:
      - a Decimal rounding constant (e.g. ROUND_FLOOR, ROUND_CEILING, ...)
      - a string alias: 'down'/'floor', 'up'/'ceil', 'toward_zero', 'away_zero', 'half_up'
    """
    v = Decimal(str(value))
    s = Decimal(str(step))
    if s == 0:
        return v

    if isinstance(rounding, str):
        r = rounding.strip().lower()
        if r in ("down", "floor"):
            rounding = ROUND_FLOOR
        elif r in ("up", "ceil", "ceiling"):
            rounding = ROUND_CEILING
        elif r in ("toward_zero", "trunc", "truncate"):
            rounding = ROUND_DOWN
        elif r in ("away_zero",):
            rounding = ROUND_UP
        elif r in ("half_up", "nearest", "round"):
            rounding = ROUND_HALF_UP
        else:
            raise ValueError(f"Unsupported rounding alias: {rounding!r}")

    q = (v / s).to_integral_value(rounding=rounding)
    return q * s


def as_float_clean(d: Decimal) -> float:
    # avoid floats like 55.300000000000004 by going through str
    return float(format(d.normalize(), "f"))


def floor_to_step(value: float, step: float) -> float:
    return as_float_clean(round_to_step(value, step, rounding="down")) if step else float(value)


def round_to_tick(value: float, tick: float) -> float:
    return as_float_clean(round_to_step(value, tick, rounding="half_up")) if tick else float(value)
