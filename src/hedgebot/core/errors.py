# src/hedgebot/core/errors.py
from __future__ import annotations


class InsufficientDataError(ValueError):
    """Too few bars / non-positive price: the current cycle cannot proceed."""


class CapitalTooLowError(ValueError):
    def __init__(self, message: str, *, min_capital_required: float | None = None):
        super().__init__(message)
        self.min_capital_required = min_capital_required


class ConfigError(SystemExit):
    """Fatal startup configuration problem (exits non-zero)."""

    def __init__(self, message: str):
        super().__init__(message)


class InsufficientMarginError(RuntimeError):
    """Reallocation could not free enough margin for a required open."""

    def __init__(self, message: str, *, required: float, available: float):
        super().__init__(message)
        self.required = float(required)
        self.available = float(available)
