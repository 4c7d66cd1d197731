# src/hedgebot/core/position/__init__.py
from .tracker import PositionTracker

__all__ = ["PositionTracker"]
