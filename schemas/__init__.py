"""
schemas/__init__.py
Central exports for lightweight data structures used across ShelfSight.

We keep each schema in its own module (frame, prediction, result)
and re-export them here for convenience:

    from schemas import Frame, Prediction, RenderedResult, ScoreItem

This file should remain VERY lightweight (no heavy imports or model code).
"""

from .frame import Frame
from .prediction import Prediction
from .result import RenderedResult, ScoreItem

__all__ = [
    "Frame",
    "Prediction",
    "RenderedResult",
    "ScoreItem",
]
