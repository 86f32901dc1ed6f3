"""
ui/overlay.py

Classification overlay drawn on top of the live camera image.

Responsibilities:
  - status line (backend / loading / stopped) with optional FPS
  - headline with the best label and its score
  - one line + bar per class, the best one highlighted
  - error text at the bottom when the last iteration failed

Input is the plain field map kept by the display (see core.interfaces),
so the overlay does not depend on how the scores were produced.

Config flags in cfg.ui (all optional):
  - show_fps         : bool (default True)
  - show_all_scores  : bool (default True)
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import cv2
import numpy as np

from .renderer import SCORE_FIELD_PREFIX

BEST_COLOR = (0, 220, 0)       # green (BGR)
OTHER_COLOR = (200, 200, 200)  # grey
STATUS_COLOR = (0, 255, 255)   # yellow
ERROR_COLOR = (0, 0, 255)      # red

BAR_MAX_W = 160
LINE_H = 26


def _get_ui_flag(ui_cfg: Any, name: str, default: bool) -> bool:
    """
    Safe helper to read boolean flags from cfg.ui.

    Works if ui_cfg is:
      - a dataclass (attributes)
      - a simple object with attributes
      - a dict-like object (with .get)
    """
    if ui_cfg is None:
        return default

    if isinstance(ui_cfg, dict):
        val = ui_cfg.get(name, default)
    else:
        val = getattr(ui_cfg, name, default)

    try:
        return bool(val)
    except Exception:
        return default


def _percent_to_fraction(text: Any) -> float:
    """'81.0%' -> 0.81, clipped to [0, 1] for bar drawing."""
    try:
        v = float(str(text).strip().rstrip("%")) / 100.0
    except ValueError:
        return 0.0
    if not np.isfinite(v):
        return 0.0
    return float(min(max(v, 0.0), 1.0))


def _score_lines(fields: Dict[str, Any]) -> List[Tuple[str, str]]:
    return [
        (name[len(SCORE_FIELD_PREFIX):], str(value))
        for name, value in fields.items()
        if name.startswith(SCORE_FIELD_PREFIX) and value is not None
    ]


def _put_text_boxed(
    img: np.ndarray,
    text: str,
    org: Tuple[int, int],
    scale: float,
    color: Tuple[int, int, int],
    thickness: int,
) -> None:
    """Text on a black backing box so it stays readable on any frame."""
    font = cv2.FONT_HERSHEY_SIMPLEX
    (tw, th), baseline = cv2.getTextSize(text, font, scale, thickness)
    x, y = org
    cv2.rectangle(
        img,
        (x - 2, y - th - baseline),
        (x + tw + 2, y + baseline),
        (0, 0, 0),
        thickness=-1,
    )
    cv2.putText(img, text, (x, y), font, scale, color, thickness, lineType=cv2.LINE_AA)


def draw_overlay(
    image: Optional[np.ndarray],
    fields: Dict[str, Any],
    ui_cfg: Any = None,
    fps: Optional[float] = None,
    canvas_size: Tuple[int, int] = (640, 480),
) -> np.ndarray:
    """
    Return an image (BGR) to display with the classification overlay.

    With no camera image yet, a black canvas of canvas_size (w, h) is used
    so status and errors during startup are still visible.
    """
    if image is None:
        w, h = canvas_size
        img = np.zeros((h, w, 3), dtype=np.uint8)
    else:
        img = image.copy()
    h, w = img.shape[:2]

    show_fps = _get_ui_flag(ui_cfg, "show_fps", True)
    show_all_scores = _get_ui_flag(ui_cfg, "show_all_scores", True)

    status = str(fields.get("status") or "")
    if show_fps and fps is not None and fps > 0.0:
        status = f"{status} | FPS: {fps:4.1f}" if status else f"FPS: {fps:4.1f}"
    if status:
        _put_text_boxed(img, status, (10, 25), 0.6, STATUS_COLOR, 1)

    y = 60
    result = fields.get("result")
    if result:
        _put_text_boxed(img, str(result), (10, y), 0.9, BEST_COLOR, 2)
        y += LINE_H + 10

    if show_all_scores:
        best = fields.get("best")
        for label, value in _score_lines(fields):
            if y > h - 40:
                break
            color = BEST_COLOR if label == best else OTHER_COLOR
            _put_text_boxed(img, f"{label}: {value}", (10, y), 0.55, color, 1)

            bar_x = 10 + 220
            bar_w = int(BAR_MAX_W * _percent_to_fraction(value))
            cv2.rectangle(img, (bar_x, y - 14), (bar_x + BAR_MAX_W, y), (60, 60, 60), thickness=-1)
            if bar_w > 0:
                cv2.rectangle(img, (bar_x, y - 14), (bar_x + bar_w, y), color, thickness=-1)
            y += LINE_H

    error = fields.get("error")
    if error:
        _put_text_boxed(img, str(error)[:90], (10, h - 15), 0.55, ERROR_COLOR, 1)

    return img
