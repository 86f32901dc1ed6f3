"""
ui/display.py

Display surfaces the pipeline writes to.

  - OpenCVDisplay   : window with the live image and the overlay
  - HeadlessDisplay : no window; logs result/status/error changes
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import cv2
import numpy as np

from core.interfaces import DisplaySurface

from .overlay import draw_overlay

log = logging.getLogger("shelfsight.display")

ESC_KEY = 27


class HeadlessDisplay(DisplaySurface):
    """
    Keeps the latest value of every field and logs the ones a human
    would watch. Used on machines without a GUI and in tests.
    """

    LOGGED_FIELDS = ("status", "result", "error")

    def __init__(self) -> None:
        self.fields: Dict[str, Any] = {}
        self.frames_shown = 0
        self.closed = False

    def write(self, field: str, value: Any) -> None:
        if value is None:
            self.fields.pop(field, None)
            return

        previous = self.fields.get(field)
        self.fields[field] = value
        if field in self.LOGGED_FIELDS and value != previous:
            if field == "error":
                log.warning("%s: %s", field, value)
            else:
                log.info("%s: %s", field, value)

    def show_frame(self, image: np.ndarray) -> None:
        self.frames_shown += 1

    def close(self) -> None:
        self.closed = True


class OpenCVDisplay(DisplaySurface):
    """
    cv2.imshow window. pump() draws the overlay on the latest frame,
    polls the keyboard and reports whether the user wants to quit
    (ESC, 'q' or closing the window).
    """

    def __init__(self, window_title: str = "ShelfSight", ui_cfg: Any = None, wait_ms: int = 1) -> None:
        self.window_title = window_title
        self.ui_cfg = ui_cfg
        self.wait_ms = max(1, int(wait_ms))
        self.fields: Dict[str, Any] = {}
        self._image: Optional[np.ndarray] = None
        self._shown = False
        self._closed = False

        cv2.namedWindow(self.window_title, cv2.WINDOW_AUTOSIZE)

    def write(self, field: str, value: Any) -> None:
        if value is None:
            self.fields.pop(field, None)
        else:
            self.fields[field] = value

    def show_frame(self, image: np.ndarray) -> None:
        self._image = image

    def pump(self) -> bool:
        if self._closed:
            return False

        fps = self.fields.get("fps")
        display_img = draw_overlay(
            self._image,
            self.fields,
            ui_cfg=self.ui_cfg,
            fps=float(fps) if fps is not None else None,
        )
        cv2.imshow(self.window_title, display_img)
        self._shown = True

        key = cv2.waitKey(self.wait_ms) & 0xFF
        if key in (ESC_KEY, ord("q")):
            return False

        if self._shown and cv2.getWindowProperty(self.window_title, cv2.WND_PROP_VISIBLE) < 1:
            return False

        return True

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            cv2.destroyWindow(self.window_title)
        except cv2.error:
            log.debug("Window %s already gone", self.window_title)
