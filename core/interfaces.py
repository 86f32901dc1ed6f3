"""
core/interfaces.py

Defines abstract interfaces (contracts) for the pluggable ends of the
pipeline: where frames come from and where results go.

We don't put any heavy logic here, only method signatures and docstrings.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional, Tuple

import numpy as np


class FrameSource(ABC):
    """
    Camera-like source.

    Responsibility:
      - Deliver the latest frame on request.
      - Know the stream's frame size once ready.
      - Release the device on stop().
    """

    @abstractmethod
    def start(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def wait_until_ready(self, timeout: Optional[float] = None) -> Tuple[int, int]:
        """Block until (width, height) is known."""
        raise NotImplementedError

    @abstractmethod
    def read_latest(self, timeout: float = 1.0) -> Optional[np.ndarray]:
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        raise NotImplementedError


class DisplaySurface(ABC):
    """
    Write-only sink keyed by semantic field name.

    Known fields: "status", "result", "best", "error", "fps" and
    "score:<label>" per class. Implementations decide how (and whether)
    to show each one.
    """

    @abstractmethod
    def write(self, field: str, value: Any) -> None:
        raise NotImplementedError

    def clear(self, field: str) -> None:
        """Remove a field (e.g. the error line once frames succeed again)."""
        self.write(field, None)

    def show_frame(self, image: np.ndarray) -> None:
        """Latest camera image to draw the fields on. Optional."""
        return

    def pump(self) -> bool:
        """
        Refresh the surface once.

        Returns False when the user asked to quit.
        """
        return True

    def close(self) -> None:
        return
