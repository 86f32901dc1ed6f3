"""
core/camera.py

Threaded camera capture using OpenCV.

Responsibility:
  - Open a webcam (preferred index first, then the fallbacks).
  - Run a background thread that always keeps the latest frame.
  - Report readiness once the first frame (and so the frame size) is known.
  - Provide a read_latest() method for the main loop.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Callable, Iterable, Optional, Tuple

import cv2
import numpy as np

from .errors import CameraError, SetupTimeoutError
from .interfaces import FrameSource

log = logging.getLogger("shelfsight.camera")


def open_camera(index: int = 0, w: int = 640, h: int = 480, fps: int = 30,
                mjpeg: bool = True, buffersize: int = 1,
                api: int = cv2.CAP_ANY) -> cv2.VideoCapture:
    """
    Configure and open a camera.

    - index      : camera index (0 = default)
    - w, h       : resolution (width, height)
    - fps        : desired frames per second
    - mjpeg      : if True, ask camera for MJPEG stream (often lower latency)
    - buffersize : how many frames OpenCV keeps in its internal buffer
    - api        : OpenCV capture backend (cv2.CAP_DSHOW on Windows, ...)
    """
    cap = cv2.VideoCapture(index, api)

    if mjpeg:
        cap.set(cv2.CAP_PROP_FOURCC, cv2.VideoWriter_fourcc(*"MJPG"))

    cap.set(cv2.CAP_PROP_FRAME_WIDTH, w)
    cap.set(cv2.CAP_PROP_FRAME_HEIGHT, h)
    cap.set(cv2.CAP_PROP_FPS, fps)
    cap.set(cv2.CAP_PROP_BUFFERSIZE, buffersize)

    return cap


class CameraSource(FrameSource):
    """
    Threaded camera source that always keeps the most recent frame.

    Usage:
        src = CameraSource([1, 0])
        src.start()
        src.wait_until_ready(timeout=10.0)
        frame = src.read_latest()
        ...
        src.stop()
    """

    def __init__(
        self,
        indices: Iterable[int] = (0,),
        opener: Callable[..., cv2.VideoCapture] = open_camera,
        **kw,
    ) -> None:
        self.cap = None
        self.index: Optional[int] = None

        tried = []
        for index in indices:
            tried.append(index)
            cap = opener(index, **kw)
            if cap is not None and cap.isOpened():
                self.cap = cap
                self.index = int(index)
                break
            if cap is not None:
                cap.release()
            log.warning("Camera index %s could not be opened", index)

        if self.cap is None:
            raise CameraError(
                f"Camera not available (tried indices {tried}); "
                "check that a camera is connected, not in use, and access is allowed"
            )

        log.info("Camera opened (index=%d)", self.index)

        self._q: "queue.Queue[np.ndarray]" = queue.Queue(maxsize=1)
        self._running: bool = False
        self._ready = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._frame_size: Optional[Tuple[int, int]] = None

    def _producer(self) -> None:
        """Background thread: keeps reading frames from camera."""
        while self._running:
            cap = self.cap
            if cap is None:
                break
            ok, frame = cap.read()
            if not ok or frame is None:
                time.sleep(0.005)
                continue

            if self._frame_size is None:
                h, w = frame.shape[:2]
                self._frame_size = (int(w), int(h))
                self._ready.set()

            if not self._q.empty():
                try:
                    self._q.get_nowait()
                except queue.Empty:
                    pass

            self._q.put(frame)

    def start(self) -> None:
        """Start background capture thread."""
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(target=self._producer, name="camera-producer", daemon=True)
        self._thread.start()

    @property
    def frame_size(self) -> Optional[Tuple[int, int]]:
        """(width, height) of the stream, known once the first frame arrived."""
        return self._frame_size

    def wait_until_ready(self, timeout: Optional[float] = 10.0) -> Tuple[int, int]:
        """
        Block until the stream metadata (frame size) is known.

        Raises SetupTimeoutError when no frame arrives within timeout seconds.
        """
        if not self._ready.wait(timeout=timeout):
            raise SetupTimeoutError(
                f"Camera {self.index} delivered no frame within {timeout}s"
            )
        w, h = self._frame_size
        log.info("Camera ready: %dx%d", w, h)
        return w, h

    def read_latest(self, timeout: float = 1.0) -> Optional[np.ndarray]:
        """
        Get the most recent frame.

        timeout (seconds) avoids blocking forever.
        Returns None if no frame arrives in time.
        """
        try:
            return self._q.get(timeout=timeout)
        except queue.Empty:
            return None

    def stop(self) -> None:
        """Stop capturing and release the camera. Safe to call twice."""
        self._running = False
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=2.0)
            if self._thread.is_alive():
                log.warning("Camera thread did not stop in time")
        self._thread = None
        if self.cap is not None:
            self.cap.release()
            self.cap = None
            log.info("Camera released")
