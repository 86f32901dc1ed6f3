import threading

import numpy as np
import pytest

from core.camera import CameraSource
from core.errors import CameraError, SetupTimeoutError


class FakeCapture:
    """Stands in for cv2.VideoCapture."""

    def __init__(self, opened=True, frame=None):
        self.opened = opened
        self.frame = frame
        self.released = False
        self.reads = 0
        self._lock = threading.Lock()

    def isOpened(self):
        return self.opened and not self.released

    def read(self):
        with self._lock:
            self.reads += 1
        if self.frame is None or self.released:
            return False, None
        return True, self.frame.copy()

    def release(self):
        self.released = True


def opener_for(captures):
    opened = []

    def _open(index, **kw):
        opened.append(index)
        return captures[index]

    _open.opened = opened
    return _open


FRAME = np.zeros((48, 64, 3), dtype=np.uint8)


class TestCameraSource:
    def test_preferred_index_first(self):
        caps = {1: FakeCapture(frame=FRAME), 0: FakeCapture(frame=FRAME)}
        opener = opener_for(caps)
        src = CameraSource([1, 0], opener=opener)
        assert src.index == 1
        assert opener.opened == [1]
        src.stop()

    def test_falls_back_to_next_index(self):
        caps = {1: FakeCapture(opened=False), 0: FakeCapture(frame=FRAME)}
        src = CameraSource([1, 0], opener=opener_for(caps))
        assert src.index == 0
        assert caps[1].released
        src.stop()

    def test_no_camera_raises(self):
        caps = {1: FakeCapture(opened=False), 0: FakeCapture(opened=False)}
        with pytest.raises(CameraError):
            CameraSource([1, 0], opener=opener_for(caps))

    def test_ready_reports_frame_size_and_serves_frames(self):
        cap = FakeCapture(frame=FRAME)
        src = CameraSource([0], opener=opener_for({0: cap}))
        src.start()
        try:
            assert src.wait_until_ready(timeout=2.0) == (64, 48)
            assert src.frame_size == (64, 48)
            frame = src.read_latest(timeout=1.0)
            assert frame is not None
            assert frame.shape == (48, 64, 3)
        finally:
            src.stop()

    def test_no_frame_times_out(self):
        src = CameraSource([0], opener=opener_for({0: FakeCapture(frame=None)}))
        src.start()
        try:
            with pytest.raises(SetupTimeoutError):
                src.wait_until_ready(timeout=0.05)
            assert src.read_latest(timeout=0.01) is None
        finally:
            src.stop()

    def test_stop_releases_and_is_idempotent(self):
        cap = FakeCapture(frame=FRAME)
        src = CameraSource([0], opener=opener_for({0: cap}))
        src.start()
        src.stop()
        src.stop()
        assert cap.released
        assert src.cap is None
