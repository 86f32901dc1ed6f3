"""
Shared fixtures: CPU-only engine, fake camera, fixed-score models and a
fake clock. Nothing here needs a webcam, a GPU or a display.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np
import pytest
import torch

from classifier.model import ClassifierModel
from core.config import Config
from core.device import NumericEngine
from core.errors import SetupTimeoutError
from core.interfaces import FrameSource
from core.session import Session
from ui.display import HeadlessDisplay

LABELS = ["Big Lot", "C Press", "Snyders"]


class FakeCamera(FrameSource):
    """Always returns a copy of the same BGR image."""

    def __init__(self, image: Optional[np.ndarray] = None, ready: bool = True) -> None:
        self.image = image if image is not None else np.full((48, 64, 3), 128, dtype=np.uint8)
        self.ready = ready
        self.started = False
        self.stopped = False
        self.reads = 0

    def start(self) -> None:
        self.started = True

    def wait_until_ready(self, timeout: Optional[float] = None) -> Tuple[int, int]:
        if not self.ready:
            raise SetupTimeoutError("fake camera never delivered a frame")
        h, w = self.image.shape[:2]
        return w, h

    def read_latest(self, timeout: float = 1.0) -> Optional[np.ndarray]:
        if self.stopped:
            return None
        self.reads += 1
        return self.image.copy()

    def stop(self) -> None:
        self.stopped = True


class FixedScores(torch.nn.Module):
    """Ignores the input and returns the same [1, C] scores every call."""

    def __init__(self, scores: Sequence[float]) -> None:
        super().__init__()
        self.register_buffer("scores", torch.tensor([list(scores)], dtype=torch.float32))
        self.calls = 0

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        self.calls += 1
        return self.scores.to(x.device).expand(x.shape[0], -1).clone()


class FailingModel(torch.nn.Module):
    """Raises on the first `failures` calls, then returns fixed scores."""

    def __init__(self, scores: Sequence[float], failures: int = 10**9) -> None:
        super().__init__()
        self.inner = FixedScores(scores)
        self.failures = failures
        self.calls = 0

    def forward(self, x: torch.Tensor) -> torch.Tensor:
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError("simulated device fault")
        return self.inner(x)


class FakeClock:
    def __init__(self, start: float = 0.0) -> None:
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def loader_for(module: torch.nn.Module) -> Callable[..., ClassifierModel]:
    def _load(path, device="cpu", input_layout="nhwc", timeout_sec=None) -> ClassifierModel:
        module.to(device)
        return ClassifierModel(module, device=device, input_layout=input_layout, path=str(path))

    return _load


@pytest.fixture
def logger():
    return logging.getLogger("tests")


@pytest.fixture
def test_config() -> Config:
    cfg = Config()
    cfg.model.labels = list(LABELS)
    cfg.preprocess.input_size = 32
    cfg.runtime.backends = ["cpu"]
    cfg.runtime.target_fps = 0  # unthrottled unless a test says otherwise
    cfg.ui.headless = True
    return cfg


@pytest.fixture
def cpu_engine() -> NumericEngine:
    engine = NumericEngine(["cpu"])
    engine.select()
    return engine


@pytest.fixture
def fake_camera() -> FakeCamera:
    return FakeCamera()


@pytest.fixture
def display() -> HeadlessDisplay:
    return HeadlessDisplay()


@pytest.fixture
def make_session(test_config, fake_camera, display):
    """Build a Session wired to fakes; pass `module` / `engine` to override."""

    def _make(
        module: Optional[torch.nn.Module] = None,
        engine: Optional[NumericEngine] = None,
        camera: Optional[FrameSource] = None,
        cfg: Optional[Config] = None,
    ) -> Session:
        module = module if module is not None else FixedScores([0.12, 0.81, 0.07])
        cam = camera if camera is not None else fake_camera
        return Session(
            cfg or test_config,
            display,
            engine=engine,
            camera_factory=lambda: cam,
            model_loader=loader_for(module),
        )

    return _make


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


def accelerated_engine(cpu_probe_calls: List[int]) -> NumericEngine:
    """
    Engine whose "cuda" backend initialises on the CPU device, so the
    fallback path can be exercised on machines without a GPU.
    """

    def fake_cuda() -> torch.device:
        return torch.device("cpu")

    def counting_cpu() -> torch.device:
        cpu_probe_calls.append(1)
        return torch.device("cpu")

    return NumericEngine(["cuda", "cpu"], probes={"cuda": fake_cuda, "cpu": counting_cpu})
