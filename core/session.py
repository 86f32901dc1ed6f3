"""
core/session.py

Everything one run of the pipeline needs, in one object instead of
module-level globals: config, numeric engine, camera, model, label set,
preprocessor, invoker and display.

setup() brings the pieces up in order (backend -> camera -> model ->
warm-up) and raises an InitializationError subclass on the first
failure. teardown() releases everything and is safe to call from any
exit path, any number of times.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from classifier.inference import InferenceInvoker
from classifier.model import ClassifierModel, load_model
from classifier.preprocess import FramePreprocessor

from .camera import CameraSource
from .config import Config
from .device import NumericEngine
from .errors import InitializationError, ModelLoadError
from .interfaces import DisplaySurface, FrameSource

log = logging.getLogger("shelfsight.session")


class Session:
    def __init__(
        self,
        cfg: Config,
        display: DisplaySurface,
        engine: Optional[NumericEngine] = None,
        camera_factory: Optional[Callable[[], FrameSource]] = None,
        model_loader: Callable[..., ClassifierModel] = load_model,
    ) -> None:
        self.cfg = cfg
        self.display = display
        self.engine = engine or NumericEngine(cfg.runtime.backends)
        self.labels: List[str] = [str(label) for label in cfg.model.labels]
        self.preprocessor = FramePreprocessor.from_config(cfg.preprocess)

        self.camera: Optional[FrameSource] = None
        self.model: Optional[ClassifierModel] = None
        self.invoker: Optional[InferenceInvoker] = None

        self._camera_factory = camera_factory or self._open_camera
        self._model_loader = model_loader
        self._torn_down = False

    def _open_camera(self) -> FrameSource:
        cam = self.cfg.camera
        indices = [int(cam.index)] + [int(i) for i in cam.fallback_indices if int(i) != int(cam.index)]
        return CameraSource(
            indices=indices,
            w=cam.width,
            h=cam.height,
            fps=cam.fps,
            mjpeg=cam.mjpeg,
            buffersize=1,
        )

    @property
    def ready(self) -> bool:
        return self.invoker is not None and not self._torn_down

    def setup(self) -> None:
        """
        Bring the session up. Raises InitializationError (or a subclass)
        on the first step that fails; later steps are not attempted.
        """
        cfg = self.cfg

        self.display.write("status", "Selecting backend...")
        backend = self.engine.select()

        self.display.write("status", "Starting camera...")
        self.camera = self._camera_factory()
        self.camera.start()
        w, h = self.camera.wait_until_ready(timeout=cfg.camera.ready_timeout_sec)
        log.info("Camera stream %dx%d", w, h)

        self.display.write("status", "Loading model...")
        self.model = self._model_loader(
            cfg.model.path,
            device=self.engine.device,
            input_layout=cfg.model.input_layout,
            timeout_sec=cfg.model.load_timeout_sec,
        )

        if cfg.model.warmup:
            try:
                with self.engine.scope() as scope:
                    width = self.model.warmup(cfg.preprocess.input_size, scope)
            except InitializationError:
                raise
            except Exception as e:
                raise ModelLoadError(f"Model warm-up failed: {e}") from e
            self.check_label_parity(width)

        self.invoker = InferenceInvoker(self.model, cfg.model.output_activation)
        self.display.write("status", f"Running on {backend.name}")
        log.info(
            "Session ready | backend=%s labels=%s input=%d",
            backend.name,
            self.labels,
            cfg.preprocess.input_size,
        )

    def check_label_parity(self, output_width: int) -> bool:
        """
        Label i must describe score i. A width mismatch means the label
        list and the model do not belong together; we warn and keep going
        (missing scores render as 0, extra ones are ignored).
        """
        if output_width == len(self.labels):
            return True
        log.warning(
            "Model outputs %d scores but %d labels are configured (%s); "
            "check that model.labels matches the training order",
            output_width,
            len(self.labels),
            self.labels,
        )
        return False

    def on_backend_switched(self) -> None:
        """Move the model after NumericEngine.fallback() changed device."""
        if self.model is not None:
            self.model.to(self.engine.device)
        self.display.write("status", f"Running on {self.engine.backend.name} (fallback)")

    def teardown(self) -> None:
        """Release camera, model, engine state and display. Idempotent."""
        if self._torn_down:
            return
        self._torn_down = True

        if self.camera is not None:
            try:
                self.camera.stop()
            except Exception:
                log.exception("Error while stopping camera source")
            self.camera = None

        if self.model is not None:
            self.model.dispose()
            self.model = None
        self.invoker = None

        self.engine.reset()

        try:
            self.display.write("status", "Stopped")
            self.display.close()
        except Exception:
            log.exception("Error while closing display")

        log.info("Session torn down")
