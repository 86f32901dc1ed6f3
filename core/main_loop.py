from __future__ import annotations

import argparse
import logging
import signal
import threading
import time
from enum import Enum
from typing import Callable, List, Optional

from schemas import Frame
from ui.display import HeadlessDisplay, OpenCVDisplay
from ui.renderer import publish, render_result

from .config import Config, load_config
from .device import get_gpu_memory_stats
from .errors import InitializationError
from .interfaces import DisplaySurface
from .logging_setup import setup_logging
from .session import Session
from .throttle import Clock, Throttle

log = logging.getLogger("shelfsight.main")

STATS_EVERY_N = 30


class LoopState(Enum):
    RUNNING = "running"
    STOPPED = "stopped"


class LoopStats:
    """Counters for the supervising loop plus a rolling FPS estimate."""

    def __init__(self) -> None:
        self.executed = 0
        self.skipped = 0
        self.failed = 0
        self.last_fps = 0.0
        self._window_start: Optional[float] = None
        self._window_frames = 0

    def record_executed(self, now: float) -> bool:
        """
        Count one executed iteration. Returns True every STATS_EVERY_N
        iterations, when last_fps has just been refreshed.
        """
        self.executed += 1
        if self._window_start is None:
            self._window_start = now
            self._window_frames = 0
            return False

        self._window_frames += 1
        if self._window_frames < STATS_EVERY_N:
            return False

        elapsed = now - self._window_start
        self.last_fps = self._window_frames / max(elapsed, 1e-6)
        self._window_start = now
        self._window_frames = 0
        return True


class SupervisingLoop:
    """
    Runs capture -> preprocess -> infer -> render once per display refresh.

    States: RUNNING (initial) and STOPPED. stop() only prevents further
    ticks; an iteration already in progress finishes normally.

    Per tick:
      - no frame available         -> skip
      - throttle says not yet      -> skip
      - otherwise run one iteration inside one tensor scope

    A failing iteration never ends the loop: it is logged, shown in the
    "error" field, and on an accelerated backend the engine gets one
    chance to fall back to its fallback backend.
    """

    def __init__(
        self,
        session: Session,
        wait_for_refresh: Optional[Callable[[], bool]] = None,
        clock: Clock = time.perf_counter,
        frame_timeout: float = 0.0,
    ) -> None:
        self.session = session
        self.state = LoopState.RUNNING
        self.stats = LoopStats()
        self.throttle = Throttle(session.cfg.runtime.target_fps, clock=clock)
        self.frame_timeout = float(frame_timeout)

        self._clock = clock
        self._wait_for_refresh = wait_for_refresh or self._sleep_until_refresh
        self._refresh_interval = 1.0 / max(float(session.cfg.runtime.refresh_hz), 1.0)
        self._frame_id = 0
        self._error_shown = False

    @property
    def running(self) -> bool:
        return self.state is LoopState.RUNNING

    def stop(self) -> None:
        if self.state is LoopState.RUNNING:
            log.info("Loop stop requested")
        self.state = LoopState.STOPPED

    def _sleep_until_refresh(self) -> bool:
        time.sleep(self._refresh_interval)
        return True

    def tick(self) -> bool:
        """
        One refresh tick. Returns True if a pipeline iteration was executed
        (successfully or not).
        """
        if self.state is not LoopState.RUNNING:
            return False

        camera = self.session.camera
        if camera is None:
            return False

        image = camera.read_latest(timeout=self.frame_timeout)
        if image is None:
            self.stats.skipped += 1
            return False
        self.session.display.show_frame(image)

        now = self._clock()
        if not self.throttle.ready(now):
            self.stats.skipped += 1
            return False

        frame = Frame(frame_id=self._frame_id, ts=now, image=image)
        self._frame_id += 1

        try:
            self._iterate(frame)
        except Exception as e:
            self._on_failure(frame, e)

        if self.stats.record_executed(now):
            self._log_stats()
        return True

    def _iterate(self, frame: Frame) -> None:
        session = self.session
        engine = session.engine
        if session.invoker is None:
            raise RuntimeError("Session is not set up")

        with engine.scope() as scope:
            x = session.preprocessor(frame.image, scope, engine.device)
            prediction = session.invoker(
                x,
                scope,
                frame_id=frame.frame_id,
                backend=engine.backend.name,
            )

        result = render_result(prediction.values, session.labels)
        publish(result, session.display, show_all_scores=session.cfg.ui.show_all_scores)

        if self._error_shown:
            session.display.clear("error")
            self._error_shown = False

    def _on_failure(self, frame: Frame, error: Exception) -> None:
        session = self.session
        engine = session.engine

        self.stats.failed += 1
        log.exception("Frame %d failed", frame.frame_id)
        session.display.write("error", f"Error: {error}")
        self._error_shown = True

        if not engine.ready or not engine.backend.accelerated or engine.fallback_attempted:
            return

        try:
            if engine.fallback():
                session.on_backend_switched()
        except Exception as e:
            log.exception("Backend fallback failed; continuing on current backend")
            session.display.write("status", f"Backend switch to {engine.backend.name} failed")
            session.display.write("error", f"Error: backend switch failed: {e}")

    def _log_stats(self) -> None:
        fps = self.stats.last_fps
        self.session.display.write("fps", round(fps, 1))

        gpu_stats = get_gpu_memory_stats()
        if gpu_stats["status"] != "CPU_MODE":
            gpu_info = (
                f" | GPU: {gpu_stats['allocated_gb']:.2f}GB/{gpu_stats['total_gb']:.2f}GB "
                f"({gpu_stats['percent_used']:.1f}%)"
            )
            level = logging.WARNING if gpu_stats["status"] in ("WARNING", "CRITICAL") else logging.INFO
        else:
            gpu_info = ""
            level = logging.INFO

        log.log(
            level,
            "FPS=%.1f | executed=%d skipped=%d failed=%d | live_tensors=%d%s",
            fps,
            self.stats.executed,
            self.stats.skipped,
            self.stats.failed,
            self.session.engine.num_tensors,
            gpu_info,
        )

    def run(self) -> None:
        log.info(
            "Loop started (target_fps=%.1f). Press ESC or q in the window to exit.",
            self.throttle.target_fps,
        )
        while self.state is LoopState.RUNNING:
            if not self._wait_for_refresh():
                self.stop()
                break
            self.tick()
        log.info(
            "Loop stopped | executed=%d skipped=%d failed=%d",
            self.stats.executed,
            self.stats.skipped,
            self.stats.failed,
        )


def make_display(cfg: Config) -> DisplaySurface:
    if cfg.ui.headless:
        return HeadlessDisplay()
    return OpenCVDisplay(window_title=cfg.ui.window_title, ui_cfg=cfg.ui)


def _refresh_callback(cfg: Config, display: DisplaySurface) -> Callable[[], bool]:
    """
    One display refresh: pump the display, then sleep for whatever is
    left of the refresh interval.
    """
    interval = 1.0 / max(float(cfg.runtime.refresh_hz), 1.0)

    def wait() -> bool:
        t0 = time.perf_counter()
        keep_going = display.pump()
        remaining = interval - (time.perf_counter() - t0)
        if remaining > 0:
            time.sleep(remaining)
        return keep_going

    return wait


def _install_sigterm(loop: SupervisingLoop) -> None:
    if threading.current_thread() is not threading.main_thread():
        return

    def _handler(signum, _frame) -> None:
        log.info("Received signal %d; stopping", signum)
        loop.stop()

    signal.signal(signal.SIGTERM, _handler)


def _hold_startup_error(cfg: Config, display: DisplaySurface) -> None:
    """Keep the window up long enough to read a startup error."""
    if cfg.ui.headless:
        return
    deadline = time.perf_counter() + max(float(cfg.ui.error_hold_sec), 0.0)
    wait = _refresh_callback(cfg, display)
    while time.perf_counter() < deadline:
        if not wait():
            break


def run(cfg: Config, display: Optional[DisplaySurface] = None, session: Optional[Session] = None) -> int:
    """
    Run the ShelfSight pipeline until the user quits.

    Pipeline:
        Camera -> FramePreprocessor -> InferenceInvoker -> Renderer

    Returns a process exit code: 0 on a normal stop, 1 when the session
    could not be started. Camera, model and backend state are released on
    every exit path.
    """
    display = display or make_display(cfg)
    loop: Optional[SupervisingLoop] = None

    try:
        try:
            session = session or Session(cfg, display)
            session.setup()
        except (InitializationError, ValueError) as e:
            log.error("Startup failed: %s", e)
            display.write("status", "Startup failed")
            display.write("error", f"Error: {e}")
            _hold_startup_error(cfg, display)
            return 1

        loop = SupervisingLoop(session, wait_for_refresh=_refresh_callback(cfg, display))
        _install_sigterm(loop)
        loop.run()
        return 0
    except KeyboardInterrupt:
        log.info("Interrupted by user")
        return 0
    finally:
        if loop is not None:
            loop.stop()
        if session is not None:
            session.teardown()
        else:
            display.close()
        log.info("ShelfSight pipeline stopped.")


def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(prog="shelfsight", description="Live webcam image classifier.")
    ap.add_argument("--config", default="config/default.yaml", help="Path to YAML config.")
    ap.add_argument("--headless", action="store_true", help="No window; log results instead.")
    ap.add_argument("--log-level", default="INFO", help="DEBUG, INFO, WARNING, ...")
    args = ap.parse_args(argv)

    try:
        cfg = load_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        ap.error(str(e))

    if args.headless:
        cfg.ui.headless = True

    setup_logging(cfg.paths.logs_dir, level=args.log_level)
    return run(cfg)


if __name__ == "__main__":
    raise SystemExit(main())
