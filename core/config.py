from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

import yaml

logger = logging.getLogger(__name__)


DEFAULT_LABELS = ["Big Lot", "C Press", "Snyders"]

CROP_STRATEGIES = ("resize", "center_crop")
INTERPOLATIONS = ("nearest", "bilinear")
INPUT_LAYOUTS = ("nhwc", "nchw")
OUTPUT_ACTIVATIONS = ("none", "softmax")


@dataclass
class CameraConfig:
    index: int = 0
    # Tried in order when `index` cannot be opened (e.g. no rear camera).
    fallback_indices: List[int] = field(default_factory=list)
    width: int = 640
    height: int = 480
    fps: int = 30
    mjpeg: bool = True
    ready_timeout_sec: float = 10.0


@dataclass
class ModelConfig:
    path: str = "models/model.pt"
    # MUST match training order
    labels: List[str] = field(default_factory=lambda: list(DEFAULT_LABELS))
    input_layout: str = "nhwc"       # "nhwc" or "nchw"
    output_activation: str = "none"  # "none" (raw outputs) or "softmax"
    load_timeout_sec: float = 60.0
    warmup: bool = True


@dataclass
class PreprocessConfig:
    """
    Frame -> model input policy.

    divide_by_255 / rgb_to_bgr must match how the weights were trained.
    A mismatch is not an error, it only degrades accuracy.
    """
    strategy: str = "resize"        # "resize" or "center_crop"
    interpolation: str = "nearest"  # "nearest" or "bilinear"
    input_size: int = 224
    divide_by_255: bool = False
    rgb_to_bgr: bool = False


@dataclass
class RuntimeConfig:
    # Preference order; the last entry is the fallback backend.
    backends: List[str] = field(default_factory=lambda: ["cuda", "mps", "cpu"])
    target_fps: float = 15.0
    refresh_hz: float = 60.0


@dataclass
class PathsConfig:
    logs_dir: str = "logs"


@dataclass
class UiConfig:
    headless: bool = False
    window_title: str = "ShelfSight"
    show_fps: bool = True
    show_all_scores: bool = True
    # How long a startup error stays on screen before the window closes.
    error_hold_sec: float = 3.0


@dataclass
class Config:
    camera: CameraConfig = field(default_factory=CameraConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    preprocess: PreprocessConfig = field(default_factory=PreprocessConfig)
    runtime: RuntimeConfig = field(default_factory=RuntimeConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    ui: UiConfig = field(default_factory=UiConfig)


def _update_dataclass_from_dict(obj: Any, data: Dict[str, Any]) -> Any:
    """
    Assign only known fields from dict into dataclass instance.
    Unknown keys in YAML are ignored (backwards-compatible).
    """
    for k, v in data.items():
        if hasattr(obj, k):
            setattr(obj, k, v)
        else:
            logger.debug("Ignoring unknown config key %s.%s", type(obj).__name__, k)
    return obj


def _check_choice(section: Any, name: str, allowed: tuple, where: str) -> None:
    value = str(getattr(section, name)).strip().lower()
    if value not in allowed:
        raise ValueError(f"{where}.{name} must be one of {allowed}, got {getattr(section, name)!r}")
    setattr(section, name, value)


def config_from_dict(raw: Dict[str, Any]) -> Config:
    """
    Map an already-parsed YAML dict onto the Config dataclasses.
    """
    if not isinstance(raw, dict):
        raise ValueError(f"Config root must be a dict, got: {type(raw)}")

    cfg = Config(
        camera=_update_dataclass_from_dict(CameraConfig(), raw.get("camera", {}) or {}),
        model=_update_dataclass_from_dict(ModelConfig(), raw.get("model", {}) or {}),
        preprocess=_update_dataclass_from_dict(PreprocessConfig(), raw.get("preprocess", {}) or {}),
        runtime=_update_dataclass_from_dict(RuntimeConfig(), raw.get("runtime", {}) or {}),
        paths=_update_dataclass_from_dict(PathsConfig(), raw.get("paths", {}) or {}),
        ui=_update_dataclass_from_dict(UiConfig(), raw.get("ui", {}) or {}),
    )

    if not cfg.model.labels:
        raise ValueError("model.labels must contain at least one class name")
    if int(cfg.preprocess.input_size) <= 0:
        raise ValueError(f"preprocess.input_size must be positive, got {cfg.preprocess.input_size}")
    if not cfg.runtime.backends:
        raise ValueError("runtime.backends must list at least one backend")

    _check_choice(cfg.preprocess, "strategy", CROP_STRATEGIES, "preprocess")
    _check_choice(cfg.preprocess, "interpolation", INTERPOLATIONS, "preprocess")
    _check_choice(cfg.model, "input_layout", INPUT_LAYOUTS, "model")
    _check_choice(cfg.model, "output_activation", OUTPUT_ACTIVATIONS, "model")

    return cfg


def load_config(path: str | Path = "config/default.yaml") -> Config:
    """
    Load YAML config and map it to our dataclasses.

    This function is the single source of truth for all configuration sections:
      - cfg.camera
      - cfg.model
      - cfg.preprocess
      - cfg.runtime
      - cfg.paths
      - cfg.ui
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    cfg = config_from_dict(raw)

    logger.info(
        "Config loaded from %s | camera index=%d, model=%s, labels=%d, "
        "preprocess=%s/%s size=%d /255=%s bgr=%s, backends=%s, target_fps=%.1f",
        path,
        cfg.camera.index,
        cfg.model.path,
        len(cfg.model.labels),
        cfg.preprocess.strategy,
        cfg.preprocess.interpolation,
        cfg.preprocess.input_size,
        cfg.preprocess.divide_by_255,
        cfg.preprocess.rgb_to_bgr,
        ",".join(cfg.runtime.backends),
        float(cfg.runtime.target_fps),
    )

    return cfg
