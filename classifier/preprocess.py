"""
classifier/preprocess.py

Frame -> model input.

Two crop policies exist and are mutually exclusive:

  - resize       : stretch the whole frame to side x side (aspect ratio
                   is not preserved)
  - center_crop  : cut the largest centred square, then resize (no
                   distortion, edges are lost)

Value transforms (channel swap, /255) must match whatever the model was
trained with. A mismatch is not detected here, it only costs accuracy.

Output is always a float32 tensor of shape (1, side, side, 3) on the
requested device. Every intermediate tensor lives in a child scope that
is closed before returning; only the output is handed to the caller's
scope.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Tuple

import cv2
import numpy as np
import torch
import torch.nn.functional as F

from core.config import PreprocessConfig
from core.tensor_scope import TensorScope

logger = logging.getLogger(__name__)


class CropStrategy(str, Enum):
    RESIZE = "resize"
    CENTER_CROP = "center_crop"


class Interpolation(str, Enum):
    NEAREST = "nearest"
    BILINEAR = "bilinear"


def center_square(height: int, width: int) -> Tuple[int, int, int]:
    """
    Largest centred square inside a (height, width) frame.

    Returns (y0, x0, side).
    """
    side = min(int(height), int(width))
    y0 = (int(height) - side) // 2
    x0 = (int(width) - side) // 2
    return y0, x0, side


def _to_rgb(image_bgr: np.ndarray) -> np.ndarray:
    if image_bgr is None:
        raise ValueError("No image to preprocess")
    img = np.asarray(image_bgr)
    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2RGB)
    if img.ndim != 3 or img.shape[2] < 3:
        raise ValueError(f"Expected an HxWx3 BGR image, got shape {img.shape}")
    if img.shape[0] == 0 or img.shape[1] == 0:
        raise ValueError(f"Empty image, shape {img.shape}")
    if img.shape[2] == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2RGB)
    return cv2.cvtColor(img[:, :, :3], cv2.COLOR_BGR2RGB)


class FramePreprocessor:
    def __init__(
        self,
        input_size: int = 224,
        strategy: CropStrategy | str = CropStrategy.RESIZE,
        interpolation: Interpolation | str = Interpolation.NEAREST,
        divide_by_255: bool = False,
        rgb_to_bgr: bool = False,
    ) -> None:
        self.input_size = int(input_size)
        if self.input_size <= 0:
            raise ValueError(f"input_size must be positive, got {input_size}")
        self.strategy = CropStrategy(strategy)
        self.interpolation = Interpolation(interpolation)
        self.divide_by_255 = bool(divide_by_255)
        self.rgb_to_bgr = bool(rgb_to_bgr)

        logger.info(
            "FramePreprocessor: size=%d strategy=%s interp=%s /255=%s bgr=%s",
            self.input_size,
            self.strategy.value,
            self.interpolation.value,
            self.divide_by_255,
            self.rgb_to_bgr,
        )

    @classmethod
    def from_config(cls, cfg: PreprocessConfig) -> "FramePreprocessor":
        return cls(
            input_size=cfg.input_size,
            strategy=cfg.strategy,
            interpolation=cfg.interpolation,
            divide_by_255=cfg.divide_by_255,
            rgb_to_bgr=cfg.rgb_to_bgr,
        )

    @property
    def output_shape(self) -> Tuple[int, int, int, int]:
        return (1, self.input_size, self.input_size, 3)

    def _resize(self, x: torch.Tensor) -> torch.Tensor:
        size = (self.input_size, self.input_size)
        if self.interpolation is Interpolation.BILINEAR:
            return F.interpolate(x, size=size, mode="bilinear", align_corners=False)
        return F.interpolate(x, size=size, mode="nearest")

    def __call__(
        self,
        image_bgr: np.ndarray,
        scope: TensorScope,
        device: torch.device | str = "cpu",
    ) -> torch.Tensor:
        """
        Turn one camera image into a (1, side, side, 3) float32 model input.

        The returned tensor is owned by `scope`.
        """
        rgb = _to_rgb(image_bgr)

        if self.strategy is CropStrategy.CENTER_CROP:
            y0, x0, side = center_square(rgb.shape[0], rgb.shape[1])
            rgb = rgb[y0:y0 + side, x0:x0 + side]

        with scope.child() as inner:
            img = inner.track(torch.from_numpy(np.ascontiguousarray(rgb)).to(device))  # [H,W,3] uint8
            x = inner.track(img.permute(2, 0, 1).unsqueeze(0).float())                # [1,3,H,W] 0..255
            x = inner.track(self._resize(x))
            x = inner.track(x.permute(0, 2, 3, 1))                                     # [1,S,S,3]
            if self.rgb_to_bgr:
                x = inner.track(x.flip(-1))
            if self.divide_by_255:
                x = inner.track(x / 255.0)
            x = inner.track(x.contiguous())
            return inner.keep(x)
