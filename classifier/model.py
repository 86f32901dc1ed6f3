"""
classifier/model.py

Loading and calling the pre-trained classifier.

The artifact is a TorchScript file produced outside this repo (export
from the training toolchain). All we rely on is:

    (1, side, side, 3) float tensor  ->  tensor or sequence of tensors
                                         holding per-class scores
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from pathlib import Path
from typing import Any, Callable, List, Optional, Union

import torch

from core.config import INPUT_LAYOUTS
from core.errors import ModelLoadError, SetupTimeoutError
from core.tensor_scope import TensorScope

logger = logging.getLogger(__name__)

ModelOutput = Union[torch.Tensor, List[torch.Tensor], tuple]


def as_tensor_list(out: Any) -> List[torch.Tensor]:
    """
    Normalise a model output (tensor, list/tuple of tensors, dict of
    tensors) into a flat list of tensors, in output order.
    """
    if isinstance(out, torch.Tensor):
        return [out]
    if isinstance(out, dict):
        out = list(out.values())
    if isinstance(out, (list, tuple)):
        tensors: List[torch.Tensor] = []
        for item in out:
            tensors.extend(as_tensor_list(item))
        return tensors
    raise TypeError(f"Unsupported model output type: {type(out).__name__}")


class ClassifierModel:
    """
    Thin wrapper around a loaded torch module.

    Keeps track of the device and input layout so callers only ever deal
    with (1, side, side, 3) tensors.
    """

    def __init__(
        self,
        module: torch.nn.Module,
        device: torch.device | str = "cpu",
        input_layout: str = "nhwc",
        path: Optional[str] = None,
    ) -> None:
        layout = str(input_layout).lower()
        if layout not in INPUT_LAYOUTS:
            raise ValueError(f"input_layout must be one of {INPUT_LAYOUTS}, got {input_layout!r}")

        self._module: Optional[torch.nn.Module] = module
        self.device = torch.device(device)
        self.input_layout = layout
        self.path = path

    @property
    def disposed(self) -> bool:
        return self._module is None

    def _require_module(self) -> torch.nn.Module:
        if self._module is None:
            raise RuntimeError("Model has been disposed")
        return self._module

    def predict(self, x: torch.Tensor) -> ModelOutput:
        module = self._require_module()
        if self.input_layout == "nchw":
            x = x.permute(0, 3, 1, 2)
        with torch.inference_mode():
            return module(x)

    def to(self, device: torch.device | str) -> "ClassifierModel":
        """Move weights to another device (backend switch)."""
        module = self._require_module()
        device = torch.device(device)
        module.to(device)
        self.device = device
        logger.info("Model moved to %s", device)
        return self

    def warmup(self, input_size: int, scope: TensorScope) -> int:
        """
        One throwaway pass on zeros, so one-time compilation/allocation
        happens before the live loop.

        Returns the width of the first output (number of classes).
        """
        with scope.child() as inner:
            z = inner.track(torch.zeros((1, input_size, input_size, 3), device=self.device))
            outs = inner.track_all(as_tensor_list(self.predict(z)))
            if not outs:
                raise ModelLoadError("Model produced no output during warm-up")
            width = int(outs[0].shape[-1]) if outs[0].dim() > 0 else 1

        logger.info("Model warm-up done (output width=%d)", width)
        return width

    def dispose(self) -> None:
        if self._module is not None:
            self._module = None
            logger.info("Model disposed")


def _load_torchscript(path: Path, device: torch.device) -> torch.nn.Module:
    return torch.jit.load(str(path), map_location=device)


def load_model(
    path: str | Path,
    device: torch.device | str = "cpu",
    input_layout: str = "nhwc",
    timeout_sec: Optional[float] = 60.0,
    loader: Callable[[Path, torch.device], torch.nn.Module] = _load_torchscript,
) -> ClassifierModel:
    """
    Load the classifier artifact onto `device`.

    Raises
    ------
    ModelLoadError
        File missing or not a loadable artifact.
    SetupTimeoutError
        Loading did not finish within timeout_sec.
    """
    path = Path(path)
    device = torch.device(device)
    if not path.exists():
        raise ModelLoadError(f"Model file not found: {path}")

    logger.info("Loading model from %s onto %s ...", path, device)

    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="model-load")
    future = executor.submit(loader, path, device)
    try:
        module = future.result(timeout=timeout_sec)
    except FuturesTimeout:
        raise SetupTimeoutError(f"Model load from {path} did not finish within {timeout_sec}s")
    except Exception as e:
        raise ModelLoadError(f"Could not load model from {path}: {e}") from e
    finally:
        executor.shutdown(wait=False)

    module.eval()
    logger.info("Model loaded: %s", path)
    return ClassifierModel(module, device=device, input_layout=input_layout, path=str(path))
