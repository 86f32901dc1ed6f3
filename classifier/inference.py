"""
classifier/inference.py

Model Input -> Prediction.

No retries here: a failing forward pass is raised as InferenceError and
the loop decides what to do. Output tensors are tracked in the caller's
scope and the scores are copied to host numpy before returning, so no
tensor handle outlives the iteration.
"""

from __future__ import annotations

import logging
import time

import numpy as np
import torch

from core.config import OUTPUT_ACTIVATIONS
from core.errors import InferenceError
from core.tensor_scope import TensorScope
from schemas import Prediction

from .model import ClassifierModel, as_tensor_list

logger = logging.getLogger(__name__)


class InferenceInvoker:
    def __init__(self, model: ClassifierModel, output_activation: str = "none") -> None:
        activation = str(output_activation or "none").lower()
        if activation not in OUTPUT_ACTIVATIONS:
            raise ValueError(
                f"output_activation must be one of {OUTPUT_ACTIVATIONS}, got {output_activation!r}"
            )
        self.model = model
        self.output_activation = activation

    def __call__(
        self,
        x: torch.Tensor,
        scope: TensorScope,
        frame_id: int = -1,
        backend: str = "",
    ) -> Prediction:
        t0 = time.perf_counter()
        try:
            outs = scope.track_all(as_tensor_list(self.model.predict(x)))
            if not outs:
                raise InferenceError("Model returned no output")

            # [1, C] or [C]; further outputs are ignored
            first = outs[0]
            flat = first[0] if first.dim() >= 2 else first
            flat = scope.track(flat.reshape(-1).float())

            if self.output_activation == "softmax":
                flat = scope.track(torch.softmax(flat, dim=0))

            host = scope.track(flat.detach().to("cpu"))
            values = np.array(host.numpy(), dtype=np.float32, copy=True)
        except InferenceError:
            raise
        except Exception as e:
            raise InferenceError(f"Inference failed: {e}") from e

        return Prediction(
            values=values,
            frame_id=frame_id,
            backend=backend,
            latency_ms=(time.perf_counter() - t0) * 1000.0,
        )
