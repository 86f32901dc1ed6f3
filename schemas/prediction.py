from dataclasses import dataclass

import numpy as np


@dataclass
class Prediction:
    """
    Per-class scores for one frame, copied to host memory.

    Attributes
    ----------
    values     : np.ndarray
        1-D float array, one score per class, in label order. Raw model
        outputs unless softmax was configured; not guaranteed to sum to 1.
    frame_id   : int
        Frame the scores belong to (-1 when not tied to a frame).
    backend    : str
        Backend name the forward pass ran on.
    latency_ms : float
        Wall time of the forward pass plus the host copy.
    """

    values: np.ndarray
    frame_id: int = -1
    backend: str = ""
    latency_ms: float = 0.0

    def __len__(self) -> int:
        return int(self.values.shape[0])
