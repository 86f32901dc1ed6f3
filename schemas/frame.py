from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np


@dataclass
class Frame:
    """
    One video frame coming from the camera.

    Attributes
    ----------
    frame_id : int
        Incremental counter (0, 1, 2, ...) of frames handed to the pipeline.
    ts       : float
        Timestamp in seconds (loop clock) when the frame was taken.
    image    : np.ndarray or None
        Raw BGR image as a NumPy array (H, W, 3) in OpenCV format.
    size     : (width, height) or None.
        Logical size of the frame in pixels. If None, it is inferred
        from image.shape.

    NOTE:
    - A Frame only lives for one loop iteration; the preprocessor reads
      image and nothing holds on to it afterwards.
    """

    frame_id: int
    ts: float
    image: Optional[np.ndarray] = None
    size: Optional[Tuple[int, int]] = None

    def __post_init__(self) -> None:
        if self.size is None and self.image is not None:
            h, w = self.image.shape[:2]
            self.size = (int(w), int(h))
