"""
core/tensor_scope.py

Scoped ownership of tensors created during one loop iteration.

Every tensor a stage creates is tracked by a scope. Closing the scope
(normally via `with`) drops all of them, on every exit path including
exceptions. A stage that needs to hand a tensor to its caller calls
keep(), which moves ownership to the parent scope.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, List, Optional

import torch

if TYPE_CHECKING:
    from .device import NumericEngine


class TensorScope:
    def __init__(self, engine: "NumericEngine", parent: Optional["TensorScope"] = None) -> None:
        self._engine = engine
        self._parent = parent
        self._owned: List[torch.Tensor] = []
        self._closed = False

    def __enter__(self) -> "TensorScope":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        return len(self._owned)

    def track(self, tensor: torch.Tensor) -> torch.Tensor:
        """Register a tensor with this scope and return it unchanged."""
        if self._closed:
            raise RuntimeError("Cannot track tensors in a closed scope")
        self._owned.append(tensor)
        self._engine._on_track()
        return tensor

    def track_all(self, tensors: Iterable[torch.Tensor]) -> List[torch.Tensor]:
        return [self.track(t) for t in tensors]

    def child(self) -> "TensorScope":
        return TensorScope(self._engine, parent=self)

    def _adopt(self, tensor: torch.Tensor) -> None:
        if self._closed:
            raise RuntimeError("Cannot hand a tensor to a closed scope")
        self._owned.append(tensor)

    def keep(self, tensor: torch.Tensor) -> torch.Tensor:
        """
        Move a tensor out of this scope so it survives close().

        With a parent scope the parent becomes the owner. Without one the
        caller owns it and must release it with engine.dispose().
        """
        for i, t in enumerate(self._owned):
            # identity, not ==; tensor equality is elementwise
            if t is tensor:
                del self._owned[i]
                break
        else:
            raise ValueError("Tensor is not owned by this scope")

        if self._parent is not None:
            self._parent._adopt(tensor)
        else:
            self._engine._on_detach(tensor)
        return tensor

    def close(self) -> None:
        if self._closed:
            return
        count = len(self._owned)
        self._owned.clear()
        self._closed = True
        self._engine._on_release(count)
