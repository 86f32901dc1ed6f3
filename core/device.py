"""
core/device.py

Central place to decide which numeric backend runs the tensors
("cuda", "mps" or "cpu") and to keep track of live tensors on it.

Backends are tried in the configured order; the last entry is the
fallback used for the one-shot recovery when inference on an
accelerated backend starts failing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional

import torch

from .errors import BackendUnavailableError
from .tensor_scope import TensorScope

log = logging.getLogger("shelfsight.device")

DEFAULT_ORDER = ("cuda", "mps", "cpu")

Probe = Callable[[], torch.device]


def _probe_cuda() -> torch.device:
    if not torch.cuda.is_available():
        raise RuntimeError("CUDA not available")
    device = torch.device("cuda")
    torch.zeros(1, device=device)
    torch.cuda.synchronize(device)
    log.info("CUDA device: %s", torch.cuda.get_device_name(device))
    return device


def _probe_mps() -> torch.device:
    mps = getattr(torch.backends, "mps", None)
    if mps is None or not mps.is_available():
        raise RuntimeError("MPS not available")
    device = torch.device("mps")
    torch.zeros(1, device=device)
    return device


def _probe_cpu() -> torch.device:
    device = torch.device("cpu")
    torch.zeros(1, device=device)
    return device


DEFAULT_PROBES: Dict[str, Probe] = {
    "cuda": _probe_cuda,
    "mps": _probe_mps,
    "cpu": _probe_cpu,
}


@dataclass(frozen=True)
class Backend:
    """
    An initialised numeric backend.

    Attributes
    ----------
    name   : str
        Backend name as configured ("cuda", "mps", "cpu", ...).
    device : torch.device
        Device every tensor of the session is created on.
    """

    name: str
    device: torch.device

    @property
    def accelerated(self) -> bool:
        return self.name != "cpu"


class NumericEngine:
    """
    Owns the active backend and the live-tensor counter.

    Usage:
        engine = NumericEngine(["cuda", "cpu"])
        engine.select()
        with engine.scope() as scope:
            x = scope.track(torch.zeros(1, device=engine.device))
        ...
        engine.reset()
    """

    def __init__(
        self,
        order: Iterable[str] = DEFAULT_ORDER,
        probes: Optional[Dict[str, Probe]] = None,
    ) -> None:
        self.order = [str(name).strip().lower() for name in order]
        if not self.order:
            raise ValueError("NumericEngine needs at least one backend name")

        self._probes: Dict[str, Probe] = dict(DEFAULT_PROBES)
        if probes:
            self._probes.update(probes)

        self._backend: Optional[Backend] = None
        self._fallback_attempted = False
        self._live = 0
        self._detached: Dict[int, torch.Tensor] = {}

    # ------------------------------------------------------------------
    # Backend selection
    # ------------------------------------------------------------------

    def _init_backend(self, name: str) -> Backend:
        probe = self._probes.get(name)
        if probe is None:
            raise RuntimeError(f"Unknown backend '{name}'")
        return Backend(name=name, device=probe())

    def select(self) -> Backend:
        """
        Try each backend in order and activate the first that initialises.

        Raises BackendUnavailableError if none does.
        """
        errors = []
        for name in self.order:
            try:
                backend = self._init_backend(name)
            except Exception as e:
                log.warning("Backend '%s' unavailable: %s", name, e)
                errors.append(f"{name}: {e}")
                continue

            self._backend = backend
            self._fallback_attempted = False
            log.info("Using backend=%s (device=%s)", backend.name, backend.device)
            return backend

        raise BackendUnavailableError(
            "No numeric backend could be initialised (" + "; ".join(errors) + ")"
        )

    @property
    def backend(self) -> Backend:
        if self._backend is None:
            raise RuntimeError("No backend selected; call select() first")
        return self._backend

    @property
    def device(self) -> torch.device:
        return self.backend.device

    @property
    def ready(self) -> bool:
        return self._backend is not None

    @property
    def fallback_name(self) -> str:
        return self.order[-1]

    @property
    def fallback_attempted(self) -> bool:
        return self._fallback_attempted

    def fallback(self) -> bool:
        """
        One-shot switch from an accelerated backend to the fallback one.

        Returns True only if this call switched backends. The attempt is
        spent even when the fallback backend itself fails to initialise.
        """
        if self._fallback_attempted or self._backend is None:
            return False
        if not self._backend.accelerated or self._backend.name == self.fallback_name:
            return False

        self._fallback_attempted = True
        previous = self._backend
        try:
            backend = self._init_backend(self.fallback_name)
        except Exception:
            log.exception(
                "Fallback to backend '%s' failed; staying on '%s'",
                self.fallback_name,
                previous.name,
            )
            return False

        self._backend = backend
        log.warning(
            "Switched backend %s -> %s after inference failure",
            previous.name,
            backend.name,
        )
        return True

    # ------------------------------------------------------------------
    # Tensor bookkeeping
    # ------------------------------------------------------------------

    @property
    def num_tensors(self) -> int:
        """Number of tensors currently owned by open scopes or kept by callers."""
        return self._live

    def scope(self) -> TensorScope:
        return TensorScope(self)

    def _on_track(self) -> None:
        self._live += 1

    def _on_release(self, count: int) -> None:
        self._live = max(0, self._live - count)

    def _on_detach(self, tensor: torch.Tensor) -> None:
        self._detached[id(tensor)] = tensor

    def dispose(self, tensor: torch.Tensor) -> None:
        """Release a tensor kept out of a top-level scope."""
        if self._detached.pop(id(tensor), None) is not None:
            self._on_release(1)

    def reset(self) -> None:
        """
        Drop all engine state: live tensors, cached device memory and the
        selected backend. Called once on teardown.
        """
        if self._live:
            log.warning("Engine reset with %d live tensor(s)", self._live)
        self._detached.clear()
        self._live = 0

        if self._backend is not None and self._backend.name == "cuda":
            try:
                torch.cuda.empty_cache()
            except Exception:
                log.exception("Failed to empty CUDA cache")

        self._backend = None
        self._fallback_attempted = False


def get_gpu_memory_stats() -> Dict[str, float | str]:
    """
    Get current GPU memory usage statistics.

    Returns dict with keys:
        - allocated_gb: Memory currently allocated (GB)
        - reserved_gb: Memory reserved by PyTorch (GB)
        - total_gb: Total GPU memory (GB)
        - percent_used: Percentage of total memory used (0-100)
        - status: "OK" / "WARNING" / "CRITICAL" / "CPU_MODE"
    """
    if not torch.cuda.is_available():
        return {
            "allocated_gb": 0.0,
            "reserved_gb": 0.0,
            "total_gb": 0.0,
            "percent_used": 0.0,
            "status": "CPU_MODE"
        }

    allocated = torch.cuda.memory_allocated(0) / 1e9
    reserved = torch.cuda.memory_reserved(0) / 1e9
    total = torch.cuda.get_device_properties(0).total_memory / 1e9
    percent_used = (allocated / total * 100) if total > 0 else 0

    if percent_used > 85:
        status = "CRITICAL"
    elif percent_used > 75:
        status = "WARNING"
    else:
        status = "OK"

    return {
        "allocated_gb": allocated,
        "reserved_gb": reserved,
        "total_gb": total,
        "percent_used": percent_used,
        "status": status
    }
