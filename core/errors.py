"""
core/errors.py

Error taxonomy for the capture -> preprocess -> infer -> render pipeline.

InitializationError and its subclasses are fatal to session start:
the caller shows the message and does not enter the loop.

InferenceError is per-frame: the loop logs it, shows it and carries on
with the next tick.
"""

from __future__ import annotations


class ShelfSightError(Exception):
    """Base class for all ShelfSight errors."""


class InitializationError(ShelfSightError):
    """Session could not be started (backend, camera or model)."""


class BackendUnavailableError(InitializationError):
    """None of the configured numeric backends could be initialised."""


class CameraError(InitializationError):
    """Camera missing, busy or access denied."""


class ModelLoadError(InitializationError):
    """Model artifact missing or unreadable."""


class SetupTimeoutError(InitializationError):
    """A setup step (camera metadata, model load) did not finish in time."""


class InferenceError(ShelfSightError):
    """A single forward pass failed."""
