"""Domain errors raised by the analysis engine."""

from __future__ import annotations


class SprintAnalysisError(ValueError):
    """Base class for recoverable analysis failures."""


class InsufficientSignalError(SprintAnalysisError):
    """Toe-height signal has too few samples or no vertical foot motion."""


class DetectionFailure(SprintAnalysisError):
    """No qualifying contact or toe-off inside the search window."""


class CalibrationDegenerateError(SprintAnalysisError):
    """Calibration cannot map pixels to distance (zero-length or singular)."""
