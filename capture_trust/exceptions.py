"""
Exceptions raised by detectors.

Nothing here crosses the engine boundary: the orchestrator converts each of
these into a per-method outcome.
"""


class CaptureTrustError(Exception):
    """Base class for package errors."""


class DetectorUnavailableError(CaptureTrustError):
    """The detector cannot run on this device or input (e.g. no LiDAR)."""
