"""Detection signal sources driven by the orchestrator."""

from capture_trust.detection.detectors.base import SignalDetector
from capture_trust.detection.detectors.static import StaticSignalDetector, static_detectors

__all__ = ["SignalDetector", "StaticSignalDetector", "static_detectors"]
