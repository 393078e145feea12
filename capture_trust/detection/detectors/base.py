"""
Abstract base class for detection signal sources.
"""

from abc import ABC, abstractmethod
from typing import Any

from capture_trust.models.methods import DetectionMethod


class SignalDetector(ABC):
    """
    Abstract base class for the detectors driven by the orchestrator.

    Each detector must define:
    - method: Which detection method it produces
    - name: Human-readable name
    - description: What the detector looks for
    - analyze(): Core analysis, returning the method's result model

    ``analyze`` may be a plain function or a coroutine function. Plain
    functions are run in a worker thread so CPU-bound analysis does not block
    the event loop. Raise ``DetectorUnavailableError`` when the detector
    cannot run on this input.
    """

    method: DetectionMethod
    name: str
    description: str

    @abstractmethod
    def analyze(self, image: Any):
        """
        Analyze a captured image.

        Args:
            image: Captured frame, in whatever form the detector accepts

        Returns:
            The detector's result model (e.g. ``MoireAnalysisResult``)
        """
        pass

    def is_applicable(self, image: Any) -> bool:
        """
        Check if this detector can analyze the given image.

        Override this to skip detectors that need data the capture does not
        have, such as a depth map.
        """
        return image is not None
