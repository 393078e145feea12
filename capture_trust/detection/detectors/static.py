"""
Detector that replays an already-computed result.

Used when detection ran on the device and only its results reach the
service, so the orchestrator can still apply its outcome handling and
aggregation to them.
"""

from typing import Any, List, Optional

from capture_trust.detection.detectors.base import SignalDetector
from capture_trust.exceptions import DetectorUnavailableError
from capture_trust.models.methods import DetectionMethod
from capture_trust.models.signals import DetectionFrame


class StaticSignalDetector(SignalDetector):
    """
    Replays a fixed result, or the matching field of a ``DetectionFrame``.

    When the image is a frame, the frame's result for this method is
    returned; otherwise the result passed at construction is used.
    """

    description = "Replays a precomputed detector result"

    def __init__(self, method: DetectionMethod, result: Optional[Any] = None):
        self.method = method
        self.name = f"{method.display_name} (precomputed)"
        self.result = result

    def analyze(self, image: Any):
        if isinstance(image, DetectionFrame):
            result = getattr(image, self.method.result_field)
        else:
            result = self.result

        if result is None:
            raise DetectorUnavailableError(f"No {self.method.value} result was provided")
        return result

    def is_applicable(self, image: Any) -> bool:
        return True


def static_detectors(**results: Any) -> List[StaticSignalDetector]:
    """
    Build one static detector per method.

    Args:
        **results: depth/moire/texture/artifacts results, any may be omitted

    Returns:
        Detectors in canonical method order
    """
    return [
        StaticSignalDetector(method, results.get(method.result_field))
        for method in DetectionMethod
    ]
