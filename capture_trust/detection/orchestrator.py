"""
Detection orchestrator - runs all detectors and bundles their results.
"""

import asyncio
import inspect
import logging
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple

from capture_trust.detection.aggregator import ConfidenceAggregator
from capture_trust.detection.detectors.base import SignalDetector
from capture_trust.exceptions import DetectorUnavailableError
from capture_trust.models.confidence import AggregatedConfidenceResult
from capture_trust.models.methods import DetectionMethod
from capture_trust.models.results import DetectionResults, DetectorOutcome, OutcomeStatus
from capture_trust.models.signals import (
    ArtifactAnalysisResult,
    DepthAnalysisResult,
    DetectionFrame,
    MoireAnalysisResult,
    TextureClassificationResult,
)

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = frozenset({"completed", "success"})

RESULT_TYPES = {
    DetectionMethod.LIDAR: DepthAnalysisResult,
    DetectionMethod.MOIRE: MoireAnalysisResult,
    DetectionMethod.TEXTURE: TextureClassificationResult,
    DetectionMethod.ARTIFACTS: ArtifactAnalysisResult,
}

MethodRun = Tuple[Optional[Any], DetectorOutcome]


class DetectionOrchestrator:
    """
    Runs every registered detector concurrently for a capture.

    The orchestrator:
    1. Launches one task per detector, each with its own error boundary and timeout
    2. Waits for all of them; one failing detector never affects the others
    3. Aggregates the successful results with cross-validation enabled
    4. Returns a single DetectionResults bundle

    It never raises for a detector failure. Cancelling ``run_all`` cancels
    the in-flight detector tasks and propagates.
    """

    def __init__(
        self,
        detectors: Optional[List[SignalDetector]] = None,
        aggregator: Optional[ConfidenceAggregator] = None,
        timeout_seconds: float = 2.0,
        target_ms: int = 200,
    ):
        """
        Initialize the orchestrator.

        Args:
            detectors: Detectors to run, at most one per method. A later
                detector for the same method replaces an earlier one.
            aggregator: Aggregator for the results. If None, uses defaults.
            timeout_seconds: Per-detector time limit
            target_ms: Pipeline time above which a warning is logged
        """
        self.detectors: Dict[DetectionMethod, SignalDetector] = {}
        for detector in detectors or []:
            self.add_detector(detector)
        self.aggregator = aggregator or ConfidenceAggregator()
        self.timeout_seconds = timeout_seconds
        self.target_ms = target_ms

    async def run_all(self, image: Any) -> DetectionResults:
        """
        Run all detectors on a single image and aggregate.

        Args:
            image: Captured image passed to every detector

        Returns:
            Bundled raw results, aggregate, cross-validation and outcomes
        """
        start = time.perf_counter()

        results, outcomes = await self._run_detectors(image)
        aggregated = self.aggregator.aggregate(
            **{method.result_field: result for method, result in results.items()},
            enable_enhanced_cross_validation=True,
        )

        return self._bundle(results, outcomes, aggregated, start)

    async def run_all_frames(self, frames: Sequence[Any]) -> DetectionResults:
        """
        Run all detectors on every frame of a multi-frame capture.

        The final frame supplies the raw results; all frames feed temporal
        cross-validation.

        Args:
            frames: Captured frames in capture order

        Returns:
            Bundled results for the capture
        """
        start = time.perf_counter()

        if not frames:
            logger.warning("Multi-frame detection requested with no frames")
            return self._bundle(
                {},
                {},
                AggregatedConfidenceResult.unavailable(self.aggregator.algorithm_version),
                start,
            )

        runs = await asyncio.gather(*(self._run_detectors(frame) for frame in frames))

        detection_frames = [
            DetectionFrame(
                index=position,
                timestamp=getattr(frame, "timestamp", 0.0),
                **{method.result_field: result for method, result in frame_results.items()},
            )
            for position, (frame, (frame_results, _)) in enumerate(zip(frames, runs))
        ]

        results, outcomes = runs[-1]
        aggregated = self.aggregator.aggregate(
            **{method.result_field: result for method, result in results.items()},
            enable_enhanced_cross_validation=True,
            frames=detection_frames,
        )

        return self._bundle(results, outcomes, aggregated, start)

    def _bundle(
        self,
        results: Dict[DetectionMethod, Any],
        outcomes: Dict[DetectionMethod, DetectorOutcome],
        aggregated: AggregatedConfidenceResult,
        start: float,
    ) -> DetectionResults:
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        if elapsed_ms > self.target_ms:
            logger.warning("Detection pipeline exceeded target time: %dms > %dms", elapsed_ms, self.target_ms)

        logger.info(
            "Detection complete in %dms: methods=%s level=%s",
            elapsed_ms,
            [method.value for method in results],
            aggregated.confidence_level.value,
        )

        return DetectionResults(
            **{method.result_field: result for method, result in results.items()},
            aggregated_confidence=aggregated,
            cross_validation=aggregated.cross_validation if results else None,
            method_outcomes=outcomes,
            total_processing_time_ms=elapsed_ms,
        )

    async def _run_detectors(
        self,
        image: Any,
    ) -> Tuple[Dict[DetectionMethod, Any], Dict[DetectionMethod, DetectorOutcome]]:
        methods = list(DetectionMethod)
        runs = await asyncio.gather(*(self._run_one(method, image) for method in methods))

        results = {}
        outcomes = {}
        for method, (result, outcome) in zip(methods, runs):
            outcomes[method] = outcome
            if result is not None:
                results[method] = result
        return results, outcomes

    async def _run_one(self, method: DetectionMethod, image: Any) -> MethodRun:
        """Run a single detector inside its own error boundary."""
        detector = self.detectors.get(method)
        if detector is None:
            return None, DetectorOutcome(status=OutcomeStatus.UNAVAILABLE, error="No detector registered")

        start = time.perf_counter()

        def outcome(status: OutcomeStatus, error: Optional[str] = None) -> DetectorOutcome:
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            return DetectorOutcome(status=status, error=error, elapsed_ms=elapsed_ms)

        try:
            if not detector.is_applicable(image):
                return None, outcome(OutcomeStatus.UNAVAILABLE, "Detector not applicable to this capture")

            if inspect.iscoroutinefunction(detector.analyze):
                pending = detector.analyze(image)
            else:
                pending = asyncio.to_thread(detector.analyze, image)
            result = await asyncio.wait_for(pending, timeout=self.timeout_seconds)
        except asyncio.CancelledError:
            raise
        except DetectorUnavailableError as e:
            logger.info("%s unavailable: %s", method.value, e)
            return None, outcome(OutcomeStatus.UNAVAILABLE, str(e))
        except asyncio.TimeoutError:
            logger.error("%s timed out after %.2fs", method.value, self.timeout_seconds)
            return None, outcome(OutcomeStatus.ERROR, f"Timed out after {self.timeout_seconds}s")
        except Exception as e:
            logger.exception("Error running %s detector", method.value)
            return None, outcome(OutcomeStatus.ERROR, str(e) or type(e).__name__)

        expected = RESULT_TYPES[method]
        if not isinstance(result, expected):
            logger.error(
                "%s detector returned %s, expected %s",
                method.value, type(result).__name__, expected.__name__,
            )
            return None, outcome(
                OutcomeStatus.ERROR,
                f"Unexpected result type {type(result).__name__}, expected {expected.__name__}",
            )

        status = result.status.value
        if status not in SUCCESS_STATUSES:
            return None, outcome(OutcomeStatus.UNAVAILABLE, f"Detector reported status {status}")

        return result, outcome(OutcomeStatus.COMPLETED)

    def add_detector(self, detector: SignalDetector):
        """Register a detector, replacing any existing one for its method."""
        self.detectors[detector.method] = detector

    def remove_detector(self, method: DetectionMethod):
        """Remove the detector for a method."""
        self.detectors.pop(method, None)

    def get_detector_info(self) -> List[dict]:
        """Get information about all registered detectors."""
        return [
            {
                "method": method.value,
                "name": self.detectors[method].name,
                "description": self.detectors[method].description,
                "base_weight": self.aggregator.base_weights[method],
            }
            for method in DetectionMethod
            if method in self.detectors
        ]
