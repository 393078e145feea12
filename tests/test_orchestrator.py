"""
Tests for the detection orchestrator.
"""

import asyncio
import time

import pytest

from capture_trust.detection.aggregator import ConfidenceAggregator
from capture_trust.detection.detectors.base import SignalDetector
from capture_trust.detection.detectors.static import StaticSignalDetector, static_detectors
from capture_trust.detection.orchestrator import DetectionOrchestrator
from capture_trust.exceptions import DetectorUnavailableError
from capture_trust.models.confidence import AggregationStatus, ConfidenceFlag, ConfidenceLevel
from capture_trust.models.methods import DetectionMethod
from capture_trust.models.results import OutcomeStatus
from capture_trust.models.signals import DepthAnalysisResult

from tests.factories import genuine_signals, make_frame, real_depth


class ExplodingDetector(SignalDetector):
    """Detector that fails while analyzing."""

    method = DetectionMethod.MOIRE
    name = "Exploding Moire"
    description = "Always raises"

    def analyze(self, image):
        raise RuntimeError("FFT buffer overflow")


class MissingHardwareDetector(SignalDetector):
    """Detector for hardware the device does not have."""

    method = DetectionMethod.LIDAR
    name = "LiDAR"
    description = "Needs a depth sensor"

    def analyze(self, image):
        raise DetectorUnavailableError("No LiDAR sensor")


class SlowDetector(SignalDetector):
    """Async detector that takes longer than any timeout used here."""

    method = DetectionMethod.TEXTURE
    name = "Slow Texture"
    description = "Sleeps"

    def __init__(self):
        self.cancelled = False

    async def analyze(self, image):
        try:
            await asyncio.sleep(5)
        except asyncio.CancelledError:
            self.cancelled = True
            raise


class MislabeledDetector(SignalDetector):
    """Moire detector that hands back a depth result."""

    method = DetectionMethod.MOIRE
    name = "Mislabeled Moire"
    description = "Returns the wrong result model"

    def analyze(self, image):
        return real_depth()


class SleepyDetector(StaticSignalDetector):
    """Synchronous detector that blocks before returning its result."""

    def __init__(self, method, result, delay: float = 0.3):
        super().__init__(method, result)
        self.delay = delay

    def analyze(self, image):
        time.sleep(self.delay)
        return super().analyze(image)


class NotApplicableDetector(SignalDetector):
    method = DetectionMethod.ARTIFACTS
    name = "Artifacts"
    description = "Only runs on video"

    def analyze(self, image):
        raise AssertionError("should not be called")

    def is_applicable(self, image):
        return False


def make_orchestrator(detectors, timeout_seconds: float = 2.0) -> DetectionOrchestrator:
    return DetectionOrchestrator(
        detectors=detectors,
        aggregator=ConfidenceAggregator(),
        timeout_seconds=timeout_seconds,
    )


class TestRunAll:
    """Tests for single-image orchestration."""

    def test_all_detectors_succeed(self):
        orchestrator = make_orchestrator(static_detectors(**genuine_signals()))

        results = asyncio.run(orchestrator.run_all(image=object()))

        assert results.methods_used == list(DetectionMethod)
        assert results.has_any_results
        assert results.aggregated_confidence.confidence_level == ConfidenceLevel.VERY_HIGH
        assert results.cross_validation is not None
        assert results.cross_validation == results.aggregated_confidence.cross_validation
        assert all(o.status == OutcomeStatus.COMPLETED for o in results.method_outcomes.values())

    def test_failing_detector_isolated(self):
        """One detector raising must not affect the others."""
        detectors = static_detectors(**genuine_signals())
        detectors[1] = ExplodingDetector()
        orchestrator = make_orchestrator(detectors)

        results = asyncio.run(orchestrator.run_all(image=object()))

        moire = results.method_outcomes[DetectionMethod.MOIRE]
        assert moire.status == OutcomeStatus.ERROR
        assert "FFT buffer overflow" in moire.error
        assert results.moire is None
        assert results.depth is not None
        assert results.available_method_count == 3
        assert results.aggregated_confidence.status == AggregationStatus.PARTIAL
        assert ConfidenceFlag.PARTIAL_ANALYSIS in results.aggregated_confidence.flags

    def test_wrong_result_type_isolated(self):
        detectors = static_detectors(**genuine_signals())
        detectors[1] = MislabeledDetector()
        orchestrator = make_orchestrator(detectors)

        results = asyncio.run(orchestrator.run_all(image=object()))

        moire = results.method_outcomes[DetectionMethod.MOIRE]
        assert moire.status == OutcomeStatus.ERROR
        assert "Unexpected result type DepthAnalysisResult" in moire.error
        assert results.moire is None
        assert results.available_method_count == 3
        assert results.aggregated_confidence.status == AggregationStatus.PARTIAL
        assert results.aggregated_confidence.method_breakdown[DetectionMethod.MOIRE].available is False

    def test_detectors_run_concurrently(self):
        """Total latency tracks the slowest detector, not the sum."""
        signals = genuine_signals()
        detectors = [
            SleepyDetector(method, signals[method.result_field], delay=0.3)
            for method in DetectionMethod
        ]
        orchestrator = make_orchestrator(detectors)

        start = time.perf_counter()
        results = asyncio.run(orchestrator.run_all(image=object()))
        elapsed = time.perf_counter() - start

        assert results.available_method_count == 4
        assert elapsed < 0.9

    def test_unavailable_detector(self):
        detectors = static_detectors(**genuine_signals())
        detectors[0] = MissingHardwareDetector()
        orchestrator = make_orchestrator(detectors)

        results = asyncio.run(orchestrator.run_all(image=object()))

        lidar = results.method_outcomes[DetectionMethod.LIDAR]
        assert lidar.status == OutcomeStatus.UNAVAILABLE
        assert lidar.error == "No LiDAR sensor"
        assert results.aggregated_confidence.primary_signal_valid is False

    def test_not_applicable_detector_skipped(self):
        orchestrator = make_orchestrator([NotApplicableDetector(), StaticSignalDetector(DetectionMethod.LIDAR, real_depth())])

        results = asyncio.run(orchestrator.run_all(image=object()))

        assert results.method_outcomes[DetectionMethod.ARTIFACTS].status == OutcomeStatus.UNAVAILABLE
        assert results.methods_used == [DetectionMethod.LIDAR]

    def test_detector_timeout(self):
        detectors = static_detectors(**genuine_signals())
        detectors[2] = SlowDetector()
        orchestrator = make_orchestrator(detectors, timeout_seconds=0.05)

        results = asyncio.run(orchestrator.run_all(image=object()))

        texture = results.method_outcomes[DetectionMethod.TEXTURE]
        assert texture.status == OutcomeStatus.ERROR
        assert "Timed out" in texture.error
        assert results.texture is None
        assert results.available_method_count == 3

    def test_non_success_status_is_unavailable(self):
        orchestrator = make_orchestrator([StaticSignalDetector(DetectionMethod.LIDAR, DepthAnalysisResult.unavailable())])

        results = asyncio.run(orchestrator.run_all(image=object()))

        assert results.method_outcomes[DetectionMethod.LIDAR].status == OutcomeStatus.UNAVAILABLE
        assert results.depth is None

    def test_no_detectors(self):
        orchestrator = make_orchestrator([])

        results = asyncio.run(orchestrator.run_all(image=object()))

        assert results.has_any_results is False
        assert results.cross_validation is None
        assert results.aggregated_confidence.status == AggregationStatus.UNAVAILABLE
        assert all(o.status == OutcomeStatus.UNAVAILABLE for o in results.method_outcomes.values())

    def test_cancellation_propagates(self):
        """Cancelling the run cancels in-flight detectors."""
        slow = SlowDetector()
        orchestrator = make_orchestrator([slow], timeout_seconds=10)

        async def scenario():
            task = asyncio.create_task(orchestrator.run_all(image=object()))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())
        assert slow.cancelled is True


class TestRunAllFrames:
    """Tests for multi-frame orchestration."""

    def test_frames_feed_temporal_validation(self):
        frames = [make_frame(i, **genuine_signals()) for i in range(5)]
        orchestrator = make_orchestrator([StaticSignalDetector(method) for method in DetectionMethod])

        results = asyncio.run(orchestrator.run_all_frames(frames))

        temporal = results.cross_validation.temporal_consistency
        assert temporal.frame_count == 5
        assert temporal.anomalies == []
        assert results.methods_used == list(DetectionMethod)

    def test_no_frames(self):
        orchestrator = make_orchestrator([StaticSignalDetector(method) for method in DetectionMethod])

        results = asyncio.run(orchestrator.run_all_frames([]))

        assert results.aggregated_confidence.status == AggregationStatus.UNAVAILABLE
        assert results.has_any_results is False


class TestDetectorRegistry:
    """Tests for detector management."""

    def setup_method(self):
        self.orchestrator = make_orchestrator(static_detectors(**genuine_signals()))

    def test_detector_info(self):
        info = self.orchestrator.get_detector_info()

        assert [d["method"] for d in info] == [m.value for m in DetectionMethod]
        for detector in info:
            assert "name" in detector
            assert "description" in detector
        assert info[0]["base_weight"] == pytest.approx(0.55)

    def test_add_replaces_existing(self):
        self.orchestrator.add_detector(ExplodingDetector())

        assert isinstance(self.orchestrator.detectors[DetectionMethod.MOIRE], ExplodingDetector)
        assert len(self.orchestrator.detectors) == 4

    def test_remove_detector(self):
        self.orchestrator.remove_detector(DetectionMethod.ARTIFACTS)

        assert DetectionMethod.ARTIFACTS not in self.orchestrator.detectors
        results = asyncio.run(self.orchestrator.run_all(image=object()))
        assert results.method_outcomes[DetectionMethod.ARTIFACTS].status == OutcomeStatus.UNAVAILABLE
