"""
Tests for the confidence aggregator.
"""

import itertools
import math

import pytest

from capture_trust.detection.aggregator import ConfidenceAggregator
from capture_trust.models.confidence import (
    AggregationStatus,
    ConfidenceFlag,
    ConfidenceLevel,
    MethodStatus,
)
from capture_trust.models.cross_validation import ValidationStatus
from capture_trust.models.methods import DetectionMethod
from capture_trust.models.signals import (
    DepthAnalysisResult,
    MoireAnalysisResult,
    TextureType,
)

from tests.factories import (
    artificial_artifacts,
    clean_artifacts,
    clean_moire,
    flat_depth,
    genuine_signals,
    make_frame,
    real_depth,
    real_texture,
    recaptured_signals,
    recaptured_texture,
    screen_moire,
    unknown_texture,
)


def comparable(result) -> dict:
    """Result fields that must not depend on timing."""
    return result.model_dump(exclude={"computed_at", "analysis_time_ms", "cross_validation"})


class TestAggregationScenarios:
    """End-to-end scenarios for single-frame aggregation."""

    def setup_method(self):
        self.aggregator = ConfidenceAggregator()

    def test_all_methods_agree_on_real_scene(self):
        """Four agreeing, passing methods should reach very_high."""
        result = self.aggregator.aggregate(**genuine_signals())

        assert result.confidence_level == ConfidenceLevel.VERY_HIGH
        assert result.overall_confidence >= 0.95
        assert result.status == AggregationStatus.SUCCESS
        assert result.primary_signal_valid is True
        assert result.supporting_signals_agree is True
        assert result.flags == []

    def test_screen_detected_caps_level(self):
        """A moire detection against a passing LiDAR caps the level at medium."""
        result = self.aggregator.aggregate(
            depth=real_depth(),
            moire=screen_moire(0.8),
            texture=real_texture(0.9),
        )

        assert result.confidence_level.rank <= ConfidenceLevel.MEDIUM.rank
        assert ConfidenceFlag.SCREEN_DETECTED in result.flags
        assert ConfidenceFlag.PRIMARY_SUPPORTING_DISAGREE in result.flags
        assert result.supporting_signals_agree is False

    def test_primary_signal_failure(self):
        """A flat LiDAR result alone is suspicious and flagged."""
        result = self.aggregator.aggregate(depth=flat_depth())

        assert ConfidenceFlag.PRIMARY_SIGNAL_FAILED in result.flags
        assert ConfidenceFlag.PARTIAL_ANALYSIS in result.flags
        assert result.primary_signal_valid is False
        assert result.confidence_level == ConfidenceLevel.SUSPICIOUS
        assert result.status == AggregationStatus.PARTIAL
        assert result.method_breakdown[DetectionMethod.LIDAR].status == MethodStatus.FAIL

    def test_weights_redistributed_for_two_methods(self):
        """LiDAR and moire alone split the weight 0.55:0.15."""
        result = self.aggregator.aggregate(depth=real_depth(), moire=clean_moire())
        breakdown = result.method_breakdown

        assert breakdown[DetectionMethod.LIDAR].weight == pytest.approx(0.786, abs=1e-3)
        assert breakdown[DetectionMethod.MOIRE].weight == pytest.approx(0.214, abs=1e-3)
        assert breakdown[DetectionMethod.TEXTURE].weight == 0.0
        assert breakdown[DetectionMethod.TEXTURE].score is None
        assert breakdown[DetectionMethod.ARTIFACTS].available is False

    def test_partial_coverage_never_very_high(self):
        """High scores from two methods stop at high."""
        result = self.aggregator.aggregate(depth=real_depth(), moire=clean_moire())

        assert result.overall_confidence >= 0.95
        assert result.confidence_level == ConfidenceLevel.HIGH
        assert ConfidenceFlag.PARTIAL_ANALYSIS in result.flags

    def test_print_detected(self):
        """Printed paper texture raises the print flag and caps the level."""
        signals = genuine_signals()
        signals["texture"] = recaptured_texture(TextureType.PRINTED_PAPER, 0.9)

        result = self.aggregator.aggregate(**signals)

        assert ConfidenceFlag.PRINT_DETECTED in result.flags
        assert ConfidenceFlag.SCREEN_DETECTED not in result.flags
        assert result.confidence_level.rank <= ConfidenceLevel.MEDIUM.rank

    def test_halftone_raises_print_flag(self):
        signals = genuine_signals()
        signals["artifacts"] = artificial_artifacts(0.7, halftone=True)

        result = self.aggregator.aggregate(**signals)

        assert ConfidenceFlag.PRINT_DETECTED in result.flags

    def test_low_confidence_primary(self):
        """LiDAR that barely passes is flagged."""
        result = self.aggregator.aggregate(depth=real_depth(variance=0.1, layers=1, coherence=0.1))

        assert result.method_breakdown[DetectionMethod.LIDAR].status == MethodStatus.PASS
        assert ConfidenceFlag.LOW_CONFIDENCE_PRIMARY in result.flags

    def test_ambiguous_scores(self):
        """Two scores near 0.5 mark the result ambiguous."""
        result = self.aggregator.aggregate(
            texture=unknown_texture(),
            artifacts=artificial_artifacts(0.5),
        )

        assert ConfidenceFlag.AMBIGUOUS_RESULTS in result.flags

    def test_supporting_methods_disagree(self):
        """Supporting methods with opposite verdicts are flagged."""
        result = self.aggregator.aggregate(moire=screen_moire(0.9), texture=real_texture(0.9))

        assert ConfidenceFlag.METHODS_DISAGREE in result.flags
        assert ConfidenceFlag.PRIMARY_SUPPORTING_DISAGREE not in result.flags
        assert result.confidence_level.rank <= ConfidenceLevel.MEDIUM.rank


class TestAggregationEdgeCases:
    """Tests for missing, failed and malformed inputs."""

    def setup_method(self):
        self.aggregator = ConfidenceAggregator()

    def test_no_methods_available(self):
        result = self.aggregator.aggregate()

        assert result.status == AggregationStatus.UNAVAILABLE
        assert result.overall_confidence == 0.0
        assert result.confidence_level == ConfidenceLevel.SUSPICIOUS
        assert result.flags == [ConfidenceFlag.PARTIAL_ANALYSIS]
        assert list(result.method_breakdown) == list(DetectionMethod)
        assert not any(entry.available for entry in result.method_breakdown.values())

    def test_failed_status_treated_as_unavailable(self):
        """A present-but-failed detector contributes nothing."""
        result = self.aggregator.aggregate(
            depth=DepthAnalysisResult.unavailable(),
            moire=clean_moire(),
        )

        lidar = result.method_breakdown[DetectionMethod.LIDAR]
        assert lidar.available is False
        assert lidar.weight == 0.0
        assert lidar.status == MethodStatus.UNAVAILABLE
        assert result.method_breakdown[DetectionMethod.MOIRE].weight == pytest.approx(1.0)
        assert result.primary_signal_valid is False

    def test_nan_confidence_marks_method_unavailable(self):
        result = self.aggregator.aggregate(
            depth=real_depth(),
            moire=MoireAnalysisResult(detected=True, confidence=float("nan")),
        )

        assert result.method_breakdown[DetectionMethod.MOIRE].available is False
        assert not math.isnan(result.overall_confidence)

    def test_out_of_range_confidence_is_clamped(self):
        result = self.aggregator.aggregate(texture=real_texture(1.5))

        assert result.method_breakdown[DetectionMethod.TEXTURE].score == 1.0
        assert 0.0 <= result.overall_confidence <= 1.0

    def test_internal_error_returns_error_result(self):
        """Unexpected failures become an error result instead of raising."""
        def explode(**kwargs):
            raise RuntimeError("boom")

        self.aggregator._perform_aggregation = explode
        result = self.aggregator.aggregate(**genuine_signals())

        assert result.status == AggregationStatus.ERROR
        assert result.overall_confidence == 0.0


class TestAggregationProperties:
    """Invariants that hold for every input combination."""

    def setup_method(self):
        self.aggregator = ConfidenceAggregator()
        self.signals = {
            "depth": real_depth(),
            "moire": screen_moire(0.6),
            "texture": real_texture(0.7),
            "artifacts": artificial_artifacts(0.4),
        }

    def subsets(self):
        names = list(self.signals)
        for size in range(1, len(names) + 1):
            for combo in itertools.combinations(names, size):
                yield {name: self.signals[name] for name in combo}

    def test_weights_sum_to_one(self):
        for subset in self.subsets():
            result = self.aggregator.aggregate(**subset)
            total = sum(entry.weight for entry in result.method_breakdown.values())
            assert total == pytest.approx(1.0, abs=1e-3), subset.keys()

    def test_confidence_bounded(self):
        for subset in self.subsets():
            for enhanced in (False, True):
                result = self.aggregator.aggregate(**subset, enable_enhanced_cross_validation=enhanced)
                assert 0.0 <= result.overall_confidence <= 1.0

    def test_very_high_requires_full_agreement(self):
        for subset in self.subsets():
            result = self.aggregator.aggregate(**subset)
            if result.confidence_level == ConfidenceLevel.VERY_HIGH:
                assert len(subset) == 4
                assert result.supporting_signals_agree

    def test_deterministic(self):
        first = self.aggregator.aggregate(**self.signals, enable_enhanced_cross_validation=True)
        second = self.aggregator.aggregate(**self.signals, enable_enhanced_cross_validation=True)

        assert comparable(first) == comparable(second)
        assert first.cross_validation.model_dump(exclude={"computed_at", "analysis_time_ms"}) == \
            second.cross_validation.model_dump(exclude={"computed_at", "analysis_time_ms"})

    def test_breakdown_in_canonical_order(self):
        result = self.aggregator.aggregate(artifacts=clean_artifacts(), depth=real_depth())

        assert list(result.method_breakdown) == list(DetectionMethod)

    def test_flags_in_canonical_order(self):
        result = self.aggregator.aggregate(depth=flat_depth(), moire=screen_moire(0.9))

        order = list(ConfidenceFlag)
        positions = [order.index(flag) for flag in result.flags]
        assert positions == sorted(positions)


class TestEnhancedCrossValidation:
    """Tests for aggregation with cross-validation enabled."""

    def setup_method(self):
        self.aggregator = ConfidenceAggregator()

    def test_disabled_omits_cross_validation(self):
        result = self.aggregator.aggregate(**genuine_signals())
        payload = result.model_dump(mode="json", exclude_none=True)

        assert result.cross_validation is None
        assert result.confidence_interval is None
        assert "cross_validation" not in payload
        assert "confidence_interval" not in payload

    def test_consistent_signals_pass(self):
        result = self.aggregator.aggregate(**genuine_signals(), enable_enhanced_cross_validation=True)

        assert result.cross_validation is not None
        assert result.cross_validation.validation_status == ValidationStatus.PASS
        assert result.cross_validation.overall_penalty == 0.0
        assert result.confidence_interval == result.cross_validation.aggregated_interval
        assert result.confidence_level == ConfidenceLevel.VERY_HIGH
        assert result.flags == []

    def test_penalty_applied_to_contradictory_signals(self):
        signals = {"depth": real_depth(), "moire": screen_moire(0.8), "texture": real_texture(0.9)}

        plain = self.aggregator.aggregate(**signals)
        enhanced = self.aggregator.aggregate(**signals, enable_enhanced_cross_validation=True)

        penalty = enhanced.cross_validation.overall_penalty
        assert penalty == pytest.approx(0.5)
        assert enhanced.cross_validation.validation_status == ValidationStatus.FAIL
        assert enhanced.overall_confidence == pytest.approx(max(0.0, plain.overall_confidence - penalty))
        assert ConfidenceFlag.CONSISTENCY_ANOMALY in enhanced.flags
        assert enhanced.confidence_level.rank <= ConfidenceLevel.MEDIUM.rank

    def test_unstable_frames_penalized(self):
        frames = [
            make_frame(i, **(genuine_signals() if i % 2 == 0 else recaptured_signals()))
            for i in range(9)
        ]

        plain = self.aggregator.aggregate(**genuine_signals())
        enhanced = self.aggregator.aggregate(
            **genuine_signals(), enable_enhanced_cross_validation=True, frames=frames
        )

        temporal = enhanced.cross_validation.temporal_consistency
        penalty = enhanced.cross_validation.overall_penalty
        assert temporal.frame_count == 9
        assert temporal.anomalies
        assert penalty > 0.0
        assert enhanced.overall_confidence == pytest.approx(max(0.0, plain.overall_confidence - penalty))
        assert ConfidenceFlag.TEMPORAL_INCONSISTENCY in enhanced.flags
        assert ConfidenceFlag.TEMPORAL_INCONSISTENCY not in plain.flags
        assert enhanced.confidence_level.rank <= ConfidenceLevel.MEDIUM.rank

    def test_spread_scores_flag_high_uncertainty(self):
        result = self.aggregator.aggregate(
            depth=real_depth(), moire=screen_moire(0.9), enable_enhanced_cross_validation=True
        )

        assert result.confidence_interval.is_high_uncertainty
        assert ConfidenceFlag.HIGH_UNCERTAINTY in result.flags

    def test_agreeing_scores_have_narrow_interval(self):
        result = self.aggregator.aggregate(**genuine_signals(), enable_enhanced_cross_validation=True)

        assert result.confidence_interval.is_high_uncertainty is False
        assert ConfidenceFlag.HIGH_UNCERTAINTY not in result.flags


class TestConfidenceLevels:
    """Tests for level thresholds."""

    def setup_method(self):
        self.aggregator = ConfidenceAggregator()

    @pytest.mark.parametrize(
        "confidence,full_agreement,expected",
        [
            (0.97, True, ConfidenceLevel.VERY_HIGH),
            (0.97, False, ConfidenceLevel.HIGH),
            (0.75, False, ConfidenceLevel.HIGH),
            (0.5, False, ConfidenceLevel.MEDIUM),
            (0.2, False, ConfidenceLevel.LOW),
            (0.1, False, ConfidenceLevel.SUSPICIOUS),
        ],
    )
    def test_determine_level(self, confidence, full_agreement, expected):
        assert self.aggregator.determine_level(confidence, full_agreement) == expected
