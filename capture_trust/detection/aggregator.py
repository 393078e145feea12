"""
Confidence aggregator - fuses detection signals into one trust verdict.
"""

import logging
import time
from typing import Dict, List, Optional, Sequence

from capture_trust.config import AggregationConfig, CrossValidationConfig
from capture_trust.detection.cross_validation import CrossValidationService
from capture_trust.detection.normalization import NormalizedSignal, base_weights, normalize_all
from capture_trust.models.confidence import (
    AggregatedConfidenceResult,
    AggregationStatus,
    ConfidenceFlag,
    ConfidenceLevel,
    MethodResult,
    MethodStatus,
    sort_flags,
)
from capture_trust.models.cross_validation import CrossValidationResult, ValidationStatus
from capture_trust.models.methods import DetectionMethod
from capture_trust.models.signals import (
    ArtifactAnalysisResult,
    DepthAnalysisResult,
    DetectionFrame,
    MoireAnalysisResult,
    TextureClassificationResult,
    TextureType,
)

logger = logging.getLogger(__name__)


class ConfidenceAggregator:
    """
    Combines the four detection methods into a single confidence result.

    The aggregator:
    1. Normalizes each available method onto a genuineness score
    2. Redistributes the base weights over the methods that are available
    3. Computes the weighted confidence, agreement boost and level caps
    4. Explains the verdict with flags
    5. Optionally runs cross-validation and applies its penalty
    """

    def __init__(
        self,
        config: Optional[AggregationConfig] = None,
        cross_validator: Optional[CrossValidationService] = None,
        algorithm_version: str = "1.0",
    ):
        """
        Initialize the aggregator.

        Args:
            config: Weights and thresholds. If None, uses defaults.
            cross_validator: Service used for enhanced cross-validation. If
                None, one is created sharing this aggregator's config.
            algorithm_version: Version tag stamped on every result
        """
        self.config = config or AggregationConfig()
        self.algorithm_version = algorithm_version
        self.cross_validator = cross_validator or CrossValidationService(
            config=CrossValidationConfig(),
            aggregation_config=self.config,
            algorithm_version=algorithm_version,
        )
        self.base_weights = base_weights(self.config)

    def aggregate(
        self,
        depth: Optional[DepthAnalysisResult] = None,
        moire: Optional[MoireAnalysisResult] = None,
        texture: Optional[TextureClassificationResult] = None,
        artifacts: Optional[ArtifactAnalysisResult] = None,
        enable_enhanced_cross_validation: bool = False,
        frames: Optional[Sequence[DetectionFrame]] = None,
    ) -> AggregatedConfidenceResult:
        """
        Aggregate the available detection results.

        Never raises: no usable signal yields an ``unavailable`` result and an
        internal failure yields an ``error`` result.

        Args:
            depth: LiDAR depth analysis (primary signal)
            moire: Moire pattern detection
            texture: Texture classification
            artifacts: Display/print artifact detection
            enable_enhanced_cross_validation: Run cross-validation and apply
                its penalty, interval and flags
            frames: Multi-frame capture; when given with cross-validation
                enabled, temporal consistency is checked as well

        Returns:
            Aggregated confidence result
        """
        start = time.perf_counter()

        try:
            result = self._perform_aggregation(
                depth=depth,
                moire=moire,
                texture=texture,
                artifacts=artifacts,
                enable_enhanced_cross_validation=enable_enhanced_cross_validation,
                frames=frames,
            )
        except Exception:
            logger.exception("Confidence aggregation failed")
            result = AggregatedConfidenceResult.error(self.algorithm_version)

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        result = result.model_copy(update={"analysis_time_ms": elapsed_ms})

        logger.info(
            "Confidence aggregation complete in %dms: overall=%.3f level=%s primary=%s agree=%s flags=%s",
            elapsed_ms,
            result.overall_confidence,
            result.confidence_level.value,
            result.primary_signal_valid,
            result.supporting_signals_agree,
            [flag.value for flag in result.flags],
        )
        if elapsed_ms > self.config.target_ms:
            logger.warning(
                "Aggregation exceeded target time: %dms > %dms", elapsed_ms, self.config.target_ms
            )

        return result

    def _perform_aggregation(
        self,
        depth: Optional[DepthAnalysisResult],
        moire: Optional[MoireAnalysisResult],
        texture: Optional[TextureClassificationResult],
        artifacts: Optional[ArtifactAnalysisResult],
        enable_enhanced_cross_validation: bool,
        frames: Optional[Sequence[DetectionFrame]],
    ) -> AggregatedConfidenceResult:
        signals = normalize_all(
            self.config,
            depth=depth,
            moire=moire,
            texture=texture,
            artifacts=artifacts,
        )
        if not signals:
            logger.warning("No detection methods available for aggregation")
            return AggregatedConfidenceResult.unavailable(self.algorithm_version)

        for method, signal in signals.items():
            logger.debug("Normalized %s: score=%.3f status=%s", method.value, signal.score, signal.status.value)

        weights = self.redistribute_weights(signals)
        breakdown = self._build_breakdown(signals, weights)

        overall = sum(signals[m].score * weights[m] for m in signals)

        disagreement_flags = self._check_disagreement(signals)
        all_available = len(signals) == len(DetectionMethod)
        all_pass = all(s.status == MethodStatus.PASS for s in signals.values())
        supporting_agree = not disagreement_flags

        if all_available and all_pass and supporting_agree:
            overall = min(1.0, overall + self.config.agreement_boost)

        lidar = signals.get(DetectionMethod.LIDAR)
        primary_valid = lidar is not None and lidar.status == MethodStatus.PASS

        flags = set(disagreement_flags)
        flags.update(self._signal_flags(signals, moire, texture, artifacts))

        cross_validation = None
        confidence_interval = None
        if enable_enhanced_cross_validation:
            if frames:
                cross_validation = self.cross_validator.validate_multi_frame(frames)
            else:
                cross_validation = self.cross_validator.validate(
                    depth=depth, moire=moire, texture=texture, artifacts=artifacts
                )
            overall = max(0.0, overall - cross_validation.overall_penalty)
            confidence_interval = cross_validation.aggregated_interval
            flags.update(self._cross_validation_flags(cross_validation))

        overall = min(max(overall, 0.0), 1.0)

        level = self.determine_level(overall, all_available and all_pass and supporting_agree)
        if flags & {ConfidenceFlag.SCREEN_DETECTED, ConfidenceFlag.PRINT_DETECTED}:
            level = level.capped_at(ConfidenceLevel.MEDIUM)
        if disagreement_flags:
            level = level.capped_at(ConfidenceLevel.MEDIUM)
        if ConfidenceFlag.PRIMARY_SIGNAL_FAILED in flags:
            level = level.capped_at(ConfidenceLevel.MEDIUM)
        if cross_validation is not None and cross_validation.validation_status == ValidationStatus.FAIL:
            level = level.capped_at(ConfidenceLevel.MEDIUM)

        if self._is_ambiguous(overall, signals):
            flags.add(ConfidenceFlag.AMBIGUOUS_RESULTS)

        return AggregatedConfidenceResult(
            overall_confidence=overall,
            confidence_level=level,
            method_breakdown=breakdown,
            primary_signal_valid=primary_valid,
            supporting_signals_agree=supporting_agree,
            flags=sort_flags(flags),
            status=AggregationStatus.SUCCESS if all_available else AggregationStatus.PARTIAL,
            algorithm_version=self.algorithm_version,
            cross_validation=cross_validation,
            confidence_interval=confidence_interval,
        )

    def redistribute_weights(self, signals: Dict[DetectionMethod, NormalizedSignal]) -> Dict[DetectionMethod, float]:
        """
        Renormalize base weights over the available methods.

        Returns:
            Weight per method in canonical order; unavailable methods get 0
        """
        total = sum(self.base_weights[m] for m in signals)
        return {
            method: (self.base_weights[method] / total if method in signals and total > 0 else 0.0)
            for method in DetectionMethod
        }

    def _build_breakdown(
        self,
        signals: Dict[DetectionMethod, NormalizedSignal],
        weights: Dict[DetectionMethod, float],
    ) -> Dict[DetectionMethod, MethodResult]:
        breakdown = {}
        for method in DetectionMethod:
            signal = signals.get(method)
            if signal is None:
                breakdown[method] = MethodResult.unavailable()
                continue
            breakdown[method] = MethodResult(
                available=True,
                score=signal.score,
                weight=weights[method],
                contribution=signal.score * weights[method],
                status=signal.status,
            )
        return breakdown

    def _check_disagreement(self, signals: Dict[DetectionMethod, NormalizedSignal]) -> List[ConfidenceFlag]:
        """
        Find methods that disagree on pass/fail by more than the tolerance.

        A pass/fail split with nearly equal scores is a boundary case, not a
        disagreement.
        """
        tolerance = self.config.disagreement_tolerance
        flags = []

        lidar = signals.get(DetectionMethod.LIDAR)
        supporting = [(m, s) for m, s in signals.items() if not m.is_primary]

        if lidar is not None:
            for _, signal in supporting:
                if signal.status != lidar.status and abs(signal.score - lidar.score) > tolerance:
                    flags.append(ConfidenceFlag.PRIMARY_SUPPORTING_DISAGREE)
                    break

        for index, (_, first) in enumerate(supporting):
            if any(
                second.status != first.status and abs(second.score - first.score) > tolerance
                for _, second in supporting[index + 1:]
            ):
                flags.append(ConfidenceFlag.METHODS_DISAGREE)
                break

        return flags

    def _signal_flags(
        self,
        signals: Dict[DetectionMethod, NormalizedSignal],
        moire: Optional[MoireAnalysisResult],
        texture: Optional[TextureClassificationResult],
        artifacts: Optional[ArtifactAnalysisResult],
    ) -> List[ConfidenceFlag]:
        threshold = self.config.detection_flag_threshold
        flags = []

        lidar = signals.get(DetectionMethod.LIDAR)
        if lidar is not None and lidar.status == MethodStatus.FAIL:
            flags.append(ConfidenceFlag.PRIMARY_SIGNAL_FAILED)
        if lidar is not None and lidar.status == MethodStatus.PASS:
            if lidar.score < self.config.depth_pass_floor + self.config.low_confidence_primary_margin:
                flags.append(ConfidenceFlag.LOW_CONFIDENCE_PRIMARY)

        moire_screen = (
            DetectionMethod.MOIRE in signals
            and moire.detected
            and moire.confidence > threshold
        )
        texture_screen = DetectionMethod.TEXTURE in signals and texture.classification.is_screen
        if moire_screen or texture_screen:
            flags.append(ConfidenceFlag.SCREEN_DETECTED)

        halftone = (
            DetectionMethod.ARTIFACTS in signals
            and artifacts.halftone_detected
            and artifacts.halftone_confidence > threshold
        )
        texture_print = (
            DetectionMethod.TEXTURE in signals
            and texture.classification == TextureType.PRINTED_PAPER
        )
        if halftone or texture_print:
            flags.append(ConfidenceFlag.PRINT_DETECTED)

        if len(signals) < len(DetectionMethod):
            flags.append(ConfidenceFlag.PARTIAL_ANALYSIS)

        return flags

    def _cross_validation_flags(self, cross_validation: CrossValidationResult) -> List[ConfidenceFlag]:
        flags = []

        if cross_validation.validation_status != ValidationStatus.PASS or any(
            p.is_anomaly for p in cross_validation.pairwise_consistencies
        ):
            flags.append(ConfidenceFlag.CONSISTENCY_ANOMALY)

        temporal = cross_validation.temporal_consistency
        if temporal is not None and temporal.anomalies:
            flags.append(ConfidenceFlag.TEMPORAL_INCONSISTENCY)

        if cross_validation.aggregated_interval.is_high_uncertainty or any(
            interval.is_high_uncertainty for interval in cross_validation.confidence_intervals.values()
        ):
            flags.append(ConfidenceFlag.HIGH_UNCERTAINTY)

        return flags

    def determine_level(self, confidence: float, full_agreement: bool) -> ConfidenceLevel:
        """
        Map a confidence value onto a level.

        very_high additionally requires all four methods available, passing
        and agreeing.
        """
        if confidence >= self.config.very_high_threshold and full_agreement:
            return ConfidenceLevel.VERY_HIGH
        if confidence >= self.config.high_threshold:
            return ConfidenceLevel.HIGH
        if confidence >= self.config.medium_threshold:
            return ConfidenceLevel.MEDIUM
        if confidence >= self.config.low_threshold:
            return ConfidenceLevel.LOW
        return ConfidenceLevel.SUSPICIOUS

    def _is_ambiguous(self, overall: float, signals: Dict[DetectionMethod, NormalizedSignal]) -> bool:
        cfg = self.config
        boundaries = (cfg.very_high_threshold, cfg.high_threshold, cfg.medium_threshold, cfg.low_threshold)
        if any(abs(overall - boundary) <= cfg.boundary_margin for boundary in boundaries):
            return True

        middling = sum(
            1 for s in signals.values()
            if cfg.ambiguous_score_low <= s.score <= cfg.ambiguous_score_high
        )
        return middling >= 2
