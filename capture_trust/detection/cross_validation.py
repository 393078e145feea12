"""
Cross-validation of detection signals.

Instead of trusting a plain weighted average, this service checks whether
the signals are consistent with each other. Real captures produce signals
that agree in predictable ways; tampered or spoofed captures tend to
produce contradictions, suspiciously perfect agreement, or scores that
jump around between frames.
"""

import logging
import math
import time
from typing import Dict, List, Optional, Sequence, Tuple

from capture_trust.config import AggregationConfig, CrossValidationConfig
from capture_trust.detection.normalization import base_weights, normalize_all, normalize_frame
from capture_trust.models.cross_validation import (
    AnomalyReport,
    AnomalySeverity,
    AnomalyType,
    ConfidenceInterval,
    CrossValidationResult,
    PairwiseConsistency,
    TemporalAnomaly,
    TemporalAnomalyType,
    TemporalConsistency,
    ValidationStatus,
)
from capture_trust.models.methods import METHOD_PAIRS, DetectionMethod, PairRelationship
from capture_trust.models.signals import (
    ArtifactAnalysisResult,
    DepthAnalysisResult,
    DetectionFrame,
    MoireAnalysisResult,
    TextureClassificationResult,
)

logger = logging.getLogger(__name__)

SUPPORTING_METHODS = (DetectionMethod.MOIRE, DetectionMethod.TEXTURE, DetectionMethod.ARTIFACTS)


def _canonical(methods) -> List[DetectionMethod]:
    wanted = set(methods)
    return [method for method in DetectionMethod if method in wanted]


def _variance(values: Sequence[float]) -> float:
    mean = sum(values) / len(values)
    return sum((v - mean) ** 2 for v in values) / len(values)


class CrossValidationService:
    """
    Validates consistency across detection methods.

    The service:
    1. Checks every pair of available methods against its expected agreement
    2. Estimates a confidence interval per method and for the aggregate
    3. Classifies anomaly patterns and turns them into a capped penalty
    4. Tracks score stability across frames for multi-frame captures
    """

    def __init__(
        self,
        config: Optional[CrossValidationConfig] = None,
        aggregation_config: Optional[AggregationConfig] = None,
        algorithm_version: str = "1.0",
    ):
        """
        Initialize cross-validation service.

        Args:
            config: Thresholds and penalties. If None, uses defaults.
            aggregation_config: Weights and normalization thresholds, shared
                with the aggregator so both see identical scores.
            algorithm_version: Version tag stamped on every result
        """
        self.config = config or CrossValidationConfig()
        self.aggregation_config = aggregation_config or AggregationConfig()
        self.algorithm_version = algorithm_version
        self.weights = base_weights(self.aggregation_config)

    def validate(
        self,
        depth: Optional[DepthAnalysisResult] = None,
        moire: Optional[MoireAnalysisResult] = None,
        texture: Optional[TextureClassificationResult] = None,
        artifacts: Optional[ArtifactAnalysisResult] = None,
    ) -> CrossValidationResult:
        """
        Cross-validate the results of a single frame.

        Never raises; an internal failure yields a neutral result.
        """
        start = time.perf_counter()
        try:
            signals = normalize_all(
                self.aggregation_config,
                depth=depth,
                moire=moire,
                texture=texture,
                artifacts=artifacts,
            )
            scores = {method: signal.score for method, signal in signals.items()}
            result = self._build_result(scores)
        except Exception:
            logger.exception("Cross-validation failed, returning neutral result")
            return CrossValidationResult.unavailable(self.algorithm_version)

        return self._finish(result, start, self.config.single_frame_target_ms)

    def validate_multi_frame(self, frames: Sequence[DetectionFrame]) -> CrossValidationResult:
        """
        Cross-validate a multi-frame capture.

        The last frame drives the pairwise checks, intervals and signal
        anomalies; all frames feed the temporal analysis.
        """
        start = time.perf_counter()
        if not frames:
            return CrossValidationResult.unavailable(self.algorithm_version)

        try:
            ordered = sorted(frames, key=lambda f: f.index)
            frame_scores = [
                (
                    frame.index,
                    {m: s.score for m, s in normalize_frame(frame, self.aggregation_config).items()},
                )
                for frame in ordered
            ]

            if len(frame_scores) == 1:
                temporal = TemporalConsistency.single_frame()
            else:
                temporal = self.analyze_temporal(frame_scores)

            result = self._build_result(frame_scores[-1][1], temporal=temporal)
        except Exception:
            logger.exception("Multi-frame cross-validation failed, returning neutral result")
            return CrossValidationResult.unavailable(self.algorithm_version)

        return self._finish(result, start, self.config.multi_frame_target_ms)

    def _finish(self, result: CrossValidationResult, start: float, target_ms: int) -> CrossValidationResult:
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        result = result.model_copy(update={"analysis_time_ms": elapsed_ms})

        logger.info(
            "Cross-validation complete in %dms: status=%s penalty=%.3f anomalies=%d",
            elapsed_ms,
            result.validation_status.value,
            result.overall_penalty,
            len(result.anomalies),
        )
        if elapsed_ms > target_ms:
            logger.warning("Cross-validation exceeded target time: %dms > %dms", elapsed_ms, target_ms)
        return result

    def _build_result(
        self,
        scores: Dict[DetectionMethod, float],
        temporal: Optional[TemporalConsistency] = None,
    ) -> CrossValidationResult:
        pairwise = self.check_pairwise(scores)
        intervals = {method: self.method_interval(method, score) for method, score in scores.items()}
        aggregated = self.aggregate_interval(scores, intervals)

        anomalies = self.detect_anomalies(scores, pairwise)
        if temporal is not None and temporal.anomalies:
            anomalies.append(self._temporal_report(temporal))

        penalty = min(sum(a.confidence_impact for a in anomalies), self.config.max_penalty)

        return CrossValidationResult(
            validation_status=self._determine_status(anomalies, pairwise),
            pairwise_consistencies=pairwise,
            temporal_consistency=temporal,
            confidence_intervals=intervals,
            aggregated_interval=aggregated,
            anomalies=anomalies,
            overall_penalty=penalty,
            algorithm_version=self.algorithm_version,
        )

    # Pairwise consistency

    def check_pairwise(self, scores: Dict[DetectionMethod, float]) -> List[PairwiseConsistency]:
        """
        Compare every pair of available methods.

        Scores are already on the genuineness axis, so the raw polarity
        inversion of NEGATIVE pairs is absorbed by normalization and agreement
        is simply how close the two scores are.
        """
        results = []
        for pair in METHOD_PAIRS:
            if pair.method_a not in scores or pair.method_b not in scores:
                continue

            if pair.relationship == PairRelationship.NEUTRAL:
                actual = 0.5
                anomaly_score = 0.0
            else:
                actual = 1.0 - abs(scores[pair.method_a] - scores[pair.method_b])
                anomaly_score = abs(actual - pair.expected_agreement)

            results.append(
                PairwiseConsistency(
                    method_a=pair.method_a,
                    method_b=pair.method_b,
                    expected_relationship=pair.relationship,
                    actual_agreement=actual,
                    anomaly_score=anomaly_score,
                    is_anomaly=anomaly_score > self.config.pairwise_anomaly_threshold,
                )
            )
        return results

    # Confidence intervals

    def method_interval(self, method: DetectionMethod, score: float) -> ConfidenceInterval:
        """
        Interval around a method's score.

        Less reliable methods get wider intervals, and every interval widens
        towards the 0.5 decision boundary where a score says the least.
        """
        base_width = self.config.interval_widths.get(method.value, 0.1)
        mid_range = 1.0 - abs(2.0 * score - 1.0)
        width = base_width * (1.0 + self.config.mid_range_boost * mid_range)
        return ConfidenceInterval.around(score, width / 2.0)

    def aggregate_interval(
        self,
        scores: Dict[DetectionMethod, float],
        intervals: Dict[DetectionMethod, ConfidenceInterval],
    ) -> ConfidenceInterval:
        """
        Weighted combination of the method intervals.

        The bounds are widened by the weighted spread of the point estimates,
        so disagreeing methods produce a wider aggregate interval.
        """
        if not intervals:
            return ConfidenceInterval.zero()

        total = sum(self.weights[m] for m in intervals)
        if total <= 0:
            return ConfidenceInterval.zero()

        lower = sum(i.lower_bound * self.weights[m] for m, i in intervals.items()) / total
        point = sum(i.point_estimate * self.weights[m] for m, i in intervals.items()) / total
        upper = sum(i.upper_bound * self.weights[m] for m, i in intervals.items()) / total

        spread = math.sqrt(
            sum(self.weights[m] * (scores[m] - point) ** 2 for m in intervals) / total
        )

        point = min(max(point, 0.0), 1.0)
        return ConfidenceInterval(
            lower_bound=min(max(0.0, lower - spread), point),
            point_estimate=point,
            upper_bound=max(min(1.0, upper + spread), point),
        )

    # Anomaly detection

    def detect_anomalies(
        self,
        scores: Dict[DetectionMethod, float],
        pairwise: Optional[List[PairwiseConsistency]] = None,
    ) -> List[AnomalyReport]:
        """Run every anomaly check against the available scores."""
        anomalies = []

        for check in (
            self._check_contradictory,
            self._check_too_high_agreement,
            self._check_isolated,
            self._check_boundary_cluster,
        ):
            report = check(scores)
            if report is not None:
                anomalies.append(report)

        if pairwise:
            report = self._check_correlation(pairwise)
            if report is not None:
                anomalies.append(report)

        return anomalies

    def _check_contradictory(self, scores: Dict[DetectionMethod, float]) -> Optional[AnomalyReport]:
        lidar = scores.get(DetectionMethod.LIDAR)
        if lidar is None:
            return None

        cfg = self.config
        if lidar >= cfg.contradiction_high:
            opposing = [
                m for m in SUPPORTING_METHODS
                if m in scores and scores[m] <= cfg.contradiction_low
            ]
            if opposing:
                names = ", ".join(m.value for m in opposing)
                return AnomalyReport(
                    anomaly_type=AnomalyType.CONTRADICTORY_SIGNALS,
                    severity=AnomalySeverity.HIGH,
                    affected_methods=[DetectionMethod.LIDAR] + opposing,
                    details=f"LiDAR indicates a real scene ({lidar:.2f}) but {names} indicate recapture",
                    confidence_impact=cfg.high_penalty,
                )

        texture = scores.get(DetectionMethod.TEXTURE)
        if lidar <= cfg.contradiction_low and texture is not None and texture >= cfg.contradiction_high:
            return AnomalyReport(
                anomaly_type=AnomalyType.CONTRADICTORY_SIGNALS,
                severity=AnomalySeverity.HIGH,
                affected_methods=[DetectionMethod.LIDAR, DetectionMethod.TEXTURE],
                details=f"LiDAR indicates a flat surface ({lidar:.2f}) but texture indicates real material ({texture:.2f})",
                confidence_impact=cfg.high_penalty,
            )

        return None

    def _check_too_high_agreement(self, scores: Dict[DetectionMethod, float]) -> Optional[AnomalyReport]:
        # 1.0 is what moire and artifacts report for "nothing found", not a measurement
        measured = {m: s for m, s in scores.items() if s < 1.0}
        if len(measured) < 3:
            return None

        spread = max(measured.values()) - min(measured.values())
        if spread >= self.config.too_perfect_spread:
            return None

        return AnomalyReport(
            anomaly_type=AnomalyType.TOO_HIGH_AGREEMENT,
            severity=AnomalySeverity.MEDIUM,
            affected_methods=_canonical(measured),
            details=f"{len(measured)} methods agree within {spread:.3f}, tighter than independent sensors produce",
            confidence_impact=self.config.medium_penalty,
        )

    def _check_isolated(self, scores: Dict[DetectionMethod, float]) -> Optional[AnomalyReport]:
        if len(scores) < 3:
            return None

        cfg = self.config
        for method, score in scores.items():
            others = [s for m, s in scores.items() if m != method]
            if max(others) - min(others) > cfg.consensus_spread:
                continue

            consensus = sum(others) / len(others)
            deviation = abs(score - consensus)
            if deviation <= cfg.isolated_deviation:
                continue

            high = deviation > cfg.isolated_high_deviation
            return AnomalyReport(
                anomaly_type=AnomalyType.ISOLATED_DISAGREEMENT,
                severity=AnomalySeverity.HIGH if high else AnomalySeverity.MEDIUM,
                affected_methods=[method],
                details=f"{method.value} ({score:.2f}) deviates {deviation:.2f} from the consensus of the other methods ({consensus:.2f})",
                confidence_impact=cfg.high_penalty if high else cfg.medium_penalty,
            )

        return None

    def _check_boundary_cluster(self, scores: Dict[DetectionMethod, float]) -> Optional[AnomalyReport]:
        cfg = self.config
        near = [m for m, s in scores.items() if abs(s - cfg.boundary_center) <= cfg.boundary_band]
        if len(near) < 2:
            return None

        severity = AnomalySeverity.MEDIUM if len(near) >= 3 else AnomalySeverity.LOW
        return AnomalyReport(
            anomaly_type=AnomalyType.BOUNDARY_CLUSTER,
            severity=severity,
            affected_methods=_canonical(near),
            details=f"{len(near)} methods score within {cfg.boundary_band:.2f} of the decision boundary",
            confidence_impact=cfg.medium_penalty if severity == AnomalySeverity.MEDIUM else cfg.low_penalty,
        )

    def _check_correlation(self, pairwise: List[PairwiseConsistency]) -> Optional[AnomalyReport]:
        anomalous = [p for p in pairwise if p.is_anomaly]
        if not anomalous:
            return None

        high = len(anomalous) >= 3
        methods = [m for p in anomalous for m in (p.method_a, p.method_b)]
        pairs = ", ".join(f"{p.method_a.value}/{p.method_b.value}" for p in anomalous)
        return AnomalyReport(
            anomaly_type=AnomalyType.CORRELATION_ANOMALY,
            severity=AnomalySeverity.HIGH if high else AnomalySeverity.MEDIUM,
            affected_methods=_canonical(methods),
            details=f"Unexpected agreement between {pairs}",
            confidence_impact=self.config.high_penalty if high else self.config.medium_penalty,
        )

    def _determine_status(
        self,
        anomalies: List[AnomalyReport],
        pairwise: List[PairwiseConsistency],
    ) -> ValidationStatus:
        if any(a.severity == AnomalySeverity.HIGH for a in anomalies):
            return ValidationStatus.FAIL

        medium_count = sum(1 for a in anomalies if a.severity == AnomalySeverity.MEDIUM)
        if medium_count > 2:
            return ValidationStatus.FAIL
        if medium_count > 0 or any(p.is_anomaly for p in pairwise):
            return ValidationStatus.WARN
        return ValidationStatus.PASS

    # Temporal consistency

    def analyze_temporal(
        self,
        frame_scores: List[Tuple[int, Dict[DetectionMethod, float]]],
    ) -> TemporalConsistency:
        """
        Measure how stable each method's score is across frames.

        Args:
            frame_scores: (frame index, normalized scores) per frame, in order

        Returns:
            Temporal consistency with per-method and per-frame stability
        """
        cfg = self.config
        stability: Dict[DetectionMethod, float] = {}
        anomalies: List[TemporalAnomaly] = []
        transitions = 0

        for method in DetectionMethod:
            series = [(index, scores[method]) for index, scores in frame_scores if method in scores]
            if not series:
                continue

            values = [score for _, score in series]
            stability[method] = max(0.0, 1.0 - _variance(values) / cfg.max_expected_variance)
            transitions += len(series) - 1
            anomalies.extend(self._series_anomalies(method, series))

        frame_stability = [1.0]
        for (_, previous), (_, current) in zip(frame_scores, frame_scores[1:]):
            shared = [m for m in current if m in previous]
            if not shared:
                frame_stability.append(1.0)
                continue
            mean_delta = sum(abs(current[m] - previous[m]) for m in shared) / len(shared)
            frame_stability.append(max(0.0, 1.0 - mean_delta))

        if stability:
            total = sum(self.weights[m] for m in stability)
            weighted = sum(value * self.weights[m] for m, value in stability.items()) / total
        else:
            weighted = 1.0

        density = min(1.0, len(anomalies) / transitions) if transitions else 0.0
        overall = min(max(weighted * (1.0 - density), 0.0), 1.0)

        return TemporalConsistency(
            frame_count=len(frame_scores),
            stability_scores=stability,
            frame_stability=frame_stability,
            anomalies=anomalies,
            overall_stability=overall,
        )

    def _series_anomalies(
        self,
        method: DetectionMethod,
        series: List[Tuple[int, float]],
    ) -> List[TemporalAnomaly]:
        cfg = self.config
        anomalies = []
        deltas = [
            (series[i][0], series[i][1] - series[i - 1][1])
            for i in range(1, len(series))
        ]

        for frame_index, delta in deltas:
            if abs(delta) > cfg.sudden_jump_threshold:
                anomalies.append(
                    TemporalAnomaly(
                        frame_index=frame_index,
                        method=method,
                        delta_score=delta,
                        anomaly_type=TemporalAnomalyType.SUDDEN_JUMP,
                    )
                )
        has_jump = bool(anomalies)

        if len(series) < 4:
            return anomalies

        reversals = sum(
            1
            for (_, prev), (_, curr) in zip(deltas, deltas[1:])
            if abs(prev) > cfg.oscillation_step
            and abs(curr) > cfg.oscillation_step
            and (prev > 0) != (curr > 0)
        )
        if reversals >= max(2, math.ceil((len(series) - 2) / 2)):
            anomalies.append(
                TemporalAnomaly(
                    frame_index=series[-1][0],
                    method=method,
                    delta_score=max((d for _, d in deltas), key=abs),
                    anomaly_type=TemporalAnomalyType.OSCILLATION,
                )
            )
            return anomalies

        net_change = series[-1][1] - series[0][1]
        moving = [d for _, d in deltas if d != 0]
        monotonic = bool(moving) and (all(d > 0 for d in moving) or all(d < 0 for d in moving))
        if not has_jump and monotonic and abs(net_change) > cfg.drift_threshold:
            anomalies.append(
                TemporalAnomaly(
                    frame_index=series[-1][0],
                    method=method,
                    delta_score=net_change,
                    anomaly_type=TemporalAnomalyType.DRIFT,
                )
            )

        return anomalies

    def _temporal_report(self, temporal: TemporalConsistency) -> AnomalyReport:
        count = len(temporal.anomalies)
        erratic = any(
            a.anomaly_type in (TemporalAnomalyType.SUDDEN_JUMP, TemporalAnomalyType.OSCILLATION)
            for a in temporal.anomalies
        )

        if count >= 3:
            severity = AnomalySeverity.HIGH
        elif erratic:
            severity = AnomalySeverity.MEDIUM
        else:
            severity = AnomalySeverity.LOW

        return AnomalyReport(
            anomaly_type=AnomalyType.CORRELATION_ANOMALY,
            severity=severity,
            affected_methods=_canonical(a.method for a in temporal.anomalies),
            details=f"{count} temporal anomalies across {temporal.frame_count} frames",
            confidence_impact=min(self.config.temporal_penalty_per_anomaly * count, self.config.max_penalty),
        )