"""
Score normalization shared by the aggregator and cross-validation.

Every detector reports on its own axis (depth geometry, "screen detected"
confidence, material class). Normalization maps each onto a genuineness
score in [0, 1] where 1.0 means "real physical scene", and decides whether
the method passed or failed.
"""

import math
from typing import Dict, NamedTuple, Optional

from capture_trust.config import AggregationConfig
from capture_trust.models.confidence import MethodStatus
from capture_trust.models.methods import DetectionMethod
from capture_trust.models.signals import (
    ArtifactAnalysisResult,
    ArtifactStatus,
    DepthAnalysisResult,
    DepthStatus,
    DetectionFrame,
    MoireAnalysisResult,
    MoireStatus,
    TextureClassificationResult,
    TextureStatus,
    TextureType,
)


class NormalizedSignal(NamedTuple):
    score: float
    status: MethodStatus


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(max(value, low), high)


def _finite(*values: float) -> bool:
    return all(math.isfinite(v) for v in values)


def _ratio(value: float, threshold: float) -> float:
    if threshold <= 0:
        return 1.0
    return clamp(value / threshold)


def normalize_depth(
    result: Optional[DepthAnalysisResult],
    config: AggregationConfig,
) -> Optional[NormalizedSignal]:
    """
    Normalize LiDAR depth analysis.

    A passing scene scores at least ``depth_pass_floor`` and climbs towards 1.0
    as each metric reaches twice its pass threshold. A failing scene scores at
    most ``depth_fail_ceiling``, scaled by how close the metrics came to
    passing.
    """
    if result is None or result.status != DepthStatus.COMPLETED:
        return None
    if not _finite(result.depth_variance, result.edge_coherence):
        return None

    variance = max(result.depth_variance, 0.0)
    layers = max(result.depth_layers, 0)
    coherence = clamp(result.edge_coherence)

    if result.is_likely_real_scene:
        ratios = (
            _ratio(variance, config.depth_variance_threshold * 2),
            _ratio(layers, config.depth_layers_threshold * 2),
            _ratio(coherence, config.edge_coherence_threshold * 2),
        )
        score = config.depth_pass_floor + (1.0 - config.depth_pass_floor) * sum(ratios) / 3
        return NormalizedSignal(clamp(score), MethodStatus.PASS)

    ratios = (
        _ratio(variance, config.depth_variance_threshold),
        _ratio(layers, config.depth_layers_threshold),
        _ratio(coherence, config.edge_coherence_threshold),
    )
    score = config.depth_fail_ceiling * sum(ratios) / 3
    return NormalizedSignal(clamp(score), MethodStatus.FAIL)


def normalize_moire(result: Optional[MoireAnalysisResult]) -> Optional[NormalizedSignal]:
    """Moire reports screen likelihood, so a detection inverts into a low score."""
    if result is None or result.status != MoireStatus.COMPLETED:
        return None
    if not _finite(result.confidence):
        return None

    if result.detected:
        return NormalizedSignal(1.0 - clamp(result.confidence), MethodStatus.FAIL)
    return NormalizedSignal(1.0, MethodStatus.PASS)


def normalize_texture(result: Optional[TextureClassificationResult]) -> Optional[NormalizedSignal]:
    if result is None or result.status != TextureStatus.SUCCESS:
        return None
    if not _finite(result.confidence):
        return None

    confidence = clamp(result.confidence)
    status = MethodStatus.FAIL if result.is_likely_recaptured else MethodStatus.PASS

    if result.classification == TextureType.REAL_SCENE:
        score = confidence
    elif result.classification.is_recapture:
        score = 1.0 - confidence
    else:
        # Ambiguous material
        score = 0.5
    return NormalizedSignal(score, status)


def normalize_artifacts(result: Optional[ArtifactAnalysisResult]) -> Optional[NormalizedSignal]:
    if result is None or result.status != ArtifactStatus.SUCCESS:
        return None
    if not _finite(result.overall_confidence):
        return None

    if result.is_likely_artificial:
        return NormalizedSignal(1.0 - clamp(result.overall_confidence), MethodStatus.FAIL)
    return NormalizedSignal(1.0, MethodStatus.PASS)


def normalize_all(
    config: AggregationConfig,
    depth: Optional[DepthAnalysisResult] = None,
    moire: Optional[MoireAnalysisResult] = None,
    texture: Optional[TextureClassificationResult] = None,
    artifacts: Optional[ArtifactAnalysisResult] = None,
) -> Dict[DetectionMethod, NormalizedSignal]:
    """
    Normalize every available method.

    Returns:
        Map of available methods to their signal, in canonical method order
    """
    signals = {
        DetectionMethod.LIDAR: normalize_depth(depth, config),
        DetectionMethod.MOIRE: normalize_moire(moire),
        DetectionMethod.TEXTURE: normalize_texture(texture),
        DetectionMethod.ARTIFACTS: normalize_artifacts(artifacts),
    }
    return {method: signal for method, signal in signals.items() if signal is not None}


def normalize_frame(frame: DetectionFrame, config: AggregationConfig) -> Dict[DetectionMethod, NormalizedSignal]:
    return normalize_all(
        config,
        depth=frame.depth,
        moire=frame.moire,
        texture=frame.texture,
        artifacts=frame.artifacts,
    )


def base_weights(config: AggregationConfig) -> Dict[DetectionMethod, float]:
    return {
        DetectionMethod.LIDAR: config.lidar_weight,
        DetectionMethod.MOIRE: config.moire_weight,
        DetectionMethod.TEXTURE: config.texture_weight,
        DetectionMethod.ARTIFACTS: config.artifacts_weight,
    }
