"""Data models for detection signals, aggregation and cross-validation."""

from capture_trust.models.confidence import (
    AggregatedConfidenceResult,
    AggregationStatus,
    ConfidenceFlag,
    ConfidenceLevel,
    MethodResult,
    MethodStatus,
)
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
from capture_trust.models.methods import DetectionMethod, PairRelationship
from capture_trust.models.results import (
    DetectionResults,
    DetectionSummary,
    DetectorOutcome,
    OutcomeStatus,
)
from capture_trust.models.signals import (
    ArtifactAnalysisResult,
    ArtifactStatus,
    DepthAnalysisResult,
    DepthStatus,
    DetectionFrame,
    FrequencyPeak,
    MoireAnalysisResult,
    MoireStatus,
    ScreenType,
    TextureClassificationResult,
    TextureStatus,
    TextureType,
)

__all__ = [
    "AggregatedConfidenceResult",
    "AggregationStatus",
    "AnomalyReport",
    "AnomalySeverity",
    "AnomalyType",
    "ArtifactAnalysisResult",
    "ArtifactStatus",
    "ConfidenceFlag",
    "ConfidenceInterval",
    "ConfidenceLevel",
    "CrossValidationResult",
    "DepthAnalysisResult",
    "DepthStatus",
    "DetectionFrame",
    "DetectionMethod",
    "DetectionResults",
    "DetectionSummary",
    "DetectorOutcome",
    "FrequencyPeak",
    "MethodResult",
    "MethodStatus",
    "MoireAnalysisResult",
    "MoireStatus",
    "OutcomeStatus",
    "PairRelationship",
    "PairwiseConsistency",
    "ScreenType",
    "TemporalAnomaly",
    "TemporalAnomalyType",
    "TemporalConsistency",
    "TextureClassificationResult",
    "TextureStatus",
    "TextureType",
    "ValidationStatus",
]
