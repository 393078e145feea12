"""
Aggregated confidence models.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from capture_trust.models.cross_validation import (
    ConfidenceInterval,
    CrossValidationResult,
    utc_now,
)
from capture_trust.models.methods import DetectionMethod


class ConfidenceLevel(str, Enum):
    """
    Ordinal trust level, suspicious < low < medium < high < very_high.

    Compare levels with ``rank``; the string values are serialization tags.
    """
    SUSPICIOUS = "suspicious"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]

    def capped_at(self, ceiling: "ConfidenceLevel") -> "ConfidenceLevel":
        return ceiling if self.rank > ceiling.rank else self

    def to_backend_level(self) -> str:
        """Map to the backend's four-level scale, which has no very_high."""
        if self == ConfidenceLevel.VERY_HIGH:
            return ConfidenceLevel.HIGH.value
        return self.value


_LEVEL_RANK = {
    ConfidenceLevel.SUSPICIOUS: 0,
    ConfidenceLevel.LOW: 1,
    ConfidenceLevel.MEDIUM: 2,
    ConfidenceLevel.HIGH: 3,
    ConfidenceLevel.VERY_HIGH: 4,
}


class MethodStatus(str, Enum):
    """Pass/fail verdict of a single method after normalization."""
    PASS = "pass"
    FAIL = "fail"
    UNAVAILABLE = "unavailable"


class AggregationStatus(str, Enum):
    """How complete the aggregation was."""
    SUCCESS = "success"
    PARTIAL = "partial"
    UNAVAILABLE = "unavailable"
    ERROR = "error"


class ConfidenceFlag(str, Enum):
    """Explanatory flags, declared in the order they are reported."""
    PRIMARY_SIGNAL_FAILED = "primary_signal_failed"
    SCREEN_DETECTED = "screen_detected"
    PRINT_DETECTED = "print_detected"
    METHODS_DISAGREE = "methods_disagree"
    PRIMARY_SUPPORTING_DISAGREE = "primary_supporting_disagree"
    PARTIAL_ANALYSIS = "partial_analysis"
    LOW_CONFIDENCE_PRIMARY = "low_confidence_primary"
    AMBIGUOUS_RESULTS = "ambiguous_results"
    CONSISTENCY_ANOMALY = "consistency_anomaly"
    TEMPORAL_INCONSISTENCY = "temporal_inconsistency"
    HIGH_UNCERTAINTY = "high_uncertainty"


_FLAG_ORDER = {flag: index for index, flag in enumerate(ConfidenceFlag)}


def sort_flags(flags) -> List[ConfidenceFlag]:
    """Deduplicate flags and put them in canonical order."""
    return sorted(set(flags), key=_FLAG_ORDER.__getitem__)


class MethodResult(BaseModel):
    """Contribution of a single method to the aggregate."""

    model_config = ConfigDict(frozen=True)

    available: bool
    score: Optional[float] = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Normalized genuineness score, 1.0 = real scene"
    )
    weight: float = Field(default=0.0, ge=0.0, le=1.0)
    contribution: float = Field(default=0.0, ge=0.0, le=1.0)
    status: MethodStatus = MethodStatus.UNAVAILABLE

    @classmethod
    def unavailable(cls) -> "MethodResult":
        return cls(available=False)


def empty_breakdown() -> Dict[DetectionMethod, MethodResult]:
    return {method: MethodResult.unavailable() for method in DetectionMethod}


class AggregatedConfidenceResult(BaseModel):
    """
    Single trust verdict combining all available detection methods.

    ``method_breakdown`` always has one entry per method, in canonical order.
    ``cross_validation`` and ``confidence_interval`` are only set when the
    aggregator ran with enhanced cross-validation.
    """

    model_config = ConfigDict(frozen=True)

    overall_confidence: float = Field(ge=0.0, le=1.0)
    confidence_level: ConfidenceLevel
    method_breakdown: Dict[DetectionMethod, MethodResult] = Field(default_factory=empty_breakdown)
    primary_signal_valid: bool = False
    supporting_signals_agree: bool = False
    flags: List[ConfidenceFlag] = Field(default_factory=list)
    status: AggregationStatus
    analysis_time_ms: int = 0
    algorithm_version: str = "1.0"
    computed_at: datetime = Field(default_factory=utc_now)
    cross_validation: Optional[CrossValidationResult] = None
    confidence_interval: Optional[ConfidenceInterval] = None

    @property
    def backend_level(self) -> str:
        return self.confidence_level.to_backend_level()

    @classmethod
    def unavailable(cls, algorithm_version: str = "1.0") -> "AggregatedConfidenceResult":
        """Result for a capture where no method produced a usable signal."""
        return cls(
            overall_confidence=0.0,
            confidence_level=ConfidenceLevel.SUSPICIOUS,
            flags=[ConfidenceFlag.PARTIAL_ANALYSIS],
            status=AggregationStatus.UNAVAILABLE,
            algorithm_version=algorithm_version,
        )

    @classmethod
    def error(cls, algorithm_version: str = "1.0") -> "AggregatedConfidenceResult":
        return cls(
            overall_confidence=0.0,
            confidence_level=ConfidenceLevel.SUSPICIOUS,
            flags=[ConfidenceFlag.PARTIAL_ANALYSIS],
            status=AggregationStatus.ERROR,
            algorithm_version=algorithm_version,
        )
