"""
Cross-validation result models.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from capture_trust.models.methods import DetectionMethod, PairRelationship

HIGH_UNCERTAINTY_WIDTH = 0.3


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ValidationStatus(str, Enum):
    """Outcome of cross-validation."""
    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


class AnomalyType(str, Enum):
    """Patterns of inconsistency between detection signals."""
    CONTRADICTORY_SIGNALS = "contradictory_signals"
    TOO_HIGH_AGREEMENT = "too_high_agreement"
    ISOLATED_DISAGREEMENT = "isolated_disagreement"
    BOUNDARY_CLUSTER = "boundary_cluster"
    CORRELATION_ANOMALY = "correlation_anomaly"


class AnomalySeverity(str, Enum):
    """Anomaly severity, ordered low < medium < high."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TemporalAnomalyType(str, Enum):
    """Frame-to-frame instability patterns."""
    SUDDEN_JUMP = "sudden_jump"
    OSCILLATION = "oscillation"
    DRIFT = "drift"


class PairwiseConsistency(BaseModel):
    """Agreement check between two available methods."""

    model_config = ConfigDict(frozen=True)

    method_a: DetectionMethod
    method_b: DetectionMethod
    expected_relationship: PairRelationship
    actual_agreement: float = Field(ge=0.0, le=1.0)
    anomaly_score: float = Field(ge=0.0)
    is_anomaly: bool


class ConfidenceInterval(BaseModel):
    """Uncertainty bounds around a point estimate, clamped to [0, 1]."""

    model_config = ConfigDict(frozen=True)

    lower_bound: float = Field(ge=0.0, le=1.0)
    point_estimate: float = Field(ge=0.0, le=1.0)
    upper_bound: float = Field(ge=0.0, le=1.0)

    @model_validator(mode="after")
    def check_ordering(self) -> "ConfidenceInterval":
        if not self.lower_bound <= self.point_estimate <= self.upper_bound:
            raise ValueError("Interval must satisfy lower_bound <= point_estimate <= upper_bound")
        return self

    @computed_field
    @property
    def width(self) -> float:
        return self.upper_bound - self.lower_bound

    @computed_field
    @property
    def is_high_uncertainty(self) -> bool:
        return self.width > HIGH_UNCERTAINTY_WIDTH

    @classmethod
    def around(cls, point: float, half_width: float) -> "ConfidenceInterval":
        """Build an interval centered on ``point``, clamped to [0, 1]."""
        point = min(max(point, 0.0), 1.0)
        return cls(
            lower_bound=max(0.0, point - half_width),
            point_estimate=point,
            upper_bound=min(1.0, point + half_width),
        )

    @classmethod
    def zero(cls) -> "ConfidenceInterval":
        return cls(lower_bound=0.0, point_estimate=0.0, upper_bound=0.0)


class AnomalyReport(BaseModel):
    """A detected inconsistency pattern and its penalty contribution."""

    model_config = ConfigDict(frozen=True)

    anomaly_type: AnomalyType
    severity: AnomalySeverity
    affected_methods: List[DetectionMethod] = Field(default_factory=list)
    details: str
    confidence_impact: float = Field(ge=0.0, le=0.5)


class TemporalAnomaly(BaseModel):
    """Instability of one method between frames."""

    model_config = ConfigDict(frozen=True)

    frame_index: int
    method: DetectionMethod
    delta_score: float
    anomaly_type: TemporalAnomalyType


class TemporalConsistency(BaseModel):
    """Stability of detection scores across a multi-frame capture."""

    model_config = ConfigDict(frozen=True)

    frame_count: int
    stability_scores: Dict[DetectionMethod, float] = Field(default_factory=dict)
    frame_stability: List[float] = Field(
        default_factory=list,
        description="Per-frame stability relative to the previous frame"
    )
    anomalies: List[TemporalAnomaly] = Field(default_factory=list)
    overall_stability: float = Field(ge=0.0, le=1.0)

    @classmethod
    def single_frame(cls) -> "TemporalConsistency":
        return cls(frame_count=1, frame_stability=[1.0], overall_stability=1.0)


class CrossValidationResult(BaseModel):
    """
    Result of cross-validating the available detection signals.

    ``overall_penalty`` is subtracted from the aggregated confidence when
    enhanced cross-validation is enabled.
    """

    model_config = ConfigDict(frozen=True)

    validation_status: ValidationStatus
    pairwise_consistencies: List[PairwiseConsistency] = Field(default_factory=list)
    temporal_consistency: Optional[TemporalConsistency] = None
    confidence_intervals: Dict[DetectionMethod, ConfidenceInterval] = Field(default_factory=dict)
    aggregated_interval: ConfidenceInterval
    anomalies: List[AnomalyReport] = Field(default_factory=list)
    overall_penalty: float = Field(ge=0.0, le=0.5)
    analysis_time_ms: int = 0
    algorithm_version: str = "1.0"
    computed_at: datetime = Field(default_factory=utc_now)

    @classmethod
    def unavailable(cls, algorithm_version: str = "1.0") -> "CrossValidationResult":
        """Neutral result used when nothing could be validated."""
        return cls(
            validation_status=ValidationStatus.PASS,
            aggregated_interval=ConfidenceInterval.zero(),
            overall_penalty=0.0,
            algorithm_version=algorithm_version,
        )
