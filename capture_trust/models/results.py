"""
Bundled detection results - the output of one detection cycle.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from capture_trust.models.confidence import AggregatedConfidenceResult
from capture_trust.models.cross_validation import CrossValidationResult, utc_now
from capture_trust.models.methods import DetectionMethod
from capture_trust.models.signals import (
    ArtifactAnalysisResult,
    DepthAnalysisResult,
    MoireAnalysisResult,
    TextureClassificationResult,
)


class OutcomeStatus(str, Enum):
    """What happened when a detector was run."""
    COMPLETED = "completed"
    UNAVAILABLE = "unavailable"
    ERROR = "error"


class DetectorOutcome(BaseModel):
    """Per-method record of a detector run."""

    model_config = ConfigDict(frozen=True)

    status: OutcomeStatus
    error: Optional[str] = None
    elapsed_ms: int = 0


class DetectionSummary(BaseModel):
    """Flattened view of a detection cycle for the evidence backend."""

    model_config = ConfigDict(frozen=True)

    detection_available: bool
    detection_confidence_level: Optional[str] = None
    detection_primary_valid: Optional[bool] = None
    detection_signals_agree: Optional[bool] = None
    detection_method_count: int = 0


class DetectionResults(BaseModel):
    """
    Everything produced by one detection cycle.

    Raw detector results are kept only when the detector succeeded; a method
    that was unavailable or errored is ``None`` here and explained in
    ``method_outcomes``.
    """

    model_config = ConfigDict(frozen=True)

    depth: Optional[DepthAnalysisResult] = None
    moire: Optional[MoireAnalysisResult] = None
    texture: Optional[TextureClassificationResult] = None
    artifacts: Optional[ArtifactAnalysisResult] = None
    aggregated_confidence: Optional[AggregatedConfidenceResult] = None
    cross_validation: Optional[CrossValidationResult] = None
    method_outcomes: Dict[DetectionMethod, DetectorOutcome] = Field(default_factory=dict)
    computed_at: datetime = Field(default_factory=utc_now)
    total_processing_time_ms: int = 0

    @property
    def methods_used(self) -> List[DetectionMethod]:
        present = {
            DetectionMethod.LIDAR: self.depth,
            DetectionMethod.MOIRE: self.moire,
            DetectionMethod.TEXTURE: self.texture,
            DetectionMethod.ARTIFACTS: self.artifacts,
        }
        return [method for method, result in present.items() if result is not None]

    @property
    def available_method_count(self) -> int:
        return len(self.methods_used)

    @property
    def has_any_results(self) -> bool:
        return self.available_method_count > 0

    def validate_ranges(self) -> List[str]:
        """
        Check values that the backend would consider out of range.

        Nothing is rejected; the returned warnings are meant to be logged
        alongside the stored evidence.

        Returns:
            List of human-readable warnings, empty when everything looks sane
        """
        warnings = []

        if self.aggregated_confidence is not None:
            confidence = self.aggregated_confidence.overall_confidence
            if not 0.0 <= confidence <= 1.0:
                warnings.append(f"aggregated confidence out of range: {confidence}")

        if self.moire is not None and not _in_unit_range(self.moire.confidence):
            warnings.append(f"moire confidence out of range: {self.moire.confidence}")

        if self.texture is not None and not _in_unit_range(self.texture.confidence):
            warnings.append(f"texture confidence out of range: {self.texture.confidence}")

        if self.artifacts is not None:
            for name in ("pwm_confidence", "specular_confidence", "halftone_confidence", "overall_confidence"):
                value = getattr(self.artifacts, name)
                if not _in_unit_range(value):
                    warnings.append(f"artifacts {name} out of range: {value}")

        if self.depth is not None:
            if self.depth.depth_variance < 0:
                warnings.append(f"depth variance is negative: {self.depth.depth_variance}")
            if self.depth.depth_layers < 0:
                warnings.append(f"depth layers is negative: {self.depth.depth_layers}")
            if not _in_unit_range(self.depth.edge_coherence):
                warnings.append(f"edge coherence out of range: {self.depth.edge_coherence}")

        if self.total_processing_time_ms < 0:
            warnings.append(f"processing time is negative: {self.total_processing_time_ms}")

        return warnings

    def summary(self) -> DetectionSummary:
        """Build the flattened summary stored next to the capture evidence."""
        aggregated = self.aggregated_confidence
        if aggregated is None:
            return DetectionSummary(
                detection_available=self.has_any_results,
                detection_method_count=self.available_method_count,
            )

        return DetectionSummary(
            detection_available=True,
            detection_confidence_level=aggregated.backend_level,
            detection_primary_valid=aggregated.primary_signal_valid,
            detection_signals_agree=aggregated.supporting_signals_agree,
            detection_method_count=self.available_method_count,
        )

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready upload payload; absent optional fields are omitted."""
        return self.model_dump(mode="json", exclude_none=True)


def _in_unit_range(value: float) -> bool:
    return math.isfinite(value) and 0.0 <= value <= 1.0
