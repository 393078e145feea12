"""
FastAPI dependencies for dependency injection.
"""

from functools import lru_cache
from typing import List, Optional

from capture_trust.config import get_settings
from capture_trust.detection.aggregator import ConfidenceAggregator
from capture_trust.detection.cross_validation import CrossValidationService
from capture_trust.detection.detectors.base import SignalDetector
from capture_trust.detection.orchestrator import DetectionOrchestrator


@lru_cache()
def get_cross_validator() -> CrossValidationService:
    """Get cached cross-validation service instance."""
    settings = get_settings()
    return CrossValidationService(
        config=settings.cross_validation,
        aggregation_config=settings.aggregation,
        algorithm_version=settings.algorithm_version,
    )


@lru_cache()
def get_aggregator() -> ConfidenceAggregator:
    """Get cached confidence aggregator instance."""
    settings = get_settings()
    return ConfidenceAggregator(
        config=settings.aggregation,
        cross_validator=get_cross_validator(),
        algorithm_version=settings.algorithm_version,
    )


def get_orchestrator(detectors: Optional[List[SignalDetector]] = None) -> DetectionOrchestrator:
    """Get an orchestrator (new each request, detectors are per-capture)."""
    settings = get_settings()
    return DetectionOrchestrator(
        detectors=detectors,
        aggregator=get_aggregator(),
        timeout_seconds=settings.detector_timeout_seconds,
        target_ms=settings.orchestrator_target_ms,
    )
