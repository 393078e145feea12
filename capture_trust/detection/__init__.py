"""Confidence aggregation, cross-validation and detector orchestration."""

from capture_trust.detection.aggregator import ConfidenceAggregator
from capture_trust.detection.cross_validation import CrossValidationService
from capture_trust.detection.orchestrator import DetectionOrchestrator

__all__ = ["ConfidenceAggregator", "CrossValidationService", "DetectionOrchestrator"]
