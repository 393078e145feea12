"""
FastAPI API routes.
"""

from typing import Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from capture_trust import __version__
from capture_trust.api.dependencies import get_aggregator, get_cross_validator, get_orchestrator
from capture_trust.detection.detectors.static import StaticSignalDetector, static_detectors
from capture_trust.models.confidence import AggregatedConfidenceResult
from capture_trust.models.cross_validation import CrossValidationResult
from capture_trust.models.methods import METHOD_PAIRS, DetectionMethod
from capture_trust.models.results import DetectionResults, DetectionSummary
from capture_trust.models.signals import (
    ArtifactAnalysisResult,
    DepthAnalysisResult,
    DetectionFrame,
    MoireAnalysisResult,
    TextureClassificationResult,
)


router = APIRouter()


# Request/Response Models
class SignalsRequest(BaseModel):
    """Detector results for a single frame; any of them may be omitted."""
    depth: Optional[DepthAnalysisResult] = None
    moire: Optional[MoireAnalysisResult] = None
    texture: Optional[TextureClassificationResult] = None
    artifacts: Optional[ArtifactAnalysisResult] = None


class AggregateRequest(SignalsRequest):
    """Request model for confidence aggregation."""
    enable_enhanced_cross_validation: bool = False


class FramesRequest(BaseModel):
    """Request model for multi-frame cross-validation."""
    frames: List[DetectionFrame] = Field(min_length=1)


class AnalyzeRequest(SignalsRequest):
    """
    Request model for the full detection pipeline.

    Send either the four detector results or a list of frames; a request
    carrying both is rejected.
    """
    frames: Optional[List[DetectionFrame]] = None


class AnalyzeResponse(BaseModel):
    """Response model for the full detection pipeline."""
    results: DetectionResults
    summary: DetectionSummary
    warnings: List[str] = Field(default_factory=list)


class ValidateResultsResponse(BaseModel):
    """Backend validation of an uploaded detection bundle."""
    summary: DetectionSummary
    warnings: List[str] = Field(default_factory=list)


class MethodInfo(BaseModel):
    """Static description of a detection method."""
    method: DetectionMethod
    name: str
    primary: bool
    base_weight: float
    interval_width: float
    relationships: Dict[str, str]


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str


# Routes
@router.get("/api/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=__version__)


@router.get("/api/methods", response_model=List[MethodInfo])
async def list_methods():
    """List detection methods with their weights and expected relationships."""
    aggregator = get_aggregator()
    cross_validator = get_cross_validator()

    methods = []
    for method in DetectionMethod:
        relationships = {}
        for pair in METHOD_PAIRS:
            if method in (pair.method_a, pair.method_b):
                other = pair.method_b if pair.method_a == method else pair.method_a
                relationships[other.value] = pair.relationship.value

        methods.append(
            MethodInfo(
                method=method,
                name=method.display_name,
                primary=method.is_primary,
                base_weight=aggregator.base_weights[method],
                interval_width=cross_validator.config.interval_widths.get(method.value, 0.1),
                relationships=relationships,
            )
        )
    return methods


@router.post(
    "/api/aggregate",
    response_model=AggregatedConfidenceResult,
    response_model_exclude_none=True,
)
async def aggregate_confidence(request: AggregateRequest):
    """Aggregate detector results into a single confidence verdict."""
    aggregator = get_aggregator()
    return aggregator.aggregate(
        depth=request.depth,
        moire=request.moire,
        texture=request.texture,
        artifacts=request.artifacts,
        enable_enhanced_cross_validation=request.enable_enhanced_cross_validation,
    )


@router.post(
    "/api/cross-validate",
    response_model=CrossValidationResult,
    response_model_exclude_none=True,
)
async def cross_validate(request: SignalsRequest):
    """Cross-validate the detector results of a single frame."""
    cross_validator = get_cross_validator()
    return cross_validator.validate(
        depth=request.depth,
        moire=request.moire,
        texture=request.texture,
        artifacts=request.artifacts,
    )


@router.post(
    "/api/cross-validate/frames",
    response_model=CrossValidationResult,
    response_model_exclude_none=True,
)
async def cross_validate_frames(request: FramesRequest):
    """Cross-validate a multi-frame capture, including temporal consistency."""
    cross_validator = get_cross_validator()
    return cross_validator.validate_multi_frame(request.frames)


@router.post(
    "/api/analyze",
    response_model=AnalyzeResponse,
    response_model_exclude_none=True,
)
async def analyze_capture(request: AnalyzeRequest):
    """
    Run the detection pipeline over results computed on the device.

    This is the main endpoint that:
    1. Replays each provided result through the orchestrator
    2. Aggregates with cross-validation enabled
    3. Summarizes and sanity-checks the bundle for evidence storage
    """
    signals = {
        method: getattr(request, method.result_field)
        for method in DetectionMethod
    }
    has_signals = any(result is not None for result in signals.values())

    if not has_signals and not request.frames:
        raise HTTPException(
            status_code=400,
            detail="At least one detector result or a list of frames is required"
        )

    if has_signals and request.frames:
        raise HTTPException(
            status_code=400,
            detail="Provide either detector results or frames, not both"
        )

    if request.frames:
        orchestrator = get_orchestrator(
            [StaticSignalDetector(method) for method in DetectionMethod]
        )
        results = await orchestrator.run_all_frames(request.frames)
    else:
        orchestrator = get_orchestrator(
            static_detectors(**{method.result_field: result for method, result in signals.items()})
        )
        results = await orchestrator.run_all(image=True)

    return AnalyzeResponse(
        results=results,
        summary=results.summary(),
        warnings=results.validate_ranges(),
    )


@router.post("/api/results/validate", response_model=ValidateResultsResponse)
async def validate_results(results: DetectionResults):
    """Summarize an uploaded detection bundle and report out-of-range values."""
    return ValidateResultsResponse(
        summary=results.summary(),
        warnings=results.validate_ranges(),
    )
